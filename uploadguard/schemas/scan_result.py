"""ScanResult — the single output channel of the scan pipeline.

Every outcome of a scan, including internal failure, is expressed as a
:class:`ScanResult`; callers never need exception handling around a scan.
The result is immutable and owned by the caller.

The decision flags are *derived* from the threat list and the policy by
:mod:`uploadguard.core.decision`.  The model validates the invariants that
hold for every derivation so that a result reconstructed from JSON cannot
carry contradictory flags.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from uploadguard.schemas.threat import Severity, Threat


class ScanMetadata(BaseModel):
    """Descriptive metadata about the scanned file and the scan itself."""

    model_config = {"frozen": True}

    file_name: str
    file_size: int = Field(ge=0)
    mime_type: str
    scan_duration_ms: int = Field(ge=0)
    scan_timestamp: datetime
    detected_type: str | None = None
    scan_id: str | None = None


class ScanResult(BaseModel):
    """Immutable result of one scan.

    Attributes:
        is_secure: ``True`` exactly when :attr:`threats` is empty.
        threats: Ordered tuple of :class:`~uploadguard.schemas.threat.Threat`
            objects in detector order.
        quarantine_recommended: ``True`` when the file should be handed to the
            quarantine store.
        allow_upload: ``True`` when the policy tolerates every threat found.
        metadata: :class:`ScanMetadata` for the scanned file.

    Raises:
        pydantic.ValidationError: On construction when the flags contradict
            the threat list.
    """

    model_config = {"frozen": True}

    is_secure: bool
    threats: tuple[Threat, ...] = ()
    quarantine_recommended: bool
    allow_upload: bool
    metadata: ScanMetadata

    @model_validator(mode="after")
    def check_derived_flags(self) -> ScanResult:
        if self.is_secure != (not self.threats):
            raise ValueError("is_secure must be True exactly when no threats are present")
        if not self.threats and (self.quarantine_recommended or not self.allow_upload):
            raise ValueError("a result without threats must allow upload and not quarantine")
        return self

    @property
    def highest_severity(self) -> Severity | None:
        """Return the most severe :class:`Severity` present, or ``None``."""
        if not self.threats:
            return None
        return max(t.severity for t in self.threats)

    def to_dict(self) -> dict[str, Any]:
        """Return JSON-compatible structured data for transport to a UI or log sink."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScanResult:
        """Rebuild a result from :meth:`to_dict` output, revalidating invariants."""
        return cls.model_validate(data)
