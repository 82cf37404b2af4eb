"""Threat data model produced by every detector.

A :class:`Threat` is a modeled finding, never an exception.  Threats are
immutable once produced and carry enough human-readable text
(``description`` / ``recommendation``) for a UI to render an actionable
rejection message without knowing detector internals.
"""

from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Severity
# ---------------------------------------------------------------------------

# Single canonical ordering table (higher index = higher severity).
_SEVERITY_ORDER = {"low": 0, "medium": 1, "high": 2, "critical": 3}


class Severity(str, Enum):
    """Totally ordered threat severity: ``LOW < MEDIUM < HIGH < CRITICAL``.

    Comparison operators use :data:`_SEVERITY_ORDER` rather than the string
    values, so ``Severity.HIGH > Severity.CRITICAL`` is ``False`` even though
    ``"high" > "critical"`` is ``True``.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


# ---------------------------------------------------------------------------
# Threat type
# ---------------------------------------------------------------------------


class ThreatType(str, Enum):
    """Closed set of threat classifications."""

    # File name / extension
    DANGEROUS_EXTENSION = "dangerous_extension"
    DISGUISED_EXECUTABLE = "disguised_executable"

    # Archives
    ZIP_BOMB = "zip_bomb"
    DIRECTORY_TRAVERSAL = "directory_traversal"
    NESTED_ARCHIVE_LIMIT = "nested_archive_limit"

    # Content
    SCRIPT_INJECTION = "script_injection"
    HTML_INJECTION = "html_injection"
    MALICIOUS_POLYGLOT = "malicious_polyglot"

    # File structure
    CORRUPTED_FILE = "corrupted_file"
    SUSPICIOUS_HEADER = "suspicious_header"
    OVERSIZED_FILE = "oversized_file"
    COMPRESSION_RATIO_ATTACK = "compression_ratio_attack"

    # Behavioural
    SUSPICIOUS_PATTERN = "suspicious_pattern"
    POTENTIAL_VIRUS = "potential_virus"


# ---------------------------------------------------------------------------
# Threat
# ---------------------------------------------------------------------------

DetailValue = Union[str, int, float, bool, None]


class Threat(BaseModel):
    """A single classified finding.

    Attributes:
        type: The :class:`ThreatType` classification.
        severity: The :class:`Severity` used by the decision engine.
        description: Human-readable explanation of what was found.
        recommendation: Human-readable advice for the uploader.
        details: Scalar key/value context (matched rule id, sizes, detected
            format, ...).  Values are restricted to JSON scalars so that a
            threat always serialises cleanly to a log sink or UI.
    """

    model_config = {"frozen": True}

    type: ThreatType
    severity: Severity
    description: str
    recommendation: str
    details: dict[str, DetailValue] = Field(default_factory=dict)
