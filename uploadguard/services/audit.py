"""AuditLogger — scan lifecycle events for an external audit trail.

The scanner emits discrete events; it never persists them itself.  Events
are *not* part of :class:`~uploadguard.schemas.scan_result.ScanResult`.

Events
------
* ``file_scan_started``   — file name, size and declared type.
* ``file_scan_completed`` — the full scan result.
* ``threat_detected``     — one event per threat in a completed scan.
* ``upload_rejected``     — the scan result did not allow the upload.
* ``policy_updated``      — the active policy was replaced.

:class:`LoggingAuditLogger` renders each event as one structured JSON log
entry on the ``uploadguard.audit`` logger.  Audit delivery is best-effort:
failures are logged but never raised, so a degraded audit sink never blocks
the scan path.

Log entry format
----------------
::

    {
      "event": "file_scan_completed",
      "severity": "warning",
      "scan_id": "550e8400-e29b-41d4-a716-446655440000",
      "file_name": "photo.jpg",
      "timestamp": "2026-10-17T09:30:00.123456+00:00",
      "result": {...}
    }
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from uploadguard.core.scan_subject import ScanSubject
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.scan_result import ScanResult
from uploadguard.schemas.threat import Severity, Threat

logger = logging.getLogger(__name__)

audit_logger = logging.getLogger("uploadguard.audit")

# Event names
EVENT_SCAN_STARTED = "file_scan_started"
EVENT_SCAN_COMPLETED = "file_scan_completed"
EVENT_THREAT_DETECTED = "threat_detected"
EVENT_UPLOAD_REJECTED = "upload_rejected"
EVENT_POLICY_UPDATED = "policy_updated"

# Event severities
_INFO = "info"
_WARNING = "warning"
_CRITICAL = "critical"


class AuditLogger(ABC):
    """Abstract sink for scan lifecycle events.

    Implementations must not raise from any method; the pipeline additionally
    guards every call.
    """

    @abstractmethod
    async def scan_started(self, subject: ScanSubject) -> None:
        """Record that a scan of *subject* has started."""

    @abstractmethod
    async def scan_completed(self, result: ScanResult) -> None:
        """Record a finished scan, including every threat it found."""

    async def threat_detected(self, result: ScanResult, threat: Threat) -> None:
        """Record one threat found by a completed scan.  Optional."""

    async def upload_rejected(self, result: ScanResult) -> None:
        """Record that *result* blocked the upload.  Optional."""

    async def policy_updated(self, old: SecurityConfig, new: SecurityConfig) -> None:
        """Record a policy change.  Optional."""


class LoggingAuditLogger(AuditLogger):
    """Audit sink that writes one JSON log entry per event.

    Args:
        log: Logger to write to.  Defaults to ``uploadguard.audit``.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or audit_logger

    async def scan_started(self, subject: ScanSubject) -> None:
        self._emit(
            EVENT_SCAN_STARTED,
            _INFO,
            scan_id=subject.scan_id,
            file_name=subject.file_name,
            file_size=subject.size,
            mime_type=subject.content_type,
        )

    async def scan_completed(self, result: ScanResult) -> None:
        meta = result.metadata
        highest = result.highest_severity
        self._emit(
            EVENT_SCAN_COMPLETED,
            _INFO if result.is_secure else _WARNING,
            scan_id=meta.scan_id,
            file_name=meta.file_name,
            threats_count=len(result.threats),
            highest_severity=highest.value if highest is not None else None,
            allow_upload=result.allow_upload,
            quarantine_recommended=result.quarantine_recommended,
            scan_duration_ms=meta.scan_duration_ms,
            result=result.to_dict(),
        )

    async def threat_detected(self, result: ScanResult, threat: Threat) -> None:
        severity = _CRITICAL if threat.severity is Severity.CRITICAL else _WARNING
        self._emit(
            EVENT_THREAT_DETECTED,
            severity,
            scan_id=result.metadata.scan_id,
            file_name=result.metadata.file_name,
            threat=threat.model_dump(mode="json"),
        )

    async def upload_rejected(self, result: ScanResult) -> None:
        meta = result.metadata
        self._emit(
            EVENT_UPLOAD_REJECTED,
            _WARNING,
            scan_id=meta.scan_id,
            file_name=meta.file_name,
            reasons=[t.description for t in result.threats],
        )

    async def policy_updated(self, old: SecurityConfig, new: SecurityConfig) -> None:
        old_data = old.model_dump()
        new_data = new.model_dump()
        changed = sorted(k for k in new_data if old_data.get(k) != new_data[k])
        self._emit(
            EVENT_POLICY_UPDATED,
            _INFO,
            changed_fields=changed,
            old_level=old.level.value,
            new_level=new.level.value,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _emit(self, event: str, severity: str, **fields: Any) -> None:
        entry: dict[str, Any] = {
            "event": event,
            "severity": severity,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        entry.update(fields)
        level = logging.INFO if severity == _INFO else logging.WARNING
        try:
            self._log.log(level, json.dumps(entry, default=str))
        except Exception as exc:
            # Audit delivery is best-effort.
            logger.error("Failed to emit audit event %s: %r", event, exc)
