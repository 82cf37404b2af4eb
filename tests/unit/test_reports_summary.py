"""Unit tests for :mod:`uploadguard.services.reports`.

Coverage targets
----------------
* Empty input yields an all-zero summary.
* Decision breakdown: passed / quarantined / blocked.
* Threat counts by type and by severity; most frequent types first.
* Averages and byte totals.
* JSON export.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from uploadguard.schemas.scan_result import ScanMetadata, ScanResult
from uploadguard.schemas.threat import Severity, Threat, ThreatType
from uploadguard.services.reports import render_json, summarize


def threat(kind: ThreatType, severity: Severity) -> Threat:
    return Threat(type=kind, severity=severity, description=kind.value, recommendation="Review")


def result(
    threats: tuple[Threat, ...] = (),
    allow: bool = True,
    quarantine: bool = False,
    size: int = 100,
    duration: int = 10,
) -> ScanResult:
    return ScanResult(
        is_secure=not threats,
        threats=threats,
        quarantine_recommended=quarantine,
        allow_upload=allow,
        metadata=ScanMetadata(
            file_name="f",
            file_size=size,
            mime_type="text/plain",
            scan_duration_ms=duration,
            scan_timestamp=datetime(2026, 10, 17, tzinfo=timezone.utc),
        ),
    )


def test_empty_summary() -> None:
    summary = summarize([])
    assert summary.file_count == 0
    assert summary.decisions.total == 0
    assert summary.threat_count == 0
    assert summary.average_scan_duration_ms == 0.0


def test_breakdown_and_counts() -> None:
    script = threat(ThreatType.SCRIPT_INJECTION, Severity.HIGH)
    ext = threat(ThreatType.DANGEROUS_EXTENSION, Severity.CRITICAL)
    multi = threat(ThreatType.SUSPICIOUS_PATTERN, Severity.MEDIUM)

    results = [
        result(size=100, duration=10),
        result((multi,), allow=True, size=200, duration=20),
        result((script,), allow=False, quarantine=True, size=300, duration=30),
        result((ext, multi), allow=False, quarantine=True, size=400, duration=40),
        result((multi, multi), allow=False, size=500, duration=50),
    ]
    summary = summarize(results)

    assert summary.file_count == 5
    assert summary.secure_count == 1
    assert summary.rejected_count == 3
    assert summary.decisions.passed == 2
    assert summary.decisions.quarantined == 2
    assert summary.decisions.blocked == 1
    assert summary.threats_by_type == {
        "suspicious_pattern": 4,
        "script_injection": 1,
        "dangerous_extension": 1,
    }
    assert summary.threats_by_severity == {"medium": 4, "high": 1, "critical": 1}
    assert summary.top_threat_types[0] == "suspicious_pattern"
    assert summary.threat_count == 6
    assert summary.total_bytes_scanned == 1500
    assert summary.average_scan_duration_ms == 30.0


def test_render_json() -> None:
    payload = json.loads(render_json(summarize([result()])))
    assert payload["file_count"] == 1
    assert payload["decisions"] == {"passed": 1, "quarantined": 0, "blocked": 0}
    assert "generated_at" in payload
