"""Threat summary over a batch of scan results.

:func:`summarize` aggregates a sequence of
:class:`~uploadguard.schemas.scan_result.ScanResult` objects into a
:class:`ThreatSummary`: file counts, a decision breakdown, threat counts by
type and by severity, the most frequent threat types and the average scan
duration.  :func:`render_json` serialises the summary for export.

Usage::

    from uploadguard.services.reports import render_json, summarize

    results = await pipeline.scan_many(items)
    summary = summarize(results)
    print(summary.decisions.blocked, summary.threats_by_type)
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Iterable

from pydantic import BaseModel, Field

from uploadguard.schemas.scan_result import ScanResult

logger = logging.getLogger(__name__)

_TOP_THREAT_TYPES = 5


class DecisionBreakdown(BaseModel):
    """Counts of scan results by decision.

    Attributes:
        passed: Upload allowed, no quarantine recommended.
        quarantined: Quarantine recommended (whether or not the upload was
            allowed).
        blocked: Upload rejected without a quarantine recommendation.
    """

    passed: int = Field(default=0, ge=0)
    quarantined: int = Field(default=0, ge=0)
    blocked: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.passed + self.quarantined + self.blocked


class ThreatSummary(BaseModel):
    """Aggregated view of a batch of scan results."""

    generated_at: datetime
    file_count: int = Field(ge=0)
    secure_count: int = Field(ge=0)
    rejected_count: int = Field(ge=0)
    decisions: DecisionBreakdown
    threats_by_type: dict[str, int] = Field(default_factory=dict)
    threats_by_severity: dict[str, int] = Field(default_factory=dict)
    top_threat_types: list[str] = Field(default_factory=list)
    total_bytes_scanned: int = Field(default=0, ge=0)
    average_scan_duration_ms: float = Field(default=0.0, ge=0)

    @property
    def threat_count(self) -> int:
        return sum(self.threats_by_type.values())


def summarize(results: Iterable[ScanResult]) -> ThreatSummary:
    """Aggregate *results* into a :class:`ThreatSummary`.

    Args:
        results: Scan results, in any order.  An empty iterable yields an
            all-zero summary.

    Returns:
        The populated summary.
    """
    file_count = 0
    secure_count = 0
    rejected_count = 0
    passed = quarantined = blocked = 0
    total_bytes = 0
    total_duration = 0
    by_type: Counter[str] = Counter()
    by_severity: Counter[str] = Counter()

    for result in results:
        file_count += 1
        total_bytes += result.metadata.file_size
        total_duration += result.metadata.scan_duration_ms
        if result.is_secure:
            secure_count += 1
        if not result.allow_upload:
            rejected_count += 1

        if result.quarantine_recommended:
            quarantined += 1
        elif result.allow_upload:
            passed += 1
        else:
            blocked += 1

        for threat in result.threats:
            by_type[threat.type.value] += 1
            by_severity[threat.severity.value] += 1

    summary = ThreatSummary(
        generated_at=datetime.now(tz=timezone.utc),
        file_count=file_count,
        secure_count=secure_count,
        rejected_count=rejected_count,
        decisions=DecisionBreakdown(
            passed=passed, quarantined=quarantined, blocked=blocked
        ),
        threats_by_type=dict(by_type),
        threats_by_severity=dict(by_severity),
        top_threat_types=[name for name, _ in by_type.most_common(_TOP_THREAT_TYPES)],
        total_bytes_scanned=total_bytes,
        average_scan_duration_ms=(total_duration / file_count) if file_count else 0.0,
    )
    logger.debug(
        "Threat summary: files=%d threats=%d rejected=%d",
        file_count,
        summary.threat_count,
        rejected_count,
    )
    return summary


def render_json(summary: ThreatSummary) -> bytes:
    """Serialise *summary* to indented UTF-8 JSON bytes."""
    data = summary.model_dump(mode="json")
    return json.dumps(data, indent=2, default=str).encode("utf-8")
