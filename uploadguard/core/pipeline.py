"""ScanPipeline — orchestration of the upload scan with OpenTelemetry instrumentation.

:class:`ScanPipeline` runs every enabled detector against one upload and turns
their combined threats into a :class:`~uploadguard.schemas.scan_result.ScanResult`:

1. **integrity** — size limits and empty payloads
2. **filename**  — blocked / non-allowed extensions, stacked extensions
3. **signature** — magic number versus declared type, executable headers
4. **heuristic** — script, markup, SQL and shell injection rules
5. **archive**   — ZIP bombs, traversal names, nested archive depth
6. **image**     — SVG scripts and polyglot payloads

Detectors are independent, so they run concurrently via :func:`asyncio.gather`.
Their threats are concatenated in the fixed order above regardless of which
detector finishes first.  Each detector runs in a child OTel span
(``uploadguard.detector.<name>``) under the root ``uploadguard.scan`` span.

**Fail-secure contract**: an unexpected detector error or a scan that exceeds
``scan_timeout_seconds`` never propagates to the caller, and neither does a
content source whose size cannot be read.  The result keeps the
threats of every detector that completed, gains one ``suspicious_pattern`` /
``high`` "Security scan failed" threat describing the error, and is forced to
``allow_upload=False``, ``quarantine_recommended=True``.

Usage::

    from uploadguard.core.pipeline import ScanPipeline
    from uploadguard.schemas.policy import SecurityConfig, SecurityLevel

    pipeline = ScanPipeline()
    result = await pipeline.scan(
        raw_bytes,
        "avatar.png",
        "image/png",
        SecurityConfig.preset(SecurityLevel.STRICT),
    )
    if not result.allow_upload:
        reject(result.threats)
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Sequence

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import Counter, Histogram

from uploadguard.config import Settings, get_settings
from uploadguard.core.decision import Decision, DecisionEngine
from uploadguard.core.detectors import Detector, build_default_detectors
from uploadguard.core.scan_subject import BytesSource, ContentSource, ScanSubject
from uploadguard.core.signatures import identify_format
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.scan_result import ScanMetadata, ScanResult
from uploadguard.schemas.threat import Severity, Threat, ThreatType
from uploadguard.services.audit import AuditLogger
from uploadguard.services.quarantine import QuarantineHandoff, QuarantineStore

logger = logging.getLogger(__name__)

# One tracer per module, reused across all scans.
tracer = trace.get_tracer(
    "uploadguard.pipeline",
    schema_url="https://opentelemetry.io/schemas/1.11.0",
)

# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------

_SCANS_TOTAL = Counter(
    "uploadguard_scans_total",
    "Total scans by decision",
    ["decision"],  # pass | quarantine | block
)

_THREATS_TOTAL = Counter(
    "uploadguard_threats_total",
    "Total threats reported by type and severity",
    ["type", "severity"],
)

_SCAN_FAILURES_TOTAL = Counter(
    "uploadguard_scan_failures_total",
    "Scans that fell back to the fail-secure result",
    ["reason"],  # error | timeout
)

_SCAN_DURATION = Histogram(
    "uploadguard_scan_duration_seconds",
    "Wall-clock duration of a full scan",
)

_FAILURE_DESCRIPTION = "Security scan failed"
_FAILURE_RECOMMENDATION = (
    "The file could not be fully inspected. Treat it as untrusted and "
    "retry the upload or review it manually."
)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class DetectorError(Exception):
    """Raised when a detector fails unexpectedly.

    Wraps the original exception to identify which detector failed while
    preserving the full cause chain via ``__cause__``.

    Attributes:
        detector_name: Name of the detector that raised (e.g. ``"archive"``).
        original: The exception that triggered the failure.
    """

    def __init__(self, detector_name: str, original: BaseException) -> None:
        super().__init__(f"Detector '{detector_name}' failed: {original!r}")
        self.detector_name = detector_name
        self.original = original


class ScanTimeoutError(Exception):
    """Raised internally when a scan exceeds ``scan_timeout_seconds``."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Scan exceeded the {timeout:g}s timeout")
        self.timeout = timeout


class ScanRequest(NamedTuple):
    """One item for :meth:`ScanPipeline.scan_many`.  Plain tuples also work."""

    content: bytes | ContentSource
    file_name: str
    content_type: str


# ---------------------------------------------------------------------------
# ScanPipeline
# ---------------------------------------------------------------------------


class ScanPipeline:
    """Runs the detectors for one upload and renders the decision.

    All collaborators are injected at construction time so tests can swap in
    mocks.  The pipeline holds no per-scan state; one instance may serve any
    number of concurrent scans.

    Args:
        detectors: Detectors in result order.  Defaults to
            :func:`~uploadguard.core.detectors.build_default_detectors`.
        decision_engine: Maps threats to a decision.  Defaults to
            :class:`~uploadguard.core.decision.DecisionEngine`.
        audit_logger: Receives lifecycle events.  When ``None`` no events are
            emitted.
        quarantine_store: Receives payloads whose result recommends
            quarantine.  When ``None`` nothing is handed off.
        settings: Runtime settings.  Defaults to :func:`get_settings`.
    """

    def __init__(
        self,
        *,
        detectors: Sequence[Detector] | None = None,
        decision_engine: DecisionEngine | None = None,
        audit_logger: AuditLogger | None = None,
        quarantine_store: QuarantineStore | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._detectors: list[Detector] = (
            list(detectors)
            if detectors is not None
            else build_default_detectors(self._settings)
        )
        self._decision_engine = decision_engine or DecisionEngine()
        self._audit_logger = audit_logger
        self._quarantine = (
            QuarantineHandoff(quarantine_store) if quarantine_store is not None else None
        )

    @property
    def detectors(self) -> list[Detector]:
        return list(self._detectors)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def scan(
        self,
        content: bytes | ContentSource,
        file_name: str,
        content_type: str,
        policy: SecurityConfig | None = None,
    ) -> ScanResult:
        """Scan one upload and return its :class:`ScanResult`.

        Args:
            content: Raw bytes, or a :class:`ContentSource` for payloads that
                should not be held in memory.
            file_name: Declared file name.
            content_type: Declared MIME type.
            policy: Active policy.  Defaults to the preset for
                ``settings.default_security_level``.

        Returns:
            The scan result.  Internal failures are reported inside the
            result, never raised.
        """
        if policy is None:
            policy = SecurityConfig.preset(self._settings.default_security_level)
        source = content if isinstance(content, ContentSource) else BytesSource(content)
        subject, failure = _build_subject(source, file_name, content_type)

        start = time.monotonic()
        scan_timestamp = datetime.now(tz=timezone.utc)
        await self._notify("scan_started", subject)

        with tracer.start_as_current_span(
            "uploadguard.scan",
            kind=trace.SpanKind.INTERNAL,
        ) as root_span:
            root_span.set_attribute("scan.id", subject.scan_id)
            root_span.set_attribute("scan.mime_type", subject.content_type)
            root_span.set_attribute("scan.file_size_bytes", subject.size)
            root_span.set_attribute("scan.security_level", policy.level.value)

            outcomes: dict[int, list[Threat]] = {}
            if failure is None:
                failure = await self._run_with_timeout(subject, policy, outcomes)

            threats = [
                threat
                for index in range(len(self._detectors))
                for threat in outcomes.get(index, ())
            ]

            if failure is None:
                decision = self._decision_engine.evaluate(threats, policy.level)
            else:
                threats.append(_failure_threat(failure))
                decision = Decision.fail_secure()
                reason = "timeout" if isinstance(failure, ScanTimeoutError) else "error"
                _SCAN_FAILURES_TOTAL.labels(reason=reason).inc()
                root_span.record_exception(failure)
                root_span.set_status(Status(StatusCode.ERROR, str(failure)))
                root_span.set_attribute("scan.failed", True)
                logger.error(
                    "Scan failed, applying fail-secure result: scan_id=%s error=%r",
                    subject.scan_id,
                    failure,
                )

            detected_type = await self._detect_type(subject)
            elapsed = time.monotonic() - start
            result = ScanResult(
                is_secure=decision.is_secure,
                threats=tuple(threats),
                quarantine_recommended=decision.quarantine_recommended,
                allow_upload=decision.allow_upload,
                metadata=ScanMetadata(
                    file_name=file_name,
                    file_size=subject.size,
                    mime_type=subject.content_type,
                    detected_type=detected_type,
                    scan_duration_ms=int(elapsed * 1000),
                    scan_timestamp=scan_timestamp,
                    scan_id=subject.scan_id,
                ),
            )

            root_span.set_attribute("scan.decision", decision.action)
            root_span.set_attribute("scan.threats_count", len(threats))
            root_span.set_attribute("scan.duration_ms", result.metadata.scan_duration_ms)

        _SCANS_TOTAL.labels(decision=decision.action).inc()
        _SCAN_DURATION.observe(elapsed)
        for threat in result.threats:
            _THREATS_TOTAL.labels(
                type=threat.type.value, severity=threat.severity.value
            ).inc()

        logger.info(
            "Scan complete: scan_id=%s file_name=%s decision=%s threats=%d "
            "duration_ms=%d",
            subject.scan_id,
            file_name,
            decision.action,
            len(result.threats),
            result.metadata.scan_duration_ms,
        )

        await self._report(result)
        await self._hand_off(subject, result)
        return result

    async def scan_many(
        self,
        items: Iterable[ScanRequest | tuple[Any, str, str]],
        policy: SecurityConfig | None = None,
        concurrency: int | None = None,
    ) -> list[ScanResult]:
        """Scan a batch of uploads with bounded concurrency.

        Args:
            items: ``(content, file_name, content_type)`` triples.
            policy: Policy applied to every item.
            concurrency: Maximum scans in flight.  Defaults to
                ``settings.batch_concurrency``.

        Returns:
            One result per item, in input order.
        """
        limit = concurrency or self._settings.batch_concurrency
        if limit < 1:
            raise ValueError(f"concurrency must be at least 1, got {limit}")
        semaphore = asyncio.Semaphore(limit)

        async def _bounded(item: ScanRequest | tuple[Any, str, str]) -> ScanResult:
            content, file_name, content_type = item
            async with semaphore:
                return await self.scan(content, file_name, content_type, policy)

        return list(await asyncio.gather(*(_bounded(item) for item in items)))

    # ------------------------------------------------------------------
    # Detector execution
    # ------------------------------------------------------------------

    async def _run_with_timeout(
        self,
        subject: ScanSubject,
        policy: SecurityConfig,
        outcomes: dict[int, list[Threat]],
    ) -> Exception | None:
        """Run the detectors under ``scan_timeout_seconds``; return the failure, if any."""
        try:
            await asyncio.wait_for(
                self._run_detectors(subject, policy, outcomes),
                timeout=self._settings.scan_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return ScanTimeoutError(self._settings.scan_timeout_seconds)
        except Exception as exc:
            return exc
        return None

    async def _run_detectors(
        self,
        subject: ScanSubject,
        policy: SecurityConfig,
        outcomes: dict[int, list[Threat]],
    ) -> None:
        """Run every detector, recording each completed detector in *outcomes*.

        All detectors are allowed to finish before the first failure is
        raised, so completed threats survive a fault in a sibling.

        Raises:
            DetectorError: For the first detector (in result order) that failed.
        """
        results = await asyncio.gather(
            *(
                self._run_detector(index, detector, subject, policy, outcomes)
                for index, detector in enumerate(self._detectors)
            ),
            return_exceptions=True,
        )
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome

    async def _run_detector(
        self,
        index: int,
        detector: Detector,
        subject: ScanSubject,
        policy: SecurityConfig,
        outcomes: dict[int, list[Threat]],
    ) -> None:
        """Execute a single detector inside a named OTel child span."""
        with tracer.start_as_current_span(f"uploadguard.detector.{detector.name}") as span:
            span.set_attribute("detector.name", detector.name)
            span.set_attribute("scan.id", subject.scan_id)
            step_start = time.monotonic()

            try:
                if not detector.is_enabled(subject, policy):
                    span.set_attribute("detector.skipped", True)
                    outcomes[index] = []
                    return
                threats = list(await detector.inspect(subject, policy))
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                span.set_attribute("detector.error", type(exc).__name__)
                raise DetectorError(detector.name, exc) from exc

            elapsed_ms = int((time.monotonic() - step_start) * 1000)
            span.set_attribute("detector.duration_ms", elapsed_ms)
            span.set_attribute("detector.threats_count", len(threats))
            outcomes[index] = threats
            logger.debug(
                "Detector '%s' complete: scan_id=%s threats=%d duration_ms=%d",
                detector.name,
                subject.scan_id,
                len(threats),
                elapsed_ms,
            )

    async def _detect_type(self, subject: ScanSubject) -> str | None:
        if subject.size == 0:
            return None
        try:
            header = await subject.read_prefix(self._settings.header_read_bytes)
        except Exception as exc:
            logger.warning(
                "Could not read header for type detection: scan_id=%s error=%r",
                subject.scan_id,
                exc,
            )
            return None
        return identify_format(header)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _notify(self, event: str, *args: Any) -> None:
        """Invoke ``audit_logger.<event>(*args)``; failures are logged only."""
        if self._audit_logger is None:
            return
        try:
            await getattr(self._audit_logger, event)(*args)
        except Exception as exc:
            logger.error("Audit logger failed on %s: %r", event, exc)

    async def _report(self, result: ScanResult) -> None:
        await self._notify("scan_completed", result)
        for threat in result.threats:
            await self._notify("threat_detected", result, threat)
        if not result.allow_upload:
            await self._notify("upload_rejected", result)

    async def _hand_off(self, subject: ScanSubject, result: ScanResult) -> None:
        if self._quarantine is None or not result.quarantine_recommended:
            return
        try:
            data = await subject.source.read()
        except Exception as exc:
            logger.error(
                "Could not read payload for quarantine: scan_id=%s error=%r",
                subject.scan_id,
                exc,
            )
            return
        reference = await self._quarantine.submit(result, data)
        if reference is not None:
            logger.info(
                "Payload handed to quarantine: scan_id=%s reference=%s",
                subject.scan_id,
                reference,
            )


def _build_subject(
    source: ContentSource, file_name: str, content_type: str
) -> tuple[ScanSubject, Exception | None]:
    """Build the scan subject.

    A source whose size cannot be read (e.g. a vanished file) yields an empty
    subject together with the error, so the scan can report it.
    """
    try:
        size = source.size
    except Exception as exc:
        subject = ScanSubject(
            source=source, file_name=file_name, content_type=content_type, size=0
        )
        return subject, exc
    subject = ScanSubject(
        source=source, file_name=file_name, content_type=content_type, size=size
    )
    return subject, None


def _failure_threat(failure: Exception) -> Threat:
    original = failure.original if isinstance(failure, DetectorError) else failure
    details: dict[str, Any] = {
        "error": str(failure),
        "error_type": type(original).__name__,
    }
    if isinstance(failure, DetectorError):
        details["detector"] = failure.detector_name
    if isinstance(failure, ScanTimeoutError):
        details["timeout_seconds"] = failure.timeout
    return Threat(
        type=ThreatType.SUSPICIOUS_PATTERN,
        severity=Severity.HIGH,
        description=_FAILURE_DESCRIPTION,
        recommendation=_FAILURE_RECOMMENDATION,
        details=details,
    )
