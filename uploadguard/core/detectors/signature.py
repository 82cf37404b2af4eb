"""Signature detector: magic numbers versus claimed type.

Reads a bounded header prefix and compares it against
:data:`~uploadguard.core.signatures.MAGIC_NUMBERS`:

* an executable prefix is a critical ``disguised_executable`` regardless of
  the declared name or type;
* a declared type whose expected signature is missing is a medium
  ``suspicious_header`` (unless the type is text-family, which carries no
  magic number).

A header that cannot be read is reported as a low ``corrupted_file`` and the
comparison is skipped; other detectors are unaffected.
"""

from __future__ import annotations

import logging

from uploadguard.core.detectors.base import Detector
from uploadguard.core.scan_subject import ScanSubject
from uploadguard.core.signatures import detect_executable, expected_format, has_signature
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.threat import Severity, Threat, ThreatType

logger = logging.getLogger(__name__)

_MIN_HEADER_BYTES = 32


def _is_text_family(content_type: str) -> bool:
    return content_type.startswith("text/") or content_type == "application/json"


class SignatureDetector(Detector):
    """Detects disguised executables and claimed/actual type mismatches.

    Args:
        header_bytes: Number of prefix bytes to read (at least 32).
    """

    name = "signature"

    def __init__(self, header_bytes: int = _MIN_HEADER_BYTES) -> None:
        self._header_bytes = max(header_bytes, _MIN_HEADER_BYTES)

    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        try:
            header = await subject.read_prefix(self._header_bytes)
        except OSError as exc:
            logger.warning(
                "Signature detector could not read header: scan_id=%s error=%r",
                subject.scan_id,
                exc,
            )
            return [
                Threat(
                    type=ThreatType.CORRUPTED_FILE,
                    severity=Severity.LOW,
                    description="Unable to read file header",
                    recommendation="File may be corrupted",
                    details={"error": str(exc)},
                )
            ]

        threats: list[Threat] = []
        claimed = subject.content_type

        executable = detect_executable(header)
        if executable is not None:
            threats.append(
                Threat(
                    type=ThreatType.DISGUISED_EXECUTABLE,
                    severity=Severity.CRITICAL,
                    description=(
                        f"File contains {executable.upper()} executable header "
                        "but has different extension"
                    ),
                    recommendation="Executable files are not allowed",
                    details={"detected_type": executable, "claimed_type": claimed},
                )
            )

        expected = expected_format(claimed)
        if expected and not has_signature(header, expected) and not _is_text_family(claimed):
            threats.append(
                Threat(
                    type=ThreatType.SUSPICIOUS_HEADER,
                    severity=Severity.MEDIUM,
                    description=f"File header doesn't match claimed type ({claimed})",
                    recommendation="File may be corrupted or disguised",
                    details={"claimed_type": claimed, "expected_type": expected},
                )
            )

        return threats
