"""Basic integrity detector: size bounds and degenerate input."""

from __future__ import annotations

from uploadguard.core.detectors.base import Detector, format_file_size
from uploadguard.core.scan_subject import ScanSubject
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.threat import Severity, Threat, ThreatType

# Smallest plausible image: no valid image header fits in fewer bytes.
_MIN_IMAGE_BYTES = 10


class IntegrityDetector(Detector):
    """Flags oversized, empty and implausibly small files.

    Pure function of the declared size, declared content type and policy; it
    performs no reads.
    """

    name = "integrity"

    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        threats: list[Threat] = []
        size = subject.size

        if size > policy.max_file_size:
            threats.append(
                Threat(
                    type=ThreatType.OVERSIZED_FILE,
                    severity=Severity.MEDIUM,
                    description=(
                        f"File size ({format_file_size(size)}) exceeds maximum allowed "
                        f"({format_file_size(policy.max_file_size)})"
                    ),
                    recommendation="Reduce file size or contact administrator",
                    details={"file_size": size, "max_size": policy.max_file_size},
                )
            )

        if size < _MIN_IMAGE_BYTES and subject.is_image:
            threats.append(
                Threat(
                    type=ThreatType.SUSPICIOUS_PATTERN,
                    severity=Severity.MEDIUM,
                    description="Image file unusually small, may be corrupted or disguised",
                    recommendation="Verify file integrity",
                    details={"file_size": size},
                )
            )

        if size == 0:
            threats.append(
                Threat(
                    type=ThreatType.CORRUPTED_FILE,
                    severity=Severity.LOW,
                    description="File is empty",
                    recommendation="Upload a valid file with content",
                )
            )

        return threats
