"""Name/extension detector.

Runs at every security level and cannot be disabled: a blocked extension is
a hard floor that yields a critical threat regardless of the policy level.
"""

from __future__ import annotations

from uploadguard.core.detectors.base import Detector
from uploadguard.core.scan_subject import ScanSubject
from uploadguard.schemas.policy import SecurityConfig, SecurityLevel
from uploadguard.schemas.threat import Severity, Threat, ThreatType

# More dots than this suggests a double-extension disguise (report.pdf.exe).
_MAX_DOTS = 2


class FilenameDetector(Detector):
    """Validates the declared name against the policy's extension sets."""

    name = "filename"

    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        threats: list[Threat] = []
        file_name = subject.file_name
        extension = subject.extension

        if extension in policy.blocked_extensions:
            threats.append(
                Threat(
                    type=ThreatType.DANGEROUS_EXTENSION,
                    severity=Severity.CRITICAL,
                    description=f"File extension '.{extension}' is blocked for security reasons",
                    recommendation="File type not allowed. Use a different file format.",
                    details={"extension": extension, "file_name": file_name},
                )
            )

        if policy.level is SecurityLevel.STRICT and extension not in policy.allowed_extensions:
            threats.append(
                Threat(
                    type=ThreatType.DANGEROUS_EXTENSION,
                    severity=Severity.HIGH,
                    description=f"File extension '.{extension}' is not in the allowed list",
                    recommendation="Use only approved file types",
                    details={
                        "extension": extension,
                        "allowed_extensions": ",".join(sorted(policy.allowed_extensions)),
                    },
                )
            )

        dot_count = file_name.count(".")
        if dot_count > _MAX_DOTS:
            threats.append(
                Threat(
                    type=ThreatType.SUSPICIOUS_PATTERN,
                    severity=Severity.MEDIUM,
                    description=(
                        "File has multiple extensions, which may indicate an attempt "
                        "to disguise file type"
                    ),
                    recommendation="Use files with single, clear extensions",
                    details={"file_name": file_name, "extension_count": dot_count},
                )
            )

        return threats
