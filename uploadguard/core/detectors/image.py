"""Structural image detector: vector-image XSS and polyglot payloads."""

from __future__ import annotations

import logging
import re

from uploadguard.core.detectors.base import Detector
from uploadguard.core.scan_subject import ScanSubject
from uploadguard.core.signatures import find_embedded_executable
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.threat import Severity, Threat, ThreatType

logger = logging.getLogger(__name__)

_DEFAULT_MAX_BYTES = 1024 * 1024

_SVG_SCRIPT_RE = re.compile(r"<script|javascript\s*:", re.IGNORECASE)


class ImageDetector(Detector):
    """Inspects image payloads for embedded script markup and executables.

    * An ``image/svg+xml`` payload containing a ``<script`` element or a
      ``javascript:`` URI is a high ``script_injection`` threat.
    * Any image whose raw bytes carry an executable signature or a shebang
      line is a high ``malicious_polyglot`` threat.

    Args:
        max_bytes: Number of bytes of the image inspected.
    """

    name = "image"

    def __init__(self, max_bytes: int = _DEFAULT_MAX_BYTES) -> None:
        self._max_bytes = max_bytes

    def is_enabled(self, subject: ScanSubject, policy: SecurityConfig) -> bool:
        return policy.enable_image_validation and subject.is_image

    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        try:
            data = await subject.read_window(self._max_bytes)
        except OSError as exc:
            logger.warning(
                "Image detector could not read content: scan_id=%s error=%r",
                subject.scan_id,
                exc,
            )
            return []

        threats: list[Threat] = []

        if subject.is_svg:
            text = data.decode("utf-8", errors="replace")
            if _SVG_SCRIPT_RE.search(text):
                threats.append(
                    Threat(
                        type=ThreatType.SCRIPT_INJECTION,
                        severity=Severity.HIGH,
                        description="SVG file contains JavaScript code",
                        recommendation="Remove JavaScript from SVG files",
                        details={"file_type": "svg"},
                    )
                )

        marker = find_embedded_executable(data)
        if marker is not None:
            threats.append(
                Threat(
                    type=ThreatType.MALICIOUS_POLYGLOT,
                    severity=Severity.HIGH,
                    description="Image file may contain embedded executable code",
                    recommendation="Use image editing software to clean the file",
                    details={"suspicious_content": marker},
                )
            )

        return threats
