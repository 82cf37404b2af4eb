"""Scan detectors.

Each detector is independent and stateless given ``(subject, policy)``.
:func:`build_default_detectors` returns them in the fixed order in which their
threats appear in a :class:`~uploadguard.schemas.scan_result.ScanResult`.
"""

from __future__ import annotations

from uploadguard.config import Settings
from uploadguard.core.detectors.archive import ArchiveDetector
from uploadguard.core.detectors.base import Detector
from uploadguard.core.detectors.filename import FilenameDetector
from uploadguard.core.detectors.heuristic import HeuristicDetector
from uploadguard.core.detectors.image import ImageDetector
from uploadguard.core.detectors.integrity import IntegrityDetector
from uploadguard.core.detectors.signature import SignatureDetector

__all__ = [
    "ArchiveDetector",
    "Detector",
    "FilenameDetector",
    "HeuristicDetector",
    "ImageDetector",
    "IntegrityDetector",
    "SignatureDetector",
    "build_default_detectors",
]


def build_default_detectors(settings: Settings) -> list[Detector]:
    """Return the six built-in detectors configured from *settings*."""
    return [
        IntegrityDetector(),
        FilenameDetector(),
        SignatureDetector(header_bytes=settings.header_read_bytes),
        HeuristicDetector(max_bytes=settings.heuristic_max_bytes),
        ArchiveDetector(
            header_bytes=settings.archive_header_bytes,
            nested_read_bytes=settings.archive_nested_read_bytes,
        ),
        ImageDetector(max_bytes=settings.heuristic_max_bytes),
    ]
