"""Archive detector: decompression-bomb and path-escape checks for ZIP containers.

The detector never decompresses top-level entries.  Two strategies are used:

**Central directory (primary).**  The stdlib :mod:`zipfile` reader parses
only the central directory, which yields the true entry count, the declared
uncompressed size of every entry and every entry name.  Nested ZIP entries
are inspected recursively, bounded by a decompressed-byte budget and by the
policy's ``max_archive_depth``.  :class:`zipfile.ZipExtFile` never returns
more than an entry's declared size, so a lying header cannot inflate a
nested read past the budget.

**Header estimate (fallback).**  When the central directory cannot be read
but the payload carries a ZIP signature (truncated upload, stripped
directory), the entry count is estimated by counting ``PK`` byte pairs in the
first ``header_bytes`` bytes, minus the two signatures that belong to the
container itself.  The compression ratio is then approximated as
``entries * 1000 / size``.  This is a rough approximation that can over- and
under-count; it exists so that damaged archives are not waved through.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import zipfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO

from uploadguard.core.detectors.base import Detector
from uploadguard.core.scan_subject import ZIP_EXTENSIONS, ContentSource, ScanSubject
from uploadguard.core.signatures import has_signature
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.threat import Severity, Threat, ThreatType

logger = logging.getLogger(__name__)

_DEFAULT_HEADER_BYTES = 1024
_DEFAULT_NESTED_READ_BYTES = 16 * 1024 * 1024

# More entries than this is treated as a ZIP bomb.
_MAX_ENTRIES = 1000
# Nominal uncompressed size per entry for the header-estimate ratio.
_NOMINAL_ENTRY_BYTES = 1000
# "PK" pairs that belong to the container's own local header and footer.
_CONTAINER_SIGNATURES = 2

_DRIVE_LETTER_RE = re.compile(r"^[a-zA-Z]:")

# Errors raised by zipfile/zlib for unreadable, encrypted or unsupported entries.
_ZIP_READ_ERRORS = (
    zipfile.BadZipFile,
    RuntimeError,
    NotImplementedError,
    EOFError,
    ValueError,
    zlib.error,
)


@dataclass
class _ArchiveStats:
    """Accumulated facts from a central-directory walk."""

    entries: int = 0
    uncompressed_bytes: int = 0
    max_depth: int = 1
    depth_exceeded: bool = False
    traversal_names: list[str] = field(default_factory=list)


def _escapes_root(name: str) -> bool:
    """Return ``True`` if the entry *name* would extract outside the target directory."""
    normalised = name.replace("\\", "/")
    if normalised.startswith("/") or _DRIVE_LETTER_RE.match(normalised):
        return True
    return ".." in normalised.split("/")


def estimate_entries_from_header(header: bytes) -> int:
    """Estimate the entry count of a ZIP from its first bytes.

    Counts ``PK`` byte pairs and subtracts the container's own two
    signatures.  Never negative.
    """
    return max(0, header.count(b"PK") - _CONTAINER_SIGNATURES)


class ArchiveDetector(Detector):
    """Flags ZIP bombs, compression-ratio attacks, path traversal and deep nesting.

    Args:
        header_bytes: Prefix read for the header-estimate fallback.
        nested_read_bytes: Total decompressed bytes that may be read to
            inspect nested archives.  ``0`` disables nested inspection.
    """

    name = "archive"

    def __init__(
        self,
        header_bytes: int = _DEFAULT_HEADER_BYTES,
        nested_read_bytes: int = _DEFAULT_NESTED_READ_BYTES,
    ) -> None:
        self._header_bytes = header_bytes
        self._nested_read_bytes = nested_read_bytes

    def is_enabled(self, subject: ScanSubject, policy: SecurityConfig) -> bool:
        return policy.enable_archive_scanning and subject.is_zip_family

    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        if subject.size == 0:
            # Empty input is reported by the integrity detector.
            return []

        try:
            header = await subject.read_prefix(self._header_bytes)
            loop = asyncio.get_running_loop()
            stats = await loop.run_in_executor(
                None, self._read_directory, subject.source, policy.max_archive_depth
            )
        except OSError as exc:
            logger.warning(
                "Archive detector could not read archive: scan_id=%s error=%r",
                subject.scan_id,
                exc,
            )
            return [self._corrupted(str(exc))]

        if stats is not None:
            entries = stats.entries
            ratio = stats.uncompressed_bytes / subject.size
            method = "central_directory"
        elif has_signature(header, "zip"):
            entries = estimate_entries_from_header(header)
            ratio = (entries * _NOMINAL_ENTRY_BYTES) / subject.size
            method = "header_estimate"
        else:
            return [self._corrupted("no ZIP signature or central directory")]

        logger.debug(
            "Archive analysed: scan_id=%s method=%s entries=%d ratio=%.2f",
            subject.scan_id,
            method,
            entries,
            ratio,
        )

        threats: list[Threat] = []

        if entries > _MAX_ENTRIES:
            threats.append(
                Threat(
                    type=ThreatType.ZIP_BOMB,
                    severity=Severity.HIGH,
                    description=f"Archive contains {entries} files, potential ZIP bomb",
                    recommendation="Archive has too many files, may be malicious",
                    details={"file_count": entries, "method": method},
                )
            )

        if ratio > policy.max_compression_ratio:
            threats.append(
                Threat(
                    type=ThreatType.COMPRESSION_RATIO_ATTACK,
                    severity=Severity.HIGH,
                    description="Archive has suspicious compression ratio",
                    recommendation="Archive may be a compression bomb",
                    details={
                        "compression_ratio": round(ratio, 2),
                        "max_compression_ratio": policy.max_compression_ratio,
                        "method": method,
                    },
                )
            )

        if stats is not None and stats.traversal_names:
            threats.append(
                Threat(
                    type=ThreatType.DIRECTORY_TRAVERSAL,
                    severity=Severity.HIGH,
                    description="Archive entries would extract outside the target directory",
                    recommendation="Reject the archive; entry names contain path escapes",
                    details={
                        "entry_count": len(stats.traversal_names),
                        "first_entry": stats.traversal_names[0],
                    },
                )
            )

        if stats is not None and stats.depth_exceeded:
            threats.append(
                Threat(
                    type=ThreatType.NESTED_ARCHIVE_LIMIT,
                    severity=Severity.HIGH,
                    description=(
                        f"Archive nesting exceeds the maximum depth of {policy.max_archive_depth}"
                    ),
                    recommendation="Flatten nested archives before uploading",
                    details={"max_archive_depth": policy.max_archive_depth},
                )
            )

        return threats

    # ------------------------------------------------------------------
    # Central-directory walk (blocking; runs in an executor)
    # ------------------------------------------------------------------

    def _read_directory(self, source: ContentSource, max_depth: int) -> _ArchiveStats | None:
        """Return directory statistics, or ``None`` if the directory is unreadable."""
        stats = _ArchiveStats()
        budget = [self._nested_read_bytes]
        with source.open() as fh:
            try:
                self._walk(fh, 1, max_depth, stats, budget)
            except _ZIP_READ_ERRORS as exc:
                logger.debug("Central directory unreadable: %r", exc)
                return None
        return stats

    def _walk(
        self,
        fileobj: BinaryIO,
        depth: int,
        max_depth: int,
        stats: _ArchiveStats,
        budget: list[int],
    ) -> None:
        stats.max_depth = max(stats.max_depth, depth)
        with zipfile.ZipFile(fileobj) as zf:
            infos = zf.infolist()
            stats.entries += len(infos)
            for info in infos:
                stats.uncompressed_bytes += info.file_size
                if _escapes_root(info.filename):
                    stats.traversal_names.append(info.filename)
                if info.is_dir() or not self._is_nested_archive(info.filename):
                    continue
                if depth + 1 > max_depth:
                    stats.depth_exceeded = True
                    continue
                if info.file_size > budget[0]:
                    continue
                budget[0] -= info.file_size
                try:
                    nested = zf.read(info)
                    self._walk(io.BytesIO(nested), depth + 1, max_depth, stats, budget)
                except _ZIP_READ_ERRORS as exc:
                    logger.debug("Skipping unreadable nested archive %r: %r", info.filename, exc)

    @staticmethod
    def _is_nested_archive(name: str) -> bool:
        lowered = name.lower()
        return "." in lowered and lowered.rsplit(".", 1)[1] in ZIP_EXTENSIONS

    @staticmethod
    def _corrupted(reason: str) -> Threat:
        return Threat(
            type=ThreatType.CORRUPTED_FILE,
            severity=Severity.MEDIUM,
            description="Unable to analyze archive contents",
            recommendation="Archive may be corrupted or use unsupported format",
            details={"reason": reason},
        )
