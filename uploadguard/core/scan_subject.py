"""ScanSubject — the read-only input shared by every detector.

:class:`ScanSubject` is created once per scan and handed to each detector
together with the active policy.  Detectors never mutate it; each one reads
the bytes it needs through the subject's :class:`ContentSource`:

* a bounded **prefix** (signature and archive headers), and
* a bounded **window** of the full content (heuristic and image checks).

Reads are the only suspension points of a scan.  :class:`FileSource` performs
blocking file I/O in the event loop's default executor so the loop is never
blocked.

Usage::

    from uploadguard.core.scan_subject import BytesSource, ScanSubject

    subject = ScanSubject(
        source=BytesSource(raw_bytes),
        file_name="report.pdf",
        content_type="application/pdf",
    )
    header = await subject.read_prefix(32)
"""

from __future__ import annotations

import asyncio
import io
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

# Content types whose payload is expected to be readable text.
_TEXT_CONTENT_TYPES: frozenset[str] = frozenset({
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-yaml",
    "image/svg+xml",
})

# Extensions treated as text regardless of the declared content type.
_TEXT_EXTENSIONS: frozenset[str] = frozenset({
    "txt", "md", "json", "xml", "csv", "log", "yaml", "yml", "html", "htm", "svg",
})

# ZIP-container formats inspected by the archive detector.
ZIP_EXTENSIONS: frozenset[str] = frozenset({
    "zip", "docx", "xlsx", "pptx", "odt", "ods", "odp", "epub",
})
ZIP_CONTENT_TYPES: frozenset[str] = frozenset({
    "application/zip",
    "application/x-zip",
    "application/x-zip-compressed",
})


# ---------------------------------------------------------------------------
# Content sources
# ---------------------------------------------------------------------------


class ContentSource(ABC):
    """Random access to the bytes of the file under scan."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Total size of the content in bytes."""

    @abstractmethod
    async def read(self, limit: int | None = None) -> bytes:
        """Return up to *limit* bytes from the start of the content.

        ``None`` reads the whole content.

        Raises:
            OSError: If the underlying storage cannot be read.
        """

    @abstractmethod
    def open(self) -> BinaryIO:
        """Return a new seekable binary file object over the content.

        Blocking; callers run it in an executor.
        """


class BytesSource(ContentSource):
    """In-memory content."""

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    @property
    def size(self) -> int:
        return len(self._data)

    async def read(self, limit: int | None = None) -> bytes:
        if limit is None:
            return self._data
        return self._data[:limit]

    def open(self) -> BinaryIO:
        return io.BytesIO(self._data)


class FileSource(ContentSource):
    """Content backed by a file on local disk, read lazily."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def size(self) -> int:
        return os.stat(self._path).st_size

    async def read(self, limit: int | None = None) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read_sync, limit)

    def _read_sync(self, limit: int | None) -> bytes:
        with open(self._path, "rb") as fh:
            return fh.read() if limit is None else fh.read(limit)

    def open(self) -> BinaryIO:
        return open(self._path, "rb")


# ---------------------------------------------------------------------------
# ScanSubject
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScanSubject:
    """Immutable description of one file submitted for scanning.

    Attributes:
        source: :class:`ContentSource` giving access to the file bytes.
        file_name: Declared file name as supplied by the uploader.
        content_type: Declared MIME type (e.g. ``"image/png"``).  Never
            trusted; detectors compare it against the actual bytes.
        size: Size in bytes.  Taken from *source* when not supplied.
        scan_id: UUID string identifying this scan.  Automatically generated
            if not supplied.
    """

    source: ContentSource
    file_name: str
    content_type: str
    size: int = -1
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if self.size < 0:
            object.__setattr__(self, "size", self.source.size)
        object.__setattr__(self, "content_type", (self.content_type or "").strip().lower())

    # ------------------------------------------------------------------
    # Derived attributes
    # ------------------------------------------------------------------

    @property
    def extension(self) -> str:
        """Lower-cased text after the final ``.`` of the name (``""`` if none)."""
        name = self.file_name.lower()
        if "." not in name:
            return ""
        return name.rsplit(".", 1)[1]

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")

    @property
    def is_svg(self) -> bool:
        return self.content_type == "image/svg+xml"

    @property
    def is_text(self) -> bool:
        return (
            self.content_type.startswith("text/")
            or self.content_type in _TEXT_CONTENT_TYPES
            or self.extension in _TEXT_EXTENSIONS
        )

    @property
    def is_zip_family(self) -> bool:
        return self.content_type in ZIP_CONTENT_TYPES or self.extension in ZIP_EXTENSIONS

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_prefix(self, n: int) -> bytes:
        """Return the first *n* bytes of the content."""
        return await self.source.read(n)

    async def read_window(self, limit: int) -> bytes:
        """Return the content, truncated to *limit* bytes."""
        return await self.source.read(limit)
