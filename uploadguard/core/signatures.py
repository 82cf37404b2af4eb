"""Magic-number table for binary format identification.

Maps format identifiers to one or more exact byte-prefix signatures.  The
table is consulted by the signature, archive and image detectors; nothing in
it is mutated at runtime.
"""

from __future__ import annotations

# Format id -> tuple of byte-prefix signatures.
MAGIC_NUMBERS: dict[str, tuple[bytes, ...]] = {
    # Executables
    "exe": (b"MZ",),
    "elf": (b"\x7fELF",),
    "macho32": (b"\xfe\xed\xfa\xce", b"\xce\xfa\xed\xfe"),
    "macho64": (b"\xfe\xed\xfa\xcf", b"\xcf\xfa\xed\xfe"),
    # Archives
    "zip": (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08"),
    "rar": (b"Rar!\x1a\x07\x00", b"Rar!\x1a\x07\x01\x00"),
    "7z": (b"7z\xbc\xaf\x27\x1c",),
    # Images
    "jpg": (b"\xff\xd8\xff",),
    "png": (b"\x89PNG\r\n\x1a\n",),
    "gif": (b"GIF87a", b"GIF89a"),
    "webp": (b"RIFF",),
    # Documents
    "pdf": (b"%PDF",),
}

EXECUTABLE_FORMATS: tuple[str, ...] = ("exe", "elf", "macho32", "macho64")

# Declared content type -> format id whose signature the bytes must carry.
CONTENT_TYPE_FORMATS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/pjpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "application/pdf": "pdf",
    "application/zip": "zip",
    "application/x-zip-compressed": "zip",
    "application/x-rar-compressed": "rar",
    "application/vnd.rar": "rar",
    "application/x-7z-compressed": "7z",
}

# Markers of an executable embedded anywhere inside another container.
# A bare "MZ" is too common in compressed image data to be searched for
# past offset 0, so PE files are recognised by their header marker or the
# DOS stub message instead.
EMBEDDED_EXECUTABLE_MARKERS: tuple[bytes, ...] = (
    b"\x7fELF",
    b"\xfe\xed\xfa\xce",
    b"\xce\xfa\xed\xfe",
    b"\xfe\xed\xfa\xcf",
    b"\xcf\xfa\xed\xfe",
    b"PE\x00\x00",
    b"This program cannot be run in DOS mode",
)
SHEBANG = b"#!/"


def has_signature(header: bytes, format_id: str) -> bool:
    """Return ``True`` if *header* starts with any signature of *format_id*."""
    return any(header.startswith(sig) for sig in MAGIC_NUMBERS.get(format_id, ()))


def identify_format(header: bytes) -> str | None:
    """Return the first format id whose signature prefixes *header*, or ``None``."""
    for format_id in MAGIC_NUMBERS:
        if has_signature(header, format_id):
            return format_id
    return None


def detect_executable(header: bytes) -> str | None:
    """Return the executable format id prefixing *header*, or ``None``."""
    for format_id in EXECUTABLE_FORMATS:
        if has_signature(header, format_id):
            return format_id
    return None


def expected_format(content_type: str) -> str | None:
    """Return the format id a file declared as *content_type* must carry."""
    return CONTENT_TYPE_FORMATS.get((content_type or "").strip().lower())


def find_embedded_executable(data: bytes) -> str | None:
    """Return a short label for an executable or shebang found in *data*.

    Checks the executable prefix table at offset 0, then searches the whole
    buffer for :data:`EMBEDDED_EXECUTABLE_MARKERS` and the shebang prefix.
    """
    at_start = detect_executable(data)
    if at_start is not None:
        return at_start
    for marker in EMBEDDED_EXECUTABLE_MARKERS:
        if marker in data:
            return "executable_signature"
    if SHEBANG in data:
        return "shebang"
    return None
