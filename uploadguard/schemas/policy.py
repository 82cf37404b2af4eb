"""SecurityConfig — the immutable scan policy shared by every detector.

A :class:`SecurityConfig` is a value object: it is validated once on
construction and never mutated afterwards, so any number of concurrent scans
can read the same instance without synchronisation.  "Updating settings"
always means constructing a new instance with :meth:`SecurityConfig.with_updates`,
which re-runs every validator against the merged values.

Usage::

    from uploadguard.schemas.policy import SecurityConfig, SecurityLevel

    policy = SecurityConfig.preset(SecurityLevel.STRICT)
    relaxed = policy.with_updates(max_file_size=20 * 1024 * 1024)
    assert policy.max_file_size == 10 * 1024 * 1024   # original untouched
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator


class SecurityLevel(str, Enum):
    """Operating mode of the decision engine.

    Determines decision thresholds only; detection logic is identical at every
    level (apart from the strict-mode allow-list check on extensions).
    """

    STRICT = "strict"
    BALANCED = "balanced"
    PERMISSIVE = "permissive"


class PolicyValidationError(ValueError):
    """Raised when a policy update fails validation.

    Attributes:
        errors: Human-readable error strings, one per rejected field.
    """

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Invalid security policy: " + "; ".join(errors))
        self.errors = errors


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

_MIB = 1024 * 1024

DEFAULT_BLOCKED_EXTENSIONS: frozenset[str] = frozenset({
    # Executables and installers
    "exe", "bat", "cmd", "com", "pif", "scr", "jar", "app", "deb", "pkg", "dmg",
    "msi", "dll",
    # Scripts
    "js", "vbs", "vbe", "ps1", "ps2", "psc1", "psc2", "msh", "msh1", "msh2",
    "mshxml", "msh1xml", "msh2xml", "scf", "lnk", "inf", "reg",
    # Archive formats that commonly hide malware
    "ace", "arj", "cab", "lzh", "uue", "z", "zoo",
    # Macro-enabled documents
    "docm", "xlsm", "pptm", "dotm", "xltm", "potm",
})

DEFAULT_ALLOWED_EXTENSIONS: frozenset[str] = frozenset({
    # Images
    "jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico",
    # Documents
    "pdf", "txt", "md", "rtf", "docx", "xlsx", "pptx", "odt", "ods", "odp",
    # Archives (deep-scanned)
    "zip", "rar", "7z", "tar", "gz", "bz2",
    # Structured text
    "json", "xml", "csv", "log", "yaml", "yml",
    # Media
    "mp3", "mp4", "wav", "avi", "mov", "wmv",
})

DEFAULT_ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset({
    "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
    "application/pdf", "text/plain", "text/markdown", "text/csv",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/zip", "application/x-rar-compressed", "application/x-7z-compressed",
    "application/json", "application/xml",
})

_STRICT_EXTRA_BLOCKED = frozenset({"zip", "rar", "7z", "tar", "gz", "svg"})
_PERMISSIVE_BLOCKED = frozenset({"exe", "bat", "cmd", "com", "pif", "scr"})


# ---------------------------------------------------------------------------
# SecurityConfig
# ---------------------------------------------------------------------------


class SecurityConfig(BaseModel):
    """Immutable snapshot of scan thresholds and detector switches.

    Attributes:
        level: :class:`SecurityLevel` operating mode for the decision engine.
        max_file_size: Upper size bound in bytes (1 KiB – 1 GiB).
        max_archive_depth: Maximum nesting depth of archives (1 – 10).
        max_compression_ratio: Maximum tolerated uncompressed/compressed
            ratio for archives (10 – 10 000).
        allowed_extensions: Extensions accepted in strict mode.
        blocked_extensions: Extensions rejected at every level (hard floor).
        allowed_content_types: Content types the host application accepts.
            Carried for collaborators; detectors do not reject on it.
        enable_heuristic_scanning: Run the heuristic content detector.
        enable_archive_scanning: Run the archive detector.
        enable_image_validation: Run the structural image detector.
        custom_patterns: Extra regular expressions (source strings) matched
            case-insensitively by the heuristic detector.  Every pattern must
            compile or the policy is rejected.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    level: SecurityLevel = SecurityLevel.BALANCED
    max_file_size: int = Field(default=50 * _MIB, ge=1024, le=1024 * _MIB)
    max_archive_depth: int = Field(default=3, ge=1, le=10)
    max_compression_ratio: float = Field(default=1000, ge=10, le=10_000)
    allowed_extensions: frozenset[str] = DEFAULT_ALLOWED_EXTENSIONS
    blocked_extensions: frozenset[str] = DEFAULT_BLOCKED_EXTENSIONS
    allowed_content_types: frozenset[str] = DEFAULT_ALLOWED_CONTENT_TYPES
    enable_heuristic_scanning: bool = True
    enable_archive_scanning: bool = True
    enable_image_validation: bool = True
    custom_patterns: tuple[str, ...] = ()

    @field_validator("allowed_extensions", "blocked_extensions", mode="before")
    @classmethod
    def normalise_extensions(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        return frozenset(str(ext).strip().lower().lstrip(".") for ext in v)

    @field_validator("allowed_content_types", mode="before")
    @classmethod
    def normalise_content_types(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        return frozenset(str(ct).strip().lower() for ct in v)

    @field_validator("custom_patterns", mode="before")
    @classmethod
    def validate_custom_patterns(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        patterns = tuple(v)
        for pattern in patterns:
            try:
                re.compile(pattern)
            except (re.error, TypeError) as exc:
                raise ValueError(f"Invalid regex pattern {pattern!r}: {exc}") from exc
        # Order preserved, duplicates dropped.
        return tuple(dict.fromkeys(patterns))

    # ------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------

    @classmethod
    def default(cls) -> SecurityConfig:
        """Return the balanced default policy."""
        return cls()

    @classmethod
    def preset(cls, level: SecurityLevel | str) -> SecurityConfig:
        """Return the named preset for *level*.

        Presets differ in size limits, archive depth, compression ratio,
        heuristic scanning and which extensions are pre-blocked.

        Raises:
            ValueError: If *level* is not a valid :class:`SecurityLevel`.
        """
        level = SecurityLevel(level)

        if level is SecurityLevel.STRICT:
            return cls(
                level=level,
                max_file_size=10 * _MIB,
                max_archive_depth=2,
                max_compression_ratio=100,
                enable_heuristic_scanning=True,
                enable_archive_scanning=True,
                enable_image_validation=True,
                blocked_extensions=DEFAULT_BLOCKED_EXTENSIONS | _STRICT_EXTRA_BLOCKED,
            )

        if level is SecurityLevel.PERMISSIVE:
            return cls(
                level=level,
                max_file_size=100 * _MIB,
                max_archive_depth=5,
                max_compression_ratio=5000,
                enable_heuristic_scanning=False,
                blocked_extensions=_PERMISSIVE_BLOCKED,
            )

        return cls(level=level)

    def with_updates(self, **changes: Any) -> SecurityConfig:
        """Return a new policy with *changes* applied and fully revalidated.

        The current instance is never modified.

        Raises:
            PolicyValidationError: If any changed value (or unknown key)
                fails validation.
        """
        merged = self.model_dump()
        merged.update(changes)
        try:
            return type(self).model_validate(merged)
        except ValidationError as exc:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'policy'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise PolicyValidationError(errors) from exc
