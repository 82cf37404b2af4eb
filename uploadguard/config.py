"""Scanner runtime configuration via Pydantic Settings.

All configuration is driven by environment variables prefixed with
``UPLOADGUARD_``.  Values that are out of range raise a ``ValidationError``
when the settings are first loaded so misconfigured deployments fail fast.

These settings bound the *cost* of a scan (read sizes, timeouts, batch
concurrency).  The security *policy* itself lives in
:class:`~uploadguard.schemas.policy.SecurityConfig` and is owned by the caller.

Usage::

    from uploadguard.config import get_settings

    settings = get_settings()
    print(settings.scan_timeout_seconds)

The ``get_settings`` function is cached with ``functools.lru_cache``. To override
settings in tests, construct :class:`Settings` directly and pass it to
:class:`~uploadguard.core.pipeline.ScanPipeline`, or clear the cache with
``get_settings.cache_clear()`` after changing the environment.
"""
from __future__ import annotations

import functools

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from uploadguard.schemas.policy import SecurityLevel


class Settings(BaseSettings):
    """UploadGuard runtime settings.

    Environment variables are read case-insensitively. A ``.env`` file in the
    working directory is loaded automatically when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="UPLOADGUARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Policy
    default_security_level: SecurityLevel = Field(
        default=SecurityLevel.BALANCED,
        description="Preset used when the caller does not supply a policy",
    )

    # Read bounds
    header_read_bytes: int = Field(
        default=32,
        ge=32,
        le=4096,
        description="Header prefix read by the signature detector",
    )
    archive_header_bytes: int = Field(
        default=1024,
        ge=32,
        description="Header prefix read by the archive fallback heuristic",
    )
    heuristic_max_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        description="Payloads below this size are content-scanned; text payloads are truncated to it",
    )
    archive_nested_read_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=0,
        description="Decompressed-byte budget for inspecting nested archives",
    )

    # Latency
    scan_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Overall timeout around one pipeline invocation",
    )
    batch_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum files scanned concurrently by ScanPipeline.scan_many",
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    The first call reads environment variables (and ``.env``). Subsequent calls
    return the cached instance. Clear the cache with ``get_settings.cache_clear()``
    between tests.
    """
    return Settings()
