"""Shared pytest configuration and fixtures for UploadGuard tests.

Pins the runtime settings used by the pipeline so that tests never depend on
``UPLOADGUARD_*`` variables or a ``.env`` file in the developer's shell.
"""
from __future__ import annotations

import io
import zipfile

import pytest

from uploadguard.config import Settings, get_settings
from uploadguard.schemas.policy import SecurityConfig, SecurityLevel

PNG_HEADER = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24
JPEG_HEADER = b"\xff\xd8\xff\xe0" + b"\x00" * 28
PDF_HEADER = b"%PDF-1.7\n" + b"%" * 23
PE_HEADER = b"MZ\x90\x00" + b"\x00" * 28


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with a short scan timeout and small batch concurrency."""
    return Settings(scan_timeout_seconds=5.0, batch_concurrency=2)


@pytest.fixture
def balanced_policy() -> SecurityConfig:
    return SecurityConfig.preset(SecurityLevel.BALANCED)


@pytest.fixture
def strict_policy() -> SecurityConfig:
    return SecurityConfig.preset(SecurityLevel.STRICT)


@pytest.fixture
def permissive_policy() -> SecurityConfig:
    return SecurityConfig.preset(SecurityLevel.PERMISSIVE)


def make_zip(entries: dict[str, bytes], compression: int = zipfile.ZIP_DEFLATED) -> bytes:
    """Return the bytes of an in-memory ZIP archive holding *entries*."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def zip_factory():
    """Return :func:`make_zip` for tests that build archives inline."""
    return make_zip
