"""Unit tests for the integrity, filename, signature, heuristic and image detectors.

Coverage targets
----------------
* IntegrityDetector — oversize, empty, implausibly small image.
* FilenameDetector — blocked extension hard floor, strict allow-list,
  stacked extensions.
* SignatureDetector — disguised executables, header mismatch, text-family
  exemption, unreadable header converted to a low threat.
* HeuristicDetector — rule matches, custom patterns, base64 density,
  enablement cutoff, undecodable payloads skipped, truncated windows.
* ImageDetector — SVG scripts, polyglots, enablement.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from uploadguard.core.detectors import (
    FilenameDetector,
    HeuristicDetector,
    ImageDetector,
    IntegrityDetector,
    SignatureDetector,
)
from uploadguard.core.scan_subject import BytesSource, ContentSource, ScanSubject
from uploadguard.schemas.policy import SecurityConfig, SecurityLevel
from uploadguard.schemas.threat import Severity, ThreatType

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 40


def subject(data: bytes, file_name: str = "file.bin", content_type: str = "") -> ScanSubject:
    return ScanSubject(source=BytesSource(data), file_name=file_name, content_type=content_type)


def failing_subject(file_name: str, content_type: str, size: int = 100) -> ScanSubject:
    source = MagicMock(spec=ContentSource)
    source.size = size
    source.read = AsyncMock(side_effect=OSError("disk gone"))
    return ScanSubject(source=source, file_name=file_name, content_type=content_type)


def kinds(threats) -> list[tuple[ThreatType, Severity]]:
    return [(t.type, t.severity) for t in threats]


# ---------------------------------------------------------------------------
# IntegrityDetector
# ---------------------------------------------------------------------------


class TestIntegrityDetector:
    @pytest.mark.asyncio
    async def test_clean(self, balanced_policy: SecurityConfig) -> None:
        threats = await IntegrityDetector().inspect(subject(b"x" * 100), balanced_policy)
        assert threats == []

    @pytest.mark.asyncio
    async def test_oversized(self) -> None:
        policy = SecurityConfig(max_file_size=1024)
        threats = await IntegrityDetector().inspect(subject(b"x" * 1025), policy)
        assert kinds(threats) == [(ThreatType.OVERSIZED_FILE, Severity.MEDIUM)]
        assert threats[0].details == {"file_size": 1025, "max_size": 1024}

    @pytest.mark.asyncio
    async def test_exactly_at_limit_allowed(self) -> None:
        policy = SecurityConfig(max_file_size=1024)
        assert await IntegrityDetector().inspect(subject(b"x" * 1024), policy) == []

    @pytest.mark.asyncio
    async def test_empty_file(self, balanced_policy: SecurityConfig) -> None:
        threats = await IntegrityDetector().inspect(
            subject(b"", "notes.txt", "text/plain"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.CORRUPTED_FILE, Severity.LOW)]

    @pytest.mark.asyncio
    async def test_tiny_image(self, balanced_policy: SecurityConfig) -> None:
        threats = await IntegrityDetector().inspect(
            subject(b"\x89PNG", "a.png", "image/png"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.SUSPICIOUS_PATTERN, Severity.MEDIUM)]

    @pytest.mark.asyncio
    async def test_empty_image_reports_both(self, balanced_policy: SecurityConfig) -> None:
        threats = await IntegrityDetector().inspect(
            subject(b"", "a.png", "image/png"), balanced_policy
        )
        assert {t.type for t in threats} == {
            ThreatType.SUSPICIOUS_PATTERN,
            ThreatType.CORRUPTED_FILE,
        }


# ---------------------------------------------------------------------------
# FilenameDetector
# ---------------------------------------------------------------------------


class TestFilenameDetector:
    @pytest.mark.asyncio
    async def test_allowed_name(self, balanced_policy: SecurityConfig) -> None:
        assert await FilenameDetector().inspect(subject(b"x", "photo.jpg"), balanced_policy) == []

    @pytest.mark.parametrize("level", list(SecurityLevel))
    @pytest.mark.asyncio
    async def test_blocked_extension_is_critical_at_every_level(self, level: SecurityLevel) -> None:
        policy = SecurityConfig.preset(level)
        threats = await FilenameDetector().inspect(subject(b"x", "setup.EXE"), policy)
        assert (ThreatType.DANGEROUS_EXTENSION, Severity.CRITICAL) in kinds(threats)

    @pytest.mark.asyncio
    async def test_strict_rejects_unlisted_extension(self, strict_policy: SecurityConfig) -> None:
        threats = await FilenameDetector().inspect(subject(b"x", "model.stl"), strict_policy)
        assert kinds(threats) == [(ThreatType.DANGEROUS_EXTENSION, Severity.HIGH)]
        assert "pdf" in threats[0].details["allowed_extensions"]

    @pytest.mark.asyncio
    async def test_balanced_ignores_allow_list(self, balanced_policy: SecurityConfig) -> None:
        assert await FilenameDetector().inspect(subject(b"x", "model.stl"), balanced_policy) == []

    @pytest.mark.asyncio
    async def test_stacked_extensions(self, balanced_policy: SecurityConfig) -> None:
        threats = await FilenameDetector().inspect(subject(b"x", "data.tar.gz.exe"), balanced_policy)
        assert kinds(threats) == [
            (ThreatType.DANGEROUS_EXTENSION, Severity.CRITICAL),
            (ThreatType.SUSPICIOUS_PATTERN, Severity.MEDIUM),
        ]
        assert threats[1].details["extension_count"] == 3

    @pytest.mark.asyncio
    async def test_two_dots_tolerated(self, balanced_policy: SecurityConfig) -> None:
        assert await FilenameDetector().inspect(subject(b"x", "backup.tar.gz"), balanced_policy) == []


# ---------------------------------------------------------------------------
# SignatureDetector
# ---------------------------------------------------------------------------


class TestSignatureDetector:
    @pytest.mark.asyncio
    async def test_matching_header(self, balanced_policy: SecurityConfig) -> None:
        threats = await SignatureDetector().inspect(subject(PNG, "a.png", "image/png"), balanced_policy)
        assert threats == []

    @pytest.mark.asyncio
    async def test_disguised_executable(self, balanced_policy: SecurityConfig) -> None:
        data = b"MZ\x90\x00" + b"\x00" * 60
        threats = await SignatureDetector().inspect(
            subject(data, "photo.jpg", "image/jpeg"), balanced_policy
        )
        assert kinds(threats) == [
            (ThreatType.DISGUISED_EXECUTABLE, Severity.CRITICAL),
            (ThreatType.SUSPICIOUS_HEADER, Severity.MEDIUM),
        ]
        assert threats[0].details["detected_type"] == "exe"

    @pytest.mark.asyncio
    async def test_elf_without_declared_type(self, balanced_policy: SecurityConfig) -> None:
        threats = await SignatureDetector().inspect(
            subject(b"\x7fELF" + b"\x00" * 40, "tool"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.DISGUISED_EXECUTABLE, Severity.CRITICAL)]

    @pytest.mark.asyncio
    async def test_header_mismatch(self, balanced_policy: SecurityConfig) -> None:
        threats = await SignatureDetector().inspect(
            subject(b"GIF89a" + b"\x00" * 40, "doc.pdf", "application/pdf"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.SUSPICIOUS_HEADER, Severity.MEDIUM)]
        assert threats[0].details == {"claimed_type": "application/pdf", "expected_type": "pdf"}

    @pytest.mark.asyncio
    async def test_text_types_have_no_signature(self, balanced_policy: SecurityConfig) -> None:
        for content_type in ("text/plain", "application/json", "application/octet-stream"):
            threats = await SignatureDetector().inspect(
                subject(b"plain words", "f", content_type), balanced_policy
            )
            assert threats == []

    @pytest.mark.asyncio
    async def test_unreadable_header(self, balanced_policy: SecurityConfig) -> None:
        threats = await SignatureDetector().inspect(
            failing_subject("photo.jpg", "image/jpeg"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.CORRUPTED_FILE, Severity.LOW)]

    @pytest.mark.asyncio
    async def test_header_size_floor(self) -> None:
        source = MagicMock(spec=ContentSource)
        source.size = 100
        source.read = AsyncMock(return_value=PNG[:32])
        sub = ScanSubject(source=source, file_name="a.png", content_type="image/png")
        await SignatureDetector(header_bytes=4).inspect(sub, SecurityConfig.default())
        source.read.assert_awaited_once_with(32)


# ---------------------------------------------------------------------------
# HeuristicDetector
# ---------------------------------------------------------------------------


class TestHeuristicDetector:
    @pytest.mark.asyncio
    async def test_clean_text(self, balanced_policy: SecurityConfig) -> None:
        threats = await HeuristicDetector().inspect(
            subject(b"Quarterly figures attached.", "notes.txt", "text/plain"), balanced_policy
        )
        assert threats == []

    @pytest.mark.asyncio
    async def test_script_tag(self, balanced_policy: SecurityConfig) -> None:
        threats = await HeuristicDetector().inspect(
            subject(b"<script>alert(1)</script>", "notes.txt", "text/plain"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.SCRIPT_INJECTION, Severity.HIGH)]
        assert threats[0].details["rule_id"] == "script_tag"

    @pytest.mark.asyncio
    async def test_one_threat_per_matching_rule(self, balanced_policy: SecurityConfig) -> None:
        payload = b"<?php system('id'); eval($_POST['x']); ?>"
        threats = await HeuristicDetector().inspect(
            subject(payload, "shell.txt", "text/plain"), balanced_policy
        )
        rule_ids = [t.details["rule_id"] for t in threats]
        assert rule_ids == ["server_side_script", "eval_call", "system_call"]

    @pytest.mark.asyncio
    async def test_custom_pattern(self) -> None:
        policy = SecurityConfig(custom_patterns=["internal-only"])
        threats = await HeuristicDetector().inspect(
            subject(b"INTERNAL-ONLY memo", "memo.txt", "text/plain"), policy
        )
        assert kinds(threats) == [(ThreatType.SUSPICIOUS_PATTERN, Severity.MEDIUM)]
        assert threats[0].details["rule_id"] == "custom:0"

    @pytest.mark.asyncio
    async def test_base64_density(self, balanced_policy: SecurityConfig) -> None:
        blob = "\n".join(["QUJD" * 13] * 6).encode()
        threats = await HeuristicDetector().inspect(
            subject(blob, "data.txt", "text/plain"), balanced_policy
        )
        assert kinds(threats) == [(ThreatType.SUSPICIOUS_PATTERN, Severity.MEDIUM)]
        assert threats[0].details["base64_count"] == 6

    @pytest.mark.asyncio
    async def test_five_base64_runs_tolerated(self, balanced_policy: SecurityConfig) -> None:
        blob = "\n".join(["QUJD" * 13] * 5).encode()
        threats = await HeuristicDetector().inspect(
            subject(blob, "data.txt", "text/plain"), balanced_policy
        )
        assert threats == []

    @pytest.mark.asyncio
    async def test_undecodable_payload_skipped(self, balanced_policy: SecurityConfig) -> None:
        threats = await HeuristicDetector().inspect(
            subject(b"\xff\xfe<script>x</script>\xc3", "blob.bin"), balanced_policy
        )
        assert threats == []

    @pytest.mark.asyncio
    async def test_read_failure_skipped(self, balanced_policy: SecurityConfig) -> None:
        threats = await HeuristicDetector().inspect(
            failing_subject("notes.txt", "text/plain"), balanced_policy
        )
        assert threats == []

    @pytest.mark.asyncio
    async def test_large_text_scanned_on_prefix(self, balanced_policy: SecurityConfig) -> None:
        # "é" straddles the window boundary; the partial byte must not abort decoding.
        payload = b"<iframe src=x>" + b"a" * 49 + "é".encode() + b"<script>x</script>"
        detector = HeuristicDetector(max_bytes=64)
        threats = await detector.inspect(subject(payload, "big.txt", "text/plain"), balanced_policy)
        assert [t.details["rule_id"] for t in threats] == ["iframe_tag"]

    def test_enablement(self, balanced_policy: SecurityConfig, permissive_policy: SecurityConfig) -> None:
        detector = HeuristicDetector(max_bytes=16)
        small_binary = subject(b"\x00" * 8, "x.bin")
        large_binary = subject(b"\x00" * 32, "x.bin")
        large_text = subject(b"a" * 32, "x.txt", "text/plain")
        assert detector.is_enabled(small_binary, balanced_policy)
        assert not detector.is_enabled(large_binary, balanced_policy)
        assert detector.is_enabled(large_text, balanced_policy)
        assert not detector.is_enabled(large_text, permissive_policy)


# ---------------------------------------------------------------------------
# ImageDetector
# ---------------------------------------------------------------------------


class TestImageDetector:
    @pytest.mark.asyncio
    async def test_clean_png(self, balanced_policy: SecurityConfig) -> None:
        assert await ImageDetector().inspect(subject(PNG, "a.png", "image/png"), balanced_policy) == []

    @pytest.mark.asyncio
    async def test_svg_script(self, balanced_policy: SecurityConfig) -> None:
        svg = b'<svg xmlns="http://www.w3.org/2000/svg"><script>alert(1)</script></svg>'
        threats = await ImageDetector().inspect(subject(svg, "logo.svg", "image/svg+xml"), balanced_policy)
        assert kinds(threats) == [(ThreatType.SCRIPT_INJECTION, Severity.HIGH)]

    @pytest.mark.asyncio
    async def test_svg_javascript_uri(self, balanced_policy: SecurityConfig) -> None:
        svg = b'<svg><a href="javascript:alert(1)"><text>x</text></a></svg>'
        threats = await ImageDetector().inspect(subject(svg, "logo.svg", "image/svg+xml"), balanced_policy)
        assert kinds(threats) == [(ThreatType.SCRIPT_INJECTION, Severity.HIGH)]

    @pytest.mark.asyncio
    async def test_polyglot(self, balanced_policy: SecurityConfig) -> None:
        data = PNG + b"\x7fELF" + b"\x00" * 16
        threats = await ImageDetector().inspect(subject(data, "a.png", "image/png"), balanced_policy)
        assert kinds(threats) == [(ThreatType.MALICIOUS_POLYGLOT, Severity.HIGH)]
        assert threats[0].details["suspicious_content"] == "executable_signature"

    @pytest.mark.asyncio
    async def test_shebang_in_gif(self, balanced_policy: SecurityConfig) -> None:
        data = b"GIF89a" + b"\x00" * 10 + b"#!/bin/bash\necho pwned"
        threats = await ImageDetector().inspect(subject(data, "a.gif", "image/gif"), balanced_policy)
        assert threats[0].details["suspicious_content"] == "shebang"

    def test_enablement(self, balanced_policy: SecurityConfig) -> None:
        detector = ImageDetector()
        assert detector.is_enabled(subject(PNG, "a.png", "image/png"), balanced_policy)
        assert not detector.is_enabled(subject(PNG, "a.png", "application/pdf"), balanced_policy)
        disabled = balanced_policy.with_updates(enable_image_validation=False)
        assert not detector.is_enabled(subject(PNG, "a.png", "image/png"), disabled)
