"""Heuristic content detector: rule-table pattern matching over decoded text.

Runs when heuristic scanning is enabled and the payload is either
text-representable or below the size cutoff.  The payload is decoded as
UTF-8; anything that does not decode is treated as opaque binary and
skipped without producing a threat.

Three independent checks are applied to the decoded text:

1. every built-in :class:`~uploadguard.core.patterns.injection_rules.InjectionRule`
   (one ``script_injection`` / high threat per matching rule);
2. every custom pattern from the policy (one ``suspicious_pattern`` / medium
   threat per matching pattern);
3. base64 density: more than :data:`_BASE64_RUN_LIMIT` long base64 runs is a
   ``suspicious_pattern`` / medium threat.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from typing import Sequence

from uploadguard.core.detectors.base import Detector
from uploadguard.core.patterns.injection_rules import (
    BASE64_RUN,
    InjectionRule,
    compile_custom_patterns,
    get_builtin_rules,
)
from uploadguard.core.scan_subject import ScanSubject
from uploadguard.schemas.policy import SecurityConfig
from uploadguard.schemas.threat import Severity, Threat, ThreatType

logger = logging.getLogger(__name__)

_DEFAULT_MAX_BYTES = 1024 * 1024
_BASE64_RUN_LIMIT = 5


class HeuristicDetector(Detector):
    """Pattern-matching content scanner.

    Args:
        max_bytes: Size cutoff.  Binary payloads at or above it are not
            scanned; text payloads above it are scanned on their first
            *max_bytes* bytes.
        rules: Rule table to apply.  Defaults to the built-in table.
    """

    name = "heuristic"

    def __init__(
        self,
        max_bytes: int = _DEFAULT_MAX_BYTES,
        rules: Sequence[InjectionRule] | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._rules: tuple[InjectionRule, ...] = (
            tuple(rules) if rules is not None else get_builtin_rules()
        )

    def is_enabled(self, subject: ScanSubject, policy: SecurityConfig) -> bool:
        if not policy.enable_heuristic_scanning:
            return False
        return subject.is_text or subject.size < self._max_bytes

    async def inspect(self, subject: ScanSubject, policy: SecurityConfig) -> list[Threat]:
        text = await self._read_text(subject)
        if text is None:
            return []

        custom_rules = compile_custom_patterns(policy.custom_patterns)
        # CPU-bound matching runs in the default executor.
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._match_text, text, custom_rules)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _match_text(self, text: str, custom_rules: Sequence[InjectionRule]) -> list[Threat]:
        threats: list[Threat] = []
        threats.extend(self._apply_rules(text, self._rules))
        threats.extend(self._apply_rules(text, custom_rules))

        base64_count = len(BASE64_RUN.findall(text))
        if base64_count > _BASE64_RUN_LIMIT:
            threats.append(
                Threat(
                    type=ThreatType.SUSPICIOUS_PATTERN,
                    severity=Severity.MEDIUM,
                    description="File contains multiple base64-encoded strings",
                    recommendation="Verify encoded content is legitimate",
                    details={"base64_count": base64_count},
                )
            )

        return threats

    async def _read_text(self, subject: ScanSubject) -> str | None:
        """Return the decoded text window, or ``None`` for opaque content."""
        try:
            data = await subject.read_window(self._max_bytes)
        except OSError as exc:
            logger.warning(
                "Heuristic detector could not read content: scan_id=%s error=%r",
                subject.scan_id,
                exc,
            )
            return None

        truncated = subject.size > len(data)
        # A truncated window may end inside a multi-byte sequence; the
        # incremental decoder holds the partial tail back instead of failing.
        decoder = codecs.getincrementaldecoder("utf-8")()
        try:
            return decoder.decode(data, final=not truncated)
        except UnicodeDecodeError:
            logger.debug(
                "Heuristic detector skipped undecodable payload: scan_id=%s",
                subject.scan_id,
            )
            return None

    @staticmethod
    def _apply_rules(text: str, rules: Sequence[InjectionRule]) -> list[Threat]:
        threats: list[Threat] = []
        for rule in rules:
            if rule.regex.search(text) is None:
                continue
            if rule.threat_type is ThreatType.SCRIPT_INJECTION:
                description = f"File contains potentially malicious code patterns ({rule.description})"
                recommendation = "Remove suspicious code or use a different file"
            else:
                description = f"File matches {rule.description}"
                recommendation = "Review file content for security issues"
            threats.append(
                Threat(
                    type=rule.threat_type,
                    severity=rule.severity,
                    description=description,
                    recommendation=recommendation,
                    details={"rule_id": rule.rule_id, "pattern": rule.regex.pattern},
                )
            )
        return threats
