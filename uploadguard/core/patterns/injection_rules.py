"""Built-in content-injection rule table for the heuristic detector.

Each rule is a data record ``(rule_id, pattern, threat type, severity,
description)``; the detector applies the table in order and knows nothing
about individual rules.  All patterns are compiled once at import time with
``re.IGNORECASE``; no regex compilation occurs at scan time for built-ins.

Rule families:

* script / markup injection (``<script>``, ``javascript:`` and ``vbscript:``
  URIs, inline event-handler attributes, iframe/object/embed/link tags)
* server-side script delimiters (``<?php``, ``<?=``, ``<% %>``)
* SQL injection keyword sequences
* shell command chaining into a known command
* dangerous call patterns (``eval``, ``base64_decode``, ``shell_exec``,
  ``system``, ``passthru``)
* URLs addressing a raw IPv4 host
* template-injection delimiters (``{{ }}``, ``${ }``, ``#{ }``)

Custom patterns from the active policy are compiled separately by
:func:`compile_custom_patterns` because they change with the policy.

Usage::

    from uploadguard.core.patterns.injection_rules import get_builtin_rules

    for rule in get_builtin_rules():
        if rule.regex.search(text):
            print(rule.rule_id, rule.severity)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from uploadguard.schemas.threat import Severity, ThreatType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Raw pattern strings
# ---------------------------------------------------------------------------

# Opening tag only.  Every span below stops at the next delimiter so that a
# payload full of openers with no closer is still matched in linear time.
_SCRIPT_TAG = r"<script\b[^<>]*>"
_JAVASCRIPT_URI = r"javascript\s*:"
_VBSCRIPT_URI = r"vbscript\s*:"

# on<event>= inside a tag, e.g. <img src=x onerror="...">
_EVENT_HANDLER = r"<[a-z][^<>]*\son[a-z]+\s*="

_IFRAME_TAG = r"<iframe\b"
_OBJECT_TAG = r"<object\b"
_EMBED_TAG = r"<embed\b"
_LINK_TAG = r"<link\b"

# PHP / ASP style delimiters.  A bare "<?" is excluded so that XML
# declarations (<?xml ...?>) do not match.
_SERVER_SIDE_SCRIPT = r"<\?(?:php\b|=)|<%[^%]*%>"

_SQL_UNION_SELECT = r"\bunion\s+(?:all\s+)?select\b"
_SQL_DROP_TABLE = r"\bdrop\s+table\b"
_SQL_EXEC_CALL = r"\bexec(?:ute)?\s*\("

# A shell metacharacter chaining into a command commonly used by droppers.
_COMMAND_CHAINING = (
    r"(?:;|&&|\|\|?|`|\$\()\s*"
    r"(?:rm|curl|wget|nc|ncat|bash|sh|zsh|chmod|chown|python[0-9.]*|perl|"
    r"powershell|cmd(?:\.exe)?|certutil|mshta)\b"
)

_EVAL_CALL = r"\beval\s*\("
_BASE64_DECODE_CALL = r"\bbase64_decode\b"
_SHELL_EXEC_CALL = r"\bshell_exec\b"
_SYSTEM_CALL = r"\bsystem\s*\("
_PASSTHRU_CALL = r"\bpassthru\b"

_RAW_IP_URL = r"\bhttps?://\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"

_TEMPLATE_DOUBLE_BRACE = r"\{\{[^{}]*\}\}"
_TEMPLATE_DOLLAR_BRACE = r"\$\{[^{}]*\}"
_TEMPLATE_HASH_BRACE = r"#\{[^{}]*\}"

#: Long runs of base64 alphabet; more than a handful suggests an encoded payload.
BASE64_RUN = re.compile(r"[A-Za-z0-9+/]{50,}={0,2}")


# ---------------------------------------------------------------------------
# Rule record
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InjectionRule:
    """A single compiled heuristic rule.

    Attributes:
        rule_id: Stable identifier recorded in ``Threat.details["rule_id"]``.
        regex: Pre-compiled, case-insensitive pattern.
        threat_type: :class:`ThreatType` emitted when the rule matches.
        severity: :class:`Severity` emitted when the rule matches.
        description: Human-readable description of what the rule detects.
    """

    rule_id: str
    regex: re.Pattern  # type: ignore[type-arg]
    threat_type: ThreatType
    severity: Severity
    description: str


#: Ordered (rule_id, raw_pattern, description) triples.  Order is the order
#: in which threats appear in a scan result.
_BUILTIN_DEFINITIONS: list[tuple[str, str, str]] = [
    ("script_tag", _SCRIPT_TAG, "embedded <script> element"),
    ("javascript_uri", _JAVASCRIPT_URI, "javascript: URI"),
    ("vbscript_uri", _VBSCRIPT_URI, "vbscript: URI"),
    ("event_handler_attribute", _EVENT_HANDLER, "inline event-handler attribute"),
    ("iframe_tag", _IFRAME_TAG, "<iframe> injection"),
    ("object_tag", _OBJECT_TAG, "<object> injection"),
    ("embed_tag", _EMBED_TAG, "<embed> injection"),
    ("link_tag", _LINK_TAG, "<link> injection"),
    ("server_side_script", _SERVER_SIDE_SCRIPT, "server-side script delimiters"),
    ("sql_union_select", _SQL_UNION_SELECT, "SQL UNION SELECT sequence"),
    ("sql_drop_table", _SQL_DROP_TABLE, "SQL DROP TABLE sequence"),
    ("sql_exec_call", _SQL_EXEC_CALL, "SQL EXEC call"),
    ("command_chaining", _COMMAND_CHAINING, "shell command chaining"),
    ("eval_call", _EVAL_CALL, "eval() call"),
    ("base64_decode_call", _BASE64_DECODE_CALL, "base64_decode call"),
    ("shell_exec_call", _SHELL_EXEC_CALL, "shell_exec call"),
    ("system_call", _SYSTEM_CALL, "system() call"),
    ("passthru_call", _PASSTHRU_CALL, "passthru call"),
    ("raw_ip_url", _RAW_IP_URL, "URL with a raw IP address host"),
    ("template_double_brace", _TEMPLATE_DOUBLE_BRACE, "{{ }} template expression"),
    ("template_dollar_brace", _TEMPLATE_DOLLAR_BRACE, "${ } template expression"),
    ("template_hash_brace", _TEMPLATE_HASH_BRACE, "#{ } template expression"),
]

BUILTIN_RULES: tuple[InjectionRule, ...] = tuple(
    InjectionRule(
        rule_id=rule_id,
        regex=re.compile(raw, re.IGNORECASE),
        threat_type=ThreatType.SCRIPT_INJECTION,
        severity=Severity.HIGH,
        description=description,
    )
    for rule_id, raw, description in _BUILTIN_DEFINITIONS
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def get_builtin_rules() -> tuple[InjectionRule, ...]:
    """Return the immutable built-in rule table."""
    return BUILTIN_RULES


def compile_custom_patterns(patterns: Iterable[str]) -> list[InjectionRule]:
    """Compile policy-supplied pattern strings into :class:`InjectionRule` objects.

    Custom matches are reported as ``suspicious_pattern`` / medium.  Patterns
    have already been validated by
    :class:`~uploadguard.schemas.policy.SecurityConfig`; one that still fails
    to compile here is skipped with a warning rather than aborting the scan.

    Args:
        patterns: Raw regex source strings, matched case-insensitively.

    Returns:
        Compiled rules in input order, with ``rule_id`` of the form
        ``custom:<index>``.
    """
    rules: list[InjectionRule] = []
    for index, raw in enumerate(patterns):
        try:
            regex = re.compile(raw, re.IGNORECASE)
        except re.error as exc:
            logger.warning("Skipping uncompilable custom pattern %r: %s", raw, exc)
            continue
        rules.append(
            InjectionRule(
                rule_id=f"custom:{index}",
                regex=regex,
                threat_type=ThreatType.SUSPICIOUS_PATTERN,
                severity=Severity.MEDIUM,
                description=f"custom security pattern {raw!r}",
            )
        )
    return rules
