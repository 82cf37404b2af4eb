"""DecisionEngine — converts a threat list into an upload decision.

The decision engine is the only component with level-dependent branching.
It is a pure function of ``(threats, level)``:

* ``is_secure``              — no threats at all.
* ``quarantine_recommended`` — any threat of severity ``high`` or above.
* ``allow_upload`` by level:

  +-------------+-----------------------------------------------+
  | Level       | Upload allowed when                           |
  +=============+===============================================+
  | strict      | no threats                                    |
  +-------------+-----------------------------------------------+
  | balanced    | no threat of severity ``high`` or above       |
  +-------------+-----------------------------------------------+
  | permissive  | no ``critical`` threat                        |
  +-------------+-----------------------------------------------+

Tolerance only grows from strict to permissive, so for a fixed threat list
``allow(strict) ⇒ allow(balanced) ⇒ allow(permissive)``.

**Fail-secure:** :meth:`Decision.fail_secure` is the decision applied when
the pipeline itself fails.  It always blocks and quarantines.

Usage::

    from uploadguard.core.decision import decide

    decision = decide(threats, SecurityLevel.BALANCED)
    if not decision.allow_upload:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from uploadguard.schemas.policy import SecurityLevel
from uploadguard.schemas.threat import Severity, Threat

logger = logging.getLogger(__name__)

# Lowest severity that blocks an upload at each level.  ``None`` means any
# threat blocks.
_BLOCKING_SEVERITY: dict[SecurityLevel, Severity | None] = {
    SecurityLevel.STRICT: None,
    SecurityLevel.BALANCED: Severity.HIGH,
    SecurityLevel.PERMISSIVE: Severity.CRITICAL,
}

_QUARANTINE_SEVERITY = Severity.HIGH


@dataclass(frozen=True)
class Decision:
    """Immutable outcome of a decision evaluation.

    Attributes:
        allow_upload: The file may proceed to storage.
        quarantine_recommended: The file should be handed to the quarantine
            store.
        is_secure: No threats were found.
    """

    allow_upload: bool
    quarantine_recommended: bool
    is_secure: bool

    @property
    def action(self) -> str:
        """Return ``"pass"``, ``"quarantine"`` or ``"block"`` for logs and metrics."""
        if self.allow_upload:
            return "pass"
        return "quarantine" if self.quarantine_recommended else "block"

    @classmethod
    def fail_secure(cls) -> Decision:
        """Return the conservative decision used when a scan fails internally."""
        return cls(allow_upload=False, quarantine_recommended=True, is_secure=False)


def allows_upload(threats: Sequence[Threat], level: SecurityLevel) -> bool:
    """Return ``True`` if *level* tolerates every threat in *threats*."""
    threshold = _BLOCKING_SEVERITY[SecurityLevel(level)]
    if threshold is None:
        return not threats
    return not any(t.severity >= threshold for t in threats)


def recommends_quarantine(threats: Sequence[Threat]) -> bool:
    """Return ``True`` if any threat is severe enough to quarantine the file."""
    return any(t.severity >= _QUARANTINE_SEVERITY for t in threats)


def decide(threats: Sequence[Threat], level: SecurityLevel) -> Decision:
    """Classify *threats* under *level*.

    Args:
        threats: The union of every detector's output, including empty lists
            from detectors disabled by policy.
        level: The active :class:`SecurityLevel`.

    Returns:
        An immutable :class:`Decision`.
    """
    decision = Decision(
        allow_upload=allows_upload(threats, level),
        quarantine_recommended=recommends_quarantine(threats),
        is_secure=not threats,
    )
    logger.debug(
        "Decision: level=%s threats=%d action=%s",
        SecurityLevel(level).value,
        len(threats),
        decision.action,
    )
    return decision


class DecisionEngine:
    """Object wrapper around :func:`decide` for injection into the pipeline.

    Stateless; the same instance can be shared across concurrent scans.
    """

    def evaluate(self, threats: Sequence[Threat], level: SecurityLevel) -> Decision:
        return decide(threats, level)
