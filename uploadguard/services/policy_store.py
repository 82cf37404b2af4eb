"""PolicyStore — owner of the active :class:`SecurityConfig`.

Policies are immutable; updating one means building a new, fully revalidated
instance and swapping it in.  An update that fails validation raises
:class:`~uploadguard.schemas.policy.PolicyValidationError` and leaves the
active policy untouched.

Persistence is out of scope.  :class:`InMemoryPolicyStore` holds the active
policy for the lifetime of the process and reports each change to an optional
:class:`~uploadguard.services.audit.AuditLogger` as a ``policy_updated`` event.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from uploadguard.schemas.policy import SecurityConfig, SecurityLevel
from uploadguard.services.audit import AuditLogger

logger = logging.getLogger(__name__)


class PolicyStore(ABC):
    """Abstract source of the active security policy."""

    @abstractmethod
    async def get_active(self) -> SecurityConfig:
        """Return the active policy."""

    @abstractmethod
    async def apply_preset(self, level: SecurityLevel) -> SecurityConfig:
        """Replace the active policy with the named preset and return it."""

    @abstractmethod
    async def apply_update(self, **changes: Any) -> SecurityConfig:
        """Apply *changes* to the active policy, revalidate, and return it.

        Raises:
            PolicyValidationError: If the updated policy is invalid.
        """


class InMemoryPolicyStore(PolicyStore):
    """Process-local policy store.

    Args:
        initial: Starting policy.  Defaults to :meth:`SecurityConfig.default`.
        audit_logger: Receives a ``policy_updated`` event after each change.
    """

    def __init__(
        self,
        initial: SecurityConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._active = initial or SecurityConfig.default()
        self._audit_logger = audit_logger

    async def get_active(self) -> SecurityConfig:
        return self._active

    async def apply_preset(self, level: SecurityLevel) -> SecurityConfig:
        return await self._replace(SecurityConfig.preset(level))

    async def apply_update(self, **changes: Any) -> SecurityConfig:
        # with_updates raises before anything is swapped in.
        return await self._replace(self._active.with_updates(**changes))

    async def _replace(self, new: SecurityConfig) -> SecurityConfig:
        old, self._active = self._active, new
        logger.info(
            "Security policy updated: level %s -> %s",
            old.level.value,
            new.level.value,
        )
        if self._audit_logger is not None:
            try:
                await self._audit_logger.policy_updated(old, new)
            except Exception as exc:
                logger.error("Audit logger failed on policy_updated: %r", exc)
        return new
