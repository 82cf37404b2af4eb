"""Unit tests for :class:`~uploadguard.services.policy_store.InMemoryPolicyStore`.

Coverage targets
----------------
* Starts from the balanced default (or a supplied policy).
* ``apply_preset`` swaps in the named preset.
* ``apply_update`` revalidates; invalid updates (bad custom pattern, out of
  range values) raise ``PolicyValidationError`` and leave the active policy
  untouched.
* Each successful change emits one ``policy_updated`` audit event; a failing
  audit logger does not undo or block the change.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from uploadguard.schemas.policy import PolicyValidationError, SecurityConfig, SecurityLevel
from uploadguard.services.audit import AuditLogger
from uploadguard.services.policy_store import InMemoryPolicyStore


class TestInMemoryPolicyStore:
    @pytest.mark.asyncio
    async def test_default_policy(self) -> None:
        store = InMemoryPolicyStore()
        assert await store.get_active() == SecurityConfig.default()

    @pytest.mark.asyncio
    async def test_initial_policy(self) -> None:
        strict = SecurityConfig.preset(SecurityLevel.STRICT)
        assert await InMemoryPolicyStore(initial=strict).get_active() is strict

    @pytest.mark.asyncio
    async def test_apply_preset(self) -> None:
        store = InMemoryPolicyStore()
        policy = await store.apply_preset(SecurityLevel.PERMISSIVE)
        assert policy.level is SecurityLevel.PERMISSIVE
        assert await store.get_active() is policy

    @pytest.mark.asyncio
    async def test_apply_update(self) -> None:
        store = InMemoryPolicyStore()
        before = await store.get_active()
        after = await store.apply_update(custom_patterns=["confidential"])
        assert after.custom_patterns == ("confidential",)
        assert before.custom_patterns == ()
        assert await store.get_active() is after

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "changes",
        [
            {"custom_patterns": ["(unclosed"]},
            {"max_file_size": 10},
            {"max_compression_ratio": 50_000},
        ],
    )
    async def test_invalid_update_leaves_policy_untouched(self, changes) -> None:
        audit = AsyncMock(spec=AuditLogger)
        store = InMemoryPolicyStore(audit_logger=audit)
        before = await store.get_active()
        with pytest.raises(PolicyValidationError):
            await store.apply_update(**changes)
        assert await store.get_active() is before
        audit.policy_updated.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_emits_policy_updated(self) -> None:
        audit = AsyncMock(spec=AuditLogger)
        store = InMemoryPolicyStore(audit_logger=audit)
        old = await store.get_active()
        new = await store.apply_preset(SecurityLevel.STRICT)
        audit.policy_updated.assert_awaited_once_with(old, new)

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_block_update(self) -> None:
        audit = AsyncMock(spec=AuditLogger)
        audit.policy_updated.side_effect = RuntimeError("audit down")
        store = InMemoryPolicyStore(audit_logger=audit)
        new = await store.apply_update(max_archive_depth=5)
        assert (await store.get_active()) is new
        assert new.max_archive_depth == 5
