"""
Tests for the per-tenant write lock registry.
"""

import asyncio

import pytest

from accounts_service.core.exceptions import ConcurrentModificationError
from accounts_service.core.services._shared import TenantLockRegistry

from conftest import OTHER_TENANT, TENANT


class TestTenantLockRegistry:
    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_release(self, locks):
        async with locks.hold(TENANT):
            assert locks.active_tenants() == {TENANT}
        assert locks.active_tenants() == set()

    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_timeout(self):
        locks = TenantLockRegistry(timeout_seconds=0.05)

        async with locks.hold(TENANT):
            with pytest.raises(ConcurrentModificationError):
                async with locks.hold(TENANT):
                    pass
            assert locks.active_tenants() == {TENANT}

        assert locks.active_tenants() == set()

    @pytest.mark.asyncio
    async def test_lock_is_dropped_after_error_in_block(self, locks):
        with pytest.raises(RuntimeError):
            async with locks.hold(TENANT):
                raise RuntimeError("boom")
        assert locks.active_tenants() == set()

    @pytest.mark.asyncio
    async def test_waiter_keeps_lock_alive_and_serializes(self, locks):
        order = []

        async def writer(name, delay):
            async with locks.hold(TENANT):
                order.append(f"{name}-start")
                await asyncio.sleep(delay)
                order.append(f"{name}-end")

        await asyncio.gather(writer("first", 0.02), writer("second", 0))

        assert order == ["first-start", "first-end", "second-start", "second-end"]
        assert locks.active_tenants() == set()

    @pytest.mark.asyncio
    async def test_tenants_do_not_block_each_other(self, locks):
        async with locks.hold(TENANT):
            async with locks.hold(OTHER_TENANT):
                assert locks.active_tenants() == {TENANT, OTHER_TENANT}
        assert locks.active_tenants() == set()
