"""
Per-tenant write serialization.

Hierarchy cascades and merges rewrite whole subtrees, so two of them must
never interleave inside one tenant. Writers take the tenant's lock; readers
(duplicate sweeps, integrity audits) do not.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from accounts_service.app.config import get_settings
from accounts_service.core.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)


class TenantLockRegistry:
    """
    Lazily created ``asyncio.Lock`` per tenant with a bounded wait.

    A tenant's lock is dropped once nobody holds or waits for it, so the
    registry only keeps locks for tenants with writes in flight.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def _checkout(self, tenant_id: str) -> asyncio.Lock:
        lock = self._locks.get(tenant_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[tenant_id] = lock
        self._users[tenant_id] = self._users.get(tenant_id, 0) + 1
        return lock

    def _checkin(self, tenant_id: str) -> None:
        remaining = self._users[tenant_id] - 1
        if remaining:
            self._users[tenant_id] = remaining
        else:
            del self._users[tenant_id]
            del self._locks[tenant_id]

    def active_tenants(self):
        """Tenants whose lock is currently held or awaited."""
        return set(self._locks)

    @asynccontextmanager
    async def hold(self, tenant_id: str):
        """
        Hold the tenant's write lock for the duration of the block.

        Raises:
            ConcurrentModificationError: lock not acquired within the timeout
        """
        lock = self._checkout(tenant_id)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                logger.warning(
                    "Timed out waiting for tenant write lock",
                    extra={"tenant_id": tenant_id, "timeout_seconds": self.timeout_seconds}
                )
                raise ConcurrentModificationError(
                    message=f"Another write is in progress for tenant {tenant_id}, retry the operation",
                    context={"tenant_id": tenant_id},
                    original_error=e
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(tenant_id)


_registry: Optional[TenantLockRegistry] = None


def get_tenant_locks() -> TenantLockRegistry:
    """Get the process-wide tenant lock registry."""
    global _registry
    if _registry is None:
        _registry = TenantLockRegistry(get_settings().tenant_lock_timeout_seconds)
    return _registry
