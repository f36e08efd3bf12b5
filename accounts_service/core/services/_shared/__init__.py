"""
Shared utilities for account services.

Provides tenant id validation, the per-tenant write lock registry and
the conflict retry policy.
"""

from accounts_service.core.services._shared.validation import validate_tenant_id, TENANT_ID_PATTERN
from accounts_service.core.services._shared.locks import TenantLockRegistry, get_tenant_locks
from accounts_service.core.services._shared.retry import run_with_conflict_retry

__all__ = [
    "validate_tenant_id",
    "TENANT_ID_PATTERN",
    "TenantLockRegistry",
    "get_tenant_locks",
    "run_with_conflict_retry",
]
