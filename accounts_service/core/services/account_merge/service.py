"""
Merge Reconciliation Engine.

Folds a secondary (duplicate) account into a primary one:

1. Fill-forward of scalar fields that are empty on the primary
2. Ordered tag union, primary's tags first
3. Custom fields copied wholesale only when the primary has none
4. Secondary's children reparented under the primary (levels and paths recomputed)
5. Relationships touching the secondary repointed to the primary
6. Primary saved, secondary deleted

Steps 4-6 run inside one store transaction under the tenant write lock, so
a failure anywhere leaves both accounts and their relationships untouched.

Known limitation: custom fields are not merged key by key. A relationship
between the two merged accounts becomes a self-referencing relationship on
the primary.
"""

import logging
from typing import Any, List, Optional

from accounts_service.app.config import get_settings
from accounts_service.app.models import Account, Address, dedupe_tags
from accounts_service.core.exceptions import (
    AccountNotFoundError,
    CircularHierarchyError,
    CrossTenantError,
    ValidationFailedError,
)
from accounts_service.core.services._shared import (
    TenantLockRegistry,
    get_tenant_locks,
    run_with_conflict_retry,
    validate_tenant_id,
)
from accounts_service.core.services.account_hierarchy import (
    AccountHierarchyService,
    HierarchyIndex,
    is_ancestor,
)
from accounts_service.core.services.account_store import AccountStore

logger = logging.getLogger(__name__)

# Scalar fields eligible for fill-forward, in merge order
MERGE_SCALAR_FIELDS = (
    "account_number",
    "account_type",
    "industry",
    "annual_revenue",
    "employee_count",
    "website",
    "phone",
    "fax",
    "billing_address",
    "shipping_address",
    "description",
)


def is_empty_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Address):
        return value.is_empty()
    if isinstance(value, (list, dict)):
        return not value
    return False


def fill_forward(primary: Account, secondary: Account) -> List[str]:
    """Copy secondary's values into primary's empty scalar fields. Returns the filled field names."""
    filled = []
    for field in MERGE_SCALAR_FIELDS:
        primary_value = getattr(primary, field)
        secondary_value = getattr(secondary, field)
        if is_empty_value(primary_value) and not is_empty_value(secondary_value):
            if isinstance(secondary_value, Address):
                secondary_value = secondary_value.model_copy()
            setattr(primary, field, secondary_value)
            filled.append(field)
    return filled


def merge_tags(primary_tags: List[str], secondary_tags: List[str]) -> List[str]:
    """
    Ordered union.

    Examples:
        >>> merge_tags(["a", "b"], ["b", "c"])
        ['a', 'b', 'c']
        >>> merge_tags([], ["x"])
        ['x']
    """
    if not primary_tags:
        return dedupe_tags(secondary_tags)
    return dedupe_tags(list(primary_tags) + list(secondary_tags))


class AccountMergeService:
    """Reconciles two duplicate accounts of one tenant into the primary."""

    def __init__(
        self,
        store: AccountStore,
        hierarchy: Optional[AccountHierarchyService] = None,
        locks: Optional[TenantLockRegistry] = None,
        conflict_retry_attempts: Optional[int] = None,
    ):
        self.store = store
        self.hierarchy = hierarchy or AccountHierarchyService(store, locks=locks)
        self.locks = locks or self.hierarchy.locks
        self.conflict_retry_attempts = (
            get_settings().conflict_retry_attempts if conflict_retry_attempts is None else conflict_retry_attempts
        )

    async def merge_accounts(
        self,
        tenant_id: str,
        primary_id: str,
        secondary_id: str,
        acting_user: Optional[str] = None,
    ) -> Account:
        """
        Merge ``secondary_id`` into ``primary_id`` and delete the secondary.

        Raises:
            ValidationFailedError: both ids are the same
            AccountNotFoundError: either account missing in the tenant
            CircularHierarchyError: the primary sits inside the secondary's subtree
            ConcurrentModificationError: still conflicting after retries
        """
        validate_tenant_id(tenant_id)
        if primary_id == secondary_id:
            raise ValidationFailedError(
                ["Cannot merge an account with itself"],
                context={"account_id": primary_id}
            )
        return await run_with_conflict_retry(
            self._merge_once, self.conflict_retry_attempts,
            tenant_id, primary_id, secondary_id, acting_user
        )

    async def _merge_once(
        self, tenant_id: str, primary_id: str, secondary_id: str, acting_user: Optional[str]
    ) -> Account:
        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                index = self.hierarchy.load_index(tenant_id)
                primary = index.get(primary_id)
                if primary is None:
                    raise AccountNotFoundError(
                        primary_id, tenant_id, message=f"Primary account {primary_id} not found"
                    )
                secondary = index.get(secondary_id)
                if secondary is None:
                    raise AccountNotFoundError(
                        secondary_id, tenant_id, message=f"Secondary account {secondary_id} not found"
                    )
                return self.merge(index, primary, secondary, acting_user)

    def merge(
        self,
        index: HierarchyIndex,
        primary: Account,
        secondary: Account,
        acting_user: Optional[str] = None,
    ) -> Account:
        """Reconcile already-loaded accounts. Caller holds the tenant lock and an open transaction."""
        if primary.tenant_id != secondary.tenant_id:
            raise CrossTenantError(
                "Cannot merge accounts from different tenants",
                context={"primary_account_id": primary.id, "secondary_account_id": secondary.id}
            )
        tenant_id = primary.tenant_id

        if primary.parent_account_id == secondary.id or is_ancestor(
            secondary.hierarchy_path or "", primary.hierarchy_path or ""
        ):
            raise CircularHierarchyError(primary.id, secondary.id)

        filled = fill_forward(primary, secondary)
        primary.tags = merge_tags(primary.tags, secondary.tags)
        if not primary.custom_fields and secondary.custom_fields:
            primary.custom_fields = dict(secondary.custom_fields)

        moved_children = 0
        for child in index.children_of(secondary.id):
            changed = self.hierarchy.attach(index, child, primary.id, tenant_id)
            self.hierarchy.persist(changed, acting_user)
            moved_children += 1

        repointed = 0
        for rel in self.store.relationships.find_by_from(tenant_id, secondary.id):
            rel.from_account_id = primary.id
            rel.updated_by = acting_user or rel.updated_by
            self.store.relationships.save(rel)
            repointed += 1
        # Loaded after the first pass so self-edges on the secondary keep their new from id
        for rel in self.store.relationships.find_by_to(tenant_id, secondary.id):
            rel.to_account_id = primary.id
            rel.updated_by = acting_user or rel.updated_by
            self.store.relationships.save(rel)
            repointed += 1

        if acting_user:
            primary.updated_by = acting_user
        self.store.accounts.save(primary)
        self.store.accounts.delete(secondary)
        index.discard(secondary.id)

        logger.info(
            f"Merged account {secondary.id} into {primary.id}",
            extra={
                "tenant_id": tenant_id,
                "primary_account_id": primary.id,
                "secondary_account_id": secondary.id,
                "fields_filled": filled,
                "children_moved": moved_children,
                "relationships_repointed": repointed,
            }
        )
        return primary
