"""
Account Hierarchy Manager.

Maintains parent links, hierarchy level and materialized path for every
account in a tenant and keeps them consistent under reparenting.

Features:
- Bounded cycle/depth pre-check before any attach
- Level and path cascade to every descendant on attach or detach
- Ancestor, descendant, sibling, depth, count and tree queries
- Each mutation runs under the tenant write lock inside one store transaction

The ``attach`` / ``detach`` methods work on an already-loaded
HierarchyIndex and never lock or open transactions themselves, so callers
that already hold both (merge, create) can reuse them.
"""

import logging
from typing import Dict, List, Optional

from accounts_service.app.config import get_settings
from accounts_service.app.models import Account, HierarchyTreeNode
from accounts_service.core.exceptions import (
    AccountNotFoundError,
    CircularHierarchyError,
    ErrorCode,
    HierarchyTooDeepError,
)
from accounts_service.core.services._shared import (
    TenantLockRegistry,
    get_tenant_locks,
    run_with_conflict_retry,
    validate_tenant_id,
)
from accounts_service.core.services.account_hierarchy.path_utils import build_path
from accounts_service.core.services.account_hierarchy.tree_index import (
    ANCESTRY_CYCLE,
    ANCESTRY_TOO_DEEP,
    HierarchyIndex,
)
from accounts_service.core.services.account_store import AccountStore

logger = logging.getLogger(__name__)


class AccountHierarchyService:
    """Tenant-scoped account tree maintenance and queries."""

    def __init__(
        self,
        store: AccountStore,
        max_depth: Optional[int] = None,
        locks: Optional[TenantLockRegistry] = None,
        conflict_retry_attempts: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store
        self.max_depth = settings.max_hierarchy_depth if max_depth is None else max_depth
        self.locks = locks or get_tenant_locks()
        self.conflict_retry_attempts = (
            settings.conflict_retry_attempts if conflict_retry_attempts is None else conflict_retry_attempts
        )

    # ==========================================================================
    # Index-level operations (caller holds lock and transaction)
    # ==========================================================================

    def load_index(self, tenant_id: str) -> HierarchyIndex:
        return HierarchyIndex.load(self.store.accounts, tenant_id)

    def require(self, index: HierarchyIndex, tenant_id: str, account_id: str) -> Account:
        account = index.get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id, tenant_id)
        return account

    def validate_hierarchy(self, index: HierarchyIndex, account_id: str, proposed_parent_id: str) -> None:
        """
        Reject an attach that would form a cycle or an over-deep chain.

        Raises:
            CircularHierarchyError: self-parenting, or account_id found above the proposed parent
            HierarchyTooDeepError: no root reached within max_depth hops above the proposed parent
        """
        if account_id == proposed_parent_id:
            raise CircularHierarchyError(account_id, proposed_parent_id)

        outcome = index.check_ancestry(account_id, proposed_parent_id, self.max_depth)
        if outcome == ANCESTRY_CYCLE:
            raise CircularHierarchyError(account_id, proposed_parent_id)
        if outcome == ANCESTRY_TOO_DEEP:
            raise HierarchyTooDeepError(account_id, self.max_depth)

    def attach(self, index: HierarchyIndex, account: Account, parent_id: str, tenant_id: str) -> List[Account]:
        """
        Put ``account`` under ``parent_id`` and recompute its subtree.

        Returns:
            Every account whose hierarchy fields changed, the account first
        """
        self.validate_hierarchy(index, account.id, parent_id)

        parent = index.get(parent_id)
        if parent is None:
            raise AccountNotFoundError(
                parent_id,
                tenant_id,
                error_code=ErrorCode.PARENT_ACCOUNT_NOT_FOUND,
                message=f"Parent account {parent_id} not found in tenant {tenant_id}"
            )

        new_level = parent.hierarchy_level + 1
        if new_level > self.max_depth:
            raise HierarchyTooDeepError(account.id, self.max_depth, level=new_level)

        old_parent_id = account.parent_account_id
        account.parent_account_id = parent.id
        account.hierarchy_level = new_level
        account.hierarchy_path = build_path(account.id, parent.hierarchy_path)
        index.relink(account.id, old_parent_id, parent.id)

        return [account] + self._cascade(index, account)

    def detach(self, index: HierarchyIndex, account: Account) -> List[Account]:
        """Make ``account`` a root and recompute its subtree."""
        old_parent_id = account.parent_account_id
        account.parent_account_id = None
        account.hierarchy_level = 0
        account.hierarchy_path = build_path(account.id)
        index.relink(account.id, old_parent_id, None)

        return [account] + self._cascade(index, account)

    def _cascade(self, index: HierarchyIndex, root: Account) -> List[Account]:
        # Pre-order guarantees each parent is recomputed before its children.
        # Descendants may end up deeper than max_depth; only the attach point is checked.
        changed = []
        for node, _ in index.walk_descendants(root.id):
            parent = index.get(node.parent_account_id)
            level = parent.hierarchy_level + 1
            path = build_path(node.id, parent.hierarchy_path)
            if node.hierarchy_level != level or node.hierarchy_path != path:
                node.hierarchy_level = level
                node.hierarchy_path = path
                changed.append(node)
        return changed

    def persist(self, accounts: List[Account], acting_user: Optional[str] = None) -> None:
        for account in accounts:
            if acting_user:
                account.updated_by = acting_user
            self.store.accounts.save(account)

    # ==========================================================================
    # Mutations
    # ==========================================================================

    async def set_parent(
        self,
        tenant_id: str,
        account_id: str,
        parent_id: str,
        acting_user: Optional[str] = None,
    ) -> Account:
        """
        Attach an account under a parent, cascading level and path to its subtree.

        Raises:
            AccountNotFoundError: account or parent missing in the tenant
            CircularHierarchyError: the parent lies inside the account's subtree
            HierarchyTooDeepError: resulting level exceeds max_depth
            ConcurrentModificationError: still conflicting after retries
        """
        validate_tenant_id(tenant_id)
        return await run_with_conflict_retry(
            self._set_parent_once, self.conflict_retry_attempts,
            tenant_id, account_id, parent_id, acting_user
        )

    async def _set_parent_once(
        self, tenant_id: str, account_id: str, parent_id: str, acting_user: Optional[str]
    ) -> Account:
        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                index = self.load_index(tenant_id)
                account = self.require(index, tenant_id, account_id)
                changed = self.attach(index, account, parent_id, tenant_id)
                self.persist(changed, acting_user)

        logger.info(
            f"Set parent of account {account_id} to {parent_id}",
            extra={"tenant_id": tenant_id, "account_id": account_id, "parent_id": parent_id,
                   "accounts_updated": len(changed)}
        )
        return account

    async def change_parent(
        self,
        tenant_id: str,
        account_id: str,
        parent_id: str,
        acting_user: Optional[str] = None,
    ) -> Account:
        """Same as set_parent; an existing parent is detached first."""
        return await self.set_parent(tenant_id, account_id, parent_id, acting_user)

    async def remove_from_hierarchy(
        self,
        tenant_id: str,
        account_id: str,
        acting_user: Optional[str] = None,
    ) -> Account:
        """Detach an account from its parent, making it a root of its own subtree."""
        validate_tenant_id(tenant_id)
        return await run_with_conflict_retry(
            self._remove_once, self.conflict_retry_attempts,
            tenant_id, account_id, acting_user
        )

    async def _remove_once(self, tenant_id: str, account_id: str, acting_user: Optional[str]) -> Account:
        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                index = self.load_index(tenant_id)
                account = self.require(index, tenant_id, account_id)
                changed = self.detach(index, account)
                self.persist(changed, acting_user)

        logger.info(
            f"Removed account {account_id} from hierarchy",
            extra={"tenant_id": tenant_id, "account_id": account_id, "accounts_updated": len(changed)}
        )
        return account

    async def move_account(
        self,
        tenant_id: str,
        account_id: str,
        new_parent_id: Optional[str],
        acting_user: Optional[str] = None,
    ) -> Account:
        """Move under ``new_parent_id``, or to the root level when it is None."""
        if new_parent_id is None:
            return await self.remove_from_hierarchy(tenant_id, account_id, acting_user)
        return await self.set_parent(tenant_id, account_id, new_parent_id, acting_user)

    # ==========================================================================
    # Queries (no lock)
    # ==========================================================================

    async def get_ancestors(self, tenant_id: str, account_id: str) -> List[Account]:
        """Ancestors ordered root first, excluding the account itself."""
        validate_tenant_id(tenant_id)
        index = self.load_index(tenant_id)
        account = self.require(index, tenant_id, account_id)

        ancestors = []
        seen = {account.id}
        current = index.get(account.parent_account_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            ancestors.append(current)
            current = index.get(current.parent_account_id)

        ancestors.reverse()
        return ancestors

    async def get_descendants(self, tenant_id: str, account_id: str) -> List[Account]:
        """All accounts below the account, in pre-order."""
        validate_tenant_id(tenant_id)
        index = self.load_index(tenant_id)
        self.require(index, tenant_id, account_id)
        return [node for node, _ in index.walk_descendants(account_id)]

    async def get_siblings(self, tenant_id: str, account_id: str) -> List[Account]:
        """Accounts sharing the account's parent; other roots when it is a root."""
        validate_tenant_id(tenant_id)
        index = self.load_index(tenant_id)
        account = self.require(index, tenant_id, account_id)
        return [a for a in index.children_of(account.parent_account_id) if a.id != account.id]

    async def get_hierarchy_depth(self, tenant_id: str, account_id: str) -> int:
        """Deepest distance below the account (0 for a leaf)."""
        validate_tenant_id(tenant_id)
        index = self.load_index(tenant_id)
        self.require(index, tenant_id, account_id)
        return max((distance for _, distance in index.walk_descendants(account_id)), default=0)

    async def get_account_count(self, tenant_id: str, account_id: str) -> int:
        """Size of the subtree rooted at the account, including the account."""
        validate_tenant_id(tenant_id)
        index = self.load_index(tenant_id)
        self.require(index, tenant_id, account_id)
        return 1 + sum(1 for _ in index.walk_descendants(account_id))

    async def get_accounts_at_level(self, tenant_id: str, level: int) -> List[Account]:
        """Accounts with hierarchy_level <= level."""
        validate_tenant_id(tenant_id)
        return [a for a in self.store.accounts.find_by_tenant(tenant_id) if a.hierarchy_level <= level]

    async def get_root_accounts(self, tenant_id: str) -> List[Account]:
        validate_tenant_id(tenant_id)
        return self.store.accounts.find_roots(tenant_id)

    async def get_hierarchy_tree(self, tenant_id: str, account_id: str) -> HierarchyTreeNode:
        """Nested tree below (and including) the account."""
        validate_tenant_id(tenant_id)
        index = self.load_index(tenant_id)
        account = self.require(index, tenant_id, account_id)

        root = _tree_node(account)
        nodes: Dict[str, HierarchyTreeNode] = {account.id: root}
        for node, _ in index.walk_descendants(account.id):
            tree_node = _tree_node(node)
            nodes[node.id] = tree_node
            nodes[node.parent_account_id].children.append(tree_node)
        return root


def _tree_node(account: Account) -> HierarchyTreeNode:
    return HierarchyTreeNode(
        id=account.id,
        name=account.name,
        account_type=account.account_type,
        level=account.hierarchy_level,
    )
