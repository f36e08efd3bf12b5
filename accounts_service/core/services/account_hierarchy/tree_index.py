"""
In-memory adjacency index over one tenant's accounts.

Built from a single ``find_by_tenant`` load. Accounts live in a flat
``by_id`` map; the tree is expressed only through ``parent_account_id`` and
a parent -> child ids index, so traversals never chase object references.
"""

from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple

from accounts_service.app.models import Account
from accounts_service.core.services.account_store.base import AccountRepository

ANCESTRY_OK = "ok"
ANCESTRY_CYCLE = "cycle"
ANCESTRY_TOO_DEEP = "too_deep"


class HierarchyIndex:

    def __init__(self, accounts: Iterable[Account]):
        self.by_id: Dict[str, Account] = {}
        self._children: Dict[Optional[str], List[str]] = defaultdict(list)
        for account in accounts:
            self.by_id[account.id] = account
            self._children[account.parent_account_id].append(account.id)

    @classmethod
    def load(cls, repo: AccountRepository, tenant_id: str) -> "HierarchyIndex":
        return cls(repo.find_by_tenant(tenant_id))

    def __len__(self) -> int:
        return len(self.by_id)

    def __contains__(self, account_id: str) -> bool:
        return account_id in self.by_id

    def get(self, account_id: Optional[str]) -> Optional[Account]:
        if account_id is None:
            return None
        return self.by_id.get(account_id)

    def parent_id_of(self, account_id: str) -> Optional[str]:
        account = self.by_id.get(account_id)
        return account.parent_account_id if account else None

    def child_ids(self, account_id: Optional[str]) -> List[str]:
        return list(self._children.get(account_id, []))

    def children_of(self, account_id: Optional[str]) -> List[Account]:
        return [self.by_id[cid] for cid in self._children.get(account_id, []) if cid in self.by_id]

    def roots(self) -> List[Account]:
        return self.children_of(None)

    def relink(self, account_id: str, old_parent_id: Optional[str], new_parent_id: Optional[str]) -> None:
        """Move ``account_id`` between parent buckets of the children index."""
        if old_parent_id == new_parent_id:
            return
        bucket = self._children.get(old_parent_id)
        if bucket and account_id in bucket:
            bucket.remove(account_id)
        self._children[new_parent_id].append(account_id)

    def add(self, account: Account) -> None:
        self.by_id[account.id] = account
        self._children[account.parent_account_id].append(account.id)

    def discard(self, account_id: str) -> None:
        account = self.by_id.pop(account_id, None)
        if account is None:
            return
        bucket = self._children.get(account.parent_account_id)
        if bucket and account_id in bucket:
            bucket.remove(account_id)

    def walk_descendants(self, account_id: str) -> Iterator[Tuple[Account, int]]:
        """
        Pre-order walk below ``account_id`` yielding (account, distance).

        The account itself is not yielded. A visited set stops the walk from
        looping on corrupted data that already contains a cycle.
        """
        visited: Set[str] = {account_id}
        stack = [(cid, 1) for cid in reversed(self._children.get(account_id, []))]
        while stack:
            current_id, distance = stack.pop()
            if current_id in visited or current_id not in self.by_id:
                continue
            visited.add(current_id)
            yield self.by_id[current_id], distance
            for cid in reversed(self._children.get(current_id, [])):
                stack.append((cid, distance + 1))

    def check_ancestry(self, account_id: str, start_id: Optional[str], max_steps: int) -> str:
        """
        Bounded walk up the parent chain from ``start_id``.

        Returns ANCESTRY_CYCLE if ``account_id`` is met on the way and
        ANCESTRY_TOO_DEEP if no root is reached within ``max_steps`` hops.
        A chain that is merely long is indistinguishable from a cycle here;
        both stop the walk. Missing parents end the walk like a root.
        """
        current = start_id
        for _ in range(max_steps):
            if current is None:
                return ANCESTRY_OK
            if current == account_id:
                return ANCESTRY_CYCLE
            current = self.parent_id_of(current)
        return ANCESTRY_OK if current is None else ANCESTRY_TOO_DEEP
