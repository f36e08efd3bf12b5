"""
In-memory account store.

Used for local development and tests. Records are deep-copied on the way
in and out, so callers never share state with the store. A transaction
snapshots both tables and restores them if the block raises.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from accounts_service.app.models import Account, AccountRelationship, RelationshipType
from accounts_service.core.exceptions import ConcurrentModificationError
from accounts_service.core.services.account_store.base import (
    AccountRepository,
    AccountStore,
    RelationshipRepository,
)

logger = logging.getLogger(__name__)


class _MemoryAccountRepository(AccountRepository):

    def __init__(self, store: "InMemoryAccountStore"):
        self._store = store

    def _tenant_rows(self, tenant_id: str) -> List[Account]:
        return [
            acc.model_copy(deep=True)
            for (tid, _), acc in self._store._accounts.items()
            if tid == tenant_id
        ]

    def find_by_id(self, tenant_id: str, account_id: str) -> Optional[Account]:
        acc = self._store._accounts.get((tenant_id, account_id))
        return acc.model_copy(deep=True) if acc else None

    def find_by_tenant(self, tenant_id: str) -> List[Account]:
        return self._tenant_rows(tenant_id)

    def find_by_parent(self, tenant_id: str, parent_id: Optional[str]) -> List[Account]:
        return [a for a in self._tenant_rows(tenant_id) if a.parent_account_id == parent_id]

    def find_exact_matches(
        self,
        tenant_id: str,
        name: Optional[str],
        website: Optional[str],
        phone: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> List[Account]:
        matches = []
        for acc in self._tenant_rows(tenant_id):
            if exclude_id is not None and acc.id == exclude_id:
                continue
            if (name and acc.name == name) or (website and acc.website == website) or (phone and acc.phone == phone):
                matches.append(acc)
        return matches

    def find_by_name_containing(self, tenant_id: str, name_part: str) -> List[Account]:
        needle = name_part.lower()
        return [a for a in self._tenant_rows(tenant_id) if needle in (a.name or "").lower()]

    def exists_by_account_number(
        self, tenant_id: str, account_number: str, exclude_id: Optional[str] = None
    ) -> bool:
        for (tid, aid), acc in self._store._accounts.items():
            if tid == tenant_id and aid != exclude_id and acc.account_number == account_number:
                return True
        return False

    def save(self, account: Account) -> Account:
        key = (account.tenant_id, account.id)
        with self._store._lock:
            current = self._store._accounts.get(key)
            stored_version = current.version if current else 0
            if account.version != stored_version:
                raise ConcurrentModificationError(
                    message=f"Account {account.id} was modified concurrently "
                            f"(expected version {account.version}, found {stored_version})",
                    context={"tenant_id": account.tenant_id, "account_id": account.id}
                )
            now = datetime.now(timezone.utc)
            if account.created_at is None:
                account.created_at = now
            account.updated_at = now
            account.version = stored_version + 1
            self._store._accounts[key] = account.model_copy(deep=True)
        return account

    def delete(self, account: Account) -> None:
        with self._store._lock:
            self._store._accounts.pop((account.tenant_id, account.id), None)


class _MemoryRelationshipRepository(RelationshipRepository):

    def __init__(self, store: "InMemoryAccountStore"):
        self._store = store

    def _tenant_rows(self, tenant_id: str) -> List[AccountRelationship]:
        return [
            rel.model_copy(deep=True)
            for (tid, _), rel in self._store._relationships.items()
            if tid == tenant_id
        ]

    def find_by_from(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        return [r for r in self._tenant_rows(tenant_id) if r.from_account_id == account_id]

    def find_by_to(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        return [r for r in self._tenant_rows(tenant_id) if r.to_account_id == account_id]

    def find_by_tenant(self, tenant_id: str) -> List[AccountRelationship]:
        return self._tenant_rows(tenant_id)

    def find_existing(
        self,
        tenant_id: str,
        from_id: str,
        to_id: str,
        relationship_type: RelationshipType,
    ) -> Optional[AccountRelationship]:
        for rel in self._tenant_rows(tenant_id):
            if (rel.is_active and rel.from_account_id == from_id and rel.to_account_id == to_id
                    and rel.relationship_type == relationship_type):
                return rel
        return None

    def save(self, relationship: AccountRelationship) -> AccountRelationship:
        now = datetime.now(timezone.utc)
        if relationship.created_at is None:
            relationship.created_at = now
        relationship.updated_at = now
        with self._store._lock:
            self._store._relationships[(relationship.tenant_id, relationship.id)] = (
                relationship.model_copy(deep=True)
            )
        return relationship

    def delete_all_for_account(self, tenant_id: str, account_id: str) -> int:
        with self._store._lock:
            doomed = [
                key for key, rel in self._store._relationships.items()
                if key[0] == tenant_id and account_id in (rel.from_account_id, rel.to_account_id)
            ]
            for key in doomed:
                del self._store._relationships[key]
        return len(doomed)


class InMemoryAccountStore(AccountStore):
    """Dict-backed store with snapshot/restore transactions and optimistic versions."""

    def __init__(self):
        self._accounts: Dict[Tuple[str, str], Account] = {}
        self._relationships: Dict[Tuple[str, str], AccountRelationship] = {}
        self._lock = threading.RLock()
        self._depth = 0
        self.accounts = _MemoryAccountRepository(self)
        self.relationships = _MemoryRelationshipRepository(self)

    @contextmanager
    def transaction(self):
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            # Stored records are replaced on save, never mutated, so a shallow copy is a full snapshot
            snapshot = (dict(self._accounts), dict(self._relationships))
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._accounts, self._relationships = snapshot
                logger.debug("In-memory transaction rolled back")
                raise
            finally:
                self._depth = 0
