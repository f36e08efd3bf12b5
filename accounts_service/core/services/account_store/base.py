"""
Storage collaborator interfaces for accounts and relationships.

Every method is tenant-scoped. Implementations return detached copies:
mutating a returned record has no effect until it is passed to ``save``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import List, Optional

from accounts_service.app.models import Account, AccountRelationship, RelationshipType


class AccountRepository(ABC):
    """Account lookups and writes."""

    @abstractmethod
    def find_by_id(self, tenant_id: str, account_id: str) -> Optional[Account]:
        ...

    @abstractmethod
    def find_by_tenant(self, tenant_id: str) -> List[Account]:
        ...

    @abstractmethod
    def find_by_parent(self, tenant_id: str, parent_id: Optional[str]) -> List[Account]:
        """Children of ``parent_id``; roots when ``parent_id`` is None."""

    def find_roots(self, tenant_id: str) -> List[Account]:
        return self.find_by_parent(tenant_id, None)

    @abstractmethod
    def find_exact_matches(
        self,
        tenant_id: str,
        name: Optional[str],
        website: Optional[str],
        phone: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> List[Account]:
        """Accounts equal on name OR website OR phone. Empty arguments match nothing."""

    @abstractmethod
    def find_by_name_containing(self, tenant_id: str, name_part: str) -> List[Account]:
        """Case-insensitive substring match on name."""

    @abstractmethod
    def exists_by_account_number(
        self, tenant_id: str, account_number: str, exclude_id: Optional[str] = None
    ) -> bool:
        ...

    @abstractmethod
    def save(self, account: Account) -> Account:
        """
        Insert or update an account.

        Raises:
            ConcurrentModificationError: stored version differs from ``account.version``
        """

    @abstractmethod
    def delete(self, account: Account) -> None:
        ...


class RelationshipRepository(ABC):
    """Relationship lookups and writes."""

    @abstractmethod
    def find_by_from(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        ...

    @abstractmethod
    def find_by_to(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        ...

    @abstractmethod
    def find_by_tenant(self, tenant_id: str) -> List[AccountRelationship]:
        ...

    @abstractmethod
    def find_existing(
        self,
        tenant_id: str,
        from_id: str,
        to_id: str,
        relationship_type: RelationshipType,
    ) -> Optional[AccountRelationship]:
        """Active relationship with the same endpoints and type, if any."""

    def find_active_for_account(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        """Active relationships in either direction, without repeats."""
        seen = set()
        result = []
        for rel in self.find_by_from(tenant_id, account_id) + self.find_by_to(tenant_id, account_id):
            if rel.is_active and rel.id not in seen:
                seen.add(rel.id)
                result.append(rel)
        return result

    @abstractmethod
    def save(self, relationship: AccountRelationship) -> AccountRelationship:
        ...

    @abstractmethod
    def delete_all_for_account(self, tenant_id: str, account_id: str) -> int:
        """Delete relationships touching the account in either direction. Returns the count."""


class AccountStore(ABC):
    """
    Both repositories plus an all-or-nothing transaction boundary.

    ``transaction()`` commits every write made inside the block or none of
    them. Entering it again while a transaction is open joins the outer one.
    """

    accounts: AccountRepository
    relationships: RelationshipRepository

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        ...
