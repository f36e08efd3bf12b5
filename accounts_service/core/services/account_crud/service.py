"""
Account Service.

Entry point the API layer calls for every account operation. Owns account
CRUD, bulk create and relationships, and delegates to:
- DuplicateFinder on create/update and explicit duplicate lookups
- AccountMergeService on merge commands
- AccountHierarchyService on parent changes and tree queries
- HierarchyIntegrityValidator on audits

Every write runs under the tenant write lock inside one store transaction.
"""

import asyncio
import logging
import uuid
from typing import Any, List, Optional, Sequence

from accounts_service.app.config import get_settings
from accounts_service.app.models import (
    Account,
    AccountFields,
    AccountRelationship,
    AccountResponse,
    BulkCreateFailure,
    BulkCreateResult,
    CreateAccountRequest,
    CreateRelationshipRequest,
    HierarchyTreeNode,
    IntegrityReportResponse,
    UpdateAccountRequest,
)
from accounts_service.core.exceptions import (
    AccountHasChildrenError,
    AccountNotFoundError,
    AccountServiceError,
    ErrorCode,
    RelationshipExistsError,
    ValidationFailedError,
)
from accounts_service.core.services._shared import (
    TenantLockRegistry,
    run_with_conflict_retry,
    validate_tenant_id,
)
from accounts_service.core.services.account_crud.validation import AccountValidator
from accounts_service.core.services.account_dedup import DuplicateFinder
from accounts_service.core.services.account_hierarchy import (
    AccountHierarchyService,
    HierarchyIntegrityValidator,
)
from accounts_service.core.services.account_merge import AccountMergeService
from accounts_service.core.services.account_store import AccountStore, get_account_store

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = tuple(AccountFields.model_fields)


class AccountService:

    def __init__(
        self,
        store: AccountStore,
        hierarchy: Optional[AccountHierarchyService] = None,
        finder: Optional[DuplicateFinder] = None,
        merger: Optional[AccountMergeService] = None,
        integrity: Optional[HierarchyIntegrityValidator] = None,
        locks: Optional[TenantLockRegistry] = None,
        bulk_create_max_records: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store
        self.hierarchy = hierarchy or AccountHierarchyService(store, locks=locks)
        self.locks = locks or self.hierarchy.locks
        self.finder = finder or DuplicateFinder(store)
        self.merger = merger or AccountMergeService(store, hierarchy=self.hierarchy, locks=self.locks)
        self.integrity = integrity or HierarchyIntegrityValidator(store, max_depth=self.hierarchy.max_depth)
        self.validator = AccountValidator(store.accounts)
        self.bulk_create_max_records = bulk_create_max_records or settings.bulk_create_max_records
        self.conflict_retry_attempts = settings.conflict_retry_attempts

    # ==========================================================================
    # CRUD
    # ==========================================================================

    async def get_account(self, tenant_id: str, account_id: str) -> Account:
        validate_tenant_id(tenant_id)
        account = self.store.accounts.find_by_id(tenant_id, account_id)
        if account is None:
            raise AccountNotFoundError(account_id, tenant_id)
        return account

    async def create_account(
        self,
        tenant_id: str,
        request: CreateAccountRequest,
        acting_user: Optional[str] = None,
    ) -> Account:
        """
        Validate and store a new account, optionally attached under a parent.

        Probable duplicates are logged, never rejected.
        """
        validate_tenant_id(tenant_id)
        self.validator.validate(tenant_id, request)
        await self._warn_on_duplicates(tenant_id, request)

        return await run_with_conflict_retry(
            self._create_once, self.conflict_retry_attempts,
            tenant_id, request, acting_user
        )

    async def _create_once(
        self, tenant_id: str, request: CreateAccountRequest, acting_user: Optional[str]
    ) -> Account:
        account_id = str(uuid.uuid4())
        account = Account(
            id=account_id,
            tenant_id=tenant_id,
            hierarchy_path=account_id,
            created_by=acting_user,
            updated_by=acting_user,
            **request.model_dump(include=set(EDITABLE_FIELDS)),
        )

        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                if request.parent_account_id:
                    index = self.hierarchy.load_index(tenant_id)
                    index.add(account)
                    self.hierarchy.attach(index, account, request.parent_account_id, tenant_id)
                self.store.accounts.save(account)

        logger.info(
            f"Created account {account.id}",
            extra={"tenant_id": tenant_id, "account_id": account.id,
                   "parent_account_id": account.parent_account_id}
        )
        return account

    async def update_account(
        self,
        tenant_id: str,
        account_id: str,
        request: UpdateAccountRequest,
        acting_user: Optional[str] = None,
    ) -> Account:
        """Replace all editable fields; a changed parent reparents, a null parent detaches."""
        validate_tenant_id(tenant_id)
        self.validator.validate(tenant_id, request, account_id=account_id)
        await self._warn_on_duplicates(tenant_id, request, exclude_id=account_id)

        return await run_with_conflict_retry(
            self._update_once, self.conflict_retry_attempts,
            tenant_id, account_id, request, acting_user
        )

    async def _update_once(
        self,
        tenant_id: str,
        account_id: str,
        request: UpdateAccountRequest,
        acting_user: Optional[str],
    ) -> Account:
        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                index = self.hierarchy.load_index(tenant_id)
                account = self.hierarchy.require(index, tenant_id, account_id)

                for field in EDITABLE_FIELDS:
                    setattr(account, field, getattr(request, field))
                account.updated_by = acting_user

                if request.parent_account_id == account.parent_account_id:
                    self.store.accounts.save(account)
                elif request.parent_account_id is None:
                    self.hierarchy.persist(self.hierarchy.detach(index, account), acting_user)
                else:
                    changed = self.hierarchy.attach(index, account, request.parent_account_id, tenant_id)
                    self.hierarchy.persist(changed, acting_user)

        logger.info(
            f"Updated account {account_id}",
            extra={"tenant_id": tenant_id, "account_id": account_id}
        )
        return account

    async def delete_account(self, tenant_id: str, account_id: str) -> None:
        """
        Delete an account and every relationship touching it.

        Raises:
            AccountHasChildrenError: the account still has child accounts
        """
        validate_tenant_id(tenant_id)
        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                account = self.store.accounts.find_by_id(tenant_id, account_id)
                if account is None:
                    raise AccountNotFoundError(account_id, tenant_id)

                children = self.store.accounts.find_by_parent(tenant_id, account_id)
                if children:
                    raise AccountHasChildrenError(account_id, len(children))

                removed = self.store.relationships.delete_all_for_account(tenant_id, account_id)
                self.store.accounts.delete(account)

        logger.info(
            f"Deleted account {account_id}",
            extra={"tenant_id": tenant_id, "account_id": account_id, "relationships_removed": removed}
        )

    async def create_accounts_bulk(
        self,
        tenant_id: str,
        requests: Sequence[CreateAccountRequest],
        acting_user: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> BulkCreateResult:
        """
        Create each account independently.

        A rejected entry is recorded and the batch continues. When
        ``timeout_seconds`` elapses the remaining entries are skipped;
        accounts already created stay created.
        """
        validate_tenant_id(tenant_id)
        if not requests:
            raise ValidationFailedError(
                ["Bulk request must contain at least one account"],
                error_code=ErrorCode.EMPTY_BULK_REQUEST
            )
        if len(requests) > self.bulk_create_max_records:
            raise ValidationFailedError(
                [f"Bulk request cannot exceed {self.bulk_create_max_records} accounts"],
                error_code=ErrorCode.BULK_LIMIT_EXCEEDED
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds if timeout_seconds else None
        result = BulkCreateResult()

        for position, request in enumerate(requests):
            if deadline is not None and loop.time() >= deadline:
                result.stopped_early = True
                logger.warning(
                    f"Bulk create timed out after {position} of {len(requests)} accounts",
                    extra={"tenant_id": tenant_id}
                )
                break
            try:
                account = await self.create_account(tenant_id, request, acting_user)
            except AccountServiceError as e:
                result.failed.append(BulkCreateFailure(
                    index=position,
                    name=request.name,
                    error_code=e.error_code.value,
                    message=e.message,
                ))
                continue
            result.created.append(AccountResponse.model_validate(account, from_attributes=True))

        logger.info(
            f"Bulk create finished: {len(result.created)} created, {len(result.failed)} failed",
            extra={"tenant_id": tenant_id, "stopped_early": result.stopped_early}
        )
        return result

    async def get_root_accounts(self, tenant_id: str) -> List[Account]:
        return await self.hierarchy.get_root_accounts(tenant_id)

    # ==========================================================================
    # Duplicates and merge
    # ==========================================================================

    async def _warn_on_duplicates(self, tenant_id: str, fields: Any, exclude_id: Optional[str] = None) -> None:
        duplicates = await self.finder.find_potential_duplicates(fields, tenant_id, exclude_id)
        if duplicates:
            logger.warning(
                f"Found {len(duplicates)} potential duplicate(s) for account '{fields.name}'",
                extra={"tenant_id": tenant_id, "account_id": exclude_id,
                       "duplicate_ids": [d.id for d in duplicates]}
            )

    async def find_potential_duplicates(
        self, tenant_id: str, fields: Any, exclude_id: Optional[str] = None
    ) -> List[Account]:
        return await self.finder.find_potential_duplicates(fields, tenant_id, exclude_id)

    async def find_duplicates_for_account(self, tenant_id: str, account_id: str) -> List[Account]:
        return await self.finder.find_duplicates_for_account(tenant_id, account_id)

    async def find_all_potential_duplicates_in_tenant(self, tenant_id: str) -> List[Account]:
        return await self.finder.find_all_potential_duplicates_in_tenant(tenant_id)

    async def merge_accounts(
        self,
        tenant_id: str,
        primary_id: str,
        secondary_id: str,
        acting_user: Optional[str] = None,
    ) -> Account:
        return await self.merger.merge_accounts(tenant_id, primary_id, secondary_id, acting_user)

    # ==========================================================================
    # Relationships
    # ==========================================================================

    async def create_relationship(
        self,
        tenant_id: str,
        request: CreateRelationshipRequest,
        acting_user: Optional[str] = None,
    ) -> AccountRelationship:
        """
        Link two accounts of the tenant.

        Accounts of other tenants are invisible here and surface as not found.
        """
        validate_tenant_id(tenant_id)
        self.validator.validate_relationship(request)

        async with self.locks.hold(tenant_id):
            with self.store.transaction():
                for end in (request.from_account_id, request.to_account_id):
                    if self.store.accounts.find_by_id(tenant_id, end) is None:
                        raise AccountNotFoundError(
                            end, tenant_id,
                            error_code=ErrorCode.RELATIONSHIP_TARGET_NOT_FOUND,
                            message=f"Relationship account {end} not found in tenant {tenant_id}"
                        )

                existing = self.store.relationships.find_existing(
                    tenant_id, request.from_account_id, request.to_account_id, request.relationship_type
                )
                if existing is not None:
                    raise RelationshipExistsError(
                        request.from_account_id, request.to_account_id, request.relationship_type.value
                    )

                relationship = AccountRelationship(
                    id=str(uuid.uuid4()),
                    tenant_id=tenant_id,
                    created_by=acting_user,
                    updated_by=acting_user,
                    **request.model_dump(),
                )
                self.store.relationships.save(relationship)

        logger.info(
            f"Created {request.relationship_type.value} relationship {relationship.id}",
            extra={"tenant_id": tenant_id, "from_account_id": request.from_account_id,
                   "to_account_id": request.to_account_id}
        )
        return relationship

    async def get_account_relationships(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        """Active relationships in either direction."""
        await self.get_account(tenant_id, account_id)
        return self.store.relationships.find_active_for_account(tenant_id, account_id)

    # ==========================================================================
    # Hierarchy
    # ==========================================================================

    async def set_parent(self, tenant_id: str, account_id: str, parent_id: str,
                         acting_user: Optional[str] = None) -> Account:
        return await self.hierarchy.set_parent(tenant_id, account_id, parent_id, acting_user)

    async def change_parent(self, tenant_id: str, account_id: str, parent_id: str,
                            acting_user: Optional[str] = None) -> Account:
        return await self.hierarchy.change_parent(tenant_id, account_id, parent_id, acting_user)

    async def remove_from_hierarchy(self, tenant_id: str, account_id: str,
                                    acting_user: Optional[str] = None) -> Account:
        return await self.hierarchy.remove_from_hierarchy(tenant_id, account_id, acting_user)

    async def move_account(self, tenant_id: str, account_id: str, new_parent_id: Optional[str],
                           acting_user: Optional[str] = None) -> Account:
        return await self.hierarchy.move_account(tenant_id, account_id, new_parent_id, acting_user)

    async def get_hierarchy_tree(self, tenant_id: str, account_id: str) -> HierarchyTreeNode:
        return await self.hierarchy.get_hierarchy_tree(tenant_id, account_id)

    async def get_ancestors(self, tenant_id: str, account_id: str) -> List[Account]:
        return await self.hierarchy.get_ancestors(tenant_id, account_id)

    async def get_descendants(self, tenant_id: str, account_id: str) -> List[Account]:
        return await self.hierarchy.get_descendants(tenant_id, account_id)

    async def get_siblings(self, tenant_id: str, account_id: str) -> List[Account]:
        return await self.hierarchy.get_siblings(tenant_id, account_id)

    async def get_hierarchy_depth(self, tenant_id: str, account_id: str) -> int:
        return await self.hierarchy.get_hierarchy_depth(tenant_id, account_id)

    async def get_account_count(self, tenant_id: str, account_id: str) -> int:
        return await self.hierarchy.get_account_count(tenant_id, account_id)

    async def get_accounts_at_level(self, tenant_id: str, level: int) -> List[Account]:
        return await self.hierarchy.get_accounts_at_level(tenant_id, level)

    # ==========================================================================
    # Integrity
    # ==========================================================================

    async def validate_hierarchy_integrity(self, tenant_id: str) -> None:
        await self.integrity.validate_hierarchy_integrity(tenant_id)

    async def get_integrity_report(self, tenant_id: str) -> IntegrityReportResponse:
        return await self.integrity.get_integrity_report(tenant_id)


# ==============================================================================
# Singleton
# ==============================================================================

_account_service: Optional[AccountService] = None


def get_account_service() -> AccountService:
    """Get the account service singleton."""
    global _account_service
    if _account_service is None:
        _account_service = AccountService(get_account_store())
    return _account_service
