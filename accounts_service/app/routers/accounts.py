"""
Account Management API Routes

Endpoints for accounts, their hierarchy, duplicate detection, merges,
relationships and integrity audits.

URL Structure: /api/v1/accounts/{tenant_id}/...

Service errors (not found, validation, conflicts) are raised as
AccountServiceError and rendered by the application-level handler.
Static segments (roots, bulk, levels, merge, duplicates, relationships,
integrity) are registered before the ``/{account_id}`` routes.
"""

from fastapi import APIRouter, Depends, Response, status

from accounts_service.app.dependencies.tenant import get_acting_user, get_service
from accounts_service.app.models import (
    AccountListResponse,
    AccountResponse,
    BulkCreateAccountsRequest,
    BulkCreateResult,
    CreateAccountRequest,
    CreateRelationshipRequest,
    DuplicateCheckRequest,
    HierarchyStatsResponse,
    HierarchyTreeNode,
    IntegrityReportResponse,
    MergeAccountsRequest,
    RelationshipListResponse,
    RelationshipResponse,
    SetParentRequest,
    UpdateAccountRequest,
)
from accounts_service.core.services.account_crud import AccountService

router = APIRouter()


def _account_list(accounts) -> AccountListResponse:
    return AccountListResponse(
        accounts=[AccountResponse.model_validate(a, from_attributes=True) for a in accounts],
        total=len(accounts),
    )


# ============================================================================
# Create & List Endpoints
# ============================================================================

@router.post(
    "/{tenant_id}",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create account",
    description="Create an account, optionally attached under a parent"
)
async def create_account(
    tenant_id: str,
    request: CreateAccountRequest,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    """Create a new account."""
    return await service.create_account(tenant_id, request, acting_user)


@router.post(
    "/{tenant_id}/bulk",
    response_model=BulkCreateResult,
    summary="Bulk create accounts",
    description="Create many accounts; each entry succeeds or fails on its own"
)
async def create_accounts_bulk(
    tenant_id: str,
    request: BulkCreateAccountsRequest,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    """Create accounts independently and report per-entry failures."""
    return await service.create_accounts_bulk(
        tenant_id, request.accounts, acting_user, request.timeout_seconds
    )


@router.get(
    "/{tenant_id}/roots",
    response_model=AccountListResponse,
    summary="List root accounts",
    description="Accounts without a parent"
)
async def list_root_accounts(
    tenant_id: str,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.get_root_accounts(tenant_id))


@router.get(
    "/{tenant_id}/levels/{level}",
    response_model=AccountListResponse,
    summary="List accounts up to a level",
    description="Accounts whose hierarchy level is at most the given level"
)
async def list_accounts_at_level(
    tenant_id: str,
    level: int,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.get_accounts_at_level(tenant_id, level))


# ============================================================================
# Merge, Duplicates, Relationships & Integrity
# ============================================================================

@router.post(
    "/{tenant_id}/merge",
    response_model=AccountResponse,
    summary="Merge accounts",
    description="Merge the secondary account into the primary one and delete the secondary"
)
async def merge_accounts(
    tenant_id: str,
    request: MergeAccountsRequest,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    """Merge two accounts."""
    return await service.merge_accounts(
        tenant_id, request.primary_account_id, request.secondary_account_id, acting_user
    )


@router.post(
    "/{tenant_id}/duplicates/check",
    response_model=AccountListResponse,
    summary="Check for duplicates",
    description="Find accounts that probably duplicate the given fields"
)
async def check_duplicates(
    tenant_id: str,
    request: DuplicateCheckRequest,
    service: AccountService = Depends(get_service)
):
    duplicates = await service.find_potential_duplicates(
        tenant_id, request, exclude_id=request.exclude_account_id
    )
    return _account_list(duplicates)


@router.get(
    "/{tenant_id}/duplicates/sweep",
    response_model=AccountListResponse,
    summary="Tenant duplicate sweep",
    description="Every account that probably duplicates at least one other account"
)
async def sweep_duplicates(
    tenant_id: str,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.find_all_potential_duplicates_in_tenant(tenant_id))


@router.post(
    "/{tenant_id}/relationships",
    response_model=RelationshipResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create relationship",
    description="Link two accounts of the tenant"
)
async def create_relationship(
    tenant_id: str,
    request: CreateRelationshipRequest,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    return await service.create_relationship(tenant_id, request, acting_user)


@router.get(
    "/{tenant_id}/integrity",
    response_model=IntegrityReportResponse,
    summary="Hierarchy integrity report",
    description="Audit parent links, levels and paths of every account in the tenant"
)
async def get_integrity_report(
    tenant_id: str,
    service: AccountService = Depends(get_service)
):
    return await service.get_integrity_report(tenant_id)


# ============================================================================
# Single Account Endpoints
# ============================================================================

@router.get(
    "/{tenant_id}/{account_id}",
    response_model=AccountResponse,
    summary="Get account",
    description="Get a specific account by ID"
)
async def get_account(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return await service.get_account(tenant_id, account_id)


@router.put(
    "/{tenant_id}/{account_id}",
    response_model=AccountResponse,
    summary="Update account",
    description="Replace the editable fields of an account"
)
async def update_account(
    tenant_id: str,
    account_id: str,
    request: UpdateAccountRequest,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    """Update an account; a changed parent_account_id moves it."""
    return await service.update_account(tenant_id, account_id, request, acting_user)


@router.delete(
    "/{tenant_id}/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete account",
    description="Delete a childless account and its relationships"
)
async def delete_account(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    await service.delete_account(tenant_id, account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{tenant_id}/{account_id}/parent",
    response_model=AccountResponse,
    summary="Set parent",
    description="Attach the account under a parent, moving its whole subtree"
)
async def set_parent(
    tenant_id: str,
    account_id: str,
    request: SetParentRequest,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    return await service.set_parent(tenant_id, account_id, request.parent_account_id, acting_user)


@router.delete(
    "/{tenant_id}/{account_id}/parent",
    response_model=AccountResponse,
    summary="Remove from hierarchy",
    description="Detach the account from its parent, making it a root"
)
async def remove_from_hierarchy(
    tenant_id: str,
    account_id: str,
    acting_user: str = Depends(get_acting_user),
    service: AccountService = Depends(get_service)
):
    return await service.remove_from_hierarchy(tenant_id, account_id, acting_user)


@router.get(
    "/{tenant_id}/{account_id}/tree",
    response_model=HierarchyTreeNode,
    summary="Get hierarchy tree",
    description="Nested tree rooted at the account"
)
async def get_hierarchy_tree(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return await service.get_hierarchy_tree(tenant_id, account_id)


@router.get(
    "/{tenant_id}/{account_id}/ancestors",
    response_model=AccountListResponse,
    summary="List ancestors",
    description="Ancestors ordered from the root down"
)
async def list_ancestors(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.get_ancestors(tenant_id, account_id))


@router.get(
    "/{tenant_id}/{account_id}/descendants",
    response_model=AccountListResponse,
    summary="List descendants"
)
async def list_descendants(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.get_descendants(tenant_id, account_id))


@router.get(
    "/{tenant_id}/{account_id}/siblings",
    response_model=AccountListResponse,
    summary="List siblings"
)
async def list_siblings(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.get_siblings(tenant_id, account_id))


@router.get(
    "/{tenant_id}/{account_id}/stats",
    response_model=HierarchyStatsResponse,
    summary="Subtree statistics",
    description="Depth and size of the subtree rooted at the account"
)
async def get_hierarchy_stats(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return HierarchyStatsResponse(
        account_id=account_id,
        depth=await service.get_hierarchy_depth(tenant_id, account_id),
        account_count=await service.get_account_count(tenant_id, account_id),
    )


@router.get(
    "/{tenant_id}/{account_id}/duplicates",
    response_model=AccountListResponse,
    summary="Find duplicates of an account"
)
async def find_account_duplicates(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    return _account_list(await service.find_duplicates_for_account(tenant_id, account_id))


@router.get(
    "/{tenant_id}/{account_id}/relationships",
    response_model=RelationshipListResponse,
    summary="List relationships",
    description="Active relationships in either direction"
)
async def list_relationships(
    tenant_id: str,
    account_id: str,
    service: AccountService = Depends(get_service)
):
    relationships = await service.get_account_relationships(tenant_id, account_id)
    return RelationshipListResponse(
        relationships=[RelationshipResponse.model_validate(r, from_attributes=True) for r in relationships],
        total=len(relationships),
    )
