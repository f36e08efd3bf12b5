"""
Request-scoped dependencies for the accounts API.

Authentication lives in front of this service; the caller identity arrives
in the ``X-User-ID`` header and is recorded on every write.
"""

from typing import Optional

from fastapi import Header

from accounts_service.core.services.account_crud import AccountService, get_account_service

DEFAULT_ACTING_USER = "system"


async def get_acting_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID", description="User ID from frontend"),
) -> str:
    """Identity recorded as created_by / updated_by; falls back to 'system'."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return DEFAULT_ACTING_USER


def get_service() -> AccountService:
    return get_account_service()
