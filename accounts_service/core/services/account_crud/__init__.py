"""
Account CRUD service.

Service boundary for account, relationship, duplicate, merge, hierarchy
and integrity operations.
"""

from accounts_service.core.services.account_crud.validation import (
    AccountValidator,
    is_valid_phone,
    WEBSITE_PATTERN,
    PHONE_PATTERN,
)
from accounts_service.core.services.account_crud.service import (
    AccountService,
    get_account_service,
)

__all__ = [
    "AccountValidator",
    "is_valid_phone",
    "WEBSITE_PATTERN",
    "PHONE_PATTERN",
    "AccountService",
    "get_account_service",
]
