"""
Account storage collaborators.

``get_account_store()`` returns the process-wide store selected by the
``storage_backend`` setting.
"""

import logging
from typing import Optional

from accounts_service.app.config import get_settings
from accounts_service.core.services.account_store.base import (
    AccountRepository,
    RelationshipRepository,
    AccountStore,
)
from accounts_service.core.services.account_store.memory import InMemoryAccountStore

logger = logging.getLogger(__name__)

_store: Optional[AccountStore] = None


def get_account_store() -> AccountStore:
    """Get the account store singleton."""
    global _store
    if _store is None:
        settings = get_settings()
        if settings.storage_backend == "bigquery":
            from accounts_service.core.services.account_store.bigquery import BigQueryAccountStore
            _store = BigQueryAccountStore()
        else:
            _store = InMemoryAccountStore()
        logger.info(f"Account store initialized: {settings.storage_backend}")
    return _store


__all__ = [
    "AccountRepository",
    "RelationshipRepository",
    "AccountStore",
    "InMemoryAccountStore",
    "get_account_store",
]
