"""
Root conftest.py - Sets environment variables before any module imports.

This file is loaded by pytest before any test modules, ensuring environment
variables are set before the settings module is imported.

All tests run against the in-memory account store. BigQuery store tests
patch the client and only inspect the generated SQL.
"""

import os

# Set environment variables BEFORE any imports that might load settings
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("GCP_PROJECT_ID", "test-project")
os.environ["STORAGE_BACKEND"] = "memory"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from httpx import AsyncClient, ASGITransport

from accounts_service.app.models import Account
from accounts_service.core.services._shared import TenantLockRegistry
from accounts_service.core.services.account_crud import AccountService
from accounts_service.core.services.account_hierarchy import AccountHierarchyService
from accounts_service.core.services.account_hierarchy.path_utils import build_path
from accounts_service.core.services.account_store import InMemoryAccountStore

TENANT = "tenant_alpha"
OTHER_TENANT = "tenant_beta"


# ============================================
# Store & Service Fixtures
# ============================================

@pytest.fixture
def store():
    return InMemoryAccountStore()


@pytest.fixture
def locks():
    return TenantLockRegistry(timeout_seconds=1.0)


@pytest.fixture
def hierarchy(store, locks):
    return AccountHierarchyService(store, max_depth=10, locks=locks)


@pytest.fixture
def account_service(store, locks, hierarchy):
    return AccountService(store, hierarchy=hierarchy, locks=locks)


def make_account(
    account_id,
    name=None,
    parent=None,
    tenant_id=TENANT,
    **fields,
):
    """
    Build an unsaved account positioned under ``parent`` (an Account or None).

    Level and path are derived from the parent, as the hierarchy service
    would have stored them.
    """
    return Account(
        id=account_id,
        tenant_id=tenant_id,
        name=name or f"Account {account_id}",
        parent_account_id=parent.id if parent else None,
        hierarchy_level=parent.hierarchy_level + 1 if parent else 0,
        hierarchy_path=build_path(account_id, parent.hierarchy_path if parent else None),
        **fields,
    )


@pytest.fixture
def seed(store):
    """Save accounts directly into the store, bypassing validation."""
    def _seed(*accounts):
        for account in accounts:
            store.accounts.save(account)
        return accounts
    return _seed


# ============================================
# FastAPI Test Client
# ============================================

@pytest.fixture
async def async_client(account_service):
    """
    Async HTTP client for testing FastAPI endpoints.

    Uses httpx.AsyncClient with ASGITransport and a per-test service backed
    by a fresh in-memory store.
    """
    # Import app here to ensure env vars are set first
    from accounts_service.app.main import app
    from accounts_service.app.dependencies.tenant import get_service

    app.dependency_overrides[get_service] = lambda: account_service
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
