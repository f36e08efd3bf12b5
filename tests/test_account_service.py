"""
Tests for the account service facade: CRUD, bulk create, relationships.
"""

import asyncio
import logging
from datetime import date

import pytest

from accounts_service.app.models import (
    AccountType,
    CreateAccountRequest,
    CreateRelationshipRequest,
    RelationshipType,
    UpdateAccountRequest,
)
from accounts_service.core.exceptions import (
    AccountHasChildrenError,
    AccountNotFoundError,
    ErrorCode,
    RelationshipExistsError,
    ValidationFailedError,
)
from accounts_service.core.services.account_crud import AccountService, is_valid_phone

from conftest import OTHER_TENANT, TENANT


def _create(name, **fields):
    return CreateAccountRequest(name=name, **fields)


class TestValidation:

    def test_phone_formats(self):
        assert is_valid_phone("+1 (555) 123-4567")
        assert is_valid_phone("5551234567")
        assert not is_valid_phone("call me")
        assert not is_valid_phone("123")

    @pytest.mark.asyncio
    async def test_errors_are_accumulated(self, account_service):
        request = _create(
            "  ",
            website="not a site",
            phone="abc",
            annual_revenue=-1,
            employee_count=50_000_000,
        )

        with pytest.raises(ValidationFailedError) as exc_info:
            await account_service.create_account(TENANT, request)

        errors = exc_info.value.errors
        assert "Account name is required" in errors
        assert "Invalid website format" in errors
        assert "Invalid phone format" in errors
        assert "Annual revenue cannot be negative" in errors
        assert "Employee count seems unrealistic" in errors

    @pytest.mark.asyncio
    async def test_duplicate_account_number(self, account_service):
        await account_service.create_account(TENANT, _create("Acme", account_number="ACC-1"))

        with pytest.raises(ValidationFailedError) as exc_info:
            await account_service.create_account(TENANT, _create("Globex", account_number="ACC-1"))
        assert exc_info.value.errors == ["Account number ACC-1 already exists"]

    @pytest.mark.asyncio
    async def test_account_number_is_unique_per_tenant_only(self, account_service):
        await account_service.create_account(TENANT, _create("Acme", account_number="ACC-1"))
        await account_service.create_account(OTHER_TENANT, _create("Acme", account_number="ACC-1"))


class TestCreateAndUpdate:

    @pytest.mark.asyncio
    async def test_create_root_account(self, account_service):
        account = await account_service.create_account(
            TENANT, _create("Acme", account_type=AccountType.CUSTOMER, tags=["a", "a", "b"]),
            acting_user="alice",
        )

        assert account.hierarchy_level == 0
        assert account.hierarchy_path == account.id
        assert account.created_by == "alice"
        assert account.tags == ["a", "b"]
        assert account.version == 1
        stored = await account_service.get_account(TENANT, account.id)
        assert stored.name == "Acme"

    @pytest.mark.asyncio
    async def test_create_under_parent(self, account_service):
        parent = await account_service.create_account(TENANT, _create("Parent"))
        child = await account_service.create_account(
            TENANT, _create("Child", parent_account_id=parent.id)
        )

        assert child.parent_account_id == parent.id
        assert child.hierarchy_level == 1
        assert child.hierarchy_path == f"{parent.id}/{child.id}"

    @pytest.mark.asyncio
    async def test_create_under_missing_parent(self, store, account_service):
        with pytest.raises(AccountNotFoundError) as exc_info:
            await account_service.create_account(TENANT, _create("Child", parent_account_id="ghost"))
        assert exc_info.value.error_code == ErrorCode.PARENT_ACCOUNT_NOT_FOUND
        assert store.accounts.find_by_tenant(TENANT) == []

    @pytest.mark.asyncio
    async def test_create_logs_probable_duplicates(self, account_service, caplog):
        await account_service.create_account(TENANT, _create("Acme Corporation"))

        with caplog.at_level(logging.WARNING):
            await account_service.create_account(TENANT, _create("Acme Corporations"))

        assert any("potential duplicate" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_update_replaces_fields(self, account_service):
        account = await account_service.create_account(TENANT, _create("Acme", website="acme.com"))

        updated = await account_service.update_account(
            TENANT, account.id, UpdateAccountRequest(name="Acme Holdings"), acting_user="bob"
        )

        assert updated.name == "Acme Holdings"
        assert updated.website is None
        assert updated.updated_by == "bob"
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_update_reparents_and_detaches(self, account_service):
        parent = await account_service.create_account(TENANT, _create("Parent"))
        child = await account_service.create_account(TENANT, _create("Child"))

        moved = await account_service.update_account(
            TENANT, child.id, UpdateAccountRequest(name="Child", parent_account_id=parent.id)
        )
        assert moved.hierarchy_path == f"{parent.id}/{child.id}"

        detached = await account_service.update_account(TENANT, child.id, UpdateAccountRequest(name="Child"))
        assert detached.parent_account_id is None
        assert detached.hierarchy_path == child.id

    @pytest.mark.asyncio
    async def test_update_missing_account(self, account_service):
        with pytest.raises(AccountNotFoundError):
            await account_service.update_account(TENANT, "ghost", UpdateAccountRequest(name="X"))

    @pytest.mark.asyncio
    async def test_tenants_are_isolated(self, account_service):
        account = await account_service.create_account(TENANT, _create("Acme"))
        with pytest.raises(AccountNotFoundError):
            await account_service.get_account(OTHER_TENANT, account.id)


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_removes_relationships(self, store, account_service):
        a = await account_service.create_account(TENANT, _create("Alpha"))
        b = await account_service.create_account(TENANT, _create("Beta"))
        await account_service.create_relationship(TENANT, CreateRelationshipRequest(
            from_account_id=a.id, to_account_id=b.id, relationship_type=RelationshipType.PARTNER
        ))

        await account_service.delete_account(TENANT, a.id)

        assert store.accounts.find_by_id(TENANT, a.id) is None
        assert store.relationships.find_by_tenant(TENANT) == []

    @pytest.mark.asyncio
    async def test_delete_with_children_is_blocked(self, account_service):
        parent = await account_service.create_account(TENANT, _create("Parent"))
        await account_service.create_account(TENANT, _create("Child", parent_account_id=parent.id))

        with pytest.raises(AccountHasChildrenError):
            await account_service.delete_account(TENANT, parent.id)

    @pytest.mark.asyncio
    async def test_delete_missing(self, account_service):
        with pytest.raises(AccountNotFoundError):
            await account_service.delete_account(TENANT, "ghost")


class TestBulkCreate:

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_batch(self, account_service):
        result = await account_service.create_accounts_bulk(TENANT, [
            _create("Alpha"),
            _create("", website="bad site"),
            _create("Gamma", parent_account_id="ghost"),
            _create("Delta"),
        ])

        assert [a.name for a in result.created] == ["Alpha", "Delta"]
        assert [(f.index, f.error_code) for f in result.failed] == [
            (1, "VALIDATION_FAILED"),
            (2, "PARENT_ACCOUNT_NOT_FOUND"),
        ]
        assert result.stopped_early is False

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, account_service):
        with pytest.raises(ValidationFailedError) as exc_info:
            await account_service.create_accounts_bulk(TENANT, [])
        assert exc_info.value.error_code == ErrorCode.EMPTY_BULK_REQUEST

    @pytest.mark.asyncio
    async def test_batch_limit(self, store, hierarchy, locks):
        service = AccountService(store, hierarchy=hierarchy, locks=locks, bulk_create_max_records=2)
        with pytest.raises(ValidationFailedError) as exc_info:
            await service.create_accounts_bulk(TENANT, [_create("A"), _create("B"), _create("C")])
        assert exc_info.value.error_code == ErrorCode.BULK_LIMIT_EXCEEDED

    @pytest.mark.asyncio
    async def test_timeout_stops_early_and_keeps_created(self, store, account_service, monkeypatch):
        original = account_service.create_account

        async def slow_create(*args, **kwargs):
            account = await original(*args, **kwargs)
            await asyncio.sleep(0.05)
            return account

        monkeypatch.setattr(account_service, "create_account", slow_create)

        result = await account_service.create_accounts_bulk(
            TENANT, [_create(f"Account {i}") for i in range(10)], timeout_seconds=0.01
        )

        assert result.stopped_early is True
        assert len(result.created) == 1
        assert len(store.accounts.find_by_tenant(TENANT)) == 1


class TestRelationships:

    @pytest.mark.asyncio
    async def test_create_and_list(self, account_service):
        a = await account_service.create_account(TENANT, _create("Alpha"))
        b = await account_service.create_account(TENANT, _create("Beta"))

        rel = await account_service.create_relationship(TENANT, CreateRelationshipRequest(
            from_account_id=a.id, to_account_id=b.id,
            relationship_type=RelationshipType.RESELLER, strength=7,
        ), acting_user="alice")

        assert rel.created_by == "alice"
        assert [r.id for r in await account_service.get_account_relationships(TENANT, a.id)] == [rel.id]
        assert [r.id for r in await account_service.get_account_relationships(TENANT, b.id)] == [rel.id]

    @pytest.mark.asyncio
    async def test_duplicate_relationship_rejected(self, account_service):
        a = await account_service.create_account(TENANT, _create("Alpha"))
        b = await account_service.create_account(TENANT, _create("Beta"))
        request = CreateRelationshipRequest(
            from_account_id=a.id, to_account_id=b.id, relationship_type=RelationshipType.PARTNER
        )
        await account_service.create_relationship(TENANT, request)

        with pytest.raises(RelationshipExistsError):
            await account_service.create_relationship(TENANT, request)

    @pytest.mark.asyncio
    async def test_self_relationship_and_bad_dates(self, account_service):
        a = await account_service.create_account(TENANT, _create("Alpha"))
        with pytest.raises(ValidationFailedError) as exc_info:
            await account_service.create_relationship(TENANT, CreateRelationshipRequest(
                from_account_id=a.id, to_account_id=a.id,
                relationship_type=RelationshipType.PARTNER,
                start_date=date(2024, 5, 1), end_date=date(2024, 1, 1),
            ))
        assert len(exc_info.value.errors) == 2

    @pytest.mark.asyncio
    async def test_target_in_other_tenant_is_not_found(self, account_service):
        a = await account_service.create_account(TENANT, _create("Alpha"))
        b = await account_service.create_account(OTHER_TENANT, _create("Beta"))

        with pytest.raises(AccountNotFoundError) as exc_info:
            await account_service.create_relationship(TENANT, CreateRelationshipRequest(
                from_account_id=a.id, to_account_id=b.id, relationship_type=RelationshipType.PARTNER
            ))
        assert exc_info.value.error_code == ErrorCode.RELATIONSHIP_TARGET_NOT_FOUND


class TestFacadeDelegation:

    @pytest.mark.asyncio
    async def test_merge_through_service(self, store, account_service):
        p = await account_service.create_account(TENANT, _create("Acme"))
        s = await account_service.create_account(TENANT, _create("Acme Inc", website="acme.com"))

        merged = await account_service.merge_accounts(TENANT, p.id, s.id)

        assert merged.website == "acme.com"
        assert store.accounts.find_by_id(TENANT, s.id) is None

    @pytest.mark.asyncio
    async def test_integrity_after_normal_operations(self, account_service):
        root = await account_service.create_account(TENANT, _create("Root"))
        mid = await account_service.create_account(TENANT, _create("Mid", parent_account_id=root.id))
        leaf = await account_service.create_account(TENANT, _create("Leaf", parent_account_id=mid.id))
        other = await account_service.create_account(TENANT, _create("Other"))
        await account_service.change_parent(TENANT, mid.id, other.id)
        await account_service.remove_from_hierarchy(TENANT, other.id)

        report = await account_service.get_integrity_report(TENANT)
        assert report.valid
        assert report.accounts_checked == 4
        await account_service.validate_hierarchy_integrity(TENANT)

        ancestors = await account_service.get_ancestors(TENANT, leaf.id)
        assert [a.id for a in ancestors] == [other.id, mid.id]
