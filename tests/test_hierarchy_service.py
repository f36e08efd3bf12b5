"""
Tests for hierarchy maintenance: attach validation, cascades and queries.
"""

import asyncio

import pytest

from accounts_service.core.exceptions import (
    AccountNotFoundError,
    CircularHierarchyError,
    ConcurrentModificationError,
    ErrorCode,
    HierarchyTooDeepError,
    InvalidTenantIdError,
)
from accounts_service.core.services.account_hierarchy import AccountHierarchyService

from conftest import OTHER_TENANT, TENANT, make_account


@pytest.fixture
def tree(seed):
    """
    r
    +-- a
    |   +-- a1
    |   |   +-- a11
    |   +-- a2
    +-- b
    """
    r = make_account("r")
    a = make_account("a", parent=r)
    a1 = make_account("a1", parent=a)
    a11 = make_account("a11", parent=a1)
    a2 = make_account("a2", parent=a)
    b = make_account("b", parent=r)
    seed(r, a, a1, a11, a2, b)
    return r


class TestSetParent:

    @pytest.mark.asyncio
    async def test_attach_root_under_parent(self, store, seed, hierarchy):
        seed(make_account("p"), make_account("c"))

        child = await hierarchy.set_parent(TENANT, "c", "p", acting_user="alice")

        assert child.parent_account_id == "p"
        assert child.hierarchy_level == 1
        assert child.hierarchy_path == "p/c"
        stored = store.accounts.find_by_id(TENANT, "c")
        assert stored.hierarchy_path == "p/c"
        assert stored.updated_by == "alice"

    @pytest.mark.asyncio
    async def test_move_cascades_to_descendants(self, store, tree, hierarchy):
        await hierarchy.set_parent(TENANT, "a", "b")

        a11 = store.accounts.find_by_id(TENANT, "a11")
        assert a11.hierarchy_level == 4
        assert a11.hierarchy_path == "r/b/a/a1/a11"
        a2 = store.accounts.find_by_id(TENANT, "a2")
        assert a2.hierarchy_path == "r/b/a/a2"

    @pytest.mark.asyncio
    async def test_self_parent_rejected(self, tree, hierarchy):
        with pytest.raises(CircularHierarchyError):
            await hierarchy.set_parent(TENANT, "a", "a")

    @pytest.mark.asyncio
    async def test_parent_inside_subtree_rejected(self, store, tree, hierarchy):
        with pytest.raises(CircularHierarchyError):
            await hierarchy.set_parent(TENANT, "a", "a11")

        # Nothing changed
        assert store.accounts.find_by_id(TENANT, "a").parent_account_id == "r"

    @pytest.mark.asyncio
    async def test_two_node_cycle_rejected(self, seed, hierarchy):
        seed(make_account("x"), make_account("y"))
        await hierarchy.set_parent(TENANT, "y", "x")

        with pytest.raises(CircularHierarchyError):
            await hierarchy.set_parent(TENANT, "x", "y")

    @pytest.mark.asyncio
    async def test_missing_parent(self, tree, hierarchy):
        with pytest.raises(AccountNotFoundError) as exc_info:
            await hierarchy.set_parent(TENANT, "a", "ghost")
        assert exc_info.value.error_code == ErrorCode.PARENT_ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_account(self, tree, hierarchy):
        with pytest.raises(AccountNotFoundError) as exc_info:
            await hierarchy.set_parent(TENANT, "ghost", "r")
        assert exc_info.value.error_code == ErrorCode.ACCOUNT_NOT_FOUND

    @pytest.mark.asyncio
    async def test_parent_from_other_tenant_is_not_found(self, seed, hierarchy):
        seed(make_account("c"), make_account("p", tenant_id=OTHER_TENANT))
        with pytest.raises(AccountNotFoundError):
            await hierarchy.set_parent(TENANT, "c", "p")

    @pytest.mark.asyncio
    async def test_depth_ceiling(self, seed, hierarchy):
        seed(*[make_account(f"n{i}") for i in range(12)])

        # n0 <- n1 <- ... <- n10 reaches level 10
        for i in range(1, 11):
            await hierarchy.set_parent(TENANT, f"n{i}", f"n{i - 1}")

        with pytest.raises(HierarchyTooDeepError):
            await hierarchy.set_parent(TENANT, "n11", "n10")

    @pytest.mark.asyncio
    async def test_smaller_max_depth(self, store, seed, locks):
        service = AccountHierarchyService(store, max_depth=2, locks=locks)
        seed(make_account("l0"), make_account("l1"), make_account("l2"), make_account("l3"))
        await service.set_parent(TENANT, "l1", "l0")
        await service.set_parent(TENANT, "l2", "l1")

        with pytest.raises(HierarchyTooDeepError):
            await service.set_parent(TENANT, "l3", "l2")

    @pytest.mark.asyncio
    async def test_invalid_tenant(self, hierarchy):
        with pytest.raises(InvalidTenantIdError):
            await hierarchy.set_parent("Bad Tenant!", "a", "b")

    @pytest.mark.asyncio
    async def test_lock_timeout_surfaces_as_conflict(self, store, tree, locks):
        service = AccountHierarchyService(store, locks=locks, conflict_retry_attempts=1)
        locks.timeout_seconds = 0.05

        async with locks.hold(TENANT):
            with pytest.raises(ConcurrentModificationError):
                await service.set_parent(TENANT, "b", "a")

    @pytest.mark.asyncio
    async def test_zero_retry_attempts_is_not_replaced_by_default(self, store, tree, locks, monkeypatch):
        service = AccountHierarchyService(store, locks=locks, conflict_retry_attempts=0)
        assert service.conflict_retry_attempts == 0

        calls = []
        original = service._set_parent_once

        async def counting(*args, **kwargs):
            calls.append(args)
            return await original(*args, **kwargs)

        monkeypatch.setattr(service, "_set_parent_once", counting)
        locks.timeout_seconds = 0.05

        async with locks.hold(TENANT):
            with pytest.raises(ConcurrentModificationError):
                await service.set_parent(TENANT, "b", "a")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_moves_stay_consistent(self, store, tree, hierarchy):
        await asyncio.gather(
            hierarchy.set_parent(TENANT, "b", "a2"),
            hierarchy.set_parent(TENANT, "a1", "b"),
        )

        a11 = store.accounts.find_by_id(TENANT, "a11")
        assert a11.hierarchy_path == "r/a/a2/b/a1/a11"
        assert a11.hierarchy_level == 5


class TestRemoveAndMove:

    @pytest.mark.asyncio
    async def test_remove_makes_subtree_root(self, store, tree, hierarchy):
        account = await hierarchy.remove_from_hierarchy(TENANT, "a")

        assert account.parent_account_id is None
        assert account.hierarchy_level == 0
        assert account.hierarchy_path == "a"
        a11 = store.accounts.find_by_id(TENANT, "a11")
        assert a11.hierarchy_path == "a/a1/a11"
        assert a11.hierarchy_level == 2

    @pytest.mark.asyncio
    async def test_move_to_none_detaches(self, store, tree, hierarchy):
        await hierarchy.move_account(TENANT, "a1", None)
        assert store.accounts.find_by_id(TENANT, "a1").hierarchy_path == "a1"

    @pytest.mark.asyncio
    async def test_move_under_new_parent(self, store, tree, hierarchy):
        await hierarchy.move_account(TENANT, "a2", "b")
        assert store.accounts.find_by_id(TENANT, "a2").hierarchy_path == "r/b/a2"


class TestQueries:

    @pytest.mark.asyncio
    async def test_ancestors_root_first(self, tree, hierarchy):
        ancestors = await hierarchy.get_ancestors(TENANT, "a11")
        assert [a.id for a in ancestors] == ["r", "a", "a1"]

    @pytest.mark.asyncio
    async def test_ancestors_of_root(self, tree, hierarchy):
        assert await hierarchy.get_ancestors(TENANT, "r") == []

    @pytest.mark.asyncio
    async def test_descendants(self, tree, hierarchy):
        descendants = await hierarchy.get_descendants(TENANT, "a")
        assert [a.id for a in descendants] == ["a1", "a11", "a2"]

    @pytest.mark.asyncio
    async def test_siblings(self, tree, hierarchy):
        assert [a.id for a in await hierarchy.get_siblings(TENANT, "a1")] == ["a2"]
        assert await hierarchy.get_siblings(TENANT, "a11") == []

    @pytest.mark.asyncio
    async def test_root_siblings_are_other_roots(self, seed, tree, hierarchy):
        seed(make_account("other_root"))
        assert [a.id for a in await hierarchy.get_siblings(TENANT, "r")] == ["other_root"]

    @pytest.mark.asyncio
    async def test_depth_and_count(self, tree, hierarchy):
        assert await hierarchy.get_hierarchy_depth(TENANT, "r") == 3
        assert await hierarchy.get_hierarchy_depth(TENANT, "a11") == 0
        assert await hierarchy.get_account_count(TENANT, "r") == 6
        assert await hierarchy.get_account_count(TENANT, "a1") == 2

    @pytest.mark.asyncio
    async def test_accounts_at_level_is_inclusive(self, tree, hierarchy):
        at_level = await hierarchy.get_accounts_at_level(TENANT, 1)
        assert {a.id for a in at_level} == {"r", "a", "b"}

    @pytest.mark.asyncio
    async def test_root_accounts(self, seed, tree, hierarchy):
        seed(make_account("other_root"))
        roots = await hierarchy.get_root_accounts(TENANT)
        assert {a.id for a in roots} == {"r", "other_root"}

    @pytest.mark.asyncio
    async def test_tree(self, tree, hierarchy):
        node = await hierarchy.get_hierarchy_tree(TENANT, "r")

        assert node.id == "r"
        assert node.level == 0
        assert [c.id for c in node.children] == ["a", "b"]
        a = node.children[0]
        assert [c.id for c in a.children] == ["a1", "a2"]
        assert a.children[0].children[0].id == "a11"
        assert a.children[0].children[0].level == 3

    @pytest.mark.asyncio
    async def test_queries_on_missing_account(self, hierarchy):
        with pytest.raises(AccountNotFoundError):
            await hierarchy.get_hierarchy_tree(TENANT, "ghost")
        with pytest.raises(AccountNotFoundError):
            await hierarchy.get_ancestors(TENANT, "ghost")
