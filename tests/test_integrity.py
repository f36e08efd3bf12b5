"""
Tests for the full-tenant hierarchy integrity audit.
"""

import pytest

from accounts_service.app.models import AccountRelationship, IntegrityViolationKind, RelationshipType
from accounts_service.core.exceptions import IntegrityViolationError
from accounts_service.core.services.account_hierarchy import HierarchyIntegrityValidator

from conftest import TENANT, make_account


@pytest.fixture
def validator(store):
    return HierarchyIntegrityValidator(store, max_depth=10)


def _kinds(report):
    return {(v.account_id, v.kind) for v in report.violations}


class TestIntegrityReport:

    @pytest.mark.asyncio
    async def test_consistent_tenant_is_valid(self, seed, validator):
        r = make_account("r")
        a = make_account("a", parent=r)
        seed(r, a, make_account("a1", parent=a))

        report = await validator.get_integrity_report(TENANT)

        assert report.valid
        assert report.accounts_checked == 3
        assert report.violations == []

    @pytest.mark.asyncio
    async def test_empty_tenant_is_valid(self, validator):
        report = await validator.get_integrity_report(TENANT)
        assert report.valid
        assert report.accounts_checked == 0

    @pytest.mark.asyncio
    async def test_stale_path_and_level(self, seed, validator):
        r = make_account("r")
        a = make_account("a", parent=r)
        a.hierarchy_path = "old/a"
        a.hierarchy_level = 4
        seed(r, a)

        report = await validator.get_integrity_report(TENANT)

        assert not report.valid
        assert _kinds(report) == {
            ("a", IntegrityViolationKind.PATH_MISMATCH),
            ("a", IntegrityViolationKind.LEVEL_MISMATCH),
        }
        path_violation = next(v for v in report.violations if v.kind == IntegrityViolationKind.PATH_MISMATCH)
        assert path_violation.expected == "r/a"
        assert path_violation.actual == "old/a"

    @pytest.mark.asyncio
    async def test_missing_parent(self, seed, validator):
        orphan = make_account("orphan")
        orphan.parent_account_id = "gone"
        seed(orphan)

        report = await validator.get_integrity_report(TENANT)
        assert _kinds(report) == {("orphan", IntegrityViolationKind.MISSING_PARENT)}

    @pytest.mark.asyncio
    async def test_cycle(self, seed, validator):
        x = make_account("x")
        y = make_account("y")
        x.parent_account_id = "y"
        y.parent_account_id = "x"
        seed(x, y)

        report = await validator.get_integrity_report(TENANT)

        assert ("x", IntegrityViolationKind.CYCLE) in _kinds(report)
        assert ("y", IntegrityViolationKind.CYCLE) in _kinds(report)

    @pytest.mark.asyncio
    async def test_over_deep_chain(self, seed, validator):
        parent = None
        accounts = []
        for i in range(12):  # levels 0..11
            parent = make_account(f"n{i}", parent=parent)
            accounts.append(parent)
        seed(*accounts)

        report = await validator.get_integrity_report(TENANT)
        assert _kinds(report) == {("n11", IntegrityViolationKind.DEPTH_EXCEEDED)}

    @pytest.mark.asyncio
    async def test_dangling_relationship(self, store, seed, validator):
        seed(make_account("a"))
        store.relationships.save(AccountRelationship(
            id="rel1",
            tenant_id=TENANT,
            from_account_id="a",
            to_account_id="deleted",
            relationship_type=RelationshipType.PARTNER,
        ))

        report = await validator.get_integrity_report(TENANT)
        assert _kinds(report) == {("deleted", IntegrityViolationKind.DANGLING_RELATIONSHIP)}

    @pytest.mark.asyncio
    async def test_validate_raises_with_all_violations(self, seed, validator):
        orphan = make_account("orphan")
        orphan.parent_account_id = "gone"
        stale = make_account("stale")
        stale.hierarchy_level = 2
        seed(orphan, stale)

        with pytest.raises(IntegrityViolationError) as exc_info:
            await validator.validate_hierarchy_integrity(TENANT)
        assert len(exc_info.value.violations) == 2

    @pytest.mark.asyncio
    async def test_validate_passes_on_consistent_tenant(self, seed, validator):
        seed(make_account("r"))
        await validator.validate_hierarchy_integrity(TENANT)
