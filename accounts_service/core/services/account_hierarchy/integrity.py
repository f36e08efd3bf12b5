"""
Hierarchy Integrity Validator.

Full-tenant audit that recomputes every account's expected level and path
purely from parent pointers and compares them with the stored values. It
also runs the same bounded cycle/depth walk used before each attach and
checks that relationships point at live accounts.

Read-only and lock-free: run it from scheduled audits, not inline on
writes. Accounts modified while it runs may be reported from either state.
"""

import logging
from typing import List, Optional, Set, Tuple

from accounts_service.app.config import get_settings
from accounts_service.app.models import (
    IntegrityReportResponse,
    IntegrityViolation,
    IntegrityViolationKind,
)
from accounts_service.core.exceptions import IntegrityViolationError
from accounts_service.core.services._shared import validate_tenant_id
from accounts_service.core.services.account_hierarchy.path_utils import PATH_SEPARATOR
from accounts_service.core.services.account_hierarchy.tree_index import (
    ANCESTRY_CYCLE,
    ANCESTRY_TOO_DEEP,
    HierarchyIndex,
)
from accounts_service.core.services.account_store import AccountStore

logger = logging.getLogger(__name__)


def expected_position(index: HierarchyIndex, account_id: str) -> Tuple[Optional[int], Optional[str], Optional[str]]:
    """
    Level and path implied by parent pointers alone.

    Returns:
        (level, path, problem) where problem is None, "cycle" or the id of a
        missing parent. Level and path are None whenever problem is set.
    """
    chain = []
    seen: Set[str] = set()
    current = index.get(account_id)
    while current is not None:
        if current.id in seen:
            return None, None, "cycle"
        seen.add(current.id)
        chain.append(current.id)
        if current.parent_account_id is None:
            break
        parent = index.get(current.parent_account_id)
        if parent is None:
            return None, None, current.parent_account_id
        current = parent

    chain.reverse()
    return len(chain) - 1, PATH_SEPARATOR.join(chain), None


class HierarchyIntegrityValidator:
    """Collects every hierarchy inconsistency in a tenant instead of failing fast."""

    def __init__(self, store: AccountStore, max_depth: Optional[int] = None):
        self.store = store
        self.max_depth = get_settings().max_hierarchy_depth if max_depth is None else max_depth

    async def get_integrity_report(self, tenant_id: str) -> IntegrityReportResponse:
        validate_tenant_id(tenant_id)
        index = HierarchyIndex.load(self.store.accounts, tenant_id)
        violations: List[IntegrityViolation] = []

        for account in index.by_id.values():
            level, path, problem = expected_position(index, account.id)

            if problem is not None and problem != "cycle":
                violations.append(IntegrityViolation(
                    account_id=account.id,
                    kind=IntegrityViolationKind.MISSING_PARENT,
                    message=f"Account {account.id} references missing parent {problem}",
                    actual=problem,
                ))

            if problem is None:
                if account.hierarchy_path != path:
                    violations.append(IntegrityViolation(
                        account_id=account.id,
                        kind=IntegrityViolationKind.PATH_MISMATCH,
                        message=f"Account {account.id} has incorrect hierarchy path",
                        expected=path,
                        actual=account.hierarchy_path,
                    ))
                if account.hierarchy_level != level:
                    violations.append(IntegrityViolation(
                        account_id=account.id,
                        kind=IntegrityViolationKind.LEVEL_MISMATCH,
                        message=f"Account {account.id} has incorrect hierarchy level",
                        expected=str(level),
                        actual=str(account.hierarchy_level),
                    ))

            outcome = index.check_ancestry(account.id, account.parent_account_id, self.max_depth)
            if outcome == ANCESTRY_CYCLE:
                violations.append(IntegrityViolation(
                    account_id=account.id,
                    kind=IntegrityViolationKind.CYCLE,
                    message=f"Account {account.id} has circular reference in hierarchy",
                ))
            elif outcome == ANCESTRY_TOO_DEEP:
                violations.append(IntegrityViolation(
                    account_id=account.id,
                    kind=IntegrityViolationKind.DEPTH_EXCEEDED,
                    message=f"Account {account.id} is more than {self.max_depth} levels deep "
                            "or part of a circular hierarchy",
                ))

        for rel in self.store.relationships.find_by_tenant(tenant_id):
            for end in (rel.from_account_id, rel.to_account_id):
                if end not in index:
                    violations.append(IntegrityViolation(
                        account_id=end,
                        kind=IntegrityViolationKind.DANGLING_RELATIONSHIP,
                        message=f"Relationship {rel.id} references missing account {end}",
                        actual=rel.id,
                    ))

        if violations:
            logger.warning(
                f"Hierarchy integrity check found {len(violations)} violation(s)",
                extra={"tenant_id": tenant_id, "accounts_checked": len(index)}
            )
        else:
            logger.info(
                "Hierarchy integrity check passed",
                extra={"tenant_id": tenant_id, "accounts_checked": len(index)}
            )

        return IntegrityReportResponse(
            tenant_id=tenant_id,
            valid=not violations,
            accounts_checked=len(index),
            violations=violations,
        )

    async def validate_hierarchy_integrity(self, tenant_id: str) -> None:
        """
        Raises:
            IntegrityViolationError: carrying every violation found
        """
        report = await self.get_integrity_report(tenant_id)
        if not report.valid:
            raise IntegrityViolationError(tenant_id, report.violations)
