"""
Account hierarchy management.

Materialized-path tree maintenance, tree queries and the full-tenant
integrity audit.
"""

from accounts_service.core.services.account_hierarchy.path_utils import (
    PATH_SEPARATOR,
    build_path,
    is_ancestor,
)
from accounts_service.core.services.account_hierarchy.tree_index import HierarchyIndex
from accounts_service.core.services.account_hierarchy.service import (
    AccountHierarchyService,
)
from accounts_service.core.services.account_hierarchy.integrity import (
    HierarchyIntegrityValidator,
    expected_position,
)

__all__ = [
    "PATH_SEPARATOR",
    "build_path",
    "is_ancestor",
    "HierarchyIndex",
    "AccountHierarchyService",
    "HierarchyIntegrityValidator",
    "expected_position",
]
