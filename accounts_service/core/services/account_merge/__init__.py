"""
Account merge reconciliation.
"""

from accounts_service.core.services.account_merge.service import (
    MERGE_SCALAR_FIELDS,
    AccountMergeService,
    fill_forward,
    merge_tags,
    is_empty_value,
)

__all__ = [
    "MERGE_SCALAR_FIELDS",
    "AccountMergeService",
    "fill_forward",
    "merge_tags",
    "is_empty_value",
]
