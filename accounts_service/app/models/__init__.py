"""
Account management models package.

Exports all account-related models and enums for use throughout the application.
"""

from .account_models import (
    # Enums
    AccountType,
    AccountStatus,
    RelationshipType,
    IntegrityViolationKind,

    # Records
    Address,
    AccountFields,
    Account,
    AccountRelationship,
    dedupe_tags,

    # Request Models
    CreateAccountRequest,
    UpdateAccountRequest,
    BulkCreateAccountsRequest,
    SetParentRequest,
    MergeAccountsRequest,
    DuplicateCheckRequest,
    CreateRelationshipRequest,

    # Response Models
    AccountResponse,
    AccountListResponse,
    HierarchyTreeNode,
    HierarchyStatsResponse,
    RelationshipResponse,
    RelationshipListResponse,
    BulkCreateFailure,
    BulkCreateResult,
    IntegrityViolation,
    IntegrityReportResponse,
)

__all__ = [
    "AccountType",
    "AccountStatus",
    "RelationshipType",
    "IntegrityViolationKind",
    "Address",
    "AccountFields",
    "Account",
    "AccountRelationship",
    "dedupe_tags",
    "CreateAccountRequest",
    "UpdateAccountRequest",
    "BulkCreateAccountsRequest",
    "SetParentRequest",
    "MergeAccountsRequest",
    "DuplicateCheckRequest",
    "CreateRelationshipRequest",
    "AccountResponse",
    "AccountListResponse",
    "HierarchyTreeNode",
    "HierarchyStatsResponse",
    "RelationshipResponse",
    "RelationshipListResponse",
    "BulkCreateFailure",
    "BulkCreateResult",
    "IntegrityViolation",
    "IntegrityReportResponse",
]
