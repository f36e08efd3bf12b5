"""
Pydantic models for account management.

This module provides:
- Enums for account type, status and relationship type
- Stored records (Account, AccountRelationship)
- Request models for account CRUD, hierarchy, merge and duplicate checks
- Response models for trees, stats, bulk results and integrity reports
"""

from datetime import datetime, date
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict


# ============================================================================
# ENUMS
# ============================================================================

class AccountType(str, Enum):
    """Business classification of an account."""
    PROSPECT = "PROSPECT"
    CUSTOMER = "CUSTOMER"
    PARTNER = "PARTNER"
    RESELLER = "RESELLER"
    VENDOR = "VENDOR"
    COMPETITOR = "COMPETITOR"
    INVESTOR = "INVESTOR"
    OTHER = "OTHER"


class AccountStatus(str, Enum):
    """Lifecycle status of an account."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    PENDING = "PENDING"
    ARCHIVED = "ARCHIVED"


class RelationshipType(str, Enum):
    """Kind of directed edge between two accounts."""
    PARENT_CHILD = "PARENT_CHILD"
    SUBSIDIARY = "SUBSIDIARY"
    PARTNER = "PARTNER"
    ALLIANCE = "ALLIANCE"
    JOINT_VENTURE = "JOINT_VENTURE"
    STRATEGIC_PARTNER = "STRATEGIC_PARTNER"
    TECHNOLOGY_PARTNER = "TECHNOLOGY_PARTNER"
    CHANNEL_PARTNER = "CHANNEL_PARTNER"
    VENDOR = "VENDOR"
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"
    DISTRIBUTOR = "DISTRIBUTOR"
    RESELLER = "RESELLER"


class IntegrityViolationKind(str, Enum):
    """Categories reported by the hierarchy integrity sweep."""
    PATH_MISMATCH = "PATH_MISMATCH"
    LEVEL_MISMATCH = "LEVEL_MISMATCH"
    CYCLE = "CYCLE"
    DEPTH_EXCEEDED = "DEPTH_EXCEEDED"
    MISSING_PARENT = "MISSING_PARENT"
    DANGLING_RELATIONSHIP = "DANGLING_RELATIONSHIP"


# ============================================================================
# SHARED FIELDS
# ============================================================================

class Address(BaseModel):
    """Postal address embedded in an account."""
    street: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)

    def is_empty(self) -> bool:
        return not any(
            (value or "").strip() for value in self.model_dump().values()
        )


def dedupe_tags(tags: Optional[List[str]]) -> List[str]:
    """Drop repeated tags, keeping first-seen order."""
    seen = set()
    result = []
    for tag in tags or []:
        if tag not in seen:
            seen.add(tag)
            result.append(tag)
    return result


class AccountFields(BaseModel):
    """Editable account fields shared by the stored record and write requests."""
    name: str = Field(..., description="Account display name (required, max 255)")
    account_number: Optional[str] = Field(default=None, description="Tenant-unique account number")
    account_type: Optional[AccountType] = Field(default=None)
    industry: Optional[str] = Field(default=None)
    annual_revenue: Optional[float] = Field(default=None)
    employee_count: Optional[int] = Field(default=None)
    website: Optional[str] = Field(default=None)
    phone: Optional[str] = Field(default=None)
    fax: Optional[str] = Field(default=None)
    billing_address: Optional[Address] = Field(default=None)
    shipping_address: Optional[Address] = Field(default=None)
    description: Optional[str] = Field(default=None)
    status: AccountStatus = Field(default=AccountStatus.ACTIVE)
    tags: List[str] = Field(default_factory=list, description="Ordered, duplicate-free tags")
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    territory_id: Optional[str] = Field(default=None)
    owner_id: Optional[str] = Field(default=None)

    @field_validator('tags', mode='before')
    @classmethod
    def unique_tags(cls, v):
        return dedupe_tags(v)


# ============================================================================
# STORED RECORDS
# ============================================================================

class Account(AccountFields):
    """
    Stored account record.

    ``hierarchy_path`` is the ``/``-joined chain of ancestor ids ending in
    the account's own id. ``version`` is bumped by the store on every save
    and is 0 for records that were never persisted.
    """
    id: str
    tenant_id: str
    parent_account_id: Optional[str] = None
    hierarchy_level: int = 0
    hierarchy_path: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    version: int = 0


class AccountRelationship(BaseModel):
    """Directed edge between two accounts of the same tenant, independent of the hierarchy."""
    id: str
    tenant_id: str
    from_account_id: str
    to_account_id: str
    relationship_type: RelationshipType
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True
    strength: Optional[int] = Field(default=None, ge=1, le=10)
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None


# ============================================================================
# REQUEST MODELS
# ============================================================================

class CreateAccountRequest(AccountFields):
    """Request model for creating an account."""
    parent_account_id: Optional[str] = Field(
        default=None,
        description="Attach the new account under this parent"
    )

    model_config = ConfigDict(extra="forbid", json_schema_extra={
        "example": {
            "name": "Acme Corporation",
            "account_type": "CUSTOMER",
            "industry": "Manufacturing",
            "website": "https://www.acme.com",
            "phone": "+1 (555) 123-4567",
            "tags": ["enterprise", "priority"],
            "parent_account_id": None
        }
    })


class UpdateAccountRequest(AccountFields):
    """
    Request model for replacing an account's editable fields.

    Omitted optional fields are cleared. Setting ``parent_account_id`` moves
    the account; null removes it from the hierarchy.
    """
    parent_account_id: Optional[str] = Field(default=None)

    model_config = ConfigDict(extra="forbid")


class BulkCreateAccountsRequest(BaseModel):
    """Request model for creating many accounts independently."""
    accounts: List[CreateAccountRequest] = Field(..., description="Accounts to create")
    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Stop processing remaining accounts after this many seconds"
    )

    model_config = ConfigDict(extra="forbid")


class SetParentRequest(BaseModel):
    """Request model for attaching an account under a parent."""
    parent_account_id: str = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")


class MergeAccountsRequest(BaseModel):
    """Request model for merging a secondary account into a primary one."""
    primary_account_id: str = Field(..., min_length=1, description="Surviving account")
    secondary_account_id: str = Field(..., min_length=1, description="Account absorbed and deleted")

    model_config = ConfigDict(extra="forbid", json_schema_extra={
        "example": {
            "primary_account_id": "3f6c1d52-9d0e-4d5e-8f57-1b8f0c3c2a10",
            "secondary_account_id": "a8b0e1f4-47a2-4c36-9e1d-6f0b2d7c5e99"
        }
    })


class DuplicateCheckRequest(BaseModel):
    """Candidate fields to look up duplicates for, before an account exists."""
    name: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    industry: Optional[str] = None
    account_type: Optional[AccountType] = None
    exclude_account_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class CreateRelationshipRequest(BaseModel):
    """Request model for linking two accounts."""
    from_account_id: str = Field(..., min_length=1)
    to_account_id: str = Field(..., min_length=1)
    relationship_type: RelationshipType
    description: Optional[str] = Field(default=None, max_length=1000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    strength: Optional[int] = Field(default=None, ge=1, le=10, description="Relationship strength 1-10")
    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class AccountResponse(Account):
    """Response model for a single account."""
    model_config = ConfigDict(from_attributes=True)


class AccountListResponse(BaseModel):
    """Response model for a list of accounts."""
    accounts: List[AccountResponse]
    total: int

    model_config = ConfigDict(from_attributes=True)


class HierarchyTreeNode(BaseModel):
    """Node in an account hierarchy tree."""
    id: str
    name: str
    account_type: Optional[AccountType] = None
    level: int
    children: List['HierarchyTreeNode'] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class HierarchyStatsResponse(BaseModel):
    """Subtree depth and size below an account."""
    account_id: str
    depth: int = Field(..., description="Deepest level below the account, 0 for a leaf")
    account_count: int = Field(..., description="Accounts in the subtree including the account itself")


class RelationshipResponse(AccountRelationship):
    """Response model for a relationship."""
    model_config = ConfigDict(from_attributes=True)


class RelationshipListResponse(BaseModel):
    relationships: List[RelationshipResponse]
    total: int


class BulkCreateFailure(BaseModel):
    """One rejected entry of a bulk create."""
    index: int
    name: Optional[str] = None
    error_code: str
    message: str


class BulkCreateResult(BaseModel):
    """Outcome of a bulk create. Created accounts stay committed regardless of failures."""
    created: List[AccountResponse] = Field(default_factory=list)
    failed: List[BulkCreateFailure] = Field(default_factory=list)
    stopped_early: bool = False

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "created": [],
            "failed": [{"index": 2, "name": "", "error_code": "VALIDATION_FAILED",
                        "message": "Validation failed: Account name is required"}],
            "stopped_early": False
        }
    })


class IntegrityViolation(BaseModel):
    """Single inconsistency found by the integrity sweep."""
    account_id: str
    kind: IntegrityViolationKind
    message: str
    expected: Optional[str] = None
    actual: Optional[str] = None


class IntegrityReportResponse(BaseModel):
    """Result of a full-tenant hierarchy integrity sweep."""
    tenant_id: str
    valid: bool
    accounts_checked: int
    violations: List[IntegrityViolation] = Field(default_factory=list)


HierarchyTreeNode.model_rebuild()
