"""
Structured Error Handling for the Accounts Service
Provides error hierarchy with categorization, error codes, and structured context.
"""

from typing import Dict, Any, List, Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Error categories for classification and handling."""
    TRANSIENT = "TRANSIENT"  # Temporary errors that should be retried
    PERMANENT = "PERMANENT"  # Errors that won't succeed on retry
    VALIDATION = "VALIDATION"  # Input validation errors
    NOT_FOUND = "NOT_FOUND"  # Referenced record missing in tenant
    CONFLICT = "CONFLICT"  # State conflicts (children, duplicates, integrity)
    EXTERNAL = "EXTERNAL"  # Storage backend errors


class ErrorCode(str, Enum):
    """Standardized error codes for monitoring and debugging."""
    # Not found (404 equivalent)
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    PARENT_ACCOUNT_NOT_FOUND = "PARENT_ACCOUNT_NOT_FOUND"
    RELATIONSHIP_TARGET_NOT_FOUND = "RELATIONSHIP_TARGET_NOT_FOUND"

    # Validation errors (400 equivalent)
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_TENANT_ID = "INVALID_TENANT_ID"
    EMPTY_BULK_REQUEST = "EMPTY_BULK_REQUEST"
    BULK_LIMIT_EXCEEDED = "BULK_LIMIT_EXCEEDED"
    CROSS_TENANT = "CROSS_TENANT"

    # Hierarchy errors (422 equivalent)
    CIRCULAR_HIERARCHY = "CIRCULAR_HIERARCHY"
    HIERARCHY_TOO_DEEP = "HIERARCHY_TOO_DEEP"

    # Conflict errors (409 equivalent)
    ACCOUNT_HAS_CHILDREN = "ACCOUNT_HAS_CHILDREN"
    RELATIONSHIP_EXISTS = "RELATIONSHIP_EXISTS"
    HIERARCHY_INTEGRITY_ERROR = "HIERARCHY_INTEGRITY_ERROR"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Storage errors (5xx equivalent)
    BIGQUERY_UNAVAILABLE = "BQ_UNAVAILABLE"
    BIGQUERY_TIMEOUT = "BQ_TIMEOUT"
    BIGQUERY_INVALID_QUERY = "BQ_INVALID_QUERY"
    STORAGE_ERROR = "STORAGE_ERROR"


class AccountServiceError(Exception):
    """
    Base exception for all accounts service errors.

    Provides structured error information for monitoring, debugging, and error recovery.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        error_code: ErrorCode,
        http_status: int = 500,
        context: Optional[Dict[str, Any]] = None,
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        """
        Initialize structured exception.

        Args:
            message: Human-readable error message
            category: Error category for classification
            error_code: Standardized error code
            http_status: HTTP status code to return
            context: Additional context (tenant_id, account_id, etc.)
            retry_after: Seconds to wait before retry (for transient errors)
            original_error: Original exception if wrapped
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.error_code = error_code
        self.http_status = http_status
        self.context = context or {}
        self.retry_after = retry_after
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error": self.error_code.value,
            "message": self.message,
            "category": self.category.value,
            "http_status": self.http_status
        }

        if self.context:
            result["context"] = self.context

        if self.retry_after:
            result["retry_after"] = self.retry_after

        if self.original_error:
            result["original_error"] = str(self.original_error)

        return result

    def is_retryable(self) -> bool:
        """Check if this error should be retried."""
        return self.category == ErrorCategory.TRANSIENT


# ============================================
# Not Found Errors
# ============================================

class AccountNotFoundError(AccountServiceError):
    """Referenced account, parent, or relationship target does not exist in the tenant."""

    def __init__(
        self,
        account_id: str,
        tenant_id: str,
        error_code: ErrorCode = ErrorCode.ACCOUNT_NOT_FOUND,
        message: Optional[str] = None
    ):
        super().__init__(
            message=message or f"Account {account_id} not found in tenant {tenant_id}",
            category=ErrorCategory.NOT_FOUND,
            error_code=error_code,
            http_status=404,
            context={"account_id": account_id, "tenant_id": tenant_id}
        )
        self.account_id = account_id
        self.tenant_id = tenant_id


# ============================================
# Validation Errors (400)
# ============================================

class ValidationFailedError(AccountServiceError):
    """
    Malformed input.
    Carries every problem found, not just the first one.
    """

    def __init__(
        self,
        errors: List[str],
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        context: Optional[Dict[str, Any]] = None
    ):
        ctx = dict(context or {})
        ctx["errors"] = list(errors)
        super().__init__(
            message="Validation failed: " + "; ".join(errors),
            category=ErrorCategory.VALIDATION,
            error_code=error_code,
            http_status=400,
            context=ctx
        )
        self.errors = list(errors)


class InvalidTenantIdError(ValidationFailedError):
    """Tenant id does not match the allowed format."""

    def __init__(self, tenant_id: str):
        super().__init__(
            errors=[f"Invalid tenant id: {tenant_id!r}"],
            error_code=ErrorCode.INVALID_TENANT_ID
        )


class CrossTenantError(AccountServiceError):
    """Operation would span two different tenants."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=ErrorCode.CROSS_TENANT,
            http_status=400,
            context=context
        )


# ============================================
# Hierarchy Errors (422)
# ============================================

class CircularHierarchyError(AccountServiceError):
    """Account would become its own ancestor."""

    def __init__(self, account_id: str, parent_id: str):
        super().__init__(
            message=f"Setting {parent_id} as parent of {account_id} would create a circular hierarchy",
            category=ErrorCategory.VALIDATION,
            error_code=ErrorCode.CIRCULAR_HIERARCHY,
            http_status=422,
            context={"account_id": account_id, "parent_id": parent_id}
        )


class HierarchyTooDeepError(AccountServiceError):
    """Resulting hierarchy level would exceed the configured maximum depth."""

    def __init__(self, account_id: str, max_depth: int, level: Optional[int] = None):
        if level is None:
            message = f"Hierarchy above account {account_id} exceeds maximum depth of {max_depth}"
        else:
            message = f"Account {account_id} would be at level {level}, maximum depth is {max_depth}"
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            error_code=ErrorCode.HIERARCHY_TOO_DEEP,
            http_status=422,
            context={"account_id": account_id, "max_depth": max_depth, "level": level}
        )


# ============================================
# Conflict Errors (409)
# ============================================

class AccountHasChildrenError(AccountServiceError):
    """Deletion refused while the account still has child accounts."""

    def __init__(self, account_id: str, child_count: int):
        super().__init__(
            message=f"Cannot delete account {account_id}: it has {child_count} child account(s). "
                    "Move or delete children first.",
            category=ErrorCategory.CONFLICT,
            error_code=ErrorCode.ACCOUNT_HAS_CHILDREN,
            http_status=409,
            context={"account_id": account_id, "child_count": child_count}
        )


class RelationshipExistsError(AccountServiceError):
    """An active relationship of the same type already links the two accounts."""

    def __init__(self, from_id: str, to_id: str, relationship_type: str):
        super().__init__(
            message=f"Relationship {relationship_type} from {from_id} to {to_id} already exists",
            category=ErrorCategory.CONFLICT,
            error_code=ErrorCode.RELATIONSHIP_EXISTS,
            http_status=409,
            context={"from_account_id": from_id, "to_account_id": to_id,
                     "relationship_type": relationship_type}
        )


class IntegrityViolationError(AccountServiceError):
    """Aggregate hierarchy integrity failure carrying every detected violation."""

    def __init__(self, tenant_id: str, violations: List[Any]):
        messages = [getattr(v, "message", str(v)) for v in violations]
        super().__init__(
            message="Hierarchy integrity violations found: " + "; ".join(messages),
            category=ErrorCategory.CONFLICT,
            error_code=ErrorCode.HIERARCHY_INTEGRITY_ERROR,
            http_status=409,
            context={"tenant_id": tenant_id, "violation_count": len(violations)}
        )
        self.tenant_id = tenant_id
        self.violations = list(violations)


# ============================================
# Transient Errors (Should be retried)
# ============================================

class ConcurrentModificationError(AccountServiceError):
    """
    A concurrent write touched the same records.
    Safe to retry once the other operation has finished.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        retry_after: int = 1,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.TRANSIENT,
            error_code=ErrorCode.CONCURRENT_MODIFICATION,
            http_status=409,
            context=context,
            retry_after=retry_after,
            original_error=original_error
        )


class StorageError(AccountServiceError):
    """Storage backend failure."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.STORAGE_ERROR,
        category: ErrorCategory = ErrorCategory.EXTERNAL,
        http_status: int = 500,
        retry_after: Optional[int] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            category=category,
            error_code=error_code,
            http_status=http_status,
            retry_after=retry_after,
            original_error=original_error
        )


def classify_exception(exc: Exception) -> AccountServiceError:
    """
    Classify a generic exception into a structured AccountServiceError.

    Used for wrapping storage library exceptions (BigQuery, etc.) into
    our structured error hierarchy.

    Args:
        exc: Original exception

    Returns:
        Appropriate AccountServiceError subclass
    """
    from google.api_core import exceptions as google_exceptions

    if isinstance(exc, AccountServiceError):
        return exc

    message = str(exc)

    # Version guard raised from inside a BigQuery script
    if "version_conflict" in message:
        return ConcurrentModificationError(
            message="Account was modified concurrently, retry the operation",
            original_error=exc
        )

    if isinstance(exc, (google_exceptions.ServiceUnavailable, google_exceptions.TooManyRequests)):
        return StorageError(
            message=message,
            error_code=ErrorCode.BIGQUERY_UNAVAILABLE,
            category=ErrorCategory.TRANSIENT,
            http_status=503,
            retry_after=30,
            original_error=exc
        )

    if isinstance(exc, (TimeoutError, google_exceptions.DeadlineExceeded)):
        return StorageError(
            message=message,
            error_code=ErrorCode.BIGQUERY_TIMEOUT,
            category=ErrorCategory.TRANSIENT,
            http_status=504,
            retry_after=30,
            original_error=exc
        )

    if isinstance(exc, google_exceptions.BadRequest):
        return StorageError(
            message=message,
            error_code=ErrorCode.BIGQUERY_INVALID_QUERY,
            original_error=exc
        )

    return StorageError(
        message=f"Unexpected error: {type(exc).__name__}: {exc}",
        original_error=exc
    )
