"""
Centralized Error Handling Utility
Provides error responses that never leak implementation details to clients.

Structured errors (AccountServiceError) carry their own code, category and
HTTP status. Anything else is reported as a generic internal error with a
tracking id that operators can find in the logs.
"""

import logging
import traceback
import uuid
from typing import Optional, Dict, Any
from fastapi import HTTPException, status

from accounts_service.core.exceptions import AccountServiceError, ErrorCategory

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = {"password", "credential", "api_key", "secret", "token", "private_key"}


def generate_error_id() -> str:
    """Generate a unique error ID for tracking."""
    return f"ERR-{uuid.uuid4().hex[:12].upper()}"


def _sanitize(context: Dict[str, Any]) -> Dict[str, Any]:
    sanitized = {}
    for key, value in context.items():
        if any(s in key.lower() for s in SENSITIVE_KEYS):
            sanitized[key] = "[REDACTED]"
        else:
            sanitized[key] = value
    return sanitized


def log_error_details(
    error_id: str,
    error: Exception,
    context: Optional[Dict[str, Any]] = None,
    operation: Optional[str] = None
) -> None:
    """
    Log detailed error information server-side only.

    Args:
        error_id: Unique error identifier
        error: The exception that occurred
        context: Additional context for debugging
        operation: Description of the operation that failed
    """
    log_data = {
        "error_id": error_id,
        "error_type": type(error).__name__,
        "error_message": str(error),
        "operation": operation,
    }
    if context:
        log_data.update(_sanitize(context))

    if isinstance(error, AccountServiceError):
        log_data["error_code"] = error.error_code.value
        log_data["error_category"] = error.category.value
        if error.category in (ErrorCategory.EXTERNAL, ErrorCategory.PERMANENT):
            logger.error(
                f"[{error.category.value}] Error {error_id}: {error.error_code.value} during {operation or 'operation'}",
                extra=log_data,
                exc_info=error
            )
        else:
            logger.info(
                f"[{error.category.value}] Error {error_id}: {error.error_code.value} during {operation or 'operation'}",
                extra=log_data
            )
        return

    log_data["traceback"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    logger.error(
        f"[INTERNAL] Error {error_id}: {type(error).__name__} during {operation or 'operation'}",
        extra=log_data
    )


def error_response_body(error: AccountServiceError, error_id: str) -> Dict[str, Any]:
    """Response payload for a structured error."""
    body = error.to_dict()
    # Wrapped library errors stay server-side
    body.pop("original_error", None)
    body["error_id"] = error_id
    return body


def handle_generic_error(
    error: Exception,
    user_message: str = "An internal error occurred. Please contact support.",
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    context: Optional[Dict[str, Any]] = None,
    operation: Optional[str] = None
) -> HTTPException:
    """
    Handle unexpected errors with a generic user-facing message.

    Args:
        error: The exception that occurred
        user_message: Generic message to show to user
        status_code: HTTP status code
        context: Additional context for server-side logging
        operation: Description of the operation that failed

    Returns:
        HTTPException with generic error message and tracking ID
    """
    error_id = generate_error_id()
    log_error_details(error_id=error_id, error=error, context=context, operation=operation)

    return HTTPException(
        status_code=status_code,
        detail={
            "error": "internal",
            "message": user_message,
            "error_id": error_id,
            "support_message": f"Please provide error ID {error_id} when contacting support."
        }
    )
