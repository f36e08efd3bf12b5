"""
Multi-Tenancy Validation

Tenant id checks applied at every service entry point.
"""

import re
import logging

from accounts_service.core.exceptions import InvalidTenantIdError

logger = logging.getLogger(__name__)

# Valid tenant id pattern: lowercase alphanumeric + underscore only, 3-50 chars
TENANT_ID_PATTERN = re.compile(r'^[a-z0-9_]{3,50}$')


def validate_tenant_id(tenant_id: str) -> str:
    """
    Validate tenant_id before it reaches storage.

    Args:
        tenant_id: Tenant identifier to validate

    Returns:
        Validated tenant_id

    Raises:
        InvalidTenantIdError: If tenant_id format is invalid
    """
    if not tenant_id or not TENANT_ID_PATTERN.match(tenant_id):
        logger.warning(f"Invalid tenant_id format rejected: {tenant_id[:50] if tenant_id else 'None'}")
        raise InvalidTenantIdError(tenant_id)
    return tenant_id
