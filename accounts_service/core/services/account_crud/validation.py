"""
Account field validation.

Problems are accumulated and raised once as a ValidationFailedError so
clients see every rejected field in one round trip.
"""

import re
import logging
from typing import List, Optional

from accounts_service.app.models import AccountFields, CreateRelationshipRequest
from accounts_service.core.exceptions import ValidationFailedError
from accounts_service.core.services.account_store.base import AccountRepository

logger = logging.getLogger(__name__)

WEBSITE_PATTERN = re.compile(
    r'^(https?://)?(www\.)?[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.[a-zA-Z]{2,}$'
)
PHONE_PATTERN = re.compile(r'^[+]?[1-9]?[0-9]{7,15}$')
PHONE_FORMATTING_PATTERN = re.compile(r'[\s()\-]')

MAX_NAME_LENGTH = 255
MAX_ACCOUNT_NUMBER_LENGTH = 100
MAX_INDUSTRY_LENGTH = 100
MAX_WEBSITE_LENGTH = 255
MAX_PHONE_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 5000
MAX_EMPLOYEE_COUNT = 10_000_000


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(PHONE_FORMATTING_PATTERN.sub('', phone)))


class AccountValidator:
    """Format, length, range and uniqueness checks for account writes."""

    def __init__(self, repo: AccountRepository):
        self.repo = repo

    def collect_errors(
        self,
        tenant_id: str,
        fields: AccountFields,
        account_id: Optional[str] = None,
    ) -> List[str]:
        errors = []

        if not fields.name or not fields.name.strip():
            errors.append("Account name is required")
        elif len(fields.name) > MAX_NAME_LENGTH:
            errors.append(f"Account name cannot exceed {MAX_NAME_LENGTH} characters")

        if fields.account_number:
            if len(fields.account_number) > MAX_ACCOUNT_NUMBER_LENGTH:
                errors.append(f"Account number cannot exceed {MAX_ACCOUNT_NUMBER_LENGTH} characters")
            elif self.repo.exists_by_account_number(tenant_id, fields.account_number, exclude_id=account_id):
                errors.append(f"Account number {fields.account_number} already exists")

        if fields.industry and len(fields.industry) > MAX_INDUSTRY_LENGTH:
            errors.append(f"Industry cannot exceed {MAX_INDUSTRY_LENGTH} characters")

        if fields.website:
            if len(fields.website) > MAX_WEBSITE_LENGTH:
                errors.append(f"Website cannot exceed {MAX_WEBSITE_LENGTH} characters")
            elif not WEBSITE_PATTERN.match(fields.website):
                errors.append("Invalid website format")

        for label, value in (("Phone", fields.phone), ("Fax", fields.fax)):
            if not value:
                continue
            if len(value) > MAX_PHONE_LENGTH:
                errors.append(f"{label} cannot exceed {MAX_PHONE_LENGTH} characters")
            elif not is_valid_phone(value):
                errors.append(f"Invalid {label.lower()} format")

        if fields.description and len(fields.description) > MAX_DESCRIPTION_LENGTH:
            errors.append(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

        if fields.annual_revenue is not None and fields.annual_revenue < 0:
            errors.append("Annual revenue cannot be negative")

        if fields.employee_count is not None:
            if fields.employee_count < 0:
                errors.append("Employee count cannot be negative")
            elif fields.employee_count > MAX_EMPLOYEE_COUNT:
                errors.append("Employee count seems unrealistic")

        return errors

    def validate(self, tenant_id: str, fields: AccountFields, account_id: Optional[str] = None) -> None:
        """
        Raises:
            ValidationFailedError: listing every problem found
        """
        errors = self.collect_errors(tenant_id, fields, account_id)
        if errors:
            logger.info(
                f"Account validation rejected {len(errors)} field(s)",
                extra={"tenant_id": tenant_id, "account_id": account_id}
            )
            raise ValidationFailedError(errors, context={"tenant_id": tenant_id})

    def validate_relationship(self, request: CreateRelationshipRequest) -> None:
        errors = []
        if request.from_account_id == request.to_account_id:
            errors.append("An account cannot have a relationship with itself")
        if request.start_date and request.end_date and request.end_date < request.start_date:
            errors.append("Relationship end date cannot be before its start date")
        if errors:
            raise ValidationFailedError(errors)
