# =============================================================================
# hydraulics_core/services/validation_service.py
# Entity validation rules
# =============================================================================

from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import List, Optional

from hydraulics_core.config import CompletionSettings
from hydraulics_core.errors import DataValidationError, StatusTransitionError
from hydraulics_core.models import (
    Customer,
    ItemStatus,
    WorkOrder,
    WorkOrderItem,
    allowed_next,
    can_transition,
)
from hydraulics_core.services.base_service import BaseService
from hydraulics_core.utils import is_valid_phone

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
MAX_NOTE_LENGTH = 1000


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> str:
        return "\n".join(self.errors)

    def raise_if_invalid(self, field_name: Optional[str] = None) -> None:
        if self.errors:
            raise DataValidationError(self.errors[0], field=field_name, errors=list(self.errors))


class ValidationService(BaseService):
    """
    Checks entities before they are written.

    Usage:
        result = ValidationService().validate_customer(customer)
        if not result.is_valid:
            show(result.error_message)
    """

    def __init__(self, completion: Optional[CompletionSettings] = None):
        super().__init__()
        self.completion = completion or CompletionSettings()

    def validate_customer(self, customer: Customer) -> ValidationResult:
        result = ValidationResult()
        if not customer.name.strip():
            result.errors.append("Customer name is required")

        if not customer.phone_number.strip():
            result.errors.append("Customer phone number is required")
        elif not is_valid_phone(customer.phone_number):
            result.errors.append("Invalid phone number format")

        if customer.email and not EMAIL_PATTERN.match(customer.email.strip()):
            result.errors.append("Invalid email format")
        return result

    def validate_item(self, item: WorkOrderItem, index: int = 1) -> ValidationResult:
        result = ValidationResult()
        if not item.type.strip():
            result.errors.append(f"Item {index}: Type is required")
        if not item.reasons_for_service:
            result.errors.append(f"Item {index}: At least one reason for service is required")
        return result

    def validate_work_order(self, work_order: WorkOrder) -> ValidationResult:
        result = ValidationResult()
        if not work_order.work_order_number.strip():
            result.errors.append("Work order number is required")
        if not work_order.customer_name.strip():
            result.errors.append("Customer name is required")
        if not work_order.customer_phone.strip():
            result.errors.append("Customer phone number is required")

        if not work_order.items:
            result.errors.append("At least one item is required")
        for index, item in enumerate(work_order.items, start=1):
            result.errors.extend(self.validate_item(item, index).errors)

        if result.errors:
            self.logger.debug(
                f"Work order {work_order.id} failed validation: {result.error_message}"
            )
        return result

    def validate_note(self, text: str) -> ValidationResult:
        result = ValidationResult()
        stripped = (text or "").strip()
        if not stripped:
            result.errors.append("Note text cannot be empty")
        elif len(stripped) > MAX_NOTE_LENGTH:
            result.errors.append(f"Note text cannot exceed {MAX_NOTE_LENGTH} characters")
        return result

    def validate_completion(
        self,
        parts_used: Optional[str],
        hours_worked: Optional[str],
        cost: Optional[str],
    ) -> ValidationResult:
        """Details required before an item can be marked Complete."""
        result = ValidationResult()
        required = self.completion
        if required.parts_required and not (parts_used or "").strip():
            result.errors.append("Parts Used is required")
        if required.time_required and not (hours_worked or "").strip():
            result.errors.append("Hours Worked is required")
        if required.cost_required and not (cost or "").strip():
            result.errors.append("Cost is required")
        return result

    def check_status_transition(self, current: str, requested: str) -> ItemStatus:
        """
        Resolve and verify an item status change.

        Returns:
            The requested status as an ItemStatus

        Raises:
            StatusTransitionError: unknown status or transition not allowed
        """
        current_status = ItemStatus.parse(current) or ItemStatus.CHECKED_IN
        requested_status = ItemStatus.parse(requested)
        if requested_status is None:
            raise StatusTransitionError(
                f"Unknown status '{requested}'", current=current, requested=requested
            )
        if not can_transition(current_status, requested_status):
            allowed = ", ".join(s.value for s in allowed_next(current_status)) or "none"
            raise StatusTransitionError(
                f"Cannot change status from {current_status.value} to "
                f"{requested_status.value} (allowed: {allowed})",
                current=current_status.value,
                requested=requested_status.value,
            )
        return requested_status
