# =============================================================================
# hydraulics_core/models/__init__.py
# Domain Models
# =============================================================================

from .entities import (
    Entity,
    WorkOrder,
    WorkOrderItem,
    StatusEntry,
    Note,
    Customer,
    User,
    UserRole,
    ENTITY_TYPES,
    entity_class_for,
    new_id,
)
from .status import ItemStatus, ALLOWED_TRANSITIONS, can_transition, allowed_next
from .dropdown_schema import (
    CURRENT_VERSION,
    MismatchSeverity,
    VersionMismatch,
    check_version,
)

__all__ = [
    # Entities
    "Entity",
    "WorkOrder",
    "WorkOrderItem",
    "StatusEntry",
    "Note",
    "Customer",
    "User",
    "UserRole",
    "ENTITY_TYPES",
    "entity_class_for",
    "new_id",
    # Item status lifecycle
    "ItemStatus",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "allowed_next",
    # Dropdown schema
    "CURRENT_VERSION",
    "MismatchSeverity",
    "VersionMismatch",
    "check_version",
]
