# =============================================================================
# hydraulics_core/services/__init__.py
# Service Layer
# =============================================================================

from .base_service import ServiceResult, BaseService
from .validation_service import ValidationService, ValidationResult

__all__ = [
    "ServiceResult",
    "BaseService",
    "ValidationService",
    "ValidationResult",
]
