# =============================================================================
# hydraulics_core/errors/__init__.py
# Centralized Error Handling for the Work Order sync core
# =============================================================================

from .exceptions import (
    HydraulicsError,
    DataValidationError,
    DocumentDecodeError,
    StatusTransitionError,
    LocalStoreError,
    RemoteStoreError,
    NetworkUnavailableError,
    RemoteRejectedError,
    DocumentNotFoundError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    set_user_notifier,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "HydraulicsError",
    "DataValidationError",
    "DocumentDecodeError",
    "StatusTransitionError",
    "LocalStoreError",
    "RemoteStoreError",
    "NetworkUnavailableError",
    "RemoteRejectedError",
    "DocumentNotFoundError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "set_user_notifier",
    "ErrorContext",
]
