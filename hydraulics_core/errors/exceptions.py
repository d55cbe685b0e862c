# =============================================================================
# hydraulics_core/errors/exceptions.py
# Exception hierarchy for the Work Order sync core
# =============================================================================

from typing import Any, Dict, Optional


def _merge_details(details: Optional[Dict[str, Any]], **fields: Any) -> Dict[str, Any]:
    """Caller-supplied details plus the non-empty context fields."""
    merged = dict(details or {})
    merged.update({key: value for key, value in fields.items() if value})
    return merged


class HydraulicsError(Exception):
    """
    Base exception for the sync core.

    Attributes:
        message: Text safe to show a user
        code: Stable machine-readable code, e.g. "STORE_001"
        details: Context for logs (collection, document id, ...)
        recoverable: False when the app cannot carry on normally
    """

    CODE = "HYD_000"
    RECOVERABLE = True

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.CODE
        self.details = details or {}
        self.recoverable = self.RECOVERABLE if recoverable is None else recoverable

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.code}] {self.message}"
        return f"[{self.code}] {self.message} | Details: {self.details}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# ENTITY / DOMAIN
# =============================================================================

class DataValidationError(HydraulicsError):
    """An entity failed validation; `errors` lists every failed rule."""

    CODE = "DATA_001"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_merge_details(details, field=field, errors=errors),
            **kwargs,
        )


class DocumentDecodeError(HydraulicsError):
    """A stored document could not be turned into an entity."""

    CODE = "DATA_004"

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        document_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_merge_details(details, collection=collection, document_id=document_id),
            **kwargs,
        )


class StatusTransitionError(HydraulicsError):
    """An item status change is not allowed from the current status."""

    CODE = "STATUS_001"

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        requested: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_merge_details(details, current=current, requested=requested),
            **kwargs,
        )


# =============================================================================
# LOCAL JOURNAL
# =============================================================================

class LocalStoreError(HydraulicsError):
    """The local mutation journal could not be written or read."""

    CODE = "STORE_001"
    RECOVERABLE = False

    def __init__(
        self,
        message: str = "Unable to save changes locally",
        operation: Optional[str] = None,
        db_path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_merge_details(details, operation=operation, db_path=db_path),
            **kwargs,
        )


# =============================================================================
# REMOTE STORE
# =============================================================================

class RemoteStoreError(HydraulicsError):
    """A remote document store call failed for an unclassified reason."""

    CODE = "REMOTE_000"

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        document_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_merge_details(details, collection=collection, document_id=document_id),
            **kwargs,
        )


class NetworkUnavailableError(RemoteStoreError):
    """The remote store could not be reached."""

    CODE = "REMOTE_001"


class RemoteRejectedError(RemoteStoreError):
    """The remote store refused the write (permissions, schema, constraints)."""

    CODE = "REMOTE_002"


class DocumentNotFoundError(RemoteStoreError):
    """The addressed document does not exist remotely."""

    CODE = "REMOTE_404"


# =============================================================================
# CONFIGURATION
# =============================================================================

class ConfigurationError(HydraulicsError):
    """Settings are missing or invalid."""

    CODE = "CONFIG_001"
    RECOVERABLE = False

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            details=_merge_details(details, config_key=config_key, expected_type=expected_type),
            **kwargs,
        )
