# =============================================================================
# hydraulics_core/services/base_service.py
# Shared plumbing for services: result type, logger, guarded calls
# =============================================================================

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from hydraulics_core.errors import HydraulicsError, handle_error
from hydraulics_core.logging import LogContext, get_logger


@dataclass
class ServiceResult:
    """
    Outcome of a service call that reports failure instead of raising.

    Truthy on success. `error_code` is a HydraulicsError code, a sync error
    kind, or "EXCEPTION" for anything unexpected.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    recoverable: bool = True
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Optional[Dict[str, Any]] = None) -> ServiceResult:
        return cls(success=True, data=data, metadata=metadata or {})

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ) -> ServiceResult:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            recoverable=recoverable,
            metadata=metadata or {},
        )

    @classmethod
    def from_exception(cls, e: Exception) -> ServiceResult:
        if isinstance(e, HydraulicsError):
            return cls.fail(
                e.message,
                error_code=e.code,
                metadata=dict(e.details),
                recoverable=e.recoverable,
            )
        return cls.fail(str(e), error_code="EXCEPTION")


class BaseService(ABC):
    """
    Base class for the sync core's services.

    Gives each service a logger named after its class and a way to run an
    operation that must not take the caller down with it.

    Usage:
        class CustomerService(BaseService):
            def refresh(self):
                with self.log_operation("Refreshing customers"):
                    ...

        result = service.safe_execute("Refreshing customers", service.refresh)
        if not result:
            show(result.error)
    """

    def __init__(self):
        self.logger = get_logger(f"hydraulics_core.{self.__class__.__name__}")

    def log_operation(self, operation: str) -> LogContext:
        """Timing/outcome log lines around a block."""
        return LogContext(self.logger, operation)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        **kwargs,
    ) -> ServiceResult:
        """
        Run func, converting any exception into a failed ServiceResult.

        HydraulicsErrors go through handle_error (logged, no user alert);
        anything else is logged with its traceback.
        """
        with self.log_operation(operation):
            try:
                return ServiceResult.ok(func(*args, **kwargs))
            except HydraulicsError as e:
                handle_error(e, show_user_message=False)
                return ServiceResult.from_exception(e)
            except Exception as e:
                self.logger.error(f"{operation} failed: {e}", exc_info=True)
                return ServiceResult.from_exception(e)
