# =============================================================================
# hydraulics_core/errors/handlers.py
# Error reporting for the sync core: log, then tell the user if someone listens
# =============================================================================

from __future__ import annotations
import traceback
from typing import Any, Callable, Dict, Optional, TypeVar

from hydraulics_core.logging import get_logger
from .exceptions import HydraulicsError

logger = get_logger(__name__)

T = TypeVar("T")

# (display text, error payload). The UI registers one to show alerts/banners.
UserNotifier = Callable[[str, Dict[str, Any]], None]

_user_notifier: Optional[UserNotifier] = None


def set_user_notifier(notifier: Optional[UserNotifier]) -> None:
    """Register the callable that surfaces errors to the user (None detaches it)."""
    global _user_notifier
    _user_notifier = notifier


def _describe(error: Exception, user_message: Optional[str]) -> Dict[str, Any]:
    if isinstance(error, HydraulicsError):
        return {
            "code": error.code,
            "message": user_message or error.message,
            "details": error.details,
            "recoverable": error.recoverable,
        }
    return {
        "code": "UNKNOWN",
        "message": user_message or str(error),
        "details": {"traceback": traceback.format_exc()},
        "recoverable": True,
    }


def _notify_user(payload: Dict[str, Any]) -> None:
    if _user_notifier is None:
        return
    if payload["recoverable"]:
        text = f"Error: {payload['message']}"
    else:
        text = f"Critical Error: {payload['message']}. Please contact support."
    try:
        _user_notifier(text, payload)
    except Exception as e:
        logger.error(f"Error in user notifier: {e}")


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Report an error: log it and, unless told not to, pass it to the notifier.

    Args:
        error: The exception
        show_user_message: Forward to the registered user notifier
        log_error: Write an ERROR log line with the traceback
        user_message: Text to show instead of the exception message
    """
    payload = _describe(error, user_message)

    if log_error:
        logger.error(
            f"[{payload['code']}] {payload['message']}",
            extra={"details": payload["details"]},
            exc_info=error,
        )

    if show_user_message:
        _notify_user(payload)


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Call func; on error report it and return default (or re-raise).

    Usage:
        merged = safe_execute(
            services.customers.refresh,
            default=None,
            error_message="Could not refresh customers",
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Report any error raised in the block; swallow it only when recoverable.

    Usage:
        with ErrorContext("Starting sync services", recoverable=False):
            services.start()
    """

    def __init__(self, operation: str, recoverable: bool = True):
        self.operation = operation
        self.recoverable = recoverable

    def __enter__(self) -> ErrorContext:
        logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.info(f"Completed: {self.operation}")
            return False

        if isinstance(exc_val, HydraulicsError):
            handle_error(exc_val)
        else:
            handle_error(exc_val, user_message=f"Error during: {self.operation}")
        return self.recoverable
