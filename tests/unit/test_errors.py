# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for the error hierarchy, handlers and logging helpers
# =============================================================================

import logging

import pytest

from hydraulics_core.errors import (
    ErrorContext,
    LocalStoreError,
    NetworkUnavailableError,
    handle_error,
    safe_execute,
    set_user_notifier,
)
from hydraulics_core.logging import LogContext, setup_logging


@pytest.fixture
def notifications():
    received = []
    set_user_notifier(lambda text, payload: received.append((text, payload)))
    yield received
    set_user_notifier(None)


class TestExceptions:
    def test_str_includes_code_and_details(self):
        error = NetworkUnavailableError("remote down", collection="customers")

        assert str(error).startswith("[REMOTE_001] remote down")
        assert error.to_dict()["details"] == {"collection": "customers"}

    def test_local_store_error_is_not_recoverable(self):
        error = LocalStoreError(operation="enqueue")

        assert error.recoverable is False
        assert error.code == "STORE_001"


class TestHandlers:
    """User notification and safe execution"""

    def test_handle_error_notifies_user(self, notifications):
        handle_error(NetworkUnavailableError("remote down"), log_error=False)

        text, payload = notifications[0]
        assert text == "Error: remote down"
        assert payload["code"] == "REMOTE_001"

    def test_critical_errors_ask_for_support(self, notifications):
        handle_error(LocalStoreError(), log_error=False)

        assert notifications[0][0].startswith("Critical Error: Unable to save changes locally")

    def test_safe_execute_returns_default(self, notifications):
        def boom():
            raise ValueError("bad")

        assert safe_execute(boom, default=0, error_message="Refresh failed") == 0
        assert notifications[0][0] == "Error: Refresh failed"

    def test_safe_execute_reraises_when_asked(self):
        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            safe_execute(boom, reraise=True)

    def test_error_context_suppresses_recoverable(self, notifications):
        with ErrorContext("Refreshing customers"):
            raise RuntimeError("boom")

        assert notifications[0][0] == "Error: Error during: Refreshing customers"

    def test_error_context_propagates_unrecoverable(self):
        with pytest.raises(LocalStoreError):
            with ErrorContext("Starting sync services", recoverable=False):
                raise LocalStoreError()


class TestLogging:
    def test_setup_logging_accepts_level_names(self, tmp_path):
        setup_logging("debug", log_to_file=True, log_dir=tmp_path, log_filename="sync.log")

        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        assert (tmp_path / "sync.log").exists()

        setup_logging(logging.WARNING, log_to_file=False)

    def test_log_context_logs_failure(self, caplog):
        logger = logging.getLogger("hydraulics_core.test")

        with caplog.at_level(logging.INFO, logger="hydraulics_core.test"):
            with pytest.raises(ValueError):
                with LogContext(logger, "Replaying"):
                    raise ValueError("bad")

        assert "Replaying... started" in caplog.text
        assert "Replaying... failed" in caplog.text
