"""Unit tests for logging functionality."""

import logging
from typing import Any
from unittest.mock import patch

import structlog

from txpipe.core.logging import (
    HTTP_LOGGER_NAME,
    LogEntry,
    effective_level,
    emit_log_entry,
    get_logger,
    setup_logging,
)
from txpipe.core.settings import Settings
from txpipe.core.transaction import TransactionContext


class TestLoggingSetup:
    """Test logging setup functionality."""

    def test_setup_logging_configures_structlog(self) -> None:
        """Test that setup_logging configures structlog correctly."""
        structlog.reset_defaults()

        setup_logging(Settings(app_env="test"))

        assert structlog.is_configured()

    def test_setup_logging_configures_standard_logging(self) -> None:
        """Test that setup_logging configures standard library logging."""
        setup_logging(Settings(app_env="test"))

        root_logger = logging.getLogger()
        assert root_logger.handlers

    def test_get_logger_returns_logger(self) -> None:
        """Test that get_logger returns a logger instance."""
        setup_logging(Settings(app_env="test"))

        logger = get_logger("test_logger")
        assert hasattr(logger, "info")

    def test_service_and_env_included_in_logs(self) -> None:
        """Test that the configured service name and environment are added to every entry."""
        setup_logging(Settings(app_env="test", service_name="orders"))

        captured_logs = []

        def capture_log(logger: Any, method_name: str, event_dict: dict) -> dict:
            captured_logs.append(event_dict)
            return event_dict

        processors = structlog.get_config()["processors"]
        processors.insert(-1, capture_log)  # Insert before JSONRenderer

        try:
            logging.getLogger("test").setLevel(logging.INFO)
            get_logger("test").info("Test message")

            assert len(captured_logs) == 1
            assert captured_logs[0]["service"] == "orders"
            assert captured_logs[0]["env"] == "test"
            assert captured_logs[0]["event"] == "Test message"
        finally:
            structlog.reset_defaults()


class TestEmitLogEntry:
    """Test emission of pipeline log entries."""

    @patch("txpipe.core.logging.get_logger")
    def test_emits_with_transaction_context(self, mock_get_logger: Any) -> None:
        """Test that entries are bound to their transaction."""
        transid = TransactionContext(id="tx42")

        emit_log_entry(LogEntry("[#tid_tx42] GET / ", logging.INFO), transid)

        mock_get_logger.assert_called_once_with(HTTP_LOGGER_NAME)
        mock_get_logger.return_value.bind.assert_called_once_with(transaction_id="tx42")
        mock_get_logger.return_value.bind.return_value.log.assert_called_once_with(
            logging.INFO, "[#tid_tx42] GET / "
        )

    @patch("txpipe.core.logging.get_logger")
    def test_none_entry_is_skipped(self, mock_get_logger: Any) -> None:
        """Test that a missing entry emits nothing."""
        emit_log_entry(None, TransactionContext())

        mock_get_logger.assert_not_called()

    @patch("txpipe.core.logging.get_logger", side_effect=RuntimeError("sink down"))
    def test_sink_failure_is_contained(self, mock_get_logger: Any) -> None:
        """Test that a failing sink does not raise."""
        emit_log_entry(LogEntry("message"), TransactionContext())

    @patch("txpipe.core.logging.get_logger")
    def test_extra_logging_lifts_level(self, mock_get_logger: Any) -> None:
        """Test that extra logging raises entries to the configured level."""
        http_logger = logging.getLogger(HTTP_LOGGER_NAME)
        previous = http_logger.level
        http_logger.setLevel(logging.WARNING)
        try:
            transid = TransactionContext(id="tx7", extra_logging=True)

            emit_log_entry(LogEntry("quiet", logging.DEBUG), transid)

            mock_get_logger.return_value.bind.assert_called_once_with(
                transaction_id="tx7", extra_logging=True
            )
            mock_get_logger.return_value.bind.return_value.log.assert_called_once_with(
                logging.WARNING, "quiet"
            )
        finally:
            http_logger.setLevel(previous)


def test_effective_level_without_extra_logging() -> None:
    """Test that ordinary transactions keep the entry level."""
    assert effective_level(logging.DEBUG, TransactionContext()) == logging.DEBUG
