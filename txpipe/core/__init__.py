"""Core pipeline functionality."""

from .logging import LogEntry, emit_log_entry, get_logger, setup_logging
from .metrics import MetricEmitter, MetricToken, get_metric_emitter, http_token
from .settings import Settings, TlsConfig, get_settings
from .transaction import EXTRA_LOGGING_HEADER, TransactionContext, allocate_transaction

__all__ = [
    "Settings",
    "TlsConfig",
    "get_settings",
    "setup_logging",
    "get_logger",
    "LogEntry",
    "emit_log_entry",
    "MetricEmitter",
    "get_metric_emitter",
    "MetricToken",
    "http_token",
    "EXTRA_LOGGING_HEADER",
    "TransactionContext",
    "allocate_transaction",
]
