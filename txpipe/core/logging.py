"""Logging configuration with structlog."""

import logging
import sys
from dataclasses import dataclass
from typing import Any

import structlog

from txpipe.core.settings import Settings, get_settings
from txpipe.core.transaction import TransactionContext

# stdlib logger name used for request and response lines
HTTP_LOGGER_NAME = "txpipe.http"

# Reports sink failures without going back through the sink that failed
fallback_logger = logging.getLogger("txpipe.fallback")


@dataclass(frozen=True)
class LogEntry:
    """A log line and the level it should be emitted at."""

    message: str
    level: int = logging.INFO


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structured logging."""
    if settings is None:
        settings = get_settings()
    service_name = settings.service_name
    app_env = settings.app_env

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            # Custom processor to add service name and environment
            lambda logger, method_name, event_dict: {
                **event_dict,
                "service": service_name,
                "env": app_env,
            },
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_with_context(
    logger: structlog.stdlib.BoundLogger, **context: Any
) -> structlog.stdlib.BoundLogger:
    """Add context to logger."""
    return logger.bind(**context)


def effective_level(level: int, transid: TransactionContext) -> int:
    """Level a transaction's entry is emitted at.

    Transactions with extra logging enabled are lifted to the configured level
    of the HTTP logger so their entries are not filtered out.
    """
    if not transid.extra_logging:
        return level
    return max(level, logging.getLogger(HTTP_LOGGER_NAME).getEffectiveLevel())


def emit_log_entry(entry: LogEntry | None, transid: TransactionContext) -> None:
    """Hand an entry to the log sink. Sink failures never reach the caller."""
    if entry is None:
        return
    try:
        context: dict[str, Any] = {"transaction_id": transid.id}
        if transid.extra_logging:
            context["extra_logging"] = True
        logger = log_with_context(get_logger(HTTP_LOGGER_NAME), **context)
        logger.log(effective_level(entry.level, transid), entry.message)
    except Exception:
        fallback_logger.warning("Failed to emit log entry for %s", transid, exc_info=True)
