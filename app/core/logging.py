"""
app/core/logging.py

Purpose: Logging configuration

- Standardizes log format
- Controls log levels
- Structured logging for easy parsing in production
- Context tracking (user_id, action, update_id)
"""

import logging
import sys
import json
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from app.core.config import settings, Settings


CONTEXT_FIELDS = ("user_id", "update_id", "action", "transaction_id")

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})


class ContextFilter(logging.Filter):
    """
    Copies the active LogContext fields onto each record. Values passed
    explicitly through `extra` win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class StructuredFormatter(logging.Formatter):
    """
    Custom formatter for structured JSON logging in production.
    Makes logs easily parseable by monitoring tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development environment.
    """

    def format(self, record: logging.LogRecord) -> str:
        colors = {
            "DEBUG": "\033[36m",      # Cyan
            "INFO": "\033[32m",       # Green
            "WARNING": "\033[33m",    # Yellow
            "ERROR": "\033[31m",      # Red
            "CRITICAL": "\033[35m",   # Magenta
        }
        reset = "\033[0m"

        color = colors.get(record.levelname, reset)
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        message = f"{color}[{timestamp}] {record.levelname:<8}{reset} {record.name}: {record.getMessage()}"

        context_parts = [
            f"{field}={getattr(record, field)}"
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        ]

        if context_parts:
            message += f" [{', '.join(context_parts)}]"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


def setup_logging(config: Optional[Settings] = None):
    """
    Configures application-wide logging with appropriate formatters.
    Uses JSON format in production, human-readable in development.
    """
    config = config or settings
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)

    if config.is_production:
        formatter = StructuredFormatter()
    else:
        formatter = DevelopmentFormatter()

    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("motor").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = logging.getLogger("nexusshop")
    logger.info(
        "Logging configured",
        extra={
            "environment": config.ENVIRONMENT,
            "log_level": config.LOG_LEVEL,
            "debug_mode": config.DEBUG
        }
    )

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(f"nexusshop.{name}")


class LogContext:
    """
    Context manager for adding structured context to logs.

    The context is held in a ContextVar, so concurrent updates handled
    on the same event loop do not see each other's fields.

    Usage:
        with LogContext(user_id="123", action="purchase"):
            logger.info("Processing purchase")
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        self._token = _log_context.set({**_log_context.get(), **self.context})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _log_context.reset(self._token)
