"""
Core Logging System

Structured logging for the API process and the pipeline worker:
- JSON-formatted logs for production
- Pretty console output for development
- Correlation id for HTTP requests, video id for background jobs
- Integration with the exception system
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from streamvault.core.config import settings

# =============================================================================
# Context Variables
# =============================================================================

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Context attached to every log line emitted inside a pipeline job
extra_context_var: ContextVar[dict[str, Any]] = ContextVar("extra_context", default={})


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    """Get the correlation ID for the current context."""
    return correlation_id_var.get()


@contextmanager
def bind_context(**values: Any) -> Iterator[None]:
    """
    Attach key/value pairs to every log record emitted inside the block.

    Example:
        with bind_context(video_id=video_id, job="pipeline"):
            logger.info("Transcode started")
    """
    merged = {**extra_context_var.get(), **values}
    token = extra_context_var.set(merged)
    try:
        yield
    finally:
        extra_context_var.reset(token)


def clear_context() -> None:
    """Clear all context variables."""
    correlation_id_var.set(None)
    extra_context_var.set({})


# =============================================================================
# Formatters
# =============================================================================

class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    {"timestamp": "...", "level": "INFO", "module": "...", "message": "...", "context": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
        }

        correlation_id = correlation_id_var.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        extra_context = extra_context_var.get()
        if extra_context:
            log_data["context"] = extra_context

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": self.formatException(record.exc_info),
            }

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        return json.dumps(log_data, default=str)


class PrettyFormatter(logging.Formatter):
    """Human-readable, colorized formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        parts = [
            f"{self.DIM}{timestamp}{self.RESET}",
            f"{color}{self.BOLD}{record.levelname:8}{self.RESET}",
            f"{self.DIM}[{record.name}]{self.RESET}",
        ]

        correlation_id = correlation_id_var.get()
        if correlation_id:
            parts.append(f"{self.DIM}(req:{correlation_id[:8]}){self.RESET}")

        video_id = extra_context_var.get().get("video_id")
        if video_id:
            parts.append(f"{self.DIM}(video:{str(video_id)[:8]}){self.RESET}")

        parts.append(record.getMessage())
        result = " ".join(parts)

        if record.exc_info:
            result += f"\n{color}{self.formatException(record.exc_info)}{self.RESET}"

        if hasattr(record, "extra_data") and record.extra_data:
            result += f"\n{self.DIM}  └─ {record.extra_data}{self.RESET}"

        return result


# =============================================================================
# Logger Factory
# =============================================================================

def get_log_level() -> int:
    """Get the configured log level."""
    level_name = getattr(settings, "LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def get_log_format() -> str:
    """Get the configured log format (json or pretty)."""
    return getattr(settings, "LOG_FORMAT", "json").lower()


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.info("Variant encoded", extra={"extra_data": {"label": "720p"}})
    """
    logger = logging.getLogger(name or "streamvault")

    if not logger.handlers:
        logger.setLevel(get_log_level())

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(get_log_level())

        if get_log_format() == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(PrettyFormatter())

        logger.addHandler(handler)
        # Keep propagation on so pytest's caplog and root handlers still see records
        logger.propagate = True

    return logger


# =============================================================================
# Helper Functions for Exception Logging
# =============================================================================

def log_exception(
    logger: logging.Logger,
    exception: Exception,
    extra_context: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log an exception with full context.

    Application exceptions below 500 are logged as warnings without a
    traceback; everything else is logged as an error with one.
    """
    from streamvault.core.exceptions import BaseAppException

    if isinstance(exception, BaseAppException):
        log_data = exception.to_dict(include_debug=True)
        log_data["exception_type"] = exception.__class__.__name__
        log_data["http_status_code"] = exception.http_status_code
    else:
        log_data = {
            "exception_type": exception.__class__.__name__,
            "message": str(exception),
        }

    if extra_context:
        log_data["context"] = extra_context

    if isinstance(exception, BaseAppException):
        if exception.http_status_code >= 500:
            logger.error(
                f"{exception.__class__.__name__}: {exception.message}",
                exc_info=exception,
                extra={"extra_data": log_data},
            )
        else:
            logger.warning(
                f"{exception.__class__.__name__}: {exception.message}",
                extra={"extra_data": log_data},
            )
    else:
        logger.error(
            f"Unexpected error: {exception}",
            exc_info=exception,
            extra={"extra_data": log_data},
        )


def log_business_error(
    logger: logging.Logger,
    error_code: str,
    message: str,
    metadata: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log a handled business error without raising.

    Example:
        log_business_error(logger, "SCAN_FAILED", "Moderation scan timed out", {"video_id": vid})
    """
    log_data: dict[str, Any] = {"error_code": error_code, "message": message}
    if metadata:
        log_data["metadata"] = metadata

    logger.warning(
        f"Business error [{error_code}]: {message}",
        extra={"extra_data": log_data},
    )


__all__ = [
    "get_logger",
    "log_exception",
    "log_business_error",
    "set_correlation_id",
    "get_correlation_id",
    "bind_context",
    "clear_context",
    "correlation_id_var",
    "extra_context_var",
]
