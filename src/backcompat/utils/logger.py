"""
Structured logging utility for backcompat.

Provides JSON-formatted log lines on stderr with credential redaction for
HTTP headers, context injection, and operation timing. Human-facing command
output goes to stdout and never through this module.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

LOG_LEVEL_ENV = "BACKCOMP_LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}

ROOT_LOGGER_NAME = "backcompat"

SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "cookie", "set-cookie"}


def redact_header_value(name: str, value: str) -> str:
    """
    Mask credential-bearing header values before they reach logs.

    Keeps the auth scheme (first word) of Authorization headers so logs still
    show *how* a request authenticated.

    Args:
        name: Header name (any case)
        value: Raw header value

    Returns:
        Value safe to log

    Example:
        >>> redact_header_value("Authorization", "Bearer abc.def")
        "Bearer ***"
        >>> redact_header_value("Accept", "text/html")
        "text/html"
    """
    if name.lower() not in SENSITIVE_HEADERS:
        return value
    if not value:
        return value

    scheme, _, credentials = value.partition(" ")
    if credentials and name.lower().endswith("authorization"):
        return f"{scheme} ***"
    return "***"


def get_log_level() -> str:
    """Return the configured log level, falling back to WARNING when unset or invalid."""
    level = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper()
    if level not in VALID_LOG_LEVELS:
        return DEFAULT_LOG_LEVEL
    return level


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure the package logger once at CLI startup.

    Args:
        level: Explicit level name; defaults to BACKCOMP_LOG_LEVEL or WARNING
    """
    resolved = (level or get_log_level()).upper()
    if resolved not in VALID_LOG_LEVELS:
        resolved = DEFAULT_LOG_LEVEL

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(resolved)

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)
    package_logger.propagate = False


class StructuredLogger:
    """
    JSON-formatted logger with context injection and operation timing.

    Level and handlers are owned by the `backcompat` package logger (see
    configure_logging); this class only shapes the records.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__ from calling module)
        """
        self.logger = logging.getLogger(name)

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Human-readable message
            operation: Operation name (e.g., "replay", "save_fixture")
            context: Context dict with fixture, host, version, etc.
            duration_ms: Operation duration in milliseconds
            error: Error message if applicable

        Returns:
            JSON-formatted log string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }

        if operation:
            log_entry["operation"] = operation

        if context:
            log_entry["context"] = context

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)

        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log debug message."""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_log("DEBUG", message, operation, context))

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log info message."""
        if self.logger.isEnabledFor(logging.INFO):
            self.logger.info(self._format_log("INFO", message, operation, context, duration_ms))

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        log_json = self._format_log("WARNING", message, operation, context, error=error)
        self.logger.warning(log_json)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        log_json = self._format_log("ERROR", message, operation, context, duration_ms, error)
        self.logger.error(log_json)


def log_operation(operation_name: str):
    """
    Decorator to automatically log operation start, duration, and completion.

    Usage:
        @log_operation("import_har")
        def import_har_file(path, out_dir):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(func.__module__)

            context: Dict[str, Any] = {"function": func.__name__}
            if args:
                context["arg_count"] = len(args)

            logger.debug(f"Starting {operation_name}", operation=operation_name, context=context)

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Completed {operation_name}",
                    operation=operation_name,
                    context=context,
                    duration_ms=duration_ms,
                )
                return result
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=duration_ms,
                )
                raise

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    """
    Factory function to get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
