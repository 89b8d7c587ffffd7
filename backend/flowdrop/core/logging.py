"""Structured logging configuration for the FlowDrop engine.

This module provides the logging setup shared by the compiler, the
orchestrators and the queue workers:
- JSON structured logging for production environments
- Colored console output for development
- Rotating file handler (10MB max, 5 backups)
- Redaction of credentials that processors may echo into messages
- Scoped structured context (pipeline id, job id, node id)

Components log structured context through ``extra={"context": {...}}``::

    logger.info(
        "Job completed",
        extra={"context": {"pipeline_id": str(pipeline.id), "job_id": str(job.id)}},
    )
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, ClassVar

from flowdrop import __version__
from flowdrop.core.config import settings


class SensitiveDataFilter(logging.Filter):
    """Filter to prevent credentials from appearing in logs.

    Node configs routinely carry API keys and tokens for the services a
    processor talks to, and error messages raised by processors may repeat
    them. This filter redacts ``key: value`` and ``key=value`` pairs for
    known sensitive keys before a record reaches any handler.

    Examples:
        >>> logger = logging.getLogger("flowdrop")
        >>> logger.addFilter(SensitiveDataFilter())
        >>> logger.info("Calling provider with api_key=sk-123")
        # Logs: "Calling provider with api_key: [REDACTED]"
    """

    SENSITIVE_PATTERNS: ClassVar[list[str]] = [
        "password",
        "passwd",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "bearer",
        "credential",
    ]

    _REGEXES: ClassVar[list[tuple[str, re.Pattern[str]]]] = [
        (pattern, re.compile(rf"{pattern}[:=]\s*[\"']?[^\s\"']+", re.IGNORECASE))
        for pattern in SENSITIVE_PATTERNS
    ]
    _BEARER_REGEX: ClassVar[re.Pattern[str]] = re.compile(
        r"bearer\s+(?!\[REDACTED\])[^\s\"']+", re.IGNORECASE
    )

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact sensitive data from the record message and args.

        Args:
            record: Log record to filter

        Returns:
            True (always allows the record, but redacts sensitive data)
        """
        record.msg = self.redact(str(record.msg))

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True

    @classmethod
    def redact(cls, text: str) -> str:
        """Redact sensitive key/value pairs from text.

        Args:
            text: Text to redact

        Returns:
            Text with sensitive values replaced by ``[REDACTED]``
        """
        text = cls._BEARER_REGEX.sub("Bearer [REDACTED]", text)
        for pattern, regex in cls._REGEXES:
            text = regex.sub(f"{pattern}: [REDACTED]", text)
        return text


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Pipeline, job and node ids found in the context are also copied to the
    top level so that log search can filter one run without parsing
    ``context``.

    Format:
        {
            "timestamp": "2025-01-12T10:30:45.123Z",
            "level": "INFO",
            "logger": "flowdrop.services.workflow.orchestrators.asynchronous",
            "message": "Job completed",
            "service": "FlowDrop Engine",
            "version": "0.1.0",
            "pipeline_id": "...",
            "job_id": "...",
            "context": {"pipeline_id": "...", "job_id": "...", "node_id": "b"}
        }
    """

    CORRELATION_KEYS: ClassVar[tuple[str, ...]] = ("pipeline_id", "job_id", "node_id")

    def __init__(
        self,
        service_name: str = "FlowDrop Engine",
        service_version: str = __version__,
    ) -> None:
        """Initialize JSON formatter.

        Args:
            service_name: Name of the service
            service_version: Version of the service
        """
        super().__init__()
        self.service_name = service_name
        self.service_version = service_version

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "version": self.service_version,
        }

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            for key in self.CORRELATION_KEYS:
                if context.get(key) is not None:
                    log_entry[key] = context[key]
        if context is not None:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # Source location only for ERROR and above
        if record.levelno >= logging.ERROR:
            log_entry["source"] = {
                "function": record.funcName,
                "line": record.lineno,
                "file": record.pathname,
                "process": record.process,
                "thread": record.thread,
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development environments.

    Colors:
        DEBUG: Cyan
        INFO: Green
        WARNING: Yellow
        ERROR: Red
        CRITICAL: Red background
    """

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[41m",
    }
    RESET: ClassVar[str] = "\033[0m"

    def __init__(self) -> None:
        """Initialize colored console formatter."""
        super().__init__(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors and inline context.

        Args:
            record: Log record to format

        Returns:
            Colored log string
        """
        # Work on a copy: the file handler formats the same record
        colored = logging.makeLogRecord(record.__dict__)
        log_color = self.COLORS.get(record.levelname, self.RESET)
        colored.levelname = f"{log_color}{record.levelname}{self.RESET}"

        context = getattr(record, "context", None)
        if context:
            colored.msg = f"{record.getMessage()} | Context: {json.dumps(context, default=str)}"
            colored.args = None

        return super().format(colored)


def _file_handler(path: Path, service_name: str, enable_json: bool) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    if enable_json:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    else:
        handler.setFormatter(logging.Formatter(settings.LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _console_handler(level: int, service_name: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    # Colored output in development, JSON in production
    if settings.DEBUG:
        handler.setFormatter(ColoredConsoleFormatter())
    else:
        handler.setFormatter(JSONFormatter(service_name=service_name))
    return handler


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
    service_name: str = "FlowDrop Engine",
    enable_json: bool = True,
    enable_console: bool = True,
    enable_file: bool = True,
) -> logging.Logger:
    """Configure application logging with structured handlers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to settings.LOG_LEVEL
        log_file: Path to log file. Defaults to logs/flowdrop.log
        service_name: Name of the service for log metadata
        enable_json: Enable JSON formatting for file handler
        enable_console: Enable console output handler
        enable_file: Enable the rotating file handler

    Returns:
        Configured root logger instance

    Examples:
        >>> logger = setup_logging(log_level="INFO")
        >>> logger.info("Worker pool started", extra={"context": {"workers": 4}})
    """
    if log_level is None:
        log_level = settings.LOG_LEVEL
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Workers and the API may both call this; replace rather than stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    log_file_path: Path | None = None
    if enable_file:
        log_file_path = Path(log_file) if log_file else Path("logs") / "flowdrop.log"
        handlers.append(_file_handler(log_file_path, service_name, enable_json))
    if enable_console:
        handlers.append(_console_handler(level, service_name))

    sensitive_filter = SensitiveDataFilter() if settings.LOG_SENSITIVE_FILTER else None
    for handler in handlers:
        if sensitive_filter:
            handler.addFilter(sensitive_filter)
        logger.addHandler(handler)

    logger.info(
        f"Logging initialized - Level: {log_level}, File: {log_file_path}",
        extra={
            "context": {
                "log_level": log_level,
                "log_file": str(log_file_path) if log_file_path else None,
                "service": service_name,
            }
        },
    )

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Logger instance

    Examples:
        >>> from flowdrop.core.logging import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Compiling workflow")
    """
    return logging.getLogger(name)


class LogContext:
    """Context helper for adding structured context to log records.

    Examples:
        >>> logger = get_logger(__name__)
        >>> with LogContext(logger, pipeline_id="123", job_id="456"):
        ...     logger.info("Executing job")
        # Logs "Executing job" with context {pipeline_id: "123", job_id: "456"}
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        """Initialize log context.

        Args:
            logger: Logger instance to add context to
            **context: Key-value pairs to add to log context
        """
        self.logger = logger
        self.context = context
        self.old_factory = logging.getLogRecordFactory()

    def __enter__(self) -> None:
        """Enter context and install a record factory carrying the context."""

        def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = self.old_factory(*args, **kwargs)
            if not hasattr(record, "context"):
                record.context = self.context.copy()
            else:
                record.context = {**record.context, **self.context}
            return record

        logging.setLogRecordFactory(record_factory)

    def __exit__(self, *args: Any) -> None:
        """Exit context and restore old factory."""
        logging.setLogRecordFactory(self.old_factory)


__all__ = [
    "ColoredConsoleFormatter",
    "JSONFormatter",
    "LogContext",
    "SensitiveDataFilter",
    "get_logger",
    "setup_logging",
]
