"""
Centralized logging configuration for the governance self-assessment service.

Records carry the context of the request being served (acting user,
department, assessment, period, operation) so a dashboard rebuild or a lock
can be traced from the log alone. Output is JSON by default; development
runs use a plain one-line format.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
import time
from collections.abc import Callable
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from types import TracebackType
from typing import Any, ParamSpec, TypeVar

from .exceptions import GovernanceAssessmentError

P = ParamSpec("P")
R = TypeVar("R")

ROOT_LOGGER_NAME = "govassess"
_CONTEXT_FIELDS = ("user", "department", "assessment_id", "period", "operation")

# Third-party loggers kept at WARNING so SQL echo and access lines stay quiet.
_QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, including any governance context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_entry.update(
            {field: getattr(record, field) for field in _CONTEXT_FIELDS if hasattr(record, field)}
        )

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """Copies the current context onto every record passing through a handler."""

    def __init__(self):
        super().__init__()
        self.context: dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        self.context.update(kwargs)

    def clear_context(self) -> None:
        self.context.clear()

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            setattr(record, key, value)
        return True


context_filter = ContextFilter()


def _handler_config(
    kind: str, level: str, formatter: str, log_file: str | None = None
) -> dict[str, Any]:
    if kind == "file":
        return {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "structured",
            "filters": ["context"],
            "filename": log_file,
            "maxBytes": 10 * 1024 * 1024,
            "backupCount": 5,
            "encoding": "utf-8",
        }
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["context"],
        "stream": "ext://sys.stdout",
    }


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Configure the ``govassess`` logger tree and the root logger.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional rotating log file; always JSON
        structured: JSON console output when True, one-line text otherwise
        enable_console: Whether to log to stdout

    Example:
        >>> setup_logging(level="DEBUG", log_file="./logs/govassess.log")
    """
    handlers: dict[str, dict[str, Any]] = {}
    if enable_console:
        handlers["console"] = _handler_config(
            "console", level, "structured" if structured else "standard"
        )
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers["file"] = _handler_config("file", level, "structured", log_file)
    names = list(handlers)

    loggers: dict[str, dict[str, Any]] = {
        ROOT_LOGGER_NAME: {"level": level, "handlers": names, "propagate": False}
    }
    for quiet in _QUIET_LOGGERS:
        loggers[quiet] = {"level": "WARNING", "handlers": names, "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structured": {"()": StructuredFormatter},
                "standard": {
                    "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "filters": {"context": {"()": lambda: context_filter}},
            "handlers": handlers,
            "loggers": loggers,
            "root": {"level": level, "handlers": names},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``govassess`` tree.

    Example:
        >>> get_logger("heatmap").name
        'govassess.heatmap'
    """
    prefix = f"{ROOT_LOGGER_NAME}."
    if name == ROOT_LOGGER_NAME or name.startswith(prefix):
        return logging.getLogger(name)
    return logging.getLogger(prefix + name)


def set_context(**kwargs: Any) -> None:
    """
    Set logging context variables.

    Example:
        >>> set_context(department="Finance", period="Q1 2024")
    """
    context_filter.set_context(**kwargs)


def clear_context() -> None:
    context_filter.clear_context()


class LogContext:
    """Adds context for the duration of a ``with`` block, then restores the previous context."""

    def __init__(self, **kwargs: Any):
        self.context: dict[str, Any] = kwargs
        self.previous_context: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self.previous_context = dict(context_filter.context)
        context_filter.set_context(**self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        context_filter.context = self.previous_context


def log_operation(
    operation: str, logger: logging.Logger | None = None
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Log start, outcome and duration of an application operation.

    Business-rule refusals (a locked assessment, a bad period label) are
    logged as warnings without a traceback; anything else is an error.

    Example:
        >>> @log_operation("lock_assessment")
        ... def lock_assessment(session, assessment_id: str):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            func_logger = logger or get_logger(func.__module__)

            with LogContext(operation=operation):
                func_logger.info("Starting %s", operation)
                started = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except GovernanceAssessmentError as e:
                    func_logger.warning("Refused %s: %s", operation, e.message)
                    raise
                except Exception as e:
                    func_logger.error("Failed %s: %s", operation, e, exc_info=True)
                    raise
                func_logger.info(
                    "Completed %s in %.3fs", operation, time.perf_counter() - started
                )
                return result

        return wrapper

    return decorator


def log_database_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Debug-level timing for repository calls, logged under ``govassess.database``.

    Example:
        >>> @log_database_operation("assessment.list")
        ... def list_assessments(session):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            db_logger = get_logger("database")

            with LogContext(operation=f"db_{operation}"):
                started = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    db_logger.error(
                        "Database operation %s failed after %.3fs: %s",
                        operation,
                        time.perf_counter() - started,
                        e,
                        exc_info=True,
                    )
                    raise
                db_logger.debug(
                    "Database operation %s took %.3fs", operation, time.perf_counter() - started
                )
                return result

        return wrapper

    return decorator


# Keyed by APP_ENVIRONMENT, the same variable ApplicationConfig reads.
ENVIRONMENT_PRESETS: dict[str, dict[str, Any]] = {
    "development": {
        "level": "DEBUG",
        "log_file": "./logs/development.log",
        "structured": False,
        "enable_console": True,
    },
    "production": {
        "level": "INFO",
        "log_file": "./logs/production.log",
        "structured": True,
        "enable_console": False,
    },
    "testing": {"level": "WARNING", "structured": False, "enable_console": False},
}


def auto_configure_logging(environment: str | None = None) -> str:
    """Apply the preset for ``environment`` (default: ``APP_ENVIRONMENT``) and return its name."""
    env = (environment or os.getenv("APP_ENVIRONMENT", "development")).lower()
    if env not in ENVIRONMENT_PRESETS:
        env = "development"
    setup_logging(**ENVIRONMENT_PRESETS[env])
    get_logger(__name__).info("Logging configured for %s environment", env)
    return env


if not logging.getLogger().handlers:
    auto_configure_logging()
