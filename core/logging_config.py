"""Logging configuration for the vault services."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, cast

from flask import current_app, has_app_context

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask


_APPDB_HANDLER_ATTR = "_is_appdb_log_handler"


def _resolve_flask_app() -> Optional["Flask"]:
    """Return the concrete Flask app when an application context is active."""

    if not has_app_context():
        return None

    getter = getattr(current_app, "_get_current_object", None)
    if callable(getter):
        return cast("Flask", getter())
    return cast("Flask", current_app)


def _create_appdb_db_handler(app: Optional["Flask"] = None) -> logging.Handler:
    """Create a DBLogHandler configured for appdb logging."""

    from core.db_log_handler import DBLogHandler

    handler = DBLogHandler(app=app or _resolve_flask_app())
    handler.setLevel(logging.INFO)
    setattr(handler, _APPDB_HANDLER_ATTR, True)
    return handler


def ensure_appdb_file_logging(logger: logging.Logger, app: Optional["Flask"] = None) -> None:
    """Attach the database-backed appdb log handler to *logger* if missing."""

    from core.db_log_handler import DBLogHandler

    for handler in logger.handlers:
        if getattr(handler, _APPDB_HANDLER_ATTR, False):
            if app is not None and isinstance(handler, DBLogHandler):
                handler.bind_to_app(app)
            break
        if isinstance(handler, DBLogHandler):
            setattr(handler, _APPDB_HANDLER_ATTR, True)
            break
    else:
        logger.addHandler(_create_appdb_db_handler(app))

    if logger.level == logging.NOTSET:
        logger.setLevel(logging.INFO)


def setup_feature_logging(logger_name: str = "features", app: Optional["Flask"] = None) -> logging.Logger:
    """Route the loggers below *logger_name* to the operational log table."""

    logger = logging.getLogger(logger_name)
    ensure_appdb_file_logging(logger, app)
    return logger


def log_error(logger: logging.Logger, message: str, event: str, exc_info: bool = True, **extra_attrs):
    """Log an error with context for database storage.

    Args:
        logger: Logger instance to use.
        message: Error message.
        event: Event identifier for categorization.
        exc_info: Whether to include exception information.
        **extra_attrs: Additional attributes to include in log record.
    """
    extra = {
        "event": event,
        **extra_attrs,
    }

    logger.error(message, exc_info=exc_info, extra=extra)


def log_info(logger: logging.Logger, message: str, event: str, **extra_attrs):
    """Log info with context for database storage.

    Args:
        logger: Logger instance to use.
        message: Info message.
        event: Event identifier for categorization.
        **extra_attrs: Additional attributes to include in log record.
    """
    extra = {
        "event": event,
        **extra_attrs,
    }

    logger.info(message, extra=extra)


__all__ = [
    "ensure_appdb_file_logging",
    "log_error",
    "log_info",
    "setup_feature_logging",
]
