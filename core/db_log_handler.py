import json
import logging
import sys
import traceback
from typing import TYPE_CHECKING, Any, Dict, Optional, Set

from flask import current_app, has_app_context
from sqlalchemy import create_engine, insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .db import db
from .settings import settings

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask


_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "message",
    "stacklevel",
    "taskName",
}


def _extract_extras(record: logging.LogRecord) -> Dict[str, Any]:
    """Return custom attributes attached to *record* for persistence."""

    extras: Dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key == "event":
            continue
        if key.startswith("_"):
            continue
        extras[key] = value
    return extras


class DBLogHandler(logging.Handler):
    """Logging handler that persists logs to the database.

    Records are written through a dedicated engine connection rather than the
    ORM session so that logging never interferes with a caller's pending
    transaction.  When the database rejects the write the record is printed to
    ``stderr`` instead.
    """

    def __init__(self, app: Optional["Flask"] = None, *, engine: Optional[Engine] = None) -> None:
        super().__init__()
        self._app = app
        self._engine: Optional[Engine] = engine
        self._fallback_engine: Optional[Engine] = None
        self._ensured_engines: Set[int] = set()

    def bind_to_app(self, app: "Flask") -> None:
        """Rebind this handler to *app* and reset cached engines."""

        self._app = app
        self._engine = None
        self._fallback_engine = None
        self._ensured_engines.clear()

    def _resolve_engine(self) -> Engine:
        if self._engine is not None:
            return self._engine

        app = None
        if has_app_context():
            app = current_app._get_current_object()
        elif self._app is not None:
            app = self._app

        if app is not None:
            if has_app_context():
                engine = db.engine
            else:
                with app.app_context():
                    engine = db.engine
            self._engine = engine
            return engine

        engine = self._get_fallback_engine()
        self._engine = engine
        return engine

    def _get_fallback_engine(self) -> Engine:
        if self._fallback_engine is None:
            self._fallback_engine = create_engine(settings.logs_database_uri)
        return self._fallback_engine

    def _ensure_table(self, engine: Engine) -> None:
        marker = id(engine)
        if marker in self._ensured_engines:
            return
        from .models.log import Log  # Local import to avoid circular dependencies

        Log.__table__.create(bind=engine, checkfirst=True)
        self._ensured_engines.add(marker)

    def _build_payload(self, record: logging.LogRecord) -> Dict[str, Any]:
        raw_message = record.getMessage()
        try:
            payload = json.loads(raw_message)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {"message": raw_message}

        payload.setdefault("_meta", {})
        payload["_meta"].update(
            {
                "logger": record.name,
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
                "level": record.levelname,
            }
        )

        extras = _extract_extras(record)
        if extras:
            payload["_extra"] = extras
        return payload

    def emit(self, record: logging.LogRecord) -> None:
        trace = None
        if record.exc_info:
            formatter = logging.Formatter()
            trace = formatter.formatException(record.exc_info)

        event = getattr(record, "event", None) or record.name or "general"
        message_json = json.dumps(self._build_payload(record), ensure_ascii=False, default=str)

        from .models.log import Log

        stmt = insert(Log).values(
            level=record.levelname[:20],
            event=str(event)[:50],
            logger_name=(record.name or "")[:120] or None,
            message=message_json,
            trace=trace,
        )

        try:
            engine = self._resolve_engine()
            self._ensure_table(engine)
            with engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as exc:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
            print(message_json, file=sys.stderr)


__all__ = ["DBLogHandler"]
