"""Tests for the database-backed operational log handler."""

import json
import logging

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import StaticPool

from core import logging_config
from core.db_log_handler import DBLogHandler
from core.logging_config import ensure_appdb_file_logging, log_error, log_info, setup_feature_logging
from core.models.log import Log


@pytest.fixture
def cleanup_logger():
    loggers = []

    def _register(name: str) -> logging.Logger:
        logger = logging.getLogger(name)
        loggers.append(logger)
        return logger

    yield _register

    for logger in loggers:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def log_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


def _rows(engine):
    with engine.connect() as conn:
        return conn.execute(select(Log.__table__).order_by(Log.__table__.c.id)).mappings().all()


def test_handler_persists_record_with_event_and_extras(log_engine, cleanup_logger):
    logger = cleanup_logger("features.totp.test_handler")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    logger.addHandler(DBLogHandler(engine=log_engine))

    log_info(logger, "TOTP credential added", event="totp.registry.added", credential_id=5)

    rows = _rows(log_engine)
    assert len(rows) == 1
    assert rows[0]["level"] == "INFO"
    assert rows[0]["event"] == "totp.registry.added"
    assert rows[0]["logger_name"] == "features.totp.test_handler"
    payload = json.loads(rows[0]["message"])
    assert payload["message"] == "TOTP credential added"
    assert payload["_extra"]["credential_id"] == 5
    assert payload["_meta"]["level"] == "INFO"


def test_handler_stores_traceback(log_engine, cleanup_logger):
    logger = cleanup_logger("features.totp.test_trace")
    logger.propagate = False
    logger.addHandler(DBLogHandler(engine=log_engine))

    try:
        raise RuntimeError("store offline")
    except RuntimeError:
        log_error(logger, "Failed to write TOTP access log", event="totp.audit.write_failed")

    row = _rows(log_engine)[0]
    assert row["level"] == "ERROR"
    assert "RuntimeError: store offline" in row["trace"]


def test_handler_falls_back_to_stderr(log_engine, cleanup_logger, monkeypatch, capsys):
    handler = DBLogHandler(engine=log_engine)

    def _broken(engine):
        raise OperationalError("CREATE TABLE", {}, Exception("disk I/O error"))

    monkeypatch.setattr(handler, "_ensure_table", _broken)
    logger = cleanup_logger("features.totp.test_fallback")
    logger.propagate = False
    logger.addHandler(handler)

    logger.warning("audit enrichment failed", extra={"event": "totp.audit.enrichment_failed"})

    err = capsys.readouterr().err
    assert "disk I/O error" in err
    assert "audit enrichment failed" in err


def test_handler_uses_app_engine(app, cleanup_logger):
    from core.db import db

    logger = cleanup_logger("features.totp.test_app_engine")
    logger.propagate = False
    logger.setLevel(logging.INFO)
    logger.addHandler(DBLogHandler(app=app))

    logger.info("loaded", extra={"event": "totp.registry.loaded"})

    assert db.session.query(Log).filter_by(event="totp.registry.loaded").count() == 1


def test_ensure_appdb_logging_is_idempotent(monkeypatch, cleanup_logger):
    created = []

    def _factory(app=None):
        handler = logging.NullHandler()
        setattr(handler, "_is_appdb_log_handler", True)
        created.append(handler)
        return handler

    monkeypatch.setattr(logging_config, "_create_appdb_db_handler", _factory)
    logger = cleanup_logger("features.test_ensure")

    ensure_appdb_file_logging(logger)
    ensure_appdb_file_logging(logger)

    assert len(created) == 1
    assert logger.handlers == created
    assert logger.level == logging.INFO


def test_setup_feature_logging_attaches_db_handler(app, cleanup_logger):
    logger = setup_feature_logging("features.test_setup", app)
    cleanup_logger("features.test_setup")

    handlers = [handler for handler in logger.handlers if isinstance(handler, DBLogHandler)]
    assert len(handlers) == 1
    assert getattr(handlers[0], "_is_appdb_log_handler", False)
