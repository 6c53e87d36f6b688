import os
import sys
from pathlib import Path

import pytest

os.environ.setdefault("TESTING", "true")
# 外部の IP 参照サービスへはテストから接続しない
os.environ.setdefault("TOTP_AUDIT_IP_LOOKUP_ENABLED", "false")

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture
def app():
    """インメモリ SQLite を使うアプリケーション"""
    from core.db import db
    from tests.config import TestConfig
    from webapp import create_app

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def db_session(app):
    from core.db import db

    return db.session


@pytest.fixture
def credential_store():
    from tests.helpers.totp_fakes import InMemoryCredentialStore

    return InMemoryCredentialStore()


@pytest.fixture
def access_log_store():
    from tests.helpers.totp_fakes import InMemoryAccessLogStore

    return InMemoryAccessLogStore()


@pytest.fixture
def fixed_clock():
    from tests.helpers.totp_fakes import FixedClock

    return FixedClock(1_111_111_111.0)
