"""``flask totp`` コマンドのテスト"""

import pytest

from core.db import db
from core.models.totp import TOTPAccessLog, TOTPCredential
from tests.helpers.totp_fakes import CANONICAL_SECRET


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def _add(runner, *extra):
    return runner.invoke(args=["totp", "add", "--owner", "1", *extra])


def test_init_db(runner):
    result = runner.invoke(args=["totp", "init-db"])

    assert result.exit_code == 0
    assert "TOTP tables created." in result.output


def test_add_with_options_and_list_codes(runner):
    result = _add(runner, "--name", "alice", "--issuer", "Example", "--secret", "jbsw y3dp ehpk 3pxp")

    assert result.exit_code == 0, result.output
    assert "Added #1 Example / alice" in result.output
    assert TOTPCredential.query.one().secret == CANONICAL_SECRET

    listed = runner.invoke(args=["totp", "codes", "--owner", "1"])
    assert listed.exit_code == 0
    assert "Example / alice" in listed.output
    assert CANONICAL_SECRET not in listed.output


def test_add_from_uri(runner):
    result = _add(runner, "--uri", "otpauth://totp/GitHub:octocat?secret=JBSWY3DPEHPK3PXP&issuer=GitHub&digits=8")

    assert result.exit_code == 0, result.output
    assert TOTPCredential.query.one().digits == 8


def test_add_rejects_invalid_secret(runner):
    result = _add(runner, "--name", "alice", "--issuer", "Example", "--secret", "not base32!")

    assert result.exit_code == 1
    assert "Error" in result.output
    assert TOTPCredential.query.count() == 0


def test_codes_filter_and_owner_isolation(runner):
    _add(runner, "--name", "alice", "--issuer", "GitHub", "--secret", CANONICAL_SECRET)
    _add(runner, "--name", "bob", "--issuer", "AWS", "--secret", CANONICAL_SECRET)
    runner.invoke(args=["totp", "add", "--owner", "2", "--name", "eve", "--issuer", "GitHub", "--secret", CANONICAL_SECRET])

    result = runner.invoke(args=["totp", "codes", "--owner", "1", "--filter", "git", "--sort", "issuer"])

    assert result.exit_code == 0
    assert "alice" in result.output
    assert "bob" not in result.output
    assert "eve" not in result.output


def test_copy_prints_code_and_writes_audit_log(runner):
    _add(runner, "--name", "alice", "--issuer", "Example", "--secret", CANONICAL_SECRET)

    result = runner.invoke(args=["totp", "copy", "--owner", "1", "1"])

    assert result.exit_code == 0, result.output
    code = result.output.strip()
    assert len(code) == 6 and code.isdigit()
    entries = TOTPAccessLog.query.all()
    assert [(e.credential_id, e.owner_id, e.access_type) for e in entries] == [(1, 1, "copy")]
    assert entries[0].user_agent.startswith("totp-vault-cli")


def test_remove(runner):
    _add(runner, "--name", "alice", "--issuer", "Example", "--secret", CANONICAL_SECRET)

    result = runner.invoke(args=["totp", "remove", "--owner", "1", "1"])
    missing = runner.invoke(args=["totp", "remove", "--owner", "1", "1"])

    assert result.exit_code == 0
    assert "Removed #1" in result.output
    assert db.session.get(TOTPCredential, 1) is None
    assert missing.exit_code == 1


def test_watch_stops_after_requested_ticks(runner):
    _add(runner, "--name", "alice", "--issuer", "Example", "--secret", CANONICAL_SECRET)

    result = runner.invoke(args=["totp", "watch", "--owner", "1", "--ticks", "1"])

    assert result.exit_code == 0, result.output
    assert result.output.startswith("-- ")
    assert "Example / alice" in result.output
