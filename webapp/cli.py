"""``flask totp`` CLI コマンド"""
from __future__ import annotations

import platform
import threading
from datetime import datetime, timezone

import click
from flask import Flask
from flask.cli import AppGroup

from core.db import db
from core.time import isoformat_utc
from features.totp.application.dto import CredentialInput
from features.totp.application.session import AuthenticatorSession
from features.totp.domain.entities import Credential, TickSnapshot
from features.totp.domain.exceptions import TOTPError
from features.totp.domain.generator import format_code

totp_cli = AppGroup("totp", help="TOTP 認証情報の管理")


def _cli_user_agent() -> str:
    return f"totp-vault-cli ({platform.platform()})"


def _open_session(owner_id: int) -> AuthenticatorSession:
    session = AuthenticatorSession(owner_id, user_agent=_cli_user_agent())
    session.registry.load()
    return session


def _format_line(credential: Credential) -> str:
    if credential.has_code:
        code = format_code(credential.current_code)
        countdown = f"{credential.remaining_seconds:>3}s"
    else:
        code = f"<{credential.code_error}>"
        countdown = "   -"
    return f"{credential.id:>5}  {code:<10} {countdown}  {credential.issuer} / {credential.display_name}"


def _run(func):
    try:
        return func()
    except TOTPError as exc:
        raise click.ClickException(str(exc)) from exc


owner_option = click.option("--owner", "owner_id", type=int, required=True, help="所有者のユーザー ID")


@totp_cli.command("init-db")
def init_db():
    """テーブルを作成する"""
    db.create_all()
    click.echo("TOTP tables created.")


@totp_cli.command("codes")
@owner_option
@click.option("--sort", "sort_key", type=click.Choice(["name", "issuer", "created_at"]), default="name")
@click.option("--filter", "query", default=None, help="表示名・発行者の部分一致")
def show_codes(owner_id, sort_key, query):
    """現在のコード一覧を表示する"""
    session = _run(lambda: _open_session(owner_id))
    try:
        session.sort_by(sort_key)
        for credential in session.credentials(query=query):
            click.echo(_format_line(credential))
    finally:
        session.close()


@totp_cli.command("add")
@owner_option
@click.option("--uri", default=None, help="QR コードから読み取った otpauth URI")
@click.option("--name", "display_name", default=None)
@click.option("--issuer", default=None)
@click.option("--secret", default=None)
@click.option("--digits", type=int, default=6, show_default=True)
@click.option("--period", type=int, default=30, show_default=True)
@click.option("--algorithm", default="SHA1", show_default=True)
def add_credential(owner_id, uri, display_name, issuer, secret, digits, period, algorithm):
    """認証情報を登録する"""
    session = _run(lambda: _open_session(owner_id))
    try:
        if uri:
            credential = _run(lambda: session.add_from_uri(uri))
        else:
            payload = CredentialInput(
                display_name=display_name or "",
                issuer=issuer or "",
                secret=secret or "",
                algorithm=algorithm,
                digits=digits,
                period=period,
            )
            credential = _run(lambda: session.add(payload))
        click.echo(f"Added #{credential.id} {credential.issuer} / {credential.display_name}")
    finally:
        session.close()


@totp_cli.command("remove")
@owner_option
@click.argument("credential_id", type=int)
def remove_credential(owner_id, credential_id):
    """認証情報を削除する"""
    session = _run(lambda: _open_session(owner_id))
    try:
        _run(lambda: session.remove(credential_id))
        click.echo(f"Removed #{credential_id}")
    finally:
        session.close()


@totp_cli.command("copy")
@owner_option
@click.argument("credential_id", type=int)
def copy_code(owner_id, credential_id):
    """コードを出力し、コピー操作として監査ログに記録する"""
    session = _run(lambda: _open_session(owner_id))
    try:
        click.echo(_run(lambda: session.copy(credential_id)))
    finally:
        session.close()


@totp_cli.command("watch")
@owner_option
@click.option("--ticks", type=int, default=0, help="指定回数のティック後に終了 (0 は Ctrl+C まで)")
def watch_codes(owner_id, ticks):
    """1 秒ごとにコードとカウントダウンを表示する"""
    session = AuthenticatorSession(owner_id, user_agent=_cli_user_agent())
    done = threading.Event()
    seen = {"count": 0}

    def _on_tick(snapshot: TickSnapshot) -> None:
        click.echo(f"-- {isoformat_utc(_snapshot_time(snapshot))}")
        for credential in session.credentials():
            click.echo(_format_line(credential))
        seen["count"] += 1
        if ticks and seen["count"] >= ticks:
            done.set()

    session.scheduler.subscribe(_on_tick)
    _run(session.open)
    try:
        while not done.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        session.close()


def _snapshot_time(snapshot: TickSnapshot) -> datetime:
    return datetime.fromtimestamp(snapshot.at_time, tz=timezone.utc)


def register_cli_commands(app: Flask) -> None:
    """CLI コマンドを登録"""
    app.cli.add_command(totp_cli)
