"""TOTP リポジトリ実装"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterator, List, Mapping, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from core.db import db
from core.models.totp import TOTPAccessLog as TOTPAccessLogModel
from core.models.totp import TOTPCredential as TOTPCredentialModel
from core.time import utc_now
from features.totp.domain.entities import AccessLogEntry, Credential
from features.totp.domain.exceptions import NotFound, PersistenceError

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask


# ドメインの項目名 -> カラム名
_FIELD_COLUMNS = {
    "display_name": "name",
    "issuer": "issuer",
    "secret": "secret",
    "algorithm": "algorithm",
    "digits": "digits",
    "period": "period",
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite はタイムゾーン情報を保持しないため UTC とみなす
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _AppBoundRepository:
    """生成時のアプリケーションを保持し、コンテキスト外 (ワーカースレッド) でも使えるようにする"""

    def __init__(self, app: Optional["Flask"] = None):
        if app is None and has_app_context():
            app = current_app._get_current_object()
        self._app = app

    @contextmanager
    def _app_context(self) -> Iterator[None]:
        if has_app_context() or self._app is None:
            yield
            return
        with self._app.app_context():
            yield

    def _commit(self, operation: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"TOTP {operation} failed", operation=operation) from exc


class TOTPCredentialRepository(_AppBoundRepository):
    """TOTP シークレットの永続化"""

    _ORDERINGS = {
        "name": lambda: (TOTPCredentialModel.name.asc(), TOTPCredentialModel.id.asc()),
        "issuer": lambda: (TOTPCredentialModel.issuer.asc(), TOTPCredentialModel.id.asc()),
        "created_at": lambda: (TOTPCredentialModel.created_at.desc(), TOTPCredentialModel.id.asc()),
    }

    def _to_entity(self, model: TOTPCredentialModel) -> Credential:
        return Credential(
            id=model.id,
            owner_id=model.owner_id,
            display_name=model.name,
            issuer=model.issuer,
            secret=model.secret,
            period=model.period,
            digits=model.digits,
            algorithm=model.algorithm,
            created_at=_as_utc(model.created_at),
        )

    def find_model_by_id(self, credential_id: int, *, owner_id: int) -> Optional[TOTPCredentialModel]:
        return TOTPCredentialModel.query.filter_by(id=credential_id, owner_id=owner_id).first()

    def list_for_owner(self, owner_id: int, *, order_by: str = "name") -> List[Credential]:
        ordering = self._ORDERINGS.get(order_by, self._ORDERINGS["name"])()
        with self._app_context():
            try:
                models = (
                    TOTPCredentialModel.query.filter_by(owner_id=owner_id)
                    .order_by(*ordering)
                    .all()
                )
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise PersistenceError("TOTP list failed", operation="list") from exc
            return [self._to_entity(m) for m in models]

    def create(
        self,
        *,
        owner_id: int,
        display_name: str,
        issuer: str,
        secret: str,
        algorithm: str,
        digits: int,
        period: int,
    ) -> Credential:
        with self._app_context():
            model = TOTPCredentialModel(
                owner_id=owner_id,
                name=display_name,
                issuer=issuer,
                secret=secret,
                algorithm=algorithm,
                digits=digits,
                period=period,
                created_at=utc_now(),
            )
            db.session.add(model)
            self._commit("create")
            return self._to_entity(model)

    def update(self, credential_id: int, *, owner_id: int, fields: Mapping[str, Any]) -> Credential:
        with self._app_context():
            model = self.find_model_by_id(credential_id, owner_id=owner_id)
            if not model:
                raise NotFound(credential_id)
            for name, value in fields.items():
                column = _FIELD_COLUMNS.get(name)
                if column is None:
                    raise KeyError(name)
                setattr(model, column, value)
            db.session.add(model)
            self._commit("update")
            return self._to_entity(model)

    def delete(self, credential_id: int, *, owner_id: int) -> None:
        with self._app_context():
            model = self.find_model_by_id(credential_id, owner_id=owner_id)
            if not model:
                raise NotFound(credential_id)
            db.session.delete(model)
            self._commit("delete")


class TOTPAccessLogRepository(_AppBoundRepository):
    """監査ログの追記 (読み出しは外部のレポート画面が担当する)"""

    def append(self, entry: AccessLogEntry) -> AccessLogEntry:
        with self._app_context():
            model = TOTPAccessLogModel(
                credential_id=entry.credential_id,
                owner_id=entry.owner_id,
                access_type=entry.access_type.value,
                created_at=entry.occurred_at,
                ip_address=entry.source_ip,
                user_agent=entry.user_agent,
                device_name=entry.device_label,
                location_data=entry.location_hint,
            )
            db.session.add(model)
            self._commit("audit_append")
            return replace(entry, id=model.id)
