"""TOTP アプリケーション層が依存するストアの抽象インターフェース"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from features.totp.domain.entities import AccessLogEntry, Credential


class CredentialStore(Protocol):
    """認証情報テーブルの永続化を担当するリポジトリ

    失敗時は :class:`~features.totp.domain.exceptions.PersistenceError` を送出する。
    """

    def list_for_owner(self, owner_id: int, *, order_by: str = "name") -> Sequence[Credential]:
        ...

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
        ...

    def update(self, credential_id: int, *, owner_id: int, fields: Mapping[str, Any]) -> Credential:
        ...

    def delete(self, credential_id: int, *, owner_id: int) -> None:
        ...


class AccessLogStore(Protocol):
    """監査ログテーブル (追記専用)"""

    def append(self, entry: AccessLogEntry) -> AccessLogEntry:
        ...


class AddressResolver(Protocol):
    """呼び出し元のグローバル IP アドレスを解決する"""

    def resolve(self) -> str:
        ...
