"""サインイン中ユーザー 1 人分の認証コード表示セッション"""
from __future__ import annotations

import logging
from typing import List, Optional

from features.totp.application.audit import AccessAuditLogger
from features.totp.application.dto import CredentialInput, CredentialUpdate, SortKey
from features.totp.application.registry import (
    CODE_ERROR_INVALID_SECRET,
    CredentialRegistry,
)
from features.totp.application.scheduler import CountdownScheduler
from features.totp.domain.entities import AccessType, Credential
from features.totp.domain.exceptions import InvalidParameters, InvalidSecretFormat
from features.totp.domain.parser import parse_otpauth_uri

logger = logging.getLogger(__name__)


class AuthenticatorSession:
    """レジストリ・カウントダウン・監査ログをまとめて扱う窓口

    ``open()`` でストアから読み込んでタイマーを開始し、``close()`` (サインアウト)
    でタイマーと監査ワーカーを停止する。コードの返却は監査ログの書き込みを待たない。
    """

    def __init__(
        self,
        owner_id: Optional[int],
        *,
        registry: CredentialRegistry | None = None,
        scheduler: CountdownScheduler | None = None,
        audit_logger: AccessAuditLogger | None = None,
        user_agent: Optional[str] = None,
    ):
        self.owner_id = owner_id
        self.registry = registry if registry is not None else CredentialRegistry(owner_id)
        self.scheduler = scheduler if scheduler is not None else CountdownScheduler(self.registry)
        self.audit_logger = audit_logger if audit_logger is not None else AccessAuditLogger()
        self.user_agent = user_agent
        self._opened = False

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------
    def open(self) -> "AuthenticatorSession":
        self.registry.load()
        self.scheduler.start()
        self._opened = True
        return self

    def close(self) -> None:
        self.scheduler.stop()
        self.audit_logger.shutdown(wait=True)
        self.registry.clear()
        self.registry.close()
        self._opened = False

    def __enter__(self) -> "AuthenticatorSession":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # 閲覧・コピー
    # ------------------------------------------------------------------
    def credentials(self, *, query: str | None = None) -> List[Credential]:
        if query:
            return self.registry.filter(query)
        return self.registry.credentials()

    def view(self, credential_id: int, user_agent: Optional[str] = None) -> Credential:
        """現在のコードを返し、コードが表示される場合のみ閲覧を記録する"""

        credential = self.registry.get(credential_id)
        if credential.has_code:
            self._audit(credential, AccessType.VIEW, user_agent)
        return credential

    def copy(self, credential_id: int, user_agent: Optional[str] = None) -> str:
        """クリップボードへ渡すコードを返し、コピーを記録する"""

        credential = self.registry.get(credential_id)
        if not credential.has_code:
            if credential.code_error == CODE_ERROR_INVALID_SECRET:
                raise InvalidSecretFormat()
            raise InvalidParameters("コードを生成できない認証情報です")
        self._audit(credential, AccessType.COPY, user_agent)
        return credential.current_code

    def _audit(self, credential: Credential, access_type: AccessType, user_agent: Optional[str]) -> None:
        self.audit_logger.record(
            credential.id,
            credential.owner_id,
            access_type,
            user_agent=user_agent if user_agent is not None else self.user_agent,
        )

    # ------------------------------------------------------------------
    # 更新系 (レジストリへの委譲)
    # ------------------------------------------------------------------
    def add(self, payload: CredentialInput) -> Credential:
        return self.registry.add(payload)

    def add_from_uri(self, uri: str) -> Credential:
        """QR コードから読み取った otpauth URI を登録する"""

        return self.registry.add(CredentialInput.from_otpauth(parse_otpauth_uri(uri)))

    def update(self, credential_id: int, changes: CredentialUpdate) -> Credential:
        return self.registry.update(credential_id, changes)

    def remove(self, credential_id: int) -> None:
        self.registry.remove(credential_id)

    def sort_by(self, key: SortKey | str) -> List[Credential]:
        return self.registry.sort_by(key)
