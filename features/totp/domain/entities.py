"""TOTP 機能のエンティティ定義"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterator, Optional


@dataclass(slots=True, frozen=True)
class Credential:
    """TOTP シークレットを表すドメインエンティティ

    ``current_code`` / ``remaining_seconds`` / ``code_error`` は永続化されない
    派生値で、同じティックで計算されたものが常に組で入る。
    """

    id: int
    owner_id: int
    display_name: str
    issuer: str
    secret: str = field(repr=False)
    period: int
    digits: int
    algorithm: str
    created_at: datetime
    current_code: Optional[str] = None
    remaining_seconds: Optional[int] = None
    code_error: Optional[str] = None

    @property
    def has_code(self) -> bool:
        return self.current_code is not None and self.code_error is None

    def with_code(self, snapshot: Optional["CodeSnapshot"]) -> "Credential":
        if snapshot is None:
            return replace(self, current_code=None, remaining_seconds=None, code_error=None)
        return replace(
            self,
            current_code=snapshot.code,
            remaining_seconds=snapshot.remaining_seconds,
            code_error=snapshot.error,
        )


@dataclass(slots=True, frozen=True)
class CodeSnapshot:
    """1 ティック分のコードと残り秒数"""

    credential_id: int
    code: Optional[str]
    remaining_seconds: Optional[int]
    counter: Optional[int] = None
    error: Optional[str] = None


@dataclass(slots=True, frozen=True)
class TickSnapshot:
    """ティックごとに差し替えられる全認証情報のコード一覧"""

    at_time: float
    entries: tuple[CodeSnapshot, ...] = ()

    def __iter__(self) -> Iterator[CodeSnapshot]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, credential_id: int) -> Optional[CodeSnapshot]:
        for entry in self.entries:
            if entry.credential_id == credential_id:
                return entry
        return None

    def as_dict(self) -> dict[int, CodeSnapshot]:
        return {entry.credential_id: entry for entry in self.entries}


class AccessType(str, Enum):
    """監査対象の操作種別"""

    VIEW = "view"
    COPY = "copy"


@dataclass(slots=True, frozen=True)
class AccessLogEntry:
    """コード閲覧・コピーの監査ログ (追記専用)"""

    id: Optional[int]
    credential_id: int
    owner_id: int
    access_type: AccessType
    occurred_at: datetime
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    device_label: Optional[str] = None
    location_hint: Optional[dict[str, Any]] = None
