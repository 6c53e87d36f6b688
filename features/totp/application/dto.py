"""TOTP アプリケーション層 DTO"""
from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Optional

from features.totp.domain.exceptions import InvalidParameters
from features.totp.domain.parser import OtpauthData


@dataclass(slots=True)
class CredentialInput:
    display_name: str
    issuer: str
    secret: str
    algorithm: str = "SHA1"
    digits: int = 6
    period: int = 30

    @classmethod
    def from_otpauth(cls, data: OtpauthData) -> "CredentialInput":
        return cls(
            display_name=data.account,
            issuer=data.issuer,
            secret=data.secret,
            algorithm=data.algorithm,
            digits=data.digits,
            period=data.period,
        )


@dataclass(slots=True)
class CredentialUpdate:
    """部分更新。``None`` の項目は変更しない"""

    display_name: Optional[str] = None
    issuer: Optional[str] = None
    secret: Optional[str] = None
    algorithm: Optional[str] = None
    digits: Optional[int] = None
    period: Optional[int] = None

    def provided(self) -> dict[str, Any]:
        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }


class SortKey(str, Enum):
    NAME = "name"
    ISSUER = "issuer"
    CREATED_AT = "created_at"

    @classmethod
    def parse(cls, value: "SortKey | str") -> "SortKey":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip()
            if normalized == "createdAt":
                normalized = "created_at"
            try:
                return cls(normalized.lower())
            except ValueError:
                pass
        raise InvalidParameters("並び替えキーは name / issuer / created_at のいずれかです", field="sort")
