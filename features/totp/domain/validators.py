"""バリデーションユーティリティ

省略された項目に既定値を補う。値そのものの検査はコード生成側の
チェック関数に任せる。
"""
from __future__ import annotations

from .base32 import normalize_secret
from .exceptions import InvalidParameters, InvalidSecretFormat
from .generator import (
    DEFAULT_ALGORITHM,
    DEFAULT_DIGITS,
    DEFAULT_PERIOD,
    algorithm_name,
    check_digits,
    check_period,
)


def ensure_non_empty(value: str | None, field: str) -> str:
    if value is None or not isinstance(value, str):
        raise InvalidParameters("必須項目です", field=field)
    stripped = value.strip()
    if not stripped:
        raise InvalidParameters("必須項目です", field=field)
    return stripped


def validate_secret(secret: str | None) -> str:
    if not secret or not isinstance(secret, str):
        raise InvalidSecretFormat("シークレットを入力してください")
    return normalize_secret(secret)


def validate_algorithm(algorithm: str | None) -> str:
    if not algorithm:
        return DEFAULT_ALGORITHM
    return algorithm_name(algorithm)


def validate_digits(digits: int | None) -> int:
    if digits is None:
        return DEFAULT_DIGITS
    return check_digits(digits)


def validate_period(period: int | None) -> int:
    if period is None:
        return DEFAULT_PERIOD
    return check_period(period)
