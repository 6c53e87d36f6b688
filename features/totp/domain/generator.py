"""RFC 6238 (TOTP) / RFC 4226 (HOTP) によるコード生成"""
from __future__ import annotations

import base64
import hashlib
import math
from datetime import datetime
from typing import Callable

import pyotp

from core.time import to_epoch_seconds

from .base32 import decode_secret
from .exceptions import InvalidParameters

DEFAULT_ALGORITHM = "SHA1"
DEFAULT_DIGITS = 6
DEFAULT_PERIOD = 30

ALLOWED_DIGITS = (6, 8)

_HASH_DIGESTS: dict[str, Callable[[], "hashlib._Hash"]] = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}

Timestamp = datetime | float | int | None


def algorithm_name(algorithm) -> str:
    """``sha256`` などを正規名 (``SHA256``) にそろえる。未対応なら例外"""

    if not isinstance(algorithm, str) or algorithm.strip().upper() not in _HASH_DIGESTS:
        raise InvalidParameters("利用できないアルゴリズムです", field="algorithm")
    return algorithm.strip().upper()


def resolve_digest(algorithm: str | None) -> Callable[[], "hashlib._Hash"]:
    return _HASH_DIGESTS[algorithm_name(algorithm)]


def check_digits(digits) -> int:
    if isinstance(digits, bool) or not isinstance(digits, int) or digits not in ALLOWED_DIGITS:
        raise InvalidParameters("桁数は 6 または 8 で指定してください", field="digits")
    return digits


def check_period(period) -> int:
    if isinstance(period, bool) or not isinstance(period, int) or period <= 0:
        raise InvalidParameters("有効期間は正の整数で指定してください", field="period")
    return period


def time_counter(period: int, at_time: Timestamp = None) -> int:
    """``floor(at_time / period)``"""

    check_period(period)
    return math.floor(to_epoch_seconds(at_time) / period)


def hotp(secret_bytes: bytes, counter: int, algorithm: str = DEFAULT_ALGORITHM, digits: int = DEFAULT_DIGITS) -> str:
    digest = resolve_digest(algorithm)
    check_digits(digits)
    # pyotp は Base32 文字列を受け取るため、デコード済みのバイト列を詰め直して渡す
    encoded = base64.b32encode(secret_bytes).decode("ascii")
    return pyotp.HOTP(encoded, digits=digits, digest=digest).at(counter)


def generate(
    secret_bytes: bytes,
    algorithm: str = DEFAULT_ALGORITHM,
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_PERIOD,
    at_time: Timestamp = None,
) -> str:
    """指定時刻の TOTP コードを返す。

    ``at_time`` を省略すると現在時刻を使う。不正な ``digits`` / ``period`` /
    ``algorithm`` は丸めずに :class:`InvalidParameters` を送出する。
    """

    resolve_digest(algorithm)
    check_digits(digits)
    counter = time_counter(period, at_time)
    return hotp(secret_bytes, counter, algorithm=algorithm, digits=digits)


def generate_for_secret(
    secret: str,
    algorithm: str = DEFAULT_ALGORITHM,
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_PERIOD,
    at_time: Timestamp = None,
) -> str:
    """Base32 文字列のシークレットから直接コードを生成する"""

    return generate(decode_secret(secret), algorithm=algorithm, digits=digits, period=period, at_time=at_time)


def remaining_seconds(period: int, at_time: Timestamp = None) -> int:
    """現在のコードが切り替わるまでの残り秒数 (1 以上 period 以下)"""

    check_period(period)
    now = math.floor(to_epoch_seconds(at_time))
    return period - (now % period)


def format_code(code: str | None) -> str:
    """表示用に中央へ空白を入れる (例: ``123456`` -> ``123 456``)"""

    if not code:
        return ""
    half = len(code) // 2
    return f"{code[:half]} {code[half:]}"
