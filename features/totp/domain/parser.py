"""QR コードから読み取った ``otpauth://totp/...`` URI の解析

ラベルは ``発行者:アカウント`` または ``アカウント`` の形式。クエリの
``issuer`` があればラベル側の発行者より優先する。省略されたパラメータは
既定値 (SHA1 / 6 桁 / 30 秒) で補い、値そのものの検証は登録時に行う。
"""
from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qsl, unquote, urlsplit

from .exceptions import InvalidParameters, InvalidSecretFormat
from .generator import DEFAULT_ALGORITHM, DEFAULT_DIGITS, DEFAULT_PERIOD

_SCHEME_PREFIX = "otpauth://"
_URI_FIELD = "otpauth_uri"


@dataclass(slots=True)
class OtpauthData:
    account: str
    issuer: str
    secret: str
    algorithm: str
    digits: int
    period: int


def _split_label(path: str) -> tuple[str, str]:
    """``(ラベル上の発行者, アカウント)`` を返す"""

    label = unquote(path.lstrip("/"))
    issuer, sep, account = label.partition(":")
    if not sep:
        issuer, account = "", label
    account = account.strip()
    if not account:
        raise InvalidParameters("アカウント名がありません", field=_URI_FIELD)
    return issuer.strip(), account


def _int_param(params: dict[str, str], name: str, default: int, message: str) -> int:
    raw = params.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidParameters(message, field=name) from exc


def parse_otpauth_uri(uri: str) -> OtpauthData:
    if not isinstance(uri, str) or not uri.strip():
        raise InvalidParameters("URI を入力してください", field=_URI_FIELD)

    text = uri.strip()
    if not text.lower().startswith(_SCHEME_PREFIX):
        raise InvalidParameters("otpauth:// で始まる URI を指定してください", field=_URI_FIELD)

    parts = urlsplit(text)
    if parts.netloc.lower() != "totp":
        raise InvalidParameters("TOTP 以外の種別には対応していません", field=_URI_FIELD)

    label_issuer, account = _split_label(parts.path)

    # 同名のキーが複数あれば先頭を採用する
    params: dict[str, str] = {}
    for key, value in parse_qsl(parts.query):
        params.setdefault(key, value)

    secret = params.get("secret")
    if not secret:
        raise InvalidSecretFormat("secret パラメータがありません")

    issuer = (params.get("issuer") or label_issuer).strip()
    if not issuer:
        raise InvalidParameters("発行者が指定されていません", field="issuer")

    return OtpauthData(
        account=account,
        issuer=issuer,
        secret=secret,
        algorithm=(params.get("algorithm") or DEFAULT_ALGORITHM).strip().upper(),
        digits=_int_param(params, "digits", DEFAULT_DIGITS, "digits は整数で指定してください"),
        period=_int_param(params, "period", DEFAULT_PERIOD, "period は整数で指定してください"),
    )
