"""Base32 (RFC 4648) シークレットのデコード"""
from __future__ import annotations

import re

from .exceptions import InvalidSecretFormat

_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_VALUES = {char: index for index, char in enumerate(_ALPHABET)}
_WHITESPACE = re.compile(r"\s+")


def canonicalize(secret: str | None) -> str:
    """空白除去・大文字化・パディング除去を行う (検証はしない)"""

    if secret is None:
        return ""
    return _WHITESPACE.sub("", secret).upper().rstrip("=")


def decode_secret(secret: str | None) -> bytes:
    """Base32 文字列をバイト列に変換する。

    5 ビット単位で左から詰め、8 ビットに満たない末尾のビットは捨てる。
    アルファベット外の文字、または空文字列の場合は
    :class:`InvalidSecretFormat` を送出する。大文字化で ASCII に化ける文字
    (``ß`` や ``ſ`` など) があるため、非 ASCII は大文字化の前に弾く。
    """

    if secret is not None and not _WHITESPACE.sub("", secret).isascii():
        raise InvalidSecretFormat()
    cleaned = canonicalize(secret)
    if not cleaned:
        raise InvalidSecretFormat("シークレットを入力してください")

    buffer = 0
    bits = 0
    output = bytearray()
    for char in cleaned:
        value = _VALUES.get(char)
        if value is None:
            raise InvalidSecretFormat()
        buffer = (buffer << 5) | value
        bits += 5
        if bits >= 8:
            bits -= 8
            output.append((buffer >> bits) & 0xFF)
            buffer &= (1 << bits) - 1
    return bytes(output)


def normalize_secret(secret: str | None) -> str:
    """保存用の正規形 (大文字・空白なし・パディングなし) を返す"""

    decode_secret(secret)
    return canonicalize(secret)
