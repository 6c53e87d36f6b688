"""Base32 シークレットのデコードテスト"""

import base64

import pytest

from features.totp.domain.base32 import canonicalize, decode_secret, normalize_secret
from features.totp.domain.exceptions import InvalidSecretFormat, TOTPValidationError


def test_decode_known_secret():
    assert decode_secret("JBSWY3DPEHPK3PXP") == b"Hello!\xde\xad\xbe\xef"


def test_decode_ignores_case_whitespace_and_padding():
    expected = decode_secret("JBSWY3DPEHPK3PXP")

    assert decode_secret(" jbsw y3dp ehpk3pxp ") == expected
    assert decode_secret("JBSW\tY3DP\nEHPK 3PXP") == expected
    assert decode_secret("MZXW6===") == b"foo"
    assert decode_secret("mzxw6yq=") == b"foob"


@pytest.mark.parametrize("raw", [b"f", b"fo", b"foo", b"foob", b"fooba", b"foobar", bytes(range(20))])
def test_decode_matches_stdlib_encoding(raw):
    encoded = base64.b32encode(raw).decode("ascii")

    assert decode_secret(encoded) == raw
    assert decode_secret(encoded.rstrip("=")) == raw


@pytest.mark.parametrize("secret", ["JBSW1", "ABC!", "JBSWY3DP0", "ÄBCD"])
def test_decode_rejects_characters_outside_alphabet(secret):
    with pytest.raises(InvalidSecretFormat) as exc_info:
        decode_secret(secret)

    assert exc_info.value.field == "secret"
    assert isinstance(exc_info.value, TOTPValidationError)


@pytest.mark.parametrize("secret", [None, "", "   ", "===="])
def test_decode_rejects_empty_secret(secret):
    with pytest.raises(InvalidSecretFormat):
        decode_secret(secret)


@pytest.mark.parametrize("secret", ["JBSWY3DPEHPK3PX\u017f", "JBSWY3DPEHPK3P\u00df", "\u0131" * 8, "JBSW\uff39"])
def test_decode_rejects_letters_that_upper_case_into_alphabet(secret):
    # ſ -> S, ß -> SS, ı -> I, 全角 Ｙ
    with pytest.raises(InvalidSecretFormat):
        decode_secret(secret)
    with pytest.raises(InvalidSecretFormat):
        normalize_secret(secret)


def test_canonicalize_and_normalize():
    assert canonicalize(" jbsw y3dp ehpk3pxp== ") == "JBSWY3DPEHPK3PXP"
    assert canonicalize(None) == ""
    assert normalize_secret("mzxw 6===") == "MZXW6"

    with pytest.raises(InvalidSecretFormat):
        normalize_secret("not-base32")
