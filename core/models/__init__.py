"""ORM models shared across applications."""

# モデルの循環インポートを避けるため、ここで一括インポート
from .log import Log
from .totp import TOTPAccessLog, TOTPCredential

__all__ = [
    "Log",
    "TOTPAccessLog",
    "TOTPCredential",
]
