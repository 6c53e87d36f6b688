"""TOTP 機能のドメイン例外"""


class TOTPError(Exception):
    """TOTP 関連の基底例外"""


class TOTPValidationError(TOTPError):
    """入力検証エラー"""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class InvalidSecretFormat(TOTPValidationError):
    """Base32 として解釈できないシークレット"""

    def __init__(self, message: str = "シークレットは Base32 形式で入力してください", field: str | None = "secret"):
        super().__init__(message, field=field)


class InvalidParameters(TOTPValidationError):
    """桁数・有効期間・アルゴリズムなどの指定が不正"""


class Unauthorized(TOTPError):
    """所有者が特定できない状態での更新操作"""

    def __init__(self, message: str = "サインインしているユーザーがいません"):
        super().__init__(message)


class NotFound(TOTPError):
    """指定された TOTP が存在しない"""

    def __init__(self, credential_id):
        super().__init__(f"TOTP #{credential_id} not found")
        self.credential_id = credential_id


class PersistenceError(TOTPError):
    """ストアへの書き込み・読み込みに失敗した"""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class EnrichmentFailure(TOTPError):
    """監査ログ付加情報 (ネットワーク・端末) の取得に失敗した"""
