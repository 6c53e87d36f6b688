"""TOTP 管理用のモデル定義"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Mapped, mapped_column

from core.db import db

# SQLite 互換の BigInt 定義
BigInt = db.BigInteger().with_variant(db.Integer, "sqlite")


class TOTPCredential(db.Model):
    """TOTP シークレットを管理するためのモデル"""

    __tablename__ = "totp_credential"

    id: Mapped[int] = mapped_column(BigInt, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(BigInt, nullable=False, index=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    issuer: Mapped[str] = mapped_column(db.String(255), nullable=False)
    secret: Mapped[str] = mapped_column(db.String(160), nullable=False)
    period: Mapped[int] = mapped_column(db.SmallInteger, nullable=False, default=30)
    digits: Mapped[int] = mapped_column(db.SmallInteger, nullable=False, default=6)
    algorithm: Mapped[str] = mapped_column(db.String(16), nullable=False, default="SHA1")
    created_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class TOTPAccessLog(db.Model):
    """コードの閲覧・コピーを記録する追記専用の監査ログ"""

    __tablename__ = "totp_access_log"

    id: Mapped[int] = mapped_column(BigInt, primary_key=True, autoincrement=True)
    # 監査ログは認証情報の削除後も残すため外部キー制約は付けない
    credential_id: Mapped[int] = mapped_column(BigInt, nullable=False, index=True)
    owner_id: Mapped[int] = mapped_column(BigInt, nullable=False, index=True)
    access_type: Mapped[str] = mapped_column(db.String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    ip_address: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    device_name: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    location_data: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
