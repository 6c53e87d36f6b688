# webapp/__init__.py
from flask import Flask

from core.db import db
from core.logging_config import setup_feature_logging


def create_app(config_object=None):
    """アプリケーションファクトリ"""
    from dotenv import load_dotenv
    from .config import Config

    # .env を読み込む（環境変数が未設定の場合のみ）
    load_dotenv()

    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    db.init_app(app)

    # モデルをメタデータへ登録
    import core.models  # noqa: F401

    if app.config.get("LOG_TO_DATABASE"):
        setup_feature_logging("features", app)

    from .cli import register_cli_commands

    register_cli_commands(app)
    return app


__all__ = ["create_app"]
