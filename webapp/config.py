import os

from dotenv import load_dotenv

load_dotenv()


class BaseApplicationSettings:
    """Base Flask application configuration populated from the environment."""

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    db_uri = os.environ.get("DATABASE_URI", "sqlite:///totp_vault.db")
    SQLALCHEMY_DATABASE_URI = db_uri

    # Database stability
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }

    if not db_uri.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS.update({
            "pool_size": 10,
            "max_overflow": 20,
        })
        if db_uri.startswith("mysql"):
            SQLALCHEMY_ENGINE_OPTIONS["connect_args"] = {"connect_timeout": 10}

    # Operational logs are persisted to the ``log`` table unless disabled
    LOG_TO_DATABASE = os.environ.get("LOG_TO_DATABASE", "true").lower() in {"1", "true", "yes", "on"}


class Config(BaseApplicationSettings):
    """Default configuration used by :func:`webapp.create_app`."""


__all__ = ["BaseApplicationSettings", "Config"]
