"""Centralised application settings abstraction.

This module exposes :class:`ApplicationSettings` which consolidates every
configuration lookup used by the vault.  Values are resolved from the active
Flask application's ``config`` first, then from the process environment (or any
mapping provided), and finally fall back to the defaults declared on the
properties below.

The global :data:`settings` instance should be used for production code, while
tests can instantiate their own :class:`ApplicationSettings` with a dedicated
mapping to validate behaviour in isolation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Mapping, Optional, cast

from flask import current_app, has_app_context

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask


_DEFAULT_IP_LOOKUP_URL = "https://api.ipify.org?format=json"


@dataclass(frozen=True)
class _EnvironmentFacade:
    """Thin wrapper that provides ``Mapping`` compatible access to env vars."""

    source: Mapping[str, str]

    @classmethod
    def from_environ(cls, env: Optional[Mapping[str, str]] = None) -> "_EnvironmentFacade":
        return cls(source=os.environ if env is None else env)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.source.get(key, default)


class ApplicationSettings:
    """Domain level representation of configuration values.

    The class favours explicit properties instead of generic ``get`` access so
    that the rest of the application operates on intent-revealing names.
    """

    def __init__(self, env: Optional[Mapping[str, str]] = None) -> None:
        self._env = _EnvironmentFacade.from_environ(env)

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------
    def _get(self, key: str, default: Optional[str] = None):
        if has_app_context():
            app = cast("Flask", current_app)
            if key in app.config:
                return app.config.get(key)

        value = self._env.get(key)
        if value is not None:
            return value
        return default

    def get(self, key: str, default=None):
        """Return the configured value for *key* or *default* if missing."""

        value = self._get(key)
        return default if value is None else value

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Return a boolean configuration value."""

        value = self._get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return bool(value)
        if isinstance(value, str):
            normalised = value.strip().lower()
            if normalised in {"1", "true", "yes", "on"}:
                return True
            if normalised in {"0", "false", "no", "off"}:
                return False
        return default

    def get_int(self, key: str, default: int = 0) -> int:
        """Return an integer configuration value."""

        value = self._get(key)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Return a float configuration value."""

        value = self._get(key)
        if value is None:
            return default
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    # ------------------------------------------------------------------
    # Generic flags
    # ------------------------------------------------------------------
    @property
    def testing(self) -> bool:
        return self.get_bool("TESTING")

    # ------------------------------------------------------------------
    # Database configuration
    # ------------------------------------------------------------------
    @property
    def database_uri(self) -> str:
        return self._get("DATABASE_URI") or "sqlite:///totp_vault.db"

    @property
    def logs_database_uri(self) -> str:
        return self._get("LOGS_DATABASE_URI") or self._get("DATABASE_URI") or "sqlite:///application_logs.db"

    # ------------------------------------------------------------------
    # TOTP countdown
    # ------------------------------------------------------------------
    @property
    def totp_tick_interval(self) -> float:
        value = self.get_float("TOTP_TICK_INTERVAL_SECONDS", 1.0)
        return value if value > 0 else 1.0

    @property
    def totp_parallel_recompute_threshold(self) -> int:
        return self.get_int("TOTP_PARALLEL_RECOMPUTE_THRESHOLD", 256)

    # ------------------------------------------------------------------
    # Access audit enrichment
    # ------------------------------------------------------------------
    @property
    def totp_audit_ip_lookup_enabled(self) -> bool:
        return self.get_bool("TOTP_AUDIT_IP_LOOKUP_ENABLED", True)

    @property
    def totp_audit_ip_lookup_url(self) -> str:
        return self._get("TOTP_AUDIT_IP_LOOKUP_URL") or _DEFAULT_IP_LOOKUP_URL

    @property
    def totp_audit_enrichment_timeout(self) -> float:
        value = self.get_float("TOTP_AUDIT_ENRICHMENT_TIMEOUT", 2.0)
        return value if value > 0 else 2.0

    @property
    def totp_audit_max_workers(self) -> int:
        value = self.get_int("TOTP_AUDIT_MAX_WORKERS", 2)
        return value if value > 0 else 1


settings = ApplicationSettings()

__all__ = ["ApplicationSettings", "settings"]
