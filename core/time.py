"""Time-related helpers.

All timestamps handled by the vault are UTC.  Wall-clock seconds used for TOTP
windows and the timezone-aware datetimes stored in the database are both
obtained here so that tests can patch a single location.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as an aware ``datetime`` instance."""

    return datetime.now(timezone.utc)


def epoch_seconds() -> float:
    """Return the current POSIX timestamp in seconds."""

    return time.time()


def to_epoch_seconds(value: datetime | float | int | None) -> float:
    """Normalise *value* to POSIX seconds, defaulting to "now".

    Naive datetimes are interpreted as UTC.
    """

    if value is None:
        return epoch_seconds()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    return float(value)


def isoformat_utc(value: datetime | None) -> str | None:
    """Serialise *value* as an ISO 8601 UTC string ending with ``Z``."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
