from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    """UTC naïf : toutes les colonnes DateTime sont stockées sans tz."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
