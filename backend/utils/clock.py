"""UTC timestamp helpers shared by storage and HTTP layers."""

from __future__ import annotations

from datetime import datetime, timezone


DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_timestamp(value: datetime) -> str:
    # Fixed-width text so SQL string comparison matches chronological order.
    return as_utc(value).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: str) -> datetime:
    return datetime.strptime(value, DB_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
