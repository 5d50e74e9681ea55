"""Naive-UTC time helpers shared by models, queue and scheduler."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current UTC time without tzinfo (columns are stored as naive UTC)."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
