"""Money and time helpers shared by services and schemas"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP


CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    """Convert a decimal currency amount (e.g. 12.34) to integer cents."""
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-place decimal amount."""
    return (Decimal(cents) / 100).quantize(CENT)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Return a timezone-aware UTC datetime.

    SQLite drops tzinfo on DateTime(timezone=True) columns, so values read
    back from the database are naive; they are stored in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def month_period(value: datetime) -> str:
    """Calendar month key ("YYYY-MM") used to roll monthly statistics."""
    return as_utc(value).strftime("%Y-%m")


def month_start(value: datetime) -> datetime:
    value = as_utc(value)
    return datetime(value.year, value.month, 1, tzinfo=timezone.utc)
