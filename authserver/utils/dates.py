"""
Time helpers.

All timestamps are stored as naive UTC datetimes (DATETIME columns carry no
timezone), so comparisons are done against naive UTC "now".
"""

from datetime import UTC, datetime, timedelta


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def is_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    """True once `now` has reached `expires_at` (no grace period)."""
    now = now or utcnow()
    return as_naive_utc(expires_at) <= now


def seconds_until(expires_at: datetime, now: datetime | None = None) -> int:
    """Whole seconds remaining before `expires_at`, never negative."""
    now = now or utcnow()
    remaining = (as_naive_utc(expires_at) - now) / timedelta(seconds=1)
    return max(0, int(remaining))
