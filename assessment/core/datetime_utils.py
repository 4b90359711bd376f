"""
UTC helpers shared by the services and models.

All timestamps in the service are timezone-aware UTC. SQLite drops tzinfo on
the way back out of the database, so values read from rows go through
``ensure_timezone_aware`` before any comparison.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current time as an aware UTC datetime.

    This is the default ``clock`` of the services; tests pass their own.

        >>> utc_now().tzinfo is timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Treat a naive datetime as UTC.

    Raises:
        ValueError: dt is None
    """
    if dt is None:
        raise ValueError("expected a datetime, got None")
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def is_within_window(
    now: datetime,
    available_from: Optional[datetime],
    available_until: Optional[datetime],
) -> bool:
    """True when ``now`` lies in [available_from, available_until]; a None bound is open."""
    if available_from is not None and now < ensure_timezone_aware(available_from):
        return False
    if available_until is not None and now > ensure_timezone_aware(available_until):
        return False
    return True
