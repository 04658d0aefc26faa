"""
Time helpers.

The graph build never reads the wall clock for ranking decisions: freshness
is always measured against an explicit reference time (by default the newest
``updated_at`` in the catalog snapshot) so identical snapshots produce
identical graphs.  ``utcnow()`` is only used for run metadata and manifests.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def latest_timestamp(values: Iterable[Optional[datetime]]) -> Optional[datetime]:
    """Return the newest non-null timestamp (UTC), or ``None`` if there is none."""
    present = [ensure_utc(v) for v in values if v is not None]
    return max(present) if present else None


def is_recent(
    value: Optional[datetime],
    reference_time: Optional[datetime],
    window_days: int,
) -> bool:
    """Return ``True`` if ``value`` lies within ``window_days`` before ``reference_time``.

    Missing timestamps (either side) are never recent.
    """
    if value is None or reference_time is None:
        return False
    delta = ensure_utc(reference_time) - ensure_utc(value)
    return delta < timedelta(days=window_days)
