from __future__ import annotations
from datetime import datetime, timedelta


def initial_expiry(start: datetime, duration_days: int, max_duration_days: int) -> datetime:
    return start + timedelta(days=min(duration_days, max_duration_days))


def renewed_expiry(
    now: datetime,
    current_expires_at: datetime,
    duration_days: int,
    max_duration_days: int,
) -> datetime:
    # extend from whichever is later, never past now + max
    base = max(now, current_expires_at)
    return min(base + timedelta(days=duration_days), now + timedelta(days=max_duration_days))
