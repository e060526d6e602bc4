"""Time helpers shared by the test modules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

# A fixed day far from "now" so bookings never collide with walk-ins
DAY = datetime(2031, 3, 14, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


def minutes_from_now(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)
