# orderease/core/timeutils.py
import time
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from orderease.core.config import settings


def get_current_time_ms():
    return int(time.time() * 1000)


def utcnow() -> datetime:
    # Naive UTC so values compare cleanly after a round trip through SQLite
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now(now: datetime = None) -> datetime:
    """Restaurant-local wall clock for `now` (naive UTC), default current time."""
    tz = ZoneInfo(settings.TIMEZONE)
    if now is None:
        return datetime.now(tz)
    return now.replace(tzinfo=timezone.utc).astimezone(tz)
