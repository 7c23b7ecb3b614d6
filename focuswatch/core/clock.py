"""Wall-clock helpers: epoch milliseconds and local day keys."""

from __future__ import annotations

import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def now_ms() -> int:
    return int(time.time() * 1000)


def _zone(tz: str | None) -> ZoneInfo:
    if tz is None:
        from focuswatch.config import settings
        tz = settings.TIMEZONE
    return ZoneInfo(tz)


def to_local(ms: int, tz: str | None = None) -> datetime:
    """Convert epoch milliseconds to an aware datetime in the local zone."""
    return datetime.fromtimestamp(ms / 1000, tz=_zone(tz))


def day_key(ms: int, tz: str | None = None) -> str:
    """Return the local YYYY-MM-DD for an epoch-millisecond timestamp."""
    return to_local(ms, tz).date().isoformat()


def previous_day(day: str) -> str:
    return (datetime.strptime(day, "%Y-%m-%d") - timedelta(days=1)).date().isoformat()


def format_duration(ms: int) -> str:
    """Render a duration as "1h 5m"."""
    hours, rem = divmod(max(ms, 0), HOUR_MS)
    return f"{hours}h {rem // MINUTE_MS}m"
