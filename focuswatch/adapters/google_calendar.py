"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol and get plain meeting dicts back.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

from focuswatch.core.clock import now_ms, to_local
from focuswatch.integrations.google_auth import as_fetch_error, build_service

logger = logging.getLogger(__name__)

_MAX_RESULTS = 20


def _to_ms(point: dict, tz: ZoneInfo) -> tuple[int, bool]:
    """Convert a Google start/end object to epoch ms; second item is all-day."""
    if "dateTime" in point:
        return int(datetime.fromisoformat(point["dateTime"]).timestamp() * 1000), False
    day = datetime.fromisoformat(point["date"]).date()
    return int(datetime.combine(day, time.min, tzinfo=tz).timestamp() * 1000), True


def event_to_meeting(item: dict, tz: ZoneInfo) -> dict:
    start_ms, all_day = _to_ms(item.get("start", {}), tz)
    end = item.get("end")
    end_ms = _to_ms(end, tz)[0] if end else start_ms
    return {
        "id": item.get("id", ""),
        "title": item.get("summary", "(no title)"),
        "start_ms": start_ms,
        "end_ms": end_ms,
        "all_day": all_day,
        "location": item.get("location", ""),
    }


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort."""

    def __init__(self, tz: str | None = None) -> None:
        if tz is None:
            from focuswatch.config import settings
            tz = settings.TIMEZONE
        self._tz = ZoneInfo(tz)

    def _list_today(self) -> list[dict]:
        today = to_local(now_ms(), self._tz.key).date()
        time_min = datetime.combine(today, time.min, tzinfo=self._tz)
        time_max = time_min + timedelta(days=1)

        service = build_service("calendar", "v3")
        result = (
            service.events()
            .list(
                calendarId="primary",
                timeMin=time_min.isoformat(),
                timeMax=time_max.isoformat(),
                singleEvents=True,
                orderBy="startTime",
                maxResults=_MAX_RESULTS,
            )
            .execute()
        )
        return result.get("items", [])

    async def get_todays_events(self) -> list[dict]:
        try:
            items = await asyncio.to_thread(self._list_today)
            meetings = [event_to_meeting(item, self._tz) for item in items]
        except Exception as exc:
            logger.error("Google Calendar fetch failed: %s", exc)
            raise as_fetch_error(exc, "Google Calendar") from exc

        logger.info("Found %d calendar event(s) today", len(meetings))
        return meetings
