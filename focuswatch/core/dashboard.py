"""
FocusWatch — Dashboard read paths.

Read-only views used by the bot commands. Local data always answers
(zeroed defaults when nothing was tracked). Remote panels go through the
stale-tolerant cache and report how fresh their data is:

    ok           fresh payload
    stale        previous payload, refresh failed
    signed_out   the service needs the user to sign in
    unavailable  not configured, or failed with nothing cached
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from focuswatch.core.aggregator import DailyAggregator
from focuswatch.core.clock import day_key, now_ms
from focuswatch.core.remote_cache import CALENDAR_TTL, GITHUB_TTL, MAIL_TTL, WEATHER_TTL, RemoteCache
from focuswatch.data.db import SessionDB
from focuswatch.data.models import DailySnapshot, Session
from focuswatch.ports.fetch_port import (
    CalendarPort,
    FetchError,
    GitHubPort,
    MailPort,
    UnauthenticatedError,
    WeatherPort,
)

logger = logging.getLogger(__name__)

OK = "ok"
STALE = "stale"
SIGNED_OUT = "signed_out"
UNAVAILABLE = "unavailable"

NO_DATA_INSIGHT = "Not enough browsing data yet. Check back after a few hours of tracking."
AI_DISABLED_INSIGHT = "AI insights are turned off. Set LLM_API_KEY to enable them."
INSIGHT_FAILED = "Couldn't generate insights right now. Try again later."


def panel(status: str, payload: Any = None, fetched_at: int = 0, error: str = "") -> dict:
    return {"status": status, "data": payload, "fetched_at": fetched_at, "error": error}


class Dashboard:
    def __init__(
        self,
        aggregator: DailyAggregator,
        sessions: SessionDB,
        remote_cache: RemoteCache,
        weather: WeatherPort | None = None,
        calendar: CalendarPort | None = None,
        mail: MailPort | None = None,
        github: GitHubPort | None = None,
        insight: Callable[[DailySnapshot], Awaitable[str]] | None = None,
        tz: str | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._sessions = sessions
        self._cache = remote_cache
        self._weather = weather
        self._calendar = calendar
        self._mail = mail
        self._github = github
        self._insight = insight
        self._tz = tz

    def _today(self) -> str:
        return day_key(now_ms(), self._tz)

    def browsing_stats(self, day: str | None = None) -> DailySnapshot:
        return self._aggregator.get_snapshot(day or self._today())

    def todays_sessions(self, limit: int = 50) -> list[Session]:
        return self._sessions.list_for_day(self._today(), limit=limit)

    async def _panel(self, key: str, ttl: int, fetcher: Callable[[], Awaitable[Any]] | None) -> dict:
        if fetcher is None:
            return panel(UNAVAILABLE, error=f"{key} is not configured")
        try:
            result = await self._cache.fetch(key, ttl, fetcher)
        except UnauthenticatedError as exc:
            return panel(SIGNED_OUT, error=str(exc))
        except FetchError as exc:
            return panel(UNAVAILABLE, error=str(exc))
        return panel(STALE if result.stale else OK, result.payload, result.fetched_at)

    async def weather(self) -> dict:
        return await self._panel("weather", WEATHER_TTL, self._weather and self._weather.get_weather)

    async def meetings(self) -> dict:
        return await self._panel("calendar", CALENDAR_TTL, self._calendar and self._calendar.get_todays_events)

    async def mail(self) -> dict:
        return await self._panel("gmail", MAIL_TTL, self._mail and self._mail.get_unread)

    async def github(self) -> dict:
        return await self._panel("github", GITHUB_TTL, self._github and self._github.get_dashboard)

    def sign_out_google(self) -> None:
        """Drop cached Google data after the token is revoked."""
        self._cache.invalidate("calendar")
        self._cache.invalidate("gmail")

    async def daily_insight(self, day: str | None = None) -> str:
        snapshot = self.browsing_stats(day)
        if snapshot.total_time == 0:
            return NO_DATA_INSIGHT
        if self._insight is None:
            return AI_DISABLED_INSIGHT
        try:
            return await self._insight(snapshot)
        except FetchError as exc:
            logger.error("Daily insight failed: %s", exc)
            return INSIGHT_FAILED
