"""Tests for focuswatch.core.dashboard — panel statuses and insights."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from focuswatch.core import dashboard as dash
from focuswatch.core.aggregator import DailyAggregator
from focuswatch.core.dashboard import Dashboard
from focuswatch.core.remote_cache import RemoteCache
from focuswatch.data.models import CacheEntry, Session
from focuswatch.ports.fetch_port import FetchError, UnauthenticatedError


@pytest.fixture
def aggregator(session_db, snapshot_db):
    return DailyAggregator(session_db, snapshot_db, {"github.com": "productive"}.get, goal_minutes=240)


@pytest.fixture
def remote(cache_db):
    return RemoteCache(cache_db, timeout_seconds=1)


def _board(aggregator, session_db, remote, **ports):
    return Dashboard(aggregator, session_db, remote, tz="UTC", **ports)


class TestLocalPanels:
    def test_browsing_stats_zeroed_default(self, aggregator, session_db, remote):
        snapshot = _board(aggregator, session_db, remote).browsing_stats("2024-01-01")
        assert snapshot.total_time == 0

    def test_browsing_stats_after_aggregation(self, aggregator, session_db, remote):
        session_db.add_session(Session(
            domain="github.com", title="", url="", start_ms=0, end_ms=60_000,
            duration_ms=60_000, day="2024-01-01",
        ))
        aggregator.aggregate("2024-01-01")
        snapshot = _board(aggregator, session_db, remote).browsing_stats("2024-01-01")
        assert snapshot.productive_time == 60_000

    def test_todays_sessions(self, aggregator, session_db, remote):
        session_db.add_session(Session(
            domain="github.com", title="", url="", start_ms=0, end_ms=60_000,
            duration_ms=60_000, day="2024-01-01",
        ))
        with patch("focuswatch.core.dashboard.now_ms", return_value=1_704_067_200_000):
            sessions = _board(aggregator, session_db, remote).todays_sessions()
        assert [s.domain for s in sessions] == ["github.com"]


class TestRemotePanels:
    @pytest.mark.asyncio
    async def test_not_configured(self, aggregator, session_db, remote):
        result = await _board(aggregator, session_db, remote).weather()
        assert result["status"] == dash.UNAVAILABLE
        assert result["data"] is None

    @pytest.mark.asyncio
    async def test_fresh(self, aggregator, session_db, remote):
        weather = MagicMock()
        weather.get_weather = AsyncMock(return_value={"current": {"temp": 70}})

        result = await _board(aggregator, session_db, remote, weather=weather).weather()

        assert result["status"] == dash.OK
        assert result["data"]["current"]["temp"] == 70
        assert result["fetched_at"] > 0

    @pytest.mark.asyncio
    async def test_stale(self, aggregator, session_db, remote, cache_db):
        cache_db.put(CacheEntry(key="github", payload={"user": {"login": "octo"}}, fetched_at=1))
        github = MagicMock()
        github.get_dashboard = AsyncMock(side_effect=FetchError("502"))

        result = await _board(aggregator, session_db, remote, github=github).github()

        assert result["status"] == dash.STALE
        assert result["data"]["user"]["login"] == "octo"
        assert result["fetched_at"] == 1

    @pytest.mark.asyncio
    async def test_signed_out(self, aggregator, session_db, remote):
        calendar = MagicMock()
        calendar.get_todays_events = AsyncMock(side_effect=UnauthenticatedError("sign in"))

        result = await _board(aggregator, session_db, remote, calendar=calendar).meetings()

        assert result["status"] == dash.SIGNED_OUT
        assert "sign in" in result["error"]

    @pytest.mark.asyncio
    async def test_failure_without_cache(self, aggregator, session_db, remote):
        mail = MagicMock()
        mail.get_unread = AsyncMock(side_effect=FetchError("quota"))

        result = await _board(aggregator, session_db, remote, mail=mail).mail()

        assert result["status"] == dash.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_sign_out_google_drops_cached_google_data(self, aggregator, session_db, remote):
        mail = MagicMock()
        mail.get_unread = AsyncMock(return_value={"total_unread": 1})
        board = _board(aggregator, session_db, remote, mail=mail)

        await board.mail()
        board.sign_out_google()
        await board.mail()

        assert mail.get_unread.await_count == 2


class TestDailyInsight:
    def _with_data(self, aggregator, session_db):
        session_db.add_session(Session(
            domain="github.com", title="", url="", start_ms=0, end_ms=60_000,
            duration_ms=60_000, day="2024-01-01",
        ))
        aggregator.aggregate("2024-01-01")

    @pytest.mark.asyncio
    async def test_no_data(self, aggregator, session_db, remote):
        insight = AsyncMock()
        board = _board(aggregator, session_db, remote, insight=insight)
        assert await board.daily_insight("2024-01-01") == dash.NO_DATA_INSIGHT
        insight.assert_not_called()

    @pytest.mark.asyncio
    async def test_ai_disabled(self, aggregator, session_db, remote):
        self._with_data(aggregator, session_db)
        board = _board(aggregator, session_db, remote)
        assert await board.daily_insight("2024-01-01") == dash.AI_DISABLED_INSIGHT

    @pytest.mark.asyncio
    async def test_insight_text(self, aggregator, session_db, remote):
        self._with_data(aggregator, session_db)
        insight = AsyncMock(return_value="Good day.")
        board = _board(aggregator, session_db, remote, insight=insight)

        assert await board.daily_insight("2024-01-01") == "Good day."
        assert insight.call_args.args[0].day == "2024-01-01"

    @pytest.mark.asyncio
    async def test_insight_failure(self, aggregator, session_db, remote):
        self._with_data(aggregator, session_db)
        insight = AsyncMock(side_effect=FetchError("LLM down"))
        board = _board(aggregator, session_db, remote, insight=insight)

        assert await board.daily_insight("2024-01-01") == dash.INSIGHT_FAILED
