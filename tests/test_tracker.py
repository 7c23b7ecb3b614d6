"""Tests for focuswatch.core.tracker — session lifecycle and exclusions."""

import pytest

from focuswatch.core.tracker import (
    ExclusionPolicy,
    SessionTracker,
    extract_domain,
)
from focuswatch.data.models import ActivityEvent

T0 = 1_704_067_200_000  # 2024-01-01T00:00:00Z


def _event(url, ts, domain=None, title="page"):
    return ActivityEvent(
        context_id=url,
        domain=domain if domain is not None else extract_domain(url),
        title=title,
        timestamp=ts,
    )


@pytest.fixture
def policy():
    return ExclusionPolicy(
        schemes=("chrome://", "about:"),
        domains=("accounts.google.com", "okta.com"),
        paths=("/login", "/oauth"),
    )


@pytest.fixture
def tracker(session_db, policy):
    return SessionTracker(session_db, policy=policy, tz="UTC")


# ---------------------------------------------------------------------------
# Exclusion policy
# ---------------------------------------------------------------------------


class TestExclusionPolicy:
    def test_empty_url_is_excluded(self, policy):
        assert policy.is_excluded("") is True

    def test_scheme_prefix(self, policy):
        assert policy.is_excluded("chrome://settings") is True
        assert policy.is_excluded("about:blank") is True

    def test_domain_exact_and_substring(self, policy):
        assert policy.is_excluded("https://accounts.google.com/x") is True
        assert policy.is_excluded("https://acme.okta.com/app") is True

    def test_path_substring_case_insensitive(self, policy):
        assert policy.is_excluded("https://example.com/LOGIN?next=/") is True
        assert policy.is_excluded("https://example.com/api/oauth/callback") is True

    def test_ordinary_url_is_tracked(self, policy):
        assert policy.is_excluded("https://github.com/org/repo") is False

    def test_from_settings_uses_defaults(self):
        policy = ExclusionPolicy.from_settings()
        assert policy.is_excluded("chrome-extension://abc/popup.html") is True
        assert policy.is_excluded("https://login.microsoftonline.com/") is True


class TestExtractDomain:
    def test_hostname(self):
        assert extract_domain("https://docs.python.org/3/") == "docs.python.org"

    def test_unknown_when_missing(self):
        assert extract_domain("not a url") == "unknown"


# ---------------------------------------------------------------------------
# Context changes
# ---------------------------------------------------------------------------


class TestContextChange:
    def test_first_event_opens_session(self, tracker):
        change = tracker.on_context_change(_event("https://github.com/a", T0))
        assert change.closed is None
        assert change.opened.domain == "github.com"
        assert change.opened.classification == "unclassified"
        assert change.opened.day == "2024-01-01"
        assert tracker.active is change.opened

    def test_switch_persists_previous_session(self, tracker, session_db):
        tracker.on_context_change(_event("https://github.com/a", T0))
        change = tracker.on_context_change(_event("https://reddit.com/r/x", T0 + 90_000))

        assert change.closed.domain == "github.com"
        assert change.closed.duration_ms == 90_000
        assert change.closed.end_ms == T0 + 90_000
        assert [s.domain for s in session_db.list_for_day("2024-01-01")] == ["github.com"]

    def test_session_of_one_second_is_discarded(self, tracker, session_db):
        tracker.on_context_change(_event("https://github.com/a", T0))
        change = tracker.on_context_change(_event("https://reddit.com/", T0 + 1_000))
        assert change.closed is None
        assert session_db.list_for_day("2024-01-01") == []

    def test_excluded_url_closes_without_opening(self, tracker, session_db):
        tracker.on_context_change(_event("https://github.com/a", T0))
        change = tracker.on_context_change(_event("https://example.com/login", T0 + 10_000))

        assert change.excluded is True
        assert change.opened is None
        assert change.closed.duration_ms == 10_000
        assert tracker.active is None

    def test_productive_flag_uses_classifier(self, session_db, policy):
        tracker = SessionTracker(
            session_db, policy=policy, tz="UTC",
            classify=lambda d: "productive" if d == "github.com" else None,
        )
        assert tracker.on_context_change(_event("https://github.com/", T0)).productive is True
        assert tracker.on_context_change(_event("https://news.com/", T0 + 5_000)).productive is False


# ---------------------------------------------------------------------------
# Heartbeat and flush
# ---------------------------------------------------------------------------


class TestHeartbeat:
    def test_no_open_session(self, tracker):
        assert tracker.on_heartbeat_tick(T0) is None

    def test_short_session_not_flushed(self, tracker, session_db):
        tracker.on_context_change(_event("https://github.com/", T0))
        assert tracker.on_heartbeat_tick(T0 + 4_999) is None
        assert session_db.list_for_day("2024-01-01") == []

    def test_flush_partial_and_restart(self, tracker, session_db):
        tracker.on_context_change(_event("https://github.com/", T0))
        saved = tracker.on_heartbeat_tick(T0 + 30_000)

        assert saved.duration_ms == 30_000
        assert tracker.active.start_ms == T0 + 30_000

        # the remainder is recorded on the next switch, without double counting
        change = tracker.on_context_change(_event("https://x.com/", T0 + 45_000))
        assert change.closed.duration_ms == 15_000
        total = sum(s.duration_ms for s in session_db.list_for_day("2024-01-01"))
        assert total == 45_000

    def test_heartbeat_across_midnight_moves_day(self, tracker):
        late = T0 - 60_000  # 2023-12-31T23:59:00Z
        tracker.on_context_change(_event("https://github.com/", late))
        saved = tracker.on_heartbeat_tick(T0 + 30_000)

        assert saved.day == "2023-12-31"
        assert tracker.active.day == "2024-01-01"

    def test_flush_closes_session(self, tracker):
        tracker.on_context_change(_event("https://github.com/", T0))
        closed = tracker.flush(T0 + 20_000)
        assert closed.duration_ms == 20_000
        assert tracker.active is None
