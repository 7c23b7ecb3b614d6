"""Tests for focuswatch.core.aggregator — daily snapshot recomputation."""

import pytest

from focuswatch.core.aggregator import DailyAggregator, goal_progress
from focuswatch.data.models import Session


def _add(session_db, domain, duration, day="2024-01-01", classification="unclassified", start=0):
    session_db.add_session(Session(
        domain=domain,
        title="",
        url=f"https://{domain}/",
        start_ms=start,
        end_ms=start + duration,
        duration_ms=duration,
        day=day,
        classification=classification,
    ))


@pytest.fixture
def known():
    table = {"github.com": "productive", "reddit.com": "distraction"}
    return table.get


@pytest.fixture
def aggregator(session_db, snapshot_db, known):
    return DailyAggregator(session_db, snapshot_db, known, goal_minutes=240)


class TestGoalProgress:
    def test_rounds_half_up(self):
        # 30 min of a 240 min goal = 12.5%
        assert goal_progress(30 * 60_000, 240) == 13

    def test_capped_at_100(self):
        assert goal_progress(10 * 60 * 60_000, 240) == 100

    def test_zero(self):
        assert goal_progress(0, 240) == 0


class TestAggregate:
    def test_single_productive_session(self, aggregator, session_db):
        _add(session_db, "github.com", 3_700_000)
        snapshot = aggregator.aggregate("2024-01-01")

        assert snapshot.total_time == 3_700_000
        assert snapshot.productive_time == 3_700_000
        assert snapshot.distraction_time == 0
        assert snapshot.goal_progress == 26
        assert snapshot.session_count == 1
        assert snapshot.top_domains[0].domain == "github.com"
        assert snapshot.top_domains[0].classification == "productive"

    def test_unresolved_domain_counts_as_neutral(self, aggregator, session_db):
        _add(session_db, "mystery.io", 60_000)
        snapshot = aggregator.aggregate("2024-01-01")
        assert snapshot.neutral_time == 60_000
        assert snapshot.top_domains[0].classification == "unclassified"

    def test_stamped_classification_wins(self, aggregator, session_db):
        _add(session_db, "github.com", 60_000, classification="distraction")
        snapshot = aggregator.aggregate("2024-01-01")
        assert snapshot.distraction_time == 60_000
        assert snapshot.productive_time == 0

    def test_totals_add_up(self, aggregator, session_db):
        _add(session_db, "github.com", 100_000)
        _add(session_db, "reddit.com", 50_000)
        _add(session_db, "mystery.io", 25_000)
        snapshot = aggregator.aggregate("2024-01-01")
        assert snapshot.total_time == (
            snapshot.productive_time + snapshot.distraction_time + snapshot.neutral_time
        )

    def test_top_domains_sorted_and_stable(self, aggregator, session_db):
        _add(session_db, "b.com", 10_000)
        _add(session_db, "a.com", 10_000)
        _add(session_db, "github.com", 50_000)
        _add(session_db, "b.com", 5_000)
        snapshot = aggregator.aggregate("2024-01-01")
        assert [d.domain for d in snapshot.top_domains] == ["github.com", "b.com", "a.com"]

    def test_top_domains_capped_at_20(self, aggregator, session_db):
        for i in range(25):
            _add(session_db, f"site{i}.com", 1_000 + i)
        assert len(aggregator.aggregate("2024-01-01").top_domains) == 20

    def test_other_days_ignored(self, aggregator, session_db):
        _add(session_db, "github.com", 60_000, day="2024-01-02")
        assert aggregator.aggregate("2024-01-01").total_time == 0

    def test_idempotent(self, aggregator, session_db, snapshot_db):
        _add(session_db, "github.com", 3_700_000, start=1_000)
        _add(session_db, "reddit.com", 120_000, start=4_000_000)
        first = aggregator.aggregate("2024-01-01")
        second = aggregator.aggregate("2024-01-01")
        assert first == second
        assert snapshot_db.get("2024-01-01") == second

    def test_reclassification_applies_retroactively(self, session_db, snapshot_db):
        table = {}
        aggregator = DailyAggregator(session_db, snapshot_db, table.get, goal_minutes=240)
        _add(session_db, "news.com", 60_000)
        assert aggregator.aggregate("2024-01-01").neutral_time == 60_000

        table["news.com"] = "distraction"
        assert aggregator.aggregate("2024-01-01").distraction_time == 60_000


class TestGetSnapshot:
    def test_zeroed_default(self, aggregator):
        snapshot = aggregator.get_snapshot("2030-01-01")
        assert snapshot.day == "2030-01-01"
        assert snapshot.total_time == 0
        assert snapshot.top_domains == ()

    def test_returns_stored(self, aggregator, session_db):
        _add(session_db, "github.com", 60_000)
        aggregator.aggregate("2024-01-01")
        assert aggregator.get_snapshot("2024-01-01").productive_time == 60_000
