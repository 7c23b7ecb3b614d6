"""Tests for focuswatch.core.classifier — static lists, cache and AI batches."""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from focuswatch.core.classifier import ClassificationCache
from focuswatch.data.models import DomainClassification, Session
from focuswatch.integrations.ai_classifier import AIDomainClassifier
from focuswatch.ports.fetch_port import FetchError, MalformedResponseError


def _verdicts(domains, label="productive"):
    return [
        {"domain": d, "classification": label, "confidence": 0.9, "reason": "test"}
        for d in domains
    ]


@pytest.fixture
def classifier():
    mock = AsyncMock()
    mock.classify_domains = AsyncMock(side_effect=lambda batch: _verdicts(batch))
    return mock


@pytest.fixture
def cache(classification_db, classifier):
    return ClassificationCache(classification_db, classifier, timeout_seconds=1)


class TestClassify:
    def test_static_productive(self, cache):
        assert cache.classify("github.com") == "productive"

    def test_static_subdomain(self, cache):
        assert cache.classify("gist.github.com") == "productive"
        assert cache.classify("old.reddit.com") == "distraction"

    def test_lookalike_is_not_matched(self, cache):
        assert cache.classify("notgithub.com") is None

    def test_cached_value(self, cache, classification_db):
        classification_db.upsert(DomainClassification(
            domain="arxiv.org", classification="productive", confidence=0.9,
            source="ai", updated_at=1,
        ))
        assert cache.classify("arxiv.org") == "productive"

    def test_unresolved(self, cache):
        assert cache.classify("mystery.io") is None


class TestKnownRecords:
    def test_static_record_for_listed_domain(self, cache):
        record = cache.static_record("m.youtube.com", now_ms=5)
        assert record.classification == "distraction"
        assert record.source == "static"
        assert record.confidence == 1.0
        assert record.updated_at == 5

    def test_static_record_for_unlisted_domain(self, cache):
        assert cache.static_record("arxiv.org", now_ms=5) is None

    def test_stored_and_static_merged_sorted(self, cache, classification_db):
        classification_db.upsert(DomainClassification(
            domain="arxiv.org", classification="productive", confidence=0.9,
            source="ai", updated_at=1,
        ))
        records = cache.known_records(["github.com", "mystery.io"], now_ms=5)
        assert [(r.domain, r.source) for r in records] == [
            ("arxiv.org", "ai"),
            ("github.com", "static"),
        ]

    def test_static_list_wins_over_stored_record(self, cache, classification_db):
        classification_db.upsert(DomainClassification(
            domain="reddit.com", classification="neutral", confidence=0.5,
            source="fallback", updated_at=1,
        ))
        [record] = cache.known_records(["reddit.com"], now_ms=5)
        assert record.classification == "distraction"
        assert record.source == "static"


class TestCollectUnresolved:
    def test_returns_unique_unresolved(self, cache, session_db):
        for domain in ["mystery.io", "github.com", "mystery.io", "other.net"]:
            session_db.add_session(Session(
                domain=domain, title="", url="", start_ms=0, end_ms=5_000,
                duration_ms=5_000, day="2024-01-01",
            ))
        assert cache.collect_unresolved(session_db, "2024-01-01") == ["mystery.io", "other.net"]


class TestClassifyBatch:
    @pytest.mark.asyncio
    async def test_no_classifier_is_noop(self, classification_db):
        cache = ClassificationCache(classification_db, None)
        assert await cache.classify_batch(["mystery.io"]) == 0
        assert classification_db.get("mystery.io") is None

    @pytest.mark.asyncio
    async def test_resolved_domains_are_skipped(self, cache, classifier):
        assert await cache.classify_batch(["github.com", "reddit.com"]) == 0
        classifier.classify_domains.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicates_are_sent_once(self, cache, classifier):
        assert await cache.classify_batch(["a.io", "a.io", "b.io"]) == 2
        classifier.classify_domains.assert_awaited_once_with(["a.io", "b.io"])

    @pytest.mark.asyncio
    async def test_45_domains_split_into_three_calls_with_middle_failure(
        self, cache, classifier, classification_db,
    ):
        domains = [f"site{i}.io" for i in range(45)]
        calls = []

        async def _classify(batch):
            calls.append(list(batch))
            if len(calls) == 2:
                raise FetchError("provider down")
            return _verdicts(batch)

        classifier.classify_domains = AsyncMock(side_effect=_classify)

        written = await cache.classify_batch(domains, now_ms=7)

        assert [len(c) for c in calls] == [20, 20, 5]
        assert written == 45
        first = classification_db.get("site0.io")
        assert (first.classification, first.source) == ("productive", "ai")
        failed = classification_db.get("site25.io")
        assert (failed.classification, failed.source) == ("neutral", "fallback")
        last = classification_db.get("site44.io")
        assert last.source == "ai"

    @pytest.mark.asyncio
    async def test_missing_and_invalid_items_fall_back(self, cache, classifier, classification_db):
        classifier.classify_domains = AsyncMock(return_value=[
            {"domain": "a.io", "classification": "distraction", "confidence": 2.5},
            {"domain": "b.io", "classification": "banana", "confidence": 0.5},
        ])

        assert await cache.classify_batch(["a.io", "b.io", "c.io"]) == 3

        a = classification_db.get("a.io")
        assert a.classification == "distraction"
        assert a.confidence == 1.0
        assert classification_db.get("b.io").source == "fallback"
        assert classification_db.get("c.io").classification == "neutral"

    @pytest.mark.asyncio
    async def test_malformed_response_falls_back(self, cache, classifier, classification_db):
        classifier.classify_domains = AsyncMock(side_effect=MalformedResponseError("bad json"))
        assert await cache.classify_batch(["a.io"]) == 1
        assert classification_db.get("a.io").source == "fallback"

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, classification_db):
        async def _slow(batch):
            await asyncio.sleep(5)

        slow = AsyncMock()
        slow.classify_domains = AsyncMock(side_effect=_slow)
        cache = ClassificationCache(classification_db, slow, timeout_seconds=0.01)

        assert await cache.classify_batch(["a.io"]) == 1
        assert classification_db.get("a.io").source == "fallback"

    @pytest.mark.asyncio
    async def test_fallback_pins_domain_until_reclassified(self, cache, classifier):
        classifier.classify_domains = AsyncMock(side_effect=FetchError("down"))
        await cache.classify_batch(["a.io"])
        classifier.classify_domains.reset_mock()

        assert await cache.classify_batch(["a.io"]) == 0
        classifier.classify_domains.assert_not_called()

    @pytest.mark.asyncio
    async def test_null_classifications_fall_back_and_later_batches_run(self, classification_db):
        domains = [f"site{i}.io" for i in range(25)]
        answers = [
            '{"classifications": null}',
            '{"classifications": [{"domain": "site20.io", "classification": "productive", "confidence": 0.9}]}',
        ]
        cache = ClassificationCache(classification_db, AIDomainClassifier(), timeout_seconds=1)

        with patch("focuswatch.integrations.ai_classifier.complete", AsyncMock(side_effect=answers)):
            written = await cache.classify_batch(domains)

        assert written == 25
        assert classification_db.get("site0.io").source == "fallback"
        assert classification_db.get("site20.io").source == "ai"
        assert all(cache.classify(d) is not None for d in domains)
