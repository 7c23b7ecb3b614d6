"""
FocusWatch — Domain Classification Cache.

Resolves a domain to productive / distraction / neutral. Static allow and
deny lists answer first and cost nothing; the SQLite cache answers second;
anything still unresolved is batched to the AI classifier by the periodic
classification job. A failed AI batch pins its domains to neutral so the
same failing domain is not re-queried every tick.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from focuswatch.core.clock import now_ms as _now_ms
from focuswatch.data.db import ClassificationDB, SessionDB
from focuswatch.data.models import (
    CLASSIFICATIONS,
    DISTRACTION,
    NEUTRAL,
    PRODUCTIVE,
    SOURCE_AI,
    SOURCE_FALLBACK,
    SOURCE_STATIC,
    UNCLASSIFIED,
    DomainClassification,
)
from focuswatch.ports.fetch_port import DomainClassifierPort, FetchError

logger = logging.getLogger(__name__)

MAX_BATCH = 20

KNOWN_PRODUCTIVE = frozenset({
    "github.com",
    "gitlab.com",
    "bitbucket.org",
    "stackoverflow.com",
    "developer.mozilla.org",
    "docs.google.com",
    "notion.so",
    "linear.app",
    "jira.atlassian.com",
    "trello.com",
    "asana.com",
    "figma.com",
    "vercel.com",
    "netlify.com",
    "aws.amazon.com",
    "console.cloud.google.com",
    "portal.azure.com",
    "claude.ai",
    "chat.openai.com",
    "localhost",
})

KNOWN_DISTRACTIONS = frozenset({
    "twitter.com",
    "x.com",
    "facebook.com",
    "instagram.com",
    "reddit.com",
    "youtube.com",
    "tiktok.com",
    "netflix.com",
    "twitch.tv",
    "discord.com",
    "hulu.com",
    "disneyplus.com",
    "primevideo.com",
    "9gag.com",
    "buzzfeed.com",
})


def _matches(domain: str, listed: frozenset[str]) -> bool:
    """True if domain is a listed host or a subdomain of one."""
    host = domain.lower()
    while host:
        if host in listed:
            return True
        _, _, host = host.partition(".")
    return False


def _chunks(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class ClassificationCache:
    """Static lists → cached verdicts → unresolved."""

    def __init__(
        self,
        db: ClassificationDB,
        classifier: DomainClassifierPort | None = None,
        productive: frozenset[str] = KNOWN_PRODUCTIVE,
        distractions: frozenset[str] = KNOWN_DISTRACTIONS,
        timeout_seconds: float | None = None,
    ) -> None:
        if timeout_seconds is None:
            from focuswatch.config import settings
            timeout_seconds = settings.FETCH_TIMEOUT_SECONDS
        self._db = db
        self._classifier = classifier
        self._productive = productive
        self._distractions = distractions
        self._timeout = timeout_seconds

    def classify(self, domain: str) -> str | None:
        """Return the domain's classification, or None when unresolved."""
        if _matches(domain, self._productive):
            return PRODUCTIVE
        if _matches(domain, self._distractions):
            return DISTRACTION
        cached = self._db.get(domain)
        if cached is not None:
            return cached.classification
        return None

    def static_record(self, domain: str, now_ms: int) -> DomainClassification | None:
        """The built-in list verdict shaped like a stored one, or None."""
        if _matches(domain, self._productive):
            classification = PRODUCTIVE
        elif _matches(domain, self._distractions):
            classification = DISTRACTION
        else:
            return None
        return DomainClassification(
            domain=domain,
            classification=classification,
            confidence=1.0,
            source=SOURCE_STATIC,
            updated_at=now_ms,
        )

    def known_records(self, domains: Iterable[str], now_ms: int) -> list[DomainClassification]:
        """Every stored verdict, with built-in list verdicts for the given domains.

        The lists win over a stored record for the same domain, as in classify().
        """
        records = {r.domain: r for r in self._db.list_all()}
        for domain in domains:
            static = self.static_record(domain, now_ms)
            if static is not None:
                records[domain] = static
        return [records[d] for d in sorted(records)]

    def collect_unresolved(self, sessions_db: SessionDB, day: str) -> list[str]:
        """Unclassified session domains for a day that nothing resolves yet."""
        seen: dict[str, None] = {}
        for session in sessions_db.list_for_day(day):
            if session.classification != UNCLASSIFIED or session.domain in seen:
                continue
            if self.classify(session.domain) is None:
                seen[session.domain] = None
        return list(seen)

    async def classify_batch(
        self,
        domains: Iterable[str],
        max_batch: int = MAX_BATCH,
        now_ms: int | None = None,
    ) -> int:
        """Send unresolved domains to the AI classifier, max_batch per call.

        Returns the number of cache records written. Every domain of a
        failed batch is written as neutral/fallback.
        """
        if self._classifier is None:
            logger.debug("AI classifier not configured, skipping batch classification")
            return 0

        max_batch = max(1, min(max_batch, MAX_BATCH))
        unresolved = [d for d in dict.fromkeys(domains) if self.classify(d) is None]
        if not unresolved:
            return 0

        if now_ms is None:
            now_ms = _now_ms()

        written = 0
        for batch in _chunks(unresolved, max_batch):
            logger.info("Batch classifying %d domains", len(batch))
            try:
                items = await asyncio.wait_for(
                    self._classifier.classify_domains(batch), timeout=self._timeout,
                )
            except (FetchError, asyncio.TimeoutError) as exc:
                logger.error("AI classification failed for batch of %d: %s", len(batch), exc)
                items = []
            written += self._store_batch(batch, items, now_ms)
        return written

    def _store_batch(self, batch: list[str], items: list[dict], now_ms: int) -> int:
        answered: dict[str, DomainClassification] = {}
        wanted = {d.lower(): d for d in batch}
        for item in items:
            domain = wanted.get(str(item.get("domain", "")).lower())
            label = str(item.get("classification", "")).lower()
            if domain is None or label not in CLASSIFICATIONS:
                logger.warning("Ignoring invalid classification item: %r", item)
                continue
            try:
                confidence = min(1.0, max(0.0, float(item.get("confidence", 0))))
            except (TypeError, ValueError):
                confidence = 0.0
            answered[domain] = DomainClassification(
                domain=domain,
                classification=label,
                confidence=confidence,
                source=SOURCE_AI,
                reason=str(item.get("reason", "")),
                updated_at=now_ms,
            )

        for domain in batch:
            record = answered.get(domain) or DomainClassification(
                domain=domain,
                classification=NEUTRAL,
                confidence=0.0,
                source=SOURCE_FALLBACK,
                updated_at=now_ms,
            )
            self._db.upsert(record)

        fallbacks = len(batch) - len(answered)
        if fallbacks:
            logger.warning("%d of %d domains fell back to neutral", fallbacks, len(batch))
        return len(batch)
