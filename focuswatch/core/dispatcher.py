"""
FocusWatch — Event & Tick Dispatcher.

The one place where activity events and timer ticks meet the core.
Everything that touches the open session or the rule ledger runs under a
single asyncio.Lock, so an event and a tick never interleave. Network-bound
batch classification runs outside the lock and only re-aggregates under it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from focuswatch.core.aggregator import DailyAggregator
from focuswatch.core.classifier import ClassificationCache
from focuswatch.core.clock import day_key
from focuswatch.core.clock import now_ms as _now_ms
from focuswatch.core.scheduler import NotificationScheduler, SchedulerState
from focuswatch.core.tracker import SessionTracker
from focuswatch.data.db import ClipboardDB, SessionDB, retention_expiry, run_cleanup
from focuswatch.data.models import ActivityEvent, CopyEvent, Notification

logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        tracker: SessionTracker,
        aggregator: DailyAggregator,
        classification: ClassificationCache,
        scheduler: NotificationScheduler,
        sessions: SessionDB,
        clipboard: ClipboardDB,
        stores: Iterable,
        tz: str | None = None,
    ) -> None:
        self._tracker = tracker
        self._aggregator = aggregator
        self._classification = classification
        self._scheduler = scheduler
        self._sessions = sessions
        self._clipboard = clipboard
        self._stores = list(stores)
        self._tz = tz
        self._state = SchedulerState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SchedulerState:
        return self._state

    # -- events --------------------------------------------------------------

    async def handle_event(self, event: ActivityEvent | CopyEvent) -> None:
        async with self._lock:
            if isinstance(event, CopyEvent):
                stored = self._clipboard.add_entry(event, expires_at=retention_expiry(event.timestamp))
                logger.debug("Copy event on %s %s", event.domain, "stored" if stored else "duplicate")
                return

            change = self._tracker.on_context_change(event)
            if change.closed is not None:
                logger.info(
                    "Session saved: %s (%ds)", change.closed.domain, change.closed.duration_ms // 1000,
                )
                self._aggregator.aggregate(change.closed.day)

            if change.productive and change.opened is not None:
                snapshot = self._aggregator.get_snapshot(change.opened.day)
                self._state, _ = await self._scheduler.on_productive_visit(
                    self._state, event.timestamp, snapshot,
                )

    # -- ticks ---------------------------------------------------------------

    async def heartbeat(self, now_ms: int | None = None) -> None:
        """Flush the open session, then refresh today's snapshot."""
        now_ms = _now_ms() if now_ms is None else now_ms
        today = day_key(now_ms, self._tz)
        async with self._lock:
            saved = self._tracker.on_heartbeat_tick(now_ms)
            if saved is not None:
                logger.debug("Heartbeat saved %dms on %s", saved.duration_ms, saved.domain)
                if saved.day != today:
                    self._aggregator.aggregate(saved.day)
            self._aggregator.aggregate(today)

    async def check_rules(self, now_ms: int | None = None) -> list[Notification]:
        now_ms = _now_ms() if now_ms is None else now_ms
        async with self._lock:
            snapshot = self._aggregator.get_snapshot(day_key(now_ms, self._tz))
            self._state, sent = await self._scheduler.tick(self._state, now_ms, snapshot)
        return sent

    async def classify_pending(self, now_ms: int | None = None) -> int:
        """Batch-classify today's unresolved domains, then refresh the snapshot."""
        now_ms = _now_ms() if now_ms is None else now_ms
        day = day_key(now_ms, self._tz)
        async with self._lock:
            domains = self._classification.collect_unresolved(self._sessions, day)
        if not domains:
            return 0

        written = await self._classification.classify_batch(domains, now_ms=now_ms)
        if written:
            async with self._lock:
                self._aggregator.aggregate(day)
            logger.info("Classified %d domains, snapshot for %s refreshed", written, day)
        return written

    async def cleanup(self, now_ms: int | None = None) -> tuple[int, int]:
        now_ms = _now_ms() if now_ms is None else now_ms
        async with self._lock:
            return run_cleanup(self._stores, now_ms)

    async def shutdown(self, now_ms: int | None = None) -> None:
        """Persist the open session before the process exits."""
        now_ms = _now_ms() if now_ms is None else now_ms
        async with self._lock:
            closed = self._tracker.flush(now_ms)
            if closed is not None:
                self._aggregator.aggregate(closed.day)
