"""
FocusWatch — Daily Aggregator.

Folds a day's session records into one DailySnapshot. The snapshot is
recomputed from scratch on every pass and overwritten, so running it twice
over the same sessions gives the same result, and a reclassified domain
shows up retroactively on the next pass.
"""

from __future__ import annotations

import logging
import math
from typing import Callable

from focuswatch.data.db import SessionDB, SnapshotDB
from focuswatch.data.models import (
    DISTRACTION,
    PRODUCTIVE,
    UNCLASSIFIED,
    DailySnapshot,
    DomainTotal,
)

logger = logging.getLogger(__name__)

TOP_DOMAINS = 20


def goal_progress(productive_ms: int, goal_minutes: int) -> int:
    """Percent of the daily goal reached, rounded half up, capped at 100."""
    if goal_minutes <= 0:
        return 100 if productive_ms > 0 else 0
    percent = productive_ms / (goal_minutes * 60_000) * 100
    return min(100, math.floor(percent + 0.5))


class DailyAggregator:
    def __init__(
        self,
        sessions: SessionDB,
        snapshots: SnapshotDB,
        classify: Callable[[str], str | None],
        goal_minutes: int | None = None,
    ) -> None:
        if goal_minutes is None:
            from focuswatch.config import settings
            goal_minutes = settings.DAILY_FOCUS_GOAL_MINUTES
        self._sessions = sessions
        self._snapshots = snapshots
        self._classify = classify
        self._goal_minutes = goal_minutes

    def aggregate(self, day: str) -> DailySnapshot:
        """Recompute and store the snapshot for day."""
        sessions = self._sessions.list_for_day(day)

        totals = {PRODUCTIVE: 0, DISTRACTION: 0, "other": 0}
        per_domain: dict[str, list] = {}
        resolved: dict[str, str] = {}
        total = 0
        updated_at = 0

        for session in sessions:
            duration = session.duration_ms or 0
            total += duration
            updated_at = max(updated_at, session.end_ms)

            classification = session.classification or UNCLASSIFIED
            if classification == UNCLASSIFIED:
                if session.domain not in resolved:
                    resolved[session.domain] = self._classify(session.domain) or UNCLASSIFIED
                classification = resolved[session.domain]

            bucket = classification if classification in (PRODUCTIVE, DISTRACTION) else "other"
            totals[bucket] += duration

            entry = per_domain.setdefault(session.domain, [0, classification])
            entry[0] += duration

        # sorted() is stable, so equal durations keep first-seen order
        ranked = sorted(per_domain.items(), key=lambda item: item[1][0], reverse=True)
        top = tuple(
            DomainTotal(domain=domain, duration=duration, classification=classification)
            for domain, (duration, classification) in ranked[:TOP_DOMAINS]
        )

        snapshot = DailySnapshot(
            day=day,
            total_time=total,
            productive_time=totals[PRODUCTIVE],
            distraction_time=totals[DISTRACTION],
            neutral_time=totals["other"],
            top_domains=top,
            goal_progress=goal_progress(totals[PRODUCTIVE], self._goal_minutes),
            session_count=len(sessions),
            updated_at=updated_at,
        )
        self._snapshots.put(snapshot)
        logger.debug(
            "Aggregated %s: %d sessions, %dms productive, %dms distraction",
            day, len(sessions), snapshot.productive_time, snapshot.distraction_time,
        )
        return snapshot

    def get_snapshot(self, day: str) -> DailySnapshot:
        """Stored snapshot for day, or an all-zero one when nothing is stored."""
        return self._snapshots.get(day) or DailySnapshot(day=day)
