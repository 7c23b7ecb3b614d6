"""
FocusWatch — Data Models.

Browsing sessions, domain classifications and daily snapshots persist in
SQLite so a restarted process can rebuild everything it needs from stored
facts. All timestamps are epoch milliseconds; day keys are YYYY-MM-DD in
the configured local timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

PRODUCTIVE = "productive"
DISTRACTION = "distraction"
NEUTRAL = "neutral"
UNCLASSIFIED = "unclassified"

CLASSIFICATIONS = (PRODUCTIVE, DISTRACTION, NEUTRAL)

SOURCE_STATIC = "static"
SOURCE_AI = "ai"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class ActivityEvent:
    """The user switched to a new active context (tab/URL)."""

    context_id: str        # the URL
    domain: str
    title: str
    timestamp: int


@dataclass(frozen=True)
class CopyEvent:
    """Text copied on a page. Stored with retention, not analysed."""

    text: str
    domain: str
    url: str
    timestamp: int


@dataclass
class Session:
    """One contiguous span of attention on a single domain.

    end_ms/duration_ms stay at 0 while the session is open in the tracker.
    """

    domain: str
    title: str
    url: str
    start_ms: int
    day: str                          # YYYY-MM-DD of start_ms
    classification: str = UNCLASSIFIED
    end_ms: int = 0
    duration_ms: int = 0
    expires_at: int = 0
    id: int | None = None


@dataclass
class DomainClassification:
    """Cached productivity verdict for a domain (last write wins)."""

    domain: str
    classification: str               # productive | distraction | neutral
    confidence: float
    source: str                       # static | ai | fallback
    updated_at: int
    reason: str = ""


@dataclass(frozen=True)
class DomainTotal:
    domain: str
    duration: int
    classification: str


@dataclass(frozen=True)
class DailySnapshot:
    """Recomputed-from-scratch aggregate for one calendar day."""

    day: str
    total_time: int = 0
    productive_time: int = 0
    distraction_time: int = 0
    neutral_time: int = 0
    top_domains: tuple[DomainTotal, ...] = ()
    goal_progress: int = 0
    session_count: int = 0
    updated_at: int = 0


@dataclass(frozen=True)
class Meeting:
    """A calendar event as the scheduler sees it."""

    id: str
    title: str
    start_ms: int
    end_ms: int = 0
    all_day: bool = False
    location: str = ""


@dataclass
class CacheEntry:
    """A remote payload cached with the time it was fetched."""

    key: str
    payload: Any
    fetched_at: int
    expires_at: int = 0


@dataclass(frozen=True)
class CachedResult:
    """What the remote cache hands back: the payload and how fresh it is."""

    payload: Any
    fetched_at: int
    stale: bool = False


@dataclass(frozen=True)
class Notification:
    """A notification ready for the sink."""

    id: str
    title: str
    body: str
    priority: int = 1
