"""
FocusWatch — Session Tracker.

Turns the stream of "active context changed" events into bounded session
records. At most one session is open at a time; it is closed and persisted
when the context changes, and flushed as a partial record on every
heartbeat so a long session survives the process being killed.

No timers live here: callers pass the current time in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import urlsplit

from focuswatch.core.clock import day_key
from focuswatch.data.db import SessionDB, retention_expiry
from focuswatch.data.models import PRODUCTIVE, UNCLASSIFIED, ActivityEvent, Session

logger = logging.getLogger(__name__)

MIN_SESSION_MS = 1000          # shorter sessions are discarded on context change
MIN_HEARTBEAT_FLUSH_MS = 5000  # partial records shorter than this are not flushed


@dataclass(frozen=True)
class ExclusionPolicy:
    """URLs we never track: browser internals, SSO hosts, auth pages."""

    schemes: tuple[str, ...] = ()
    domains: tuple[str, ...] = ()
    paths: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls) -> ExclusionPolicy:
        from focuswatch.config import settings
        return cls(
            schemes=tuple(settings.EXCLUDED_SCHEMES),
            domains=tuple(settings.EXCLUDED_DOMAINS),
            paths=tuple(settings.EXCLUDED_PATHS),
        )

    def is_excluded(self, url: str, domain: str | None = None) -> bool:
        """Scheme, then domain, then path. First match wins."""
        if not url:
            return True
        url_lower = url.lower()

        if any(url_lower.startswith(scheme) for scheme in self.schemes):
            return True

        host = (domain or extract_domain(url)).lower()
        if any(host == d or d in host for d in self.domains):
            return True

        path = urlsplit(url_lower).path
        return any(p in path for p in self.paths)


def extract_domain(url: str) -> str:
    """Return the hostname of a URL, or "unknown" when it has none."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        host = None
    return host or "unknown"


@dataclass
class ContextChange:
    """Outcome of a context switch."""

    closed: Session | None = None      # persisted session, if any
    opened: Session | None = None      # newly open session, if tracked
    productive: bool = False           # opened session's domain is productive
    excluded: bool = False


@dataclass
class SessionTracker:
    """Owns the single open session until it is persisted."""

    sessions: SessionDB
    policy: ExclusionPolicy = field(default_factory=ExclusionPolicy)
    classify: Callable[[str], str | None] | None = None
    tz: str | None = None
    _active: Session | None = field(default=None, init=False, repr=False)

    @property
    def active(self) -> Session | None:
        return self._active

    def on_context_change(self, event: ActivityEvent) -> ContextChange:
        """Close the open session at event.timestamp and maybe open a new one."""
        now = event.timestamp
        result = ContextChange(closed=self._close(now, MIN_SESSION_MS))

        if self.policy.is_excluded(event.context_id, event.domain or None):
            logger.debug("Context excluded from tracking: %s", event.domain)
            self._active = None
            result.excluded = True
            return result

        domain = (event.domain or extract_domain(event.context_id)).lower()
        self._active = Session(
            domain=domain,
            title=event.title,
            url=event.context_id,
            start_ms=now,
            day=day_key(now, self.tz),
            classification=UNCLASSIFIED,
            expires_at=retention_expiry(now),
        )
        result.opened = self._active
        if self.classify is not None:
            result.productive = self.classify(domain) == PRODUCTIVE
        return result

    def on_heartbeat_tick(self, now_ms: int) -> Session | None:
        """Persist the open session so far and restart it at now_ms."""
        active = self._active
        if active is None or now_ms - active.start_ms < MIN_HEARTBEAT_FLUSH_MS:
            return None

        saved = self._persist(active, now_ms)
        active.start_ms = now_ms
        active.day = day_key(now_ms, self.tz)
        active.expires_at = retention_expiry(now_ms)
        return saved

    def flush(self, now_ms: int) -> Session | None:
        """Close the open session for good, e.g. on shutdown."""
        return self._close(now_ms, MIN_SESSION_MS)

    def _close(self, now_ms: int, min_duration: int) -> Session | None:
        active, self._active = self._active, None
        if active is None:
            return None
        if now_ms - active.start_ms <= min_duration:
            logger.debug("Discarding %dms session on %s", now_ms - active.start_ms, active.domain)
            return None
        return self._persist(active, now_ms)

    def _persist(self, active: Session, end_ms: int) -> Session:
        closed = Session(
            domain=active.domain,
            title=active.title,
            url=active.url,
            start_ms=active.start_ms,
            end_ms=end_ms,
            duration_ms=end_ms - active.start_ms,
            day=active.day,
            classification=active.classification,
            expires_at=active.expires_at,
        )
        return self.sessions.add_session(closed)
