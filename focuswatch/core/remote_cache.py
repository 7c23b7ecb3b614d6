"""
FocusWatch — Stale-Tolerant Remote Cache.

Wraps rate-limited remote fetches (weather, calendar, mail, GitHub) with a
per-key freshness TTL. When a refresh fails, the last payload is served
marked stale instead of raising. Sign-in errors are never papered over:
the caller has to show a sign-in prompt, not yesterday's data.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from focuswatch.core.clock import now_ms as _now_ms
from focuswatch.data.db import CacheDB, retention_expiry
from focuswatch.data.models import CacheEntry, CachedResult
from focuswatch.ports.fetch_port import FetchError, UnauthenticatedError

logger = logging.getLogger(__name__)

WEATHER_TTL = 15 * 60
CALENDAR_TTL = 5 * 60
MAIL_TTL = 2 * 60
GITHUB_TTL = 5 * 60

Fetcher = Callable[[], Awaitable[Any]]


class RemoteCache:
    def __init__(self, db: CacheDB, timeout_seconds: float | None = None) -> None:
        if timeout_seconds is None:
            from focuswatch.config import settings
            timeout_seconds = settings.FETCH_TIMEOUT_SECONDS
        self._db = db
        self._timeout = timeout_seconds

    async def fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetcher: Fetcher,
        now_ms: int | None = None,
    ) -> CachedResult:
        """Return a fresh cached payload, or refetch; serve stale data on failure.

        Raises UnauthenticatedError as-is, and FetchError when the refresh
        failed and nothing was cached.
        """
        if now_ms is None:
            now_ms = _now_ms()

        cached = self._db.get(key)
        if cached is not None and now_ms - cached.fetched_at < ttl_seconds * 1000:
            return CachedResult(payload=cached.payload, fetched_at=cached.fetched_at)

        try:
            payload = await asyncio.wait_for(fetcher(), timeout=self._timeout)
        except UnauthenticatedError:
            logger.info("Fetch for '%s' needs sign-in", key)
            raise
        except (FetchError, asyncio.TimeoutError) as exc:
            if cached is None:
                logger.warning("Fetch for '%s' failed with no cached fallback: %s", key, exc)
                if isinstance(exc, FetchError):
                    raise
                raise FetchError(f"Fetch for '{key}' timed out") from exc
            logger.warning(
                "Fetch for '%s' failed, serving data from %ds ago: %s",
                key, (now_ms - cached.fetched_at) // 1000, exc,
            )
            return CachedResult(payload=cached.payload, fetched_at=cached.fetched_at, stale=True)

        self._db.put(CacheEntry(
            key=key,
            payload=payload,
            fetched_at=now_ms,
            expires_at=retention_expiry(now_ms, retention_days=1),
        ))
        return CachedResult(payload=payload, fetched_at=now_ms)

    def invalidate(self, key: str) -> None:
        if self._db.delete(key):
            logger.info("Cache entry '%s' cleared", key)
