"""
FocusWatch — Activity Database.

Every fact the engine needs to rebuild its state after a restart lives here:
browsing sessions, domain classifications, daily snapshots, the remote
payload cache, durable per-day markers and copied text. Each store is a
small SQLite-backed class keyed by its natural identity (id, domain, day,
cache key), so writes are idempotent upserts and last write wins.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable

from focuswatch.data.models import (
    CacheEntry,
    CopyEvent,
    DailySnapshot,
    DomainClassification,
    DomainTotal,
    Session,
)

logger = logging.getLogger(__name__)

_DAY_MS = 24 * 60 * 60 * 1000


def retention_expiry(now_ms: int, retention_days: int | None = None) -> int:
    """Return the expires_at timestamp for a record created at now_ms."""
    if retention_days is None:
        from focuswatch.config import settings
        retention_days = settings.RETENTION_DAYS
    return now_ms + retention_days * _DAY_MS


class _SQLiteStore:
    """Shared connection handling for the stores below."""

    _TABLE = ""
    _HAS_EXPIRY = True

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from focuswatch.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @property
    def name(self) -> str:
        return self._TABLE

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError

    def delete_expired(self, now_ms: int) -> int:
        """Delete rows whose expires_at has passed. Returns the count."""
        if not self._HAS_EXPIRY:
            return 0
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self._TABLE} WHERE expires_at > 0 AND expires_at <= ?",
                (now_ms,),
            )
        deleted = cursor.rowcount
        if deleted:
            logger.info("Deleted %d expired records from %s", deleted, self._TABLE)
        return deleted


class SessionDB(_SQLiteStore):
    """Completed (or heartbeat-flushed partial) browsing sessions."""

    _TABLE = "sessions"

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    domain         TEXT    NOT NULL,
                    title          TEXT    NOT NULL DEFAULT '',
                    url            TEXT    NOT NULL DEFAULT '',
                    start_ms       INTEGER NOT NULL,
                    end_ms         INTEGER NOT NULL,
                    duration_ms    INTEGER NOT NULL,
                    day            TEXT    NOT NULL,
                    classification TEXT    NOT NULL DEFAULT 'unclassified',
                    expires_at     INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_sessions_day ON sessions (day)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions (expires_at)"
            )
        logger.debug("Sessions table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            domain=row["domain"],
            title=row["title"],
            url=row["url"],
            start_ms=row["start_ms"],
            end_ms=row["end_ms"],
            duration_ms=row["duration_ms"],
            day=row["day"],
            classification=row["classification"],
            expires_at=row["expires_at"],
        )

    def add_session(self, session: Session) -> Session:
        """Insert a closed session and return it with its new id."""
        if session.end_ms < session.start_ms:
            raise ValueError(
                f"Session for {session.domain} ends before it starts "
                f"({session.end_ms} < {session.start_ms})"
            )
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions
                    (domain, title, url, start_ms, end_ms, duration_ms,
                     day, classification, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.domain, session.title, session.url,
                    session.start_ms, session.end_ms, session.duration_ms,
                    session.day, session.classification, session.expires_at,
                ),
            )
            session_id = cursor.lastrowid

        logger.debug(
            "Session saved: #%d %s %dms on %s",
            session_id, session.domain, session.duration_ms, session.day,
        )
        return Session(**{**asdict(session), "id": session_id})

    def list_for_day(self, day: str, limit: int | None = None) -> list[Session]:
        """Return a day's sessions in insertion order."""
        query = "SELECT * FROM sessions WHERE day = ? ORDER BY id"
        params: list = [day]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_session(r) for r in rows]

    def list_between(self, start_day: str, end_day: str) -> list[Session]:
        """Return sessions whose day falls in [start_day, end_day], oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM sessions WHERE day BETWEEN ? AND ? ORDER BY start_ms, id",
                (start_day, end_day),
            ).fetchall()
        return [self._row_to_session(r) for r in rows]


class ClassificationDB(_SQLiteStore):
    """Domain → productivity classification cache."""

    _TABLE = "domain_classifications"
    _HAS_EXPIRY = False

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS domain_classifications (
                    domain         TEXT PRIMARY KEY,
                    classification TEXT NOT NULL,
                    confidence     REAL NOT NULL DEFAULT 0,
                    source         TEXT NOT NULL,
                    reason         TEXT NOT NULL DEFAULT '',
                    updated_at     INTEGER NOT NULL
                )
            """)
        logger.debug("Classification table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_classification(row: sqlite3.Row) -> DomainClassification:
        return DomainClassification(
            domain=row["domain"],
            classification=row["classification"],
            confidence=row["confidence"],
            source=row["source"],
            reason=row["reason"],
            updated_at=row["updated_at"],
        )

    def get(self, domain: str) -> DomainClassification | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM domain_classifications WHERE domain = ?", (domain,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_classification(row)

    def upsert(self, record: DomainClassification) -> None:
        """Insert or replace the classification for a domain."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO domain_classifications
                    (domain, classification, confidence, source, reason, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.domain, record.classification, record.confidence,
                    record.source, record.reason, record.updated_at,
                ),
            )
        logger.debug(
            "Classification stored: %s → %s (%s)",
            record.domain, record.classification, record.source,
        )

    def list_all(self) -> list[DomainClassification]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM domain_classifications ORDER BY domain"
            ).fetchall()
        return [self._row_to_classification(r) for r in rows]


class SnapshotDB(_SQLiteStore):
    """One pre-aggregated DailySnapshot per day."""

    _TABLE = "daily_stats"
    _HAS_EXPIRY = False

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_stats (
                    day              TEXT PRIMARY KEY,
                    total_time       INTEGER NOT NULL,
                    productive_time  INTEGER NOT NULL,
                    distraction_time INTEGER NOT NULL,
                    neutral_time     INTEGER NOT NULL,
                    top_domains      TEXT    NOT NULL,
                    goal_progress    INTEGER NOT NULL,
                    session_count    INTEGER NOT NULL,
                    updated_at       INTEGER NOT NULL
                )
            """)
        logger.debug("Daily stats table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_snapshot(row: sqlite3.Row) -> DailySnapshot:
        top = tuple(DomainTotal(**item) for item in json.loads(row["top_domains"]))
        return DailySnapshot(
            day=row["day"],
            total_time=row["total_time"],
            productive_time=row["productive_time"],
            distraction_time=row["distraction_time"],
            neutral_time=row["neutral_time"],
            top_domains=top,
            goal_progress=row["goal_progress"],
            session_count=row["session_count"],
            updated_at=row["updated_at"],
        )

    def get(self, day: str) -> DailySnapshot | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM daily_stats WHERE day = ?", (day,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_snapshot(row)

    def put(self, snapshot: DailySnapshot) -> None:
        """Overwrite the day's snapshot."""
        top = json.dumps([asdict(t) for t in snapshot.top_domains])
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO daily_stats
                    (day, total_time, productive_time, distraction_time,
                     neutral_time, top_domains, goal_progress, session_count,
                     updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    snapshot.day, snapshot.total_time, snapshot.productive_time,
                    snapshot.distraction_time, snapshot.neutral_time, top,
                    snapshot.goal_progress, snapshot.session_count,
                    snapshot.updated_at,
                ),
            )

    def list_between(self, start_day: str, end_day: str) -> list[DailySnapshot]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM daily_stats WHERE day BETWEEN ? AND ? ORDER BY day",
                (start_day, end_day),
            ).fetchall()
        return [self._row_to_snapshot(r) for r in rows]


class CacheDB(_SQLiteStore):
    """JSON payloads fetched from remote services."""

    _TABLE = "external_cache"

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS external_cache (
                    key        TEXT PRIMARY KEY,
                    payload    TEXT    NOT NULL,
                    fetched_at INTEGER NOT NULL,
                    expires_at INTEGER NOT NULL DEFAULT 0
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_cache_expires ON external_cache (expires_at)"
            )
        logger.debug("External cache table initialized at %s", self._db_path)

    def get(self, key: str) -> CacheEntry | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM external_cache WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            key=row["key"],
            payload=json.loads(row["payload"]),
            fetched_at=row["fetched_at"],
            expires_at=row["expires_at"],
        )

    def put(self, entry: CacheEntry) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO external_cache (key, payload, fetched_at, expires_at)
                VALUES (?, ?, ?, ?)
                """,
                (entry.key, json.dumps(entry.payload), entry.fetched_at, entry.expires_at),
            )

    def delete(self, key: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM external_cache WHERE key = ?", (key,))
        return cursor.rowcount > 0


class MarkerDB(_SQLiteStore):
    """Small durable key → value facts, e.g. "eod_2024-01-01" = True."""

    _TABLE = "markers"

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS markers (
                    key        TEXT PRIMARY KEY,
                    value      TEXT    NOT NULL,
                    expires_at INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("Markers table initialized at %s", self._db_path)

    def get(self, key: str) -> Any:
        """Return the stored value, or None when the marker is absent."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM markers WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["value"])

    def set(self, key: str, value: Any, expires_at: int = 0) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO markers (key, value, expires_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), expires_at),
            )
        logger.debug("Marker set: %s", key)


class ClipboardDB(_SQLiteStore):
    """Copied text, deduplicated by content hash."""

    _TABLE = "clipboard_entries"

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS clipboard_entries (
                    id           INTEGER PRIMARY KEY AUTOINCREMENT,
                    text         TEXT    NOT NULL,
                    content_hash TEXT    NOT NULL UNIQUE,
                    domain       TEXT    NOT NULL DEFAULT '',
                    url          TEXT    NOT NULL DEFAULT '',
                    timestamp    INTEGER NOT NULL,
                    expires_at   INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("Clipboard table initialized at %s", self._db_path)

    def add_entry(self, event: CopyEvent, expires_at: int = 0) -> bool:
        """Store a copy event. Returns False when the same text is already stored."""
        content_hash = hashlib.sha256(event.text.encode("utf-8")).hexdigest()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO clipboard_entries
                    (text, content_hash, domain, url, timestamp, expires_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (event.text, content_hash, event.domain, event.url,
                 event.timestamp, expires_at),
            )
        return cursor.rowcount > 0

    def recent(self, limit: int = 50) -> list[CopyEvent]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM clipboard_entries ORDER BY timestamp DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [
            CopyEvent(text=r["text"], domain=r["domain"], url=r["url"], timestamp=r["timestamp"])
            for r in rows
        ]


def run_cleanup(stores: Iterable[_SQLiteStore], now_ms: int) -> tuple[int, int]:
    """Delete expired records from every store.

    A failing store is logged and counted; the sweep carries on with the
    rest. Returns (total_deleted, failures).
    """
    total_deleted = 0
    failures = 0
    for store in stores:
        try:
            total_deleted += store.delete_expired(now_ms)
        except sqlite3.Error as exc:
            failures += 1
            logger.error("Cleanup error in %s: %s", store.name, exc)
    logger.info(
        "Cleanup complete. Deleted %d records (%d store failures)",
        total_deleted, failures,
    )
    return total_deleted, failures
