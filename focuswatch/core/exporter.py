"""
FocusWatch — Data Export.

Bundles a date range of tracked data into one JSON document: sessions,
daily snapshots, domain verdicts and anonymized clipboard activity. Copied
text never leaves the machine; only its domain, length and time do.

The export runs on demand (/export) and on a schedule (weekly by default).
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from focuswatch.core.classifier import ClassificationCache
from focuswatch.core.clock import day_key, to_local
from focuswatch.core.clock import now_ms as _now_ms
from focuswatch.data.db import ClipboardDB, SessionDB, SnapshotDB
from focuswatch.data.models import UNCLASSIFIED

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"
CLIPBOARD_SCAN_LIMIT = 1000

FREQUENCY_DAYS = {"daily": 1, "weekly": 7}


def _parse_day(day: str) -> date:
    try:
        return date.fromisoformat(day)
    except ValueError as exc:
        raise ValueError(f"Not a YYYY-MM-DD day: {day!r}") from exc


class DataExporter:
    """Reads the stores; writes nothing but the export file itself."""

    def __init__(
        self,
        sessions: SessionDB,
        snapshots: SnapshotDB,
        clipboard: ClipboardDB,
        classification: ClassificationCache,
        export_dir: str | None = None,
        tz: str | None = None,
    ) -> None:
        if export_dir is None:
            from focuswatch.config import settings
            export_dir = settings.EXPORT_DIR
        self._sessions = sessions
        self._snapshots = snapshots
        self._clipboard = clipboard
        self._classification = classification
        self._export_dir = Path(export_dir)
        self._tz = tz

    def recent_range(self, days: int, now_ms: int | None = None) -> tuple[str, str]:
        """The last `days` local days, today included."""
        if days < 1:
            raise ValueError(f"Export range must cover at least one day, got {days}")
        now_ms = _now_ms() if now_ms is None else now_ms
        end = _parse_day(day_key(now_ms, self._tz))
        start = end - timedelta(days=days - 1)
        return start.isoformat(), end.isoformat()

    def collect(self, start_day: str, end_day: str, now_ms: int | None = None) -> dict[str, Any]:
        """Build the export document for [start_day, end_day]."""
        if _parse_day(start_day) > _parse_day(end_day):
            raise ValueError(f"Export range is reversed: {start_day} > {end_day}")
        now_ms = _now_ms() if now_ms is None else now_ms

        sessions = []
        for s in self._sessions.list_between(start_day, end_day):
            classification = s.classification
            if classification == UNCLASSIFIED:
                classification = self._classification.classify(s.domain) or UNCLASSIFIED
            sessions.append({
                "domain": s.domain,
                "title": s.title,
                "start_ms": s.start_ms,
                "duration_ms": s.duration_ms,
                "day": s.day,
                "classification": classification,
            })

        clipboard = [
            {"domain": e.domain, "length": len(e.text), "timestamp": e.timestamp}
            for e in reversed(self._clipboard.recent(limit=CLIPBOARD_SCAN_LIMIT))
            if start_day <= day_key(e.timestamp, self._tz) <= end_day
        ]

        domains = dict.fromkeys(s["domain"] for s in sessions)
        verdicts = self._classification.known_records(domains, now_ms)

        return {
            "exported_at": to_local(now_ms, self._tz).isoformat(),
            "date_range": {"start": start_day, "end": end_day},
            "version": EXPORT_VERSION,
            "browsing_sessions": sessions,
            "daily_stats": [asdict(s) for s in self._snapshots.list_between(start_day, end_day)],
            "clipboard_entries": clipboard,
            "domain_classifications": [asdict(v) for v in verdicts],
        }

    @staticmethod
    def filename(start_day: str, end_day: str) -> str:
        return f"focuswatch-export-{start_day}-to-{end_day}.json"

    @staticmethod
    def render(document: dict[str, Any]) -> bytes:
        return json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8")

    def write(self, start_day: str, end_day: str, now_ms: int | None = None) -> Path:
        """Collect the range and save it under the export directory."""
        document = self.collect(start_day, end_day, now_ms)
        path = self._export_dir / self.filename(start_day, end_day)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.render(document))
        logger.info(
            "Exported %d sessions and %d clipboard entries to %s",
            len(document["browsing_sessions"]), len(document["clipboard_entries"]), path,
        )
        return path
