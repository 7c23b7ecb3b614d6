"""Activity event source — newline-delimited JSON from a file or stdin.

One object per line:

    {"type": "context_change", "url": "https://github.com/x", "title": "x", "timestamp": 1704067200000}
    {"type": "copy", "text": "snippet", "url": "https://docs.python.org/3/", "timestamp": 1704067260000}

"domain" is optional and derived from the URL when missing; "timestamp"
defaults to the time the line was read. Bad lines are logged and skipped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Awaitable, Callable, TextIO

from focuswatch.core.clock import now_ms
from focuswatch.core.tracker import extract_domain
from focuswatch.data.models import ActivityEvent, CopyEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[ActivityEvent | CopyEvent], Awaitable[None]]

_POLL_SECONDS = 1.0


def parse_event(line: str) -> ActivityEvent | CopyEvent | None:
    """Parse one line. Returns None for blank or invalid lines."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        logger.warning("Skipping invalid event line: %s", exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Skipping non-object event line: %r", line[:80])
        return None

    kind = data.get("type", "context_change")
    url = str(data.get("url", ""))
    domain = str(data.get("domain") or (extract_domain(url) if url else "")).lower()
    try:
        timestamp = int(data.get("timestamp") or now_ms())
    except (TypeError, ValueError):
        logger.warning("Skipping event with invalid timestamp: %r", data.get("timestamp"))
        return None

    if kind == "context_change":
        return ActivityEvent(
            context_id=url,
            domain=domain,
            title=str(data.get("title", "")),
            timestamp=timestamp,
        )
    if kind == "copy":
        text = data.get("text")
        if not text:
            return None
        return CopyEvent(text=str(text), domain=domain, url=url, timestamp=timestamp)

    logger.warning("Skipping unknown event type: %s", kind)
    return None


async def _read_lines(stream: TextIO, follow: bool):
    while True:
        line = await asyncio.to_thread(stream.readline)
        if line:
            yield line
            continue
        if not follow:
            return
        await asyncio.sleep(_POLL_SECONDS)


async def consume(path: str, handler: EventHandler) -> None:
    """Feed every event from path ("-" for stdin) to handler until EOF.

    Regular files are followed like `tail -f`; stdin ends at EOF.
    """
    if path == "-":
        stream, follow = sys.stdin, False
        logger.info("Reading activity events from stdin")
    else:
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.touch(exist_ok=True)
        stream, follow = file_path.open("r", encoding="utf-8"), True
        logger.info("Following activity events in %s", file_path)

    try:
        async for line in _read_lines(stream, follow):
            event = parse_event(line)
            if event is None:
                continue
            try:
                await handler(event)
            except Exception as exc:
                logger.error("Failed to handle %s event: %s", type(event).__name__, exc)
    finally:
        if stream is not sys.stdin:
            stream.close()
    logger.info("Activity event stream ended")
