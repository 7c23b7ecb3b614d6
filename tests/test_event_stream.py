"""Tests for focuswatch.integrations.event_stream — JSONL activity events."""

import json

import pytest
from unittest.mock import AsyncMock, patch

from focuswatch.data.models import ActivityEvent, CopyEvent
from focuswatch.integrations.event_stream import consume, parse_event


class TestParseEvent:
    def test_context_change(self):
        event = parse_event(json.dumps({
            "type": "context_change",
            "url": "https://www.GitHub.com/octo/focus",
            "title": "focus",
            "timestamp": 1704067200000,
        }))
        assert event == ActivityEvent(
            context_id="https://www.GitHub.com/octo/focus",
            domain="www.github.com",
            title="focus",
            timestamp=1704067200000,
        )

    def test_type_defaults_to_context_change(self):
        event = parse_event('{"url": "https://docs.python.org/3/", "timestamp": 5}')
        assert isinstance(event, ActivityEvent)
        assert event.domain == "docs.python.org"

    def test_explicit_domain_wins(self):
        event = parse_event('{"url": "", "domain": "Local.App", "timestamp": 5}')
        assert event.domain == "local.app"

    def test_copy(self):
        event = parse_event('{"type": "copy", "text": "git rebase -i", "url": "https://stackoverflow.com/q/1", "timestamp": 9}')
        assert event == CopyEvent(
            text="git rebase -i", domain="stackoverflow.com", url="https://stackoverflow.com/q/1", timestamp=9,
        )

    def test_empty_copy_is_skipped(self):
        assert parse_event('{"type": "copy", "text": ""}') is None

    def test_missing_timestamp_uses_now(self):
        with patch("focuswatch.integrations.event_stream.now_ms", return_value=42):
            event = parse_event('{"url": "https://a.io/"}')
        assert event.timestamp == 42

    @pytest.mark.parametrize("line", [
        "",
        "   ",
        "not json",
        "[1, 2]",
        '{"type": "scroll", "url": "https://a.io"}',
        '{"url": "https://a.io", "timestamp": "soon"}',
    ])
    def test_invalid_lines(self, line):
        assert parse_event(line) is None


class TestConsume:
    @pytest.mark.asyncio
    async def test_reads_stdin_until_eof(self, tmp_path):
        source = tmp_path / "events.jsonl"
        source.write_text(
            '{"url": "https://a.io/", "timestamp": 1}\n'
            "garbage\n"
            '{"type": "copy", "text": "x", "timestamp": 2}\n'
        )
        handler = AsyncMock()

        with source.open() as stream, patch("focuswatch.integrations.event_stream.sys.stdin", stream):
            await consume("-", handler)

        kinds = [type(call.args[0]).__name__ for call in handler.await_args_list]
        assert kinds == ["ActivityEvent", "CopyEvent"]

    @pytest.mark.asyncio
    async def test_handler_errors_do_not_stop_the_stream(self, tmp_path):
        source = tmp_path / "events.jsonl"
        source.write_text(
            '{"url": "https://a.io/", "timestamp": 1}\n'
            '{"url": "https://b.io/", "timestamp": 2}\n'
        )
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])

        with source.open() as stream, patch("focuswatch.integrations.event_stream.sys.stdin", stream):
            await consume("-", handler)

        assert handler.await_count == 2
