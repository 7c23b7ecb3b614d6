"""Tests for focuswatch.integrations.gmail — unread summary and VIP flagging.

All Google API calls are mocked.
"""

import pytest
from unittest.mock import MagicMock, patch

from focuswatch.integrations.gmail import GmailClient, is_vip, message_summary
from focuswatch.ports.fetch_port import FetchError, UnauthenticatedError

_PATCH_BUILD = "focuswatch.integrations.gmail.build_service"


def _message(msg_id, from_header, subject="Hello"):
    return {
        "id": msg_id,
        "threadId": f"t{msg_id}",
        "snippet": "preview",
        "payload": {"headers": [
            {"name": "From", "value": from_header},
            {"name": "Subject", "value": subject},
            {"name": "Date", "value": "Mon, 1 Jan 2024 09:00:00 +0000"},
        ]},
    }


def _mock_service(messages, total=None):
    service = MagicMock()
    resource = service.users.return_value.messages.return_value
    resource.list.return_value.execute.return_value = {
        "messages": [{"id": m["id"]} for m in messages],
        "resultSizeEstimate": total if total is not None else len(messages),
    }
    resource.get.return_value.execute.side_effect = messages
    return service


class TestIsVip:
    def test_matches_email_fragment(self):
        assert is_vip("Jane", "jane@acme.com", ["acme.com"])

    def test_matches_name(self):
        assert is_vip("The Boss", "x@y.com", ["boss"])

    def test_no_match(self):
        assert not is_vip("Newsletter", "news@shop.com", ["acme.com"])


class TestMessageSummary:
    def test_parses_headers(self):
        summary = message_summary(_message("1", "Jane Doe <jane@acme.com>", "Q3 plan"), ["acme.com"])
        assert summary["from"] == "Jane Doe"
        assert summary["from_email"] == "jane@acme.com"
        assert summary["subject"] == "Q3 plan"
        assert summary["is_vip"] is True

    def test_bare_address_and_missing_subject(self):
        summary = message_summary(_message("2", "bot@ci.dev", ""), [])
        assert summary["from"] == "bot@ci.dev"
        assert summary["subject"] == "(No subject)"
        assert summary["is_vip"] is False


class TestGetUnread:
    @pytest.mark.asyncio
    async def test_counts_and_vips(self):
        messages = [
            _message("1", "Jane <jane@acme.com>"),
            _message("2", "Shop <deals@shop.com>"),
        ]
        with patch(_PATCH_BUILD, return_value=_mock_service(messages, total=37)):
            result = await GmailClient(vip_senders=["ACME.com"]).get_unread()

        assert result["total_unread"] == 37
        assert [e["id"] for e in result["emails"]] == ["1", "2"]
        assert result["vip_count"] == 1

    @pytest.mark.asyncio
    async def test_details_capped_at_ten(self):
        messages = [_message(str(i), f"user{i}@x.com") for i in range(15)]
        with patch(_PATCH_BUILD, return_value=_mock_service(messages)):
            result = await GmailClient(vip_senders=[]).get_unread()

        assert len(result["emails"]) == 10
        assert result["total_unread"] == 15

    @pytest.mark.asyncio
    async def test_signed_out(self):
        with patch(_PATCH_BUILD, side_effect=UnauthenticatedError("sign in")):
            with pytest.raises(UnauthenticatedError):
                await GmailClient(vip_senders=[]).get_unread()

    @pytest.mark.asyncio
    async def test_api_error_is_fetch_error(self):
        with patch(_PATCH_BUILD, side_effect=RuntimeError("backend error")):
            with pytest.raises(FetchError):
                await GmailClient(vip_senders=[]).get_unread()
