"""Gmail integration — unread inbox summary with VIP sender flagging.

Implements MailPort. Reads message metadata only (From, Subject, Date),
never bodies.
"""

from __future__ import annotations

import asyncio
import logging
from email.utils import parseaddr

from focuswatch.integrations.google_auth import as_fetch_error, build_service

logger = logging.getLogger(__name__)

_LIST_MAX = 20
_DETAIL_MAX = 10


def is_vip(sender_name: str, sender_email: str, vip_senders: list[str]) -> bool:
    name, email = sender_name.lower(), sender_email.lower()
    return any(vip in email or vip in name for vip in vip_senders)


def message_summary(message: dict, vip_senders: list[str]) -> dict:
    headers = {h["name"]: h["value"] for h in (message.get("payload") or {}).get("headers", [])}
    from_header = headers.get("From", "")
    name, email = parseaddr(from_header)
    return {
        "id": message.get("id", ""),
        "thread_id": message.get("threadId", ""),
        "subject": headers.get("Subject") or "(No subject)",
        "from": name or email or from_header,
        "from_email": email or from_header,
        "date": headers.get("Date", ""),
        "snippet": message.get("snippet", ""),
        "is_vip": is_vip(name, email or from_header, vip_senders),
    }


class GmailClient:
    """googleapiclient implementation of MailPort."""

    def __init__(self, vip_senders: list[str] | None = None) -> None:
        if vip_senders is None:
            from focuswatch.config import settings
            vip_senders = settings.VIP_EMAIL_SENDERS
        self._vip = [v.lower() for v in vip_senders]

    def _fetch(self) -> dict:
        service = build_service("gmail", "v1")
        messages = service.users().messages()
        listing = messages.list(userId="me", q="is:unread in:inbox", maxResults=_LIST_MAX).execute()
        ids = listing.get("messages", [])

        emails = []
        for ref in ids[:_DETAIL_MAX]:
            detail = messages.get(
                userId="me",
                id=ref["id"],
                format="metadata",
                metadataHeaders=["From", "Subject", "Date"],
            ).execute()
            emails.append(message_summary(detail, self._vip))

        return {
            "total_unread": listing.get("resultSizeEstimate", len(ids)),
            "emails": emails,
            "vip_count": sum(1 for e in emails if e["is_vip"]),
        }

    async def get_unread(self) -> dict:
        try:
            result = await asyncio.to_thread(self._fetch)
        except Exception as exc:
            logger.error("Gmail fetch failed: %s", exc)
            raise as_fetch_error(exc, "Gmail") from exc

        logger.info("Gmail: %d unread, %d VIP", result["total_unread"], result["vip_count"])
        return result
