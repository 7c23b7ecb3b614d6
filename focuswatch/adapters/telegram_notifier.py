"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance and delivers each notification to every
allowed user.
"""

from __future__ import annotations

import logging

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot, user_ids: list[int]) -> None:
        self._bot = bot
        self._user_ids = user_ids

    async def notify(self, id: str, title: str, body: str, priority: int = 1) -> None:
        text = f"{title}\n{body}" if body else title
        if not self._user_ids:
            logger.warning("No ALLOWED_USER_IDS configured, dropping notification %s", id)
            return
        for user_id in self._user_ids:
            try:
                await self._bot.send_message(
                    chat_id=user_id,
                    text=text,
                    disable_notification=priority < 2,
                )
            except TelegramError as exc:
                logger.error("Failed to send %s to user %s: %s", id, user_id, exc)

    async def send_document(self, filename: str, data: bytes, caption: str = "") -> None:
        if not self._user_ids:
            logger.warning("No ALLOWED_USER_IDS configured, dropping document %s", filename)
            return
        for user_id in self._user_ids:
            try:
                await self._bot.send_document(
                    chat_id=user_id,
                    document=data,
                    filename=filename,
                    caption=caption or None,
                )
            except TelegramError as exc:
                logger.error("Failed to send %s to user %s: %s", filename, user_id, exc)
