"""Notification port — abstract interface for showing a notification to the user.

Core modules depend on this protocol, never on a specific messaging provider.
The sink only displays (messages, or a file such as a data export);
duplicate suppression is the scheduler's job.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def notify(self, id: str, title: str, body: str, priority: int = 1) -> None: ...

    async def send_document(self, filename: str, data: bytes, caption: str = "") -> None: ...
