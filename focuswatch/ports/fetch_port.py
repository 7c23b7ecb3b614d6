"""Remote fetcher ports — the collaborators that talk to outside services.

Core modules depend on these protocols and on the error taxonomy below,
never on a specific HTTP client or provider SDK.
"""

from __future__ import annotations

from typing import Protocol


class FetchError(Exception):
    """A remote fetch failed. Transient: stale cached data may be used."""


class UnauthenticatedError(FetchError):
    """The remote service needs the user to sign in. Never retried automatically."""


class MalformedResponseError(FetchError):
    """The remote service answered, but the payload could not be parsed."""


class WeatherPort(Protocol):
    async def get_weather(self) -> dict: ...


class CalendarPort(Protocol):
    async def get_todays_events(self) -> list[dict]: ...


class MailPort(Protocol):
    async def get_unread(self) -> dict: ...


class GitHubPort(Protocol):
    async def get_dashboard(self) -> dict: ...


class DomainClassifierPort(Protocol):
    async def classify_domains(self, domains: list[str]) -> list[dict]: ...
