"""GitHub REST integration — profile, repos, activity, review requests, notifications.

Implements GitHubPort with a personal access token. A missing or rejected
token raises UnauthenticatedError; other failures raise FetchError.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from focuswatch.ports.fetch_port import FetchError, MalformedResponseError, UnauthenticatedError

logger = logging.getLogger(__name__)

_API_URL = "https://api.github.com"
_TIMEOUT_SECONDS = 10
_DASHBOARD_ITEMS = 10
_NOTIFICATION_ITEMS = 5


def summarize_event(event: dict) -> dict:
    """Reduce a GitHub activity event to an action and a one-line detail."""
    kind = event.get("type", "")
    payload = event.get("payload") or {}

    if kind == "PushEvent":
        commits = payload.get("commits") or []
        return {
            "action": "pushed",
            "detail": f"{len(commits)} commit{'s' if len(commits) != 1 else ''}",
        }
    if kind == "CreateEvent":
        ref = payload.get("ref")
        return {"action": "created", "detail": f"{payload.get('ref_type', '')}{f': {ref}' if ref else ''}"}
    if kind == "DeleteEvent":
        return {"action": "deleted", "detail": f"{payload.get('ref_type', '')}: {payload.get('ref', '')}"}
    if kind == "IssuesEvent":
        issue = payload.get("issue") or {}
        return {"action": payload.get("action", ""), "detail": f"#{issue.get('number')}: {issue.get('title', '')}"}
    if kind == "PullRequestEvent":
        pr = payload.get("pull_request") or {}
        return {"action": payload.get("action", ""), "detail": f"#{pr.get('number')}: {pr.get('title', '')}"}
    if kind == "IssueCommentEvent":
        issue = payload.get("issue") or {}
        return {"action": "commented", "detail": f"on #{issue.get('number')}"}
    if kind == "WatchEvent":
        return {"action": "starred", "detail": ""}
    if kind == "ForkEvent":
        forkee = payload.get("forkee") or {}
        return {"action": "forked", "detail": f"to {forkee.get('full_name', '')}"}
    return {"action": kind.removesuffix("Event").lower(), "detail": ""}


def _repo(repo: dict) -> dict:
    return {
        "name": repo["name"],
        "full_name": repo["full_name"],
        "description": repo.get("description") or "",
        "url": repo.get("html_url", ""),
        "stars": repo.get("stargazers_count", 0),
        "open_issues": repo.get("open_issues_count", 0),
        "language": repo.get("language") or "",
        "private": repo.get("private", False),
        "pushed_at": repo.get("pushed_at"),
    }


class GitHubClient:
    """httpx implementation of GitHubPort."""

    def __init__(self, token: str) -> None:
        self._token = token

    async def _get(self, client: httpx.AsyncClient, endpoint: str, **params):
        resp = await client.get(f"{_API_URL}{endpoint}", params=params or None)
        if resp.status_code == 401:
            raise UnauthenticatedError("GitHub rejected the access token")
        resp.raise_for_status()
        return resp.json()

    async def get_dashboard(self) -> dict:
        if not self._token:
            raise UnauthenticatedError("GITHUB_TOKEN is not set")

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS, headers=headers) as client:
                user = await self._get(client, "/user")
                repos, events, reviews, notifications = await asyncio.gather(
                    self._get(client, "/user/repos", per_page=20, sort="updated"),
                    self._get(client, f"/users/{user['login']}/events", per_page=15),
                    self._get(
                        client, "/search/issues",
                        q=f"is:open is:pr review-requested:{user['login']}", per_page=10,
                    ),
                    self._notifications(client),
                )
        except httpx.HTTPError as exc:
            logger.warning("GitHub fetch failed: %s", exc)
            raise FetchError(f"GitHub fetch failed: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise MalformedResponseError(f"Unexpected GitHub payload: {exc}") from exc

        try:
            return {
                "user": {
                    "login": user["login"],
                    "name": user.get("name") or user["login"],
                    "public_repos": user.get("public_repos", 0),
                    "followers": user.get("followers", 0),
                },
                "repos": [_repo(r) for r in repos[:_DASHBOARD_ITEMS]],
                "recent_activity": [
                    {
                        "id": ev.get("id"),
                        "type": ev.get("type", ""),
                        "repo": (ev.get("repo") or {}).get("name", ""),
                        "created_at": ev.get("created_at"),
                        **summarize_event(ev),
                    }
                    for ev in events[:_DASHBOARD_ITEMS]
                ],
                "review_requests": [
                    {
                        "title": pr["title"],
                        "url": pr.get("html_url", ""),
                        "repo": pr.get("repository_url", "").rsplit("/repos/", 1)[-1],
                        "number": pr.get("number"),
                    }
                    for pr in reviews.get("items", [])
                ],
                "notification_count": len(notifications),
                "notifications": notifications[:_NOTIFICATION_ITEMS],
            }
        except (KeyError, TypeError) as exc:
            raise MalformedResponseError(f"Unexpected GitHub payload: {exc}") from exc

    async def _notifications(self, client: httpx.AsyncClient) -> list[dict]:
        """Notifications need an extra token scope; a failure just hides them."""
        try:
            items = await self._get(client, "/notifications")
        except (httpx.HTTPError, UnauthenticatedError) as exc:
            logger.info("GitHub notifications unavailable: %s", exc)
            return []
        return [
            {
                "title": (n.get("subject") or {}).get("title", ""),
                "type": (n.get("subject") or {}).get("type", ""),
                "repo": (n.get("repository") or {}).get("full_name", ""),
                "reason": n.get("reason", ""),
            }
            for n in items
        ]
