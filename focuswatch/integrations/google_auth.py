"""
FocusWatch — Google Authentication.

Read-only access to Google Calendar (meeting heads-up, morning briefing)
and Gmail (dashboard unread panel). The service runs unattended, so it
never starts a consent flow on its own: without a usable token it raises
UnauthenticatedError and the caller shows a sign-in prompt. Run this
module directly once to sign in interactively.
"""

from __future__ import annotations

import logging
from pathlib import Path

from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from focuswatch.ports.fetch_port import FetchError, UnauthenticatedError

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/gmail.readonly",
]


def load_credentials() -> Credentials:
    """Load the stored token, refreshing it if expired.

    Raises UnauthenticatedError when there is no token or it cannot be refreshed.
    """
    from focuswatch.config import settings

    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    if not token_path.exists():
        raise UnauthenticatedError(f"No Google token at {token_path}; sign in first")

    creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)
    logger.debug("Loaded existing token from %s", token_path)

    if creds.expired and creds.refresh_token:
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            logger.warning("Google token refresh failed: %s", exc)
            raise UnauthenticatedError("Google token expired and could not be refreshed") from exc
        token_path.write_text(creds.to_json())
        logger.info("Google token refreshed")

    if not creds.valid:
        raise UnauthenticatedError("Google token is not valid; sign in again")
    return creds


def as_fetch_error(exc: Exception, what: str) -> FetchError:
    """Map a googleapiclient error onto the fetch error taxonomy."""
    if isinstance(exc, HttpError) and exc.resp.status in (401, 403):
        return UnauthenticatedError(f"{what}: Google denied access ({exc.resp.status})")
    if isinstance(exc, FetchError):
        return exc
    return FetchError(f"{what}: {exc}")


def build_service(api: str, version: str):
    """Build an authorized googleapiclient service, e.g. ("calendar", "v3")."""
    return build(api, version, credentials=load_credentials(), cache_discovery=False)


def sign_in() -> Credentials:
    """Run the interactive OAuth2 consent flow and persist the token."""
    from focuswatch.config import settings

    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    creds_path = Path(settings.GOOGLE_CREDENTIALS_PATH)
    if not creds_path.exists():
        raise FileNotFoundError(
            f"Google credentials file not found at {creds_path}. "
            "Download it from the Google Cloud Console."
        )

    flow = InstalledAppFlow.from_client_secrets_file(str(creds_path), SCOPES)
    creds = flow.run_local_server(port=0)
    logger.info("New credentials obtained via OAuth2 consent flow")

    token_path.parent.mkdir(parents=True, exist_ok=True)
    token_path.write_text(creds.to_json())
    logger.debug("Token saved to %s", token_path)
    return creds


def sign_out() -> bool:
    """Forget the stored token. Returns True if one was removed."""
    from focuswatch.config import settings

    token_path = Path(settings.GOOGLE_TOKEN_PATH)
    if not token_path.exists():
        return False
    token_path.unlink()
    logger.info("Google token removed")
    return True


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    print("Running Google authorization flow...")
    sign_in()
    svc = build_service("calendar", "v3")
    events = svc.events().list(calendarId="primary", maxResults=3).execute()
    items = events.get("items", [])
    print(f"Auth successful! Found {len(items)} upcoming event(s).")
