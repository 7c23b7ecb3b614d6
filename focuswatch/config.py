"""
FocusWatch — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from focuswatch/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)

_DEFAULT_EXCLUDED_SCHEMES = "chrome://,chrome-extension://,edge://,about:,moz-extension://"
_DEFAULT_EXCLUDED_DOMAINS = (
    "accounts.google.com,login.microsoftonline.com,auth0.com,okta.com,login.okta.com"
)
_DEFAULT_EXCLUDED_PATHS = "/login,/signin,/auth,/oauth,/saml,/sso,/callback,/2fa,/mfa"


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram (notification sink)
    TELEGRAM_BOT_TOKEN: str
    ALLOWED_USER_IDS: list[int] = []

    # LLM: provider-agnostic (gemini, anthropic, openai, cohere)
    LLM_PROVIDER: str = "anthropic"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str = ""        # empty → AI classification/insights disabled
    AI_ENABLED: bool = True

    # SQLite
    DATABASE_PATH: str = "data/focuswatch.db"
    RETENTION_DAYS: int = 30

    # Local day boundaries and hour-matching rules use this zone
    TIMEZONE: str = "UTC"

    # Tracking exclusions
    EXCLUDED_SCHEMES: list[str] = []
    EXCLUDED_DOMAINS: list[str] = []
    EXCLUDED_PATHS: list[str] = []

    # Focus & productivity
    DAILY_FOCUS_GOAL_MINUTES: int = 240
    DISTRACTION_ALERT_MINUTES: int = 60
    DISTRACTION_COOLDOWN_MINUTES: int = 30
    ENABLE_DISTRACTION_ALERTS: bool = True

    # Executive function nudges
    ENABLE_MORNING_BRIEFING: bool = True
    MORNING_BRIEFING_HOUR: int = 9
    ENABLE_START_NUDGES: bool = True
    READY_CHECK_HOUR: int = 10
    ENABLE_END_OF_DAY_SUMMARY: bool = True
    END_OF_DAY_HOUR: int = 18
    ENABLE_MEETING_AWARENESS: bool = True
    MEETING_WARNING_MINUTES: int = 5

    # Persist every daily-once rule, not just the end-of-day summary
    DURABLE_RULE_LEDGER: bool = False

    # External services
    WEATHER_API_KEY: str = ""
    WEATHER_LAT: float = 40.7308
    WEATHER_LON: float = -73.9975
    GITHUB_TOKEN: str = ""
    VIP_EMAIL_SENDERS: list[str] = []
    GOOGLE_CREDENTIALS_PATH: str = "credentials.json"
    GOOGLE_TOKEN_PATH: str = "token.json"
    FETCH_TIMEOUT_SECONDS: float = 10.0

    # Event source and tick intervals
    EVENT_STREAM_PATH: str = "-"
    HEARTBEAT_SECONDS: int = 30
    RULE_CHECK_SECONDS: int = 60
    CLASSIFY_INTERVAL_MINUTES: int = 5

    # Data export
    AUTO_EXPORT: bool = True
    EXPORT_FREQUENCY: str = "weekly"   # daily | weekly
    EXPORT_DIR: str = "data/exports"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator(
        "EXCLUDED_SCHEMES", "EXCLUDED_DOMAINS", "EXCLUDED_PATHS", "VIP_EMAIL_SENDERS",
        mode="before",
    )
    @classmethod
    def parse_csv(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [item.strip().lower() for item in v.split(",") if item.strip()]
        return []

    @field_validator(
        "MORNING_BRIEFING_HOUR", "READY_CHECK_HOUR", "END_OF_DAY_HOUR",
        mode="before",
    )
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour out of range: {hour}")
        return hour

    @field_validator("EXPORT_FREQUENCY", mode="before")
    @classmethod
    def parse_frequency(cls, v: str) -> str:
        frequency = str(v).strip().lower()
        if frequency not in ("daily", "weekly"):
            raise ValueError(f"EXPORT_FREQUENCY must be daily or weekly, got {v!r}")
        return frequency

    @property
    def ai_available(self) -> bool:
        return self.AI_ENABLED and bool(self.LLM_API_KEY)


def _env_bool(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "anthropic"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=os.getenv("LLM_API_KEY", ""),
        AI_ENABLED=_env_bool("AI_ENABLED"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/focuswatch.db"),
        RETENTION_DAYS=int(os.getenv("RETENTION_DAYS", "30")),
        TIMEZONE=os.getenv("TIMEZONE", "UTC"),
        EXCLUDED_SCHEMES=os.getenv("EXCLUDED_SCHEMES", _DEFAULT_EXCLUDED_SCHEMES),
        EXCLUDED_DOMAINS=os.getenv("EXCLUDED_DOMAINS", _DEFAULT_EXCLUDED_DOMAINS),
        EXCLUDED_PATHS=os.getenv("EXCLUDED_PATHS", _DEFAULT_EXCLUDED_PATHS),
        DAILY_FOCUS_GOAL_MINUTES=int(os.getenv("DAILY_FOCUS_GOAL_MINUTES", "240")),
        DISTRACTION_ALERT_MINUTES=int(os.getenv("DISTRACTION_ALERT_MINUTES", "60")),
        DISTRACTION_COOLDOWN_MINUTES=int(os.getenv("DISTRACTION_COOLDOWN_MINUTES", "30")),
        ENABLE_DISTRACTION_ALERTS=_env_bool("ENABLE_DISTRACTION_ALERTS"),
        ENABLE_MORNING_BRIEFING=_env_bool("ENABLE_MORNING_BRIEFING"),
        MORNING_BRIEFING_HOUR=os.getenv("MORNING_BRIEFING_HOUR", "9"),
        ENABLE_START_NUDGES=_env_bool("ENABLE_START_NUDGES"),
        READY_CHECK_HOUR=os.getenv("READY_CHECK_HOUR", "10"),
        ENABLE_END_OF_DAY_SUMMARY=_env_bool("ENABLE_END_OF_DAY_SUMMARY"),
        END_OF_DAY_HOUR=os.getenv("END_OF_DAY_HOUR", "18"),
        ENABLE_MEETING_AWARENESS=_env_bool("ENABLE_MEETING_AWARENESS"),
        MEETING_WARNING_MINUTES=int(os.getenv("MEETING_WARNING_MINUTES", "5")),
        DURABLE_RULE_LEDGER=_env_bool("DURABLE_RULE_LEDGER", "false"),
        WEATHER_API_KEY=os.getenv("WEATHER_API_KEY", ""),
        WEATHER_LAT=float(os.getenv("WEATHER_LAT", "40.7308")),
        WEATHER_LON=float(os.getenv("WEATHER_LON", "-73.9975")),
        GITHUB_TOKEN=os.getenv("GITHUB_TOKEN", ""),
        VIP_EMAIL_SENDERS=os.getenv("VIP_EMAIL_SENDERS", ""),
        GOOGLE_CREDENTIALS_PATH=os.getenv("GOOGLE_CREDENTIALS_PATH", "credentials.json"),
        GOOGLE_TOKEN_PATH=os.getenv("GOOGLE_TOKEN_PATH", "token.json"),
        FETCH_TIMEOUT_SECONDS=float(os.getenv("FETCH_TIMEOUT_SECONDS", "10")),
        EVENT_STREAM_PATH=os.getenv("EVENT_STREAM_PATH", "-"),
        HEARTBEAT_SECONDS=int(os.getenv("HEARTBEAT_SECONDS", "30")),
        RULE_CHECK_SECONDS=int(os.getenv("RULE_CHECK_SECONDS", "60")),
        CLASSIFY_INTERVAL_MINUTES=int(os.getenv("CLASSIFY_INTERVAL_MINUTES", "5")),
        AUTO_EXPORT=_env_bool("AUTO_EXPORT"),
        EXPORT_FREQUENCY=os.getenv("EXPORT_FREQUENCY", "weekly"),
        EXPORT_DIR=os.getenv("EXPORT_DIR", "data/exports"),
    )


# Singleton, imported by all other modules as:
#   from focuswatch.config import settings
settings = _load_settings()
