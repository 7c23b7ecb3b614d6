"""
FocusWatch — Telegram Bot.

Telegram is both the notification sink and the only interactive surface:
nudges arrive as messages, and a few read-only commands show today's
stats, the dashboard panels, an AI insight and a JSON data export.

The application's job_queue is the tick source for the whole engine
(heartbeat, rule checks, batch classification, retention cleanup and the
scheduled export), and the activity event stream is consumed by a task
started in post_init.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import time as dt_time
from functools import partial, wraps
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import Update
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes

from focuswatch.config import settings
from focuswatch.core import messages
from focuswatch.core.clock import format_duration

if TYPE_CHECKING:
    from focuswatch.core.dashboard import Dashboard
    from focuswatch.core.dispatcher import Dispatcher
    from focuswatch.core.exporter import DataExporter
    from focuswatch.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

_STATUS_MARK = {
    "ok": "",
    "stale": " (stale)",
    "signed_out": " — sign in required",
    "unavailable": " — unavailable",
}


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Dashboard formatting
# ---------------------------------------------------------------------------


def _header(title: str, result: dict) -> str:
    return f"*{title}*{_STATUS_MARK.get(result['status'], '')}"


def format_weather_panel(result: dict) -> list[str]:
    lines = [_header("Weather", result)]
    current = (result.get("data") or {}).get("current")
    if current:
        lines.append(f"{current['temp']}°F, {current['condition']} (feels like {current['feels_like']}°F)")
    return lines


def format_meetings_panel(result: dict) -> list[str]:
    lines = [_header("Meetings", result)]
    meetings = result.get("data")
    if meetings is None:
        return lines
    if not meetings:
        lines.append("No meetings today.")
    for m in meetings:
        when = "all day" if m["all_day"] else messages.format_clock(m["start_ms"], settings.TIMEZONE)
        lines.append(f"• {when}  {m['title']}")
    return lines


def format_mail_panel(result: dict) -> list[str]:
    lines = [_header("Mail", result)]
    data = result.get("data")
    if data:
        lines.append(f"{data['total_unread']} unread, {data['vip_count']} VIP")
        for email in data["emails"]:
            if email["is_vip"]:
                lines.append(f"⭐ {email['from']}: {email['subject']}")
    return lines


def format_github_panel(result: dict) -> list[str]:
    lines = [_header("GitHub", result)]
    data = result.get("data")
    if data:
        lines.append(
            f"{len(data['review_requests'])} review request(s), "
            f"{data['notification_count']} notification(s)"
        )
        for pr in data["review_requests"][:5]:
            lines.append(f"• {pr['repo']}#{pr['number']} {pr['title']}")
    return lines


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *FocusWatch*!\n\n"
        "I track where your browsing time goes and nudge you through the day:\n"
        "• A morning briefing and a ready-to-start check\n"
        "• Focus milestones and gentle distraction alerts\n"
        "• Heads-ups before meetings and an end-of-day summary\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/today — Today's focus stats and top sites\n"
        "/dashboard — Weather, meetings, mail and GitHub\n"
        "/insights — AI summary of today\n"
        "/export [days] — Download your data as JSON (default 7 days)\n"
        "/google_signout — Forget the Google sign-in\n"
        "/help — Show this message",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today — show today's snapshot."""
    dashboard: Dashboard = context.bot_data["dashboard"]
    snapshot = dashboard.browsing_stats()
    await update.message.reply_text(messages.daily_stats(snapshot))


@authorized_only
async def cmd_dashboard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dashboard — remote panels, each marked with its freshness."""
    dashboard: Dashboard = context.bot_data["dashboard"]
    weather, meetings, mail, github = await asyncio.gather(
        dashboard.weather(), dashboard.meetings(), dashboard.mail(), dashboard.github(),
    )
    snapshot = dashboard.browsing_stats()

    lines = [
        f"*Focus:* {format_duration(snapshot.productive_time)} ({snapshot.goal_progress}% of goal)",
        "",
        *format_weather_panel(weather),
        "",
        *format_meetings_panel(meetings),
        "",
        *format_mail_panel(mail),
        "",
        *format_github_panel(github),
    ]
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_insights(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /insights — AI coaching for today."""
    dashboard: Dashboard = context.bot_data["dashboard"]
    await update.message.reply_text(await dashboard.daily_insight())


EXPORT_DEFAULT_DAYS = 7
EXPORT_MAX_DAYS = 365


def format_export_caption(document: dict) -> str:
    span = document["date_range"]
    return (
        f"FocusWatch export {span['start']} to {span['end']}: "
        f"{len(document['browsing_sessions'])} sessions, "
        f"{len(document['daily_stats'])} day(s) of stats, "
        f"{len(document['clipboard_entries'])} clipboard entries"
    )


@authorized_only
async def cmd_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export [days] — send the last N days as a JSON document."""
    exporter: DataExporter = context.bot_data["exporter"]
    args = context.args or []
    try:
        days = int(args[0]) if args else EXPORT_DEFAULT_DAYS
    except ValueError:
        days = 0
    if not 1 <= days <= EXPORT_MAX_DAYS:
        await update.message.reply_text(
            f"Usage: /export [days], with days between 1 and {EXPORT_MAX_DAYS}."
        )
        return

    start, end = exporter.recent_range(days)
    document = exporter.collect(start, end)
    await update.message.reply_document(
        document=exporter.render(document),
        filename=exporter.filename(start, end),
        caption=format_export_caption(document),
    )


@authorized_only
async def cmd_google_signout(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /google_signout — forget the Google token and its cached data."""
    from focuswatch.integrations.google_auth import sign_out

    dashboard: Dashboard = context.bot_data["dashboard"]
    removed = sign_out()
    dashboard.sign_out_google()
    if removed:
        await update.message.reply_text("Signed out of Google. Calendar and mail will ask you to sign in again.")
    else:
        await update.message.reply_text("You weren't signed in to Google.")


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_engine(notifier: NotificationPort) -> tuple[Dispatcher, Dashboard, DataExporter]:
    """Construct stores, core services and adapters from settings."""
    from focuswatch.adapters.google_calendar import GoogleCalendarAdapter
    from focuswatch.core.aggregator import DailyAggregator
    from focuswatch.core.classifier import ClassificationCache
    from focuswatch.core.dashboard import Dashboard
    from focuswatch.core.dispatcher import Dispatcher
    from focuswatch.core.exporter import DataExporter
    from focuswatch.core.remote_cache import RemoteCache
    from focuswatch.core.scheduler import NotificationScheduler, SchedulerServices
    from focuswatch.core.tracker import ExclusionPolicy, SessionTracker
    from focuswatch.data.db import (
        CacheDB,
        ClassificationDB,
        ClipboardDB,
        MarkerDB,
        SessionDB,
        SnapshotDB,
    )
    from focuswatch.integrations.ai_classifier import AIDomainClassifier, generate_daily_insight
    from focuswatch.integrations.github import GitHubClient
    from focuswatch.integrations.gmail import GmailClient
    from focuswatch.integrations.weather import OpenWeatherClient

    sessions = SessionDB()
    classifications = ClassificationDB()
    snapshots = SnapshotDB()
    cache_db = CacheDB()
    markers = MarkerDB()
    clipboard = ClipboardDB()

    classifier = AIDomainClassifier() if settings.ai_available else None
    insight = (
        partial(generate_daily_insight, goal_minutes=settings.DAILY_FOCUS_GOAL_MINUTES)
        if settings.ai_available else None
    )
    weather = (
        OpenWeatherClient(settings.WEATHER_API_KEY, settings.WEATHER_LAT, settings.WEATHER_LON)
        if settings.WEATHER_API_KEY else None
    )
    github = GitHubClient(settings.GITHUB_TOKEN) if settings.GITHUB_TOKEN else None
    calendar = GoogleCalendarAdapter()
    mail = GmailClient()

    classification = ClassificationCache(classifications, classifier)
    aggregator = DailyAggregator(sessions, snapshots, classification.classify)
    remote_cache = RemoteCache(cache_db)
    tracker = SessionTracker(
        sessions,
        policy=ExclusionPolicy.from_settings(),
        classify=classification.classify,
        tz=settings.TIMEZONE,
    )
    scheduler = NotificationScheduler(
        notifier,
        SchedulerServices(
            settings,
            markers,
            snapshots.get,
            remote_cache=remote_cache,
            weather=weather,
            calendar=calendar,
            insight=insight,
        ),
    )
    dispatcher = Dispatcher(
        tracker,
        aggregator,
        classification,
        scheduler,
        sessions,
        clipboard,
        stores=[sessions, cache_db, markers, clipboard],
        tz=settings.TIMEZONE,
    )
    dashboard = Dashboard(
        aggregator,
        sessions,
        remote_cache,
        weather=weather,
        calendar=calendar,
        mail=mail,
        github=github,
        insight=insight,
        tz=settings.TIMEZONE,
    )
    exporter = DataExporter(
        sessions, snapshots, clipboard, classification, tz=settings.TIMEZONE,
    )
    return dispatcher, dashboard, exporter


def build_app(notifier: NotificationPort | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers and ticks.

    Args:
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
    """
    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_start_event_stream)
        .post_shutdown(_stop_event_stream)
        .build()
    )

    if notifier is None:
        from focuswatch.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot, settings.ALLOWED_USER_IDS)

    dispatcher, dashboard, exporter = build_engine(notifier)

    # Store services in bot_data for handler access
    app.bot_data["dispatcher"] = dispatcher
    app.bot_data["dashboard"] = dashboard
    app.bot_data["exporter"] = exporter
    app.bot_data["notifier"] = notifier

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("dashboard", cmd_dashboard))
    app.add_handler(CommandHandler("insights", cmd_insights))
    app.add_handler(CommandHandler("export", cmd_export))
    app.add_handler(CommandHandler("google_signout", cmd_google_signout))

    _setup_ticks(app, dispatcher, exporter, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


async def send_scheduled_export(
    exporter: DataExporter,
    notifier: NotificationPort,
    frequency: str,
    now_ms: int | None = None,
) -> Path:
    """Write the period's export to disk and deliver it to the allowed users."""
    from focuswatch.core.exporter import FREQUENCY_DAYS

    start, end = exporter.recent_range(FREQUENCY_DAYS[frequency], now_ms)
    path = exporter.write(start, end, now_ms)
    await notifier.send_document(
        path.name, path.read_bytes(), caption=f"Your {frequency} FocusWatch export ({start} to {end})",
    )
    return path


def _setup_ticks(
    app: Application,
    dispatcher: Dispatcher,
    exporter: DataExporter,
    notifier: NotificationPort,
) -> None:
    """Register the engine's periodic jobs on the application's job_queue."""

    async def _heartbeat(context: ContextTypes.DEFAULT_TYPE) -> None:
        await dispatcher.heartbeat()

    async def _rules(context: ContextTypes.DEFAULT_TYPE) -> None:
        await dispatcher.check_rules()

    async def _classify(context: ContextTypes.DEFAULT_TYPE) -> None:
        await dispatcher.classify_pending()

    async def _cleanup(context: ContextTypes.DEFAULT_TYPE) -> None:
        await dispatcher.cleanup()

    async def _export(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_scheduled_export(exporter, notifier, settings.EXPORT_FREQUENCY)

    app.job_queue.run_repeating(_heartbeat, interval=settings.HEARTBEAT_SECONDS, name="heartbeat")
    app.job_queue.run_repeating(_rules, interval=settings.RULE_CHECK_SECONDS, first=1, name="rule_check")
    app.job_queue.run_repeating(
        _classify, interval=settings.CLASSIFY_INTERVAL_MINUTES * 60, name="classify",
    )
    app.job_queue.run_daily(
        _cleanup,
        time=dt_time(hour=3, minute=0, tzinfo=ZoneInfo(settings.TIMEZONE)),
        name="cleanup",
    )
    if settings.AUTO_EXPORT:
        # PTB counts days from 0 = Sunday
        app.job_queue.run_daily(
            _export,
            time=dt_time(hour=23, minute=50, tzinfo=ZoneInfo(settings.TIMEZONE)),
            days=(0,) if settings.EXPORT_FREQUENCY == "weekly" else tuple(range(7)),
            name="export",
        )

    logger.info(
        "Ticks scheduled: heartbeat %ds, rules %ds, classify %dmin, cleanup daily, export %s",
        settings.HEARTBEAT_SECONDS,
        settings.RULE_CHECK_SECONDS,
        settings.CLASSIFY_INTERVAL_MINUTES,
        settings.EXPORT_FREQUENCY if settings.AUTO_EXPORT else "off",
    )


async def _start_event_stream(app: Application) -> None:
    from focuswatch.integrations.event_stream import consume

    dispatcher: Dispatcher = app.bot_data["dispatcher"]
    app.bot_data["event_task"] = asyncio.create_task(
        consume(settings.EVENT_STREAM_PATH, dispatcher.handle_event),
        name="event_stream",
    )


async def _stop_event_stream(app: Application) -> None:
    task: asyncio.Task | None = app.bot_data.get("event_task")
    if task is not None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
    await app.bot_data["dispatcher"].shutdown()


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting FocusWatch...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
