"""Notification text — pure formatting.

Every builder takes whatever data was available and leaves out the section
whose data is missing. No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import datetime

from focuswatch.core.clock import MINUTE_MS, format_duration, to_local
from focuswatch.data.models import DailySnapshot, Meeting


def format_clock(ms: int, tz: str | None = None) -> str:
    """"9:05 AM" style local time."""
    return _clock(to_local(ms, tz))


def _clock(dt: datetime) -> str:
    return dt.strftime("%I:%M %p").lstrip("0")


def first_timed_meeting(meetings: list[Meeting] | None) -> Meeting | None:
    timed = [m for m in meetings or [] if not m.all_day]
    if not timed:
        return None
    return min(timed, key=lambda m: m.start_ms)


def morning_briefing(
    first_meeting: Meeting | None,
    yesterday: DailySnapshot | None,
    weather: dict | None,
    tz: str | None = None,
) -> str:
    lines = ["Good morning! Here's your day:"]
    if first_meeting is not None:
        lines.append(f"📅 First: {first_meeting.title} at {format_clock(first_meeting.start_ms, tz)}")
    if yesterday is not None and yesterday.total_time > 0:
        lines.append(f"⏱️ Yesterday: {format_duration(yesterday.productive_time)} focused")
    current = (weather or {}).get("current")
    if current:
        lines.append(f"🌤️ {current.get('temp')}°F, {current.get('condition', '')}".rstrip(", "))
    return "\n".join(lines)


def ready_to_start(first_meeting: Meeting | None, tz: str | None = None) -> str:
    if first_meeting is None:
        return "Ready to start your day?"
    return f"Ready to start? Your first meeting is at {format_clock(first_meeting.start_ms, tz)}."


def first_productive() -> str:
    return "Nice! You're off to a productive start. 🚀"


def one_hour_milestone() -> str:
    return "1 hour focused! Keep it up! 🚀"


def goal_milestone(goal_minutes: int) -> str:
    return f"🎉 You hit your {goal_minutes / 60:g}-hour goal! Amazing work!"


def distraction_alert(distraction_ms: int) -> str:
    minutes = distraction_ms // MINUTE_MS
    return f"You've been browsing for {minutes} minutes. Ready to get back to it?"


def end_of_day(snapshot: DailySnapshot, goal_minutes: int, insight: str | None = None) -> str:
    percent = round(snapshot.productive_time / (goal_minutes * 60_000) * 100) if goal_minutes else 100
    top = snapshot.top_domains[0].domain if snapshot.top_domains else "N/A"
    body = (
        f"Today: {format_duration(snapshot.productive_time)} focused "
        f"({percent}% of goal)\nTop site: {top}"
    )
    if insight:
        body += f"\n\n{insight.strip()}"
    return body


def meeting_heads_up(meeting: Meeting, now_ms: int, tz: str | None = None) -> str:
    minutes = round((meeting.start_ms - now_ms) / MINUTE_MS)
    return (
        f'📅 "{meeting.title}" starts in ~{minutes} min '
        f"({format_clock(meeting.start_ms, tz)})"
    )


def daily_stats(snapshot: DailySnapshot, limit: int = 5) -> str:
    """Plain-text snapshot used by the /today command."""
    if snapshot.total_time == 0:
        return f"No browsing tracked for {snapshot.day} yet."
    lines = [
        f"📊 {snapshot.day}",
        f"Focused: {format_duration(snapshot.productive_time)} ({snapshot.goal_progress}% of goal)",
        f"Distracted: {format_duration(snapshot.distraction_time)}",
        f"Neutral: {format_duration(snapshot.neutral_time)}",
        f"Sessions: {snapshot.session_count}",
    ]
    if snapshot.top_domains:
        lines.append("Top sites:")
        for item in snapshot.top_domains[:limit]:
            lines.append(f"  - {item.domain}: {item.duration // MINUTE_MS}m ({item.classification})")
    return "\n".join(lines)
