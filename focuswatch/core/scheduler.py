"""
FocusWatch — Notification Scheduler.

A tick-driven evaluator for the nudges: morning briefing, ready-to-start,
first productive action, one-hour and goal milestones, distraction alert,
end-of-day summary and meeting heads-up.

The rule ledger is an immutable SchedulerState owned by the dispatcher.
Every tick takes the current state and returns a new one; nothing here
keeps per-day bookkeeping in module globals. All rules reset on local day
rollover. The end-of-day summary and the first-productive celebration are
always deduplicated through durable markers (eod_<day>, work_start_<day>);
with DURABLE_RULE_LEDGER every other daily-once rule is too.

Firing is decided before any message is composed, so a slow or failing
weather/calendar fetch can only shorten a message, never suppress it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar

from focuswatch.core import messages
from focuswatch.core.clock import HOUR_MS, MINUTE_MS, previous_day, to_local
from focuswatch.core.remote_cache import CALENDAR_TTL, WEATHER_TTL
from focuswatch.data.db import retention_expiry
from focuswatch.data.models import DailySnapshot, Meeting, Notification
from focuswatch.ports.fetch_port import FetchError

if TYPE_CHECKING:
    from focuswatch.config import Settings
    from focuswatch.core.remote_cache import RemoteCache
    from focuswatch.data.db import MarkerDB
    from focuswatch.ports.fetch_port import CalendarPort, WeatherPort
    from focuswatch.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

HOUR_WINDOW_MINUTES = 2            # hour rules accept minute 0 and 1
READY_MAX_PRODUCTIVE_MS = MINUTE_MS
ONE_HOUR_MS = HOUR_MS
MEETING_EARLY_MS = MINUTE_MS       # window: (lead - 1 min, lead + 2 min]
MEETING_LATE_MS = 2 * MINUTE_MS
MEETING_FORGET_MS = HOUR_MS


class RuleName(str, enum.Enum):
    MORNING_BRIEFING = "morning_briefing"
    READY_TO_START = "ready_nudge"
    FIRST_PRODUCTIVE = "first_productive"
    ONE_HOUR_MILESTONE = "milestone_1hr"
    GOAL_MILESTONE = "milestone_goal"
    DISTRACTION_ALERT = "distraction_alert"
    END_OF_DAY = "end_of_day"
    MEETING_AWARENESS = "meeting_awareness"


# ---------------------------------------------------------------------------
# Rule ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulerState:
    """Per-day fired/cooldown bookkeeping plus the warned-meeting set."""

    day: str | None = None
    fired: frozenset[RuleName] = frozenset()
    last_fire_ms: dict[RuleName, int] = field(default_factory=dict)
    notified_meetings: dict[str, int] = field(default_factory=dict)  # id → start_ms

    def rollover(self, day: str, restored: frozenset[RuleName] = frozenset()) -> SchedulerState:
        """Clear fired/cooldown state when the day changed."""
        if self.day == day:
            return self
        return SchedulerState(day=day, fired=restored, notified_meetings=self.notified_meetings)

    def has_fired(self, rule: RuleName) -> bool:
        return rule in self.fired

    def last_fired(self, rule: RuleName) -> int | None:
        return self.last_fire_ms.get(rule)

    def mark_fired(self, rule: RuleName, now_ms: int) -> SchedulerState:
        return replace(
            self,
            fired=self.fired | {rule},
            last_fire_ms={**self.last_fire_ms, rule: now_ms},
        )

    def mark_meeting(self, meeting_id: str, start_ms: int) -> SchedulerState:
        return replace(self, notified_meetings={**self.notified_meetings, meeting_id: start_ms})

    def prune_meetings(self, now_ms: int) -> SchedulerState:
        """Forget meetings that started more than an hour ago."""
        kept = {
            mid: start for mid, start in self.notified_meetings.items()
            if now_ms - start <= MEETING_FORGET_MS
        }
        if len(kept) == len(self.notified_meetings):
            return self
        return replace(self, notified_meetings=kept)


# ---------------------------------------------------------------------------
# Collaborators used while composing messages
# ---------------------------------------------------------------------------


class SchedulerServices:
    """Best-effort data for message bodies. Every getter returns None on failure."""

    def __init__(
        self,
        config: Settings,
        markers: MarkerDB,
        snapshot_for: Callable[[str], DailySnapshot | None],
        remote_cache: RemoteCache | None = None,
        weather: WeatherPort | None = None,
        calendar: CalendarPort | None = None,
        insight: Callable[[DailySnapshot], Awaitable[str]] | None = None,
    ) -> None:
        self.config = config
        self.markers = markers
        self._snapshot_for = snapshot_for
        self._cache = remote_cache
        self._weather = weather
        self._calendar = calendar
        self._insight = insight

    async def _guarded(self, what: str, coro: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self.config.FETCH_TIMEOUT_SECONDS)
        except (FetchError, asyncio.TimeoutError) as exc:
            logger.warning("Notification data '%s' unavailable: %s", what, exc)
            return None

    async def _cached(self, key: str, ttl: int, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        if self._cache is None:
            return await fetcher()
        result = await self._cache.fetch(key, ttl, fetcher)
        return result.payload

    async def weather(self) -> dict | None:
        if self._weather is None:
            return None
        return await self._guarded(
            "weather", self._cached("weather", WEATHER_TTL, self._weather.get_weather),
        )

    async def meetings(self) -> list[Meeting] | None:
        if self._calendar is None:
            return None
        events = await self._guarded(
            "calendar",
            self._cached("calendar", CALENDAR_TTL, self._calendar.get_todays_events),
        )
        if events is None:
            return None
        return [Meeting(**ev) for ev in events]

    def yesterday(self, day: str) -> DailySnapshot | None:
        return self._snapshot_for(previous_day(day))

    async def insight(self, snapshot: DailySnapshot) -> str | None:
        if self._insight is None:
            return None
        return await self._guarded("insight", self._insight(snapshot))


@dataclass(frozen=True)
class TickContext:
    now_ms: int
    local: datetime
    day: str
    snapshot: DailySnapshot
    services: SchedulerServices
    productive_signal: bool = False

    @property
    def config(self) -> Settings:
        return self.services.config

    def at_hour(self, hour: int) -> bool:
        return self.local.hour == hour and self.local.minute < HOUR_WINDOW_MINUTES


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class Rule:
    """One notification rule: when it is due, and what it says."""

    name: ClassVar[RuleName]
    title: ClassVar[str]
    priority: ClassVar[int] = 1
    repeatable: ClassVar[bool] = False
    durable: ClassVar[bool] = False

    def enabled(self, config: Settings) -> bool:
        return True

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        raise NotImplementedError

    async def triggers(self, ctx: TickContext, state: SchedulerState) -> list[Any]:
        """Things to notify about this tick. Daily rules yield at most one."""
        if not self.repeatable and state.has_fired(self.name):
            return []
        return [None] if self.is_due(ctx, state) else []

    def record(self, state: SchedulerState, trigger: Any, now_ms: int) -> SchedulerState:
        return state.mark_fired(self.name, now_ms)

    def ledger_key(self, day: str) -> str:
        return f"fired_{self.name.value}_{day}"

    def ledger_value(self, ctx: TickContext) -> Any:
        return True

    def notification_id(self, ctx: TickContext, trigger: Any) -> str:
        return f"{self.name.value}_{ctx.day}"

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        raise NotImplementedError

    async def compose(self, ctx: TickContext, trigger: Any) -> Notification:
        return Notification(
            id=self.notification_id(ctx, trigger),
            title=self.title,
            body=await self.body(ctx, trigger),
            priority=self.priority,
        )


class MorningBriefing(Rule):
    name = RuleName.MORNING_BRIEFING
    title = "Good Morning!"
    priority = 2

    def enabled(self, config: Settings) -> bool:
        return config.ENABLE_MORNING_BRIEFING

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        return ctx.at_hour(ctx.config.MORNING_BRIEFING_HOUR)

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        weather, meetings = await asyncio.gather(ctx.services.weather(), ctx.services.meetings())
        return messages.morning_briefing(
            messages.first_timed_meeting(meetings),
            ctx.services.yesterday(ctx.day),
            weather,
            ctx.config.TIMEZONE,
        )


class ReadyToStart(Rule):
    name = RuleName.READY_TO_START
    title = "Hey!"

    def enabled(self, config: Settings) -> bool:
        return config.ENABLE_START_NUDGES

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        return (
            ctx.at_hour(ctx.config.READY_CHECK_HOUR)
            and ctx.snapshot.productive_time < READY_MAX_PRODUCTIVE_MS
            and not state.has_fired(RuleName.FIRST_PRODUCTIVE)
        )

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        meetings = await ctx.services.meetings()
        return messages.ready_to_start(messages.first_timed_meeting(meetings), ctx.config.TIMEZONE)


class FirstProductive(Rule):
    name = RuleName.FIRST_PRODUCTIVE
    title = "Great Start!"
    durable = True

    def ledger_key(self, day: str) -> str:
        return f"work_start_{day}"

    def ledger_value(self, ctx: TickContext) -> Any:
        return ctx.now_ms

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        return ctx.productive_signal

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        return messages.first_productive()


class OneHourMilestone(Rule):
    name = RuleName.ONE_HOUR_MILESTONE
    title = "Nice Progress!"

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        return ctx.snapshot.productive_time >= ONE_HOUR_MS

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        return messages.one_hour_milestone()


class GoalMilestone(Rule):
    name = RuleName.GOAL_MILESTONE
    title = "Goal Reached!"
    priority = 2

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        return ctx.snapshot.productive_time >= ctx.config.DAILY_FOCUS_GOAL_MINUTES * MINUTE_MS

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        return messages.goal_milestone(ctx.config.DAILY_FOCUS_GOAL_MINUTES)


class DistractionAlert(Rule):
    name = RuleName.DISTRACTION_ALERT
    title = "Gentle Nudge"
    repeatable = True

    def enabled(self, config: Settings) -> bool:
        return config.ENABLE_DISTRACTION_ALERTS

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        last = state.last_fired(self.name)
        cooldown_ms = ctx.config.DISTRACTION_COOLDOWN_MINUTES * MINUTE_MS
        if last is not None and ctx.now_ms - last < cooldown_ms:
            return False
        return ctx.snapshot.distraction_time >= ctx.config.DISTRACTION_ALERT_MINUTES * MINUTE_MS

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        return messages.distraction_alert(ctx.snapshot.distraction_time)


class EndOfDaySummary(Rule):
    name = RuleName.END_OF_DAY
    title = "Day Summary"
    durable = True

    def enabled(self, config: Settings) -> bool:
        return config.ENABLE_END_OF_DAY_SUMMARY

    def ledger_key(self, day: str) -> str:
        return f"eod_{day}"

    def is_due(self, ctx: TickContext, state: SchedulerState) -> bool:
        if not ctx.at_hour(ctx.config.END_OF_DAY_HOUR) or ctx.snapshot.productive_time <= 0:
            return False
        return not ctx.services.markers.get(self.ledger_key(ctx.day))

    async def body(self, ctx: TickContext, trigger: Any) -> str:
        insight = await ctx.services.insight(ctx.snapshot)
        return messages.end_of_day(ctx.snapshot, ctx.config.DAILY_FOCUS_GOAL_MINUTES, insight)


class MeetingAwareness(Rule):
    name = RuleName.MEETING_AWARENESS
    title = "Heads up!"
    priority = 2
    repeatable = True

    def enabled(self, config: Settings) -> bool:
        return config.ENABLE_MEETING_AWARENESS

    async def triggers(self, ctx: TickContext, state: SchedulerState) -> list[Any]:
        meetings = await ctx.services.meetings()
        if not meetings:
            return []
        lead_ms = ctx.config.MEETING_WARNING_MINUTES * MINUTE_MS
        due = []
        for meeting in meetings:
            if meeting.all_day or meeting.id in state.notified_meetings:
                continue
            until = meeting.start_ms - ctx.now_ms
            if lead_ms - MEETING_EARLY_MS < until <= lead_ms + MEETING_LATE_MS:
                due.append(meeting)
        return due

    def record(self, state: SchedulerState, trigger: Meeting, now_ms: int) -> SchedulerState:
        return state.mark_meeting(trigger.id, trigger.start_ms)

    def notification_id(self, ctx: TickContext, trigger: Meeting) -> str:
        return f"meeting_{trigger.id}"

    async def body(self, ctx: TickContext, trigger: Meeting) -> str:
        return messages.meeting_heads_up(trigger, ctx.now_ms, ctx.config.TIMEZONE)


ALL_RULES: tuple[Rule, ...] = (
    MorningBriefing(),
    ReadyToStart(),
    FirstProductive(),
    OneHourMilestone(),
    GoalMilestone(),
    DistractionAlert(),
    EndOfDaySummary(),
    MeetingAwareness(),
)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class NotificationScheduler:
    """Evaluates every rule once per tick against the day's snapshot."""

    def __init__(
        self,
        notifier: NotificationPort,
        services: SchedulerServices,
        rules: tuple[Rule, ...] = ALL_RULES,
    ) -> None:
        self._notifier = notifier
        self._services = services
        self._rules = rules

    @property
    def config(self) -> Settings:
        return self._services.config

    def _persisted(self, rule: Rule) -> bool:
        return rule.durable or (self.config.DURABLE_RULE_LEDGER and not rule.repeatable)

    def rollover(self, state: SchedulerState, day: str) -> SchedulerState:
        """Start a fresh ledger for a new day, restoring durable markers."""
        if state.day == day:
            return state
        restored = frozenset(
            rule.name for rule in self._rules
            if self._persisted(rule) and self._services.markers.get(rule.ledger_key(day)) is not None
        )
        if state.day is not None:
            logger.info("Day rollover %s → %s, rule ledger reset", state.day, day)
        return state.rollover(day, restored)

    def _context(
        self, now_ms: int, snapshot: DailySnapshot, productive_signal: bool = False,
    ) -> TickContext:
        local = to_local(now_ms, self.config.TIMEZONE)
        return TickContext(
            now_ms=now_ms,
            local=local,
            day=local.date().isoformat(),
            snapshot=snapshot,
            services=self._services,
            productive_signal=productive_signal,
        )

    async def tick(
        self,
        state: SchedulerState,
        now_ms: int,
        snapshot: DailySnapshot,
    ) -> tuple[SchedulerState, list[Notification]]:
        """Evaluate every timed rule. Returns the new state and what was sent."""
        ctx = self._context(now_ms, snapshot)
        state = self.rollover(state, ctx.day).prune_meetings(now_ms)
        rules = [r for r in self._rules if r.name is not RuleName.FIRST_PRODUCTIVE]
        return await self._run(ctx, state, rules)

    async def on_productive_visit(
        self,
        state: SchedulerState,
        now_ms: int,
        snapshot: DailySnapshot,
    ) -> tuple[SchedulerState, list[Notification]]:
        """The tracker opened a productive session: maybe celebrate it."""
        ctx = self._context(now_ms, snapshot, productive_signal=True)
        state = self.rollover(state, ctx.day)
        rules = [r for r in self._rules if r.name is RuleName.FIRST_PRODUCTIVE]
        return await self._run(ctx, state, rules)

    async def _run(
        self,
        ctx: TickContext,
        state: SchedulerState,
        rules: list[Rule],
    ) -> tuple[SchedulerState, list[Notification]]:
        pending: list[tuple[Rule, Any]] = []
        for rule in rules:
            if not rule.enabled(self.config):
                continue
            try:
                triggers = await rule.triggers(ctx, state)
            except Exception as exc:
                logger.error("Rule %s failed to evaluate: %s", rule.name.value, exc)
                continue
            for trigger in triggers:
                state = rule.record(state, trigger, ctx.now_ms)
                if self._persisted(rule):
                    self._services.markers.set(
                        rule.ledger_key(ctx.day), rule.ledger_value(ctx),
                        expires_at=retention_expiry(ctx.now_ms),
                    )
                pending.append((rule, trigger))

        if not pending:
            return state, []

        # Each rule composes with its own fetch deadlines, concurrently.
        composed = await asyncio.gather(
            *(self._compose(ctx, rule, trigger) for rule, trigger in pending)
        )
        sent: list[Notification] = []
        for notification in composed:
            try:
                await self._notifier.notify(
                    notification.id, notification.title, notification.body, notification.priority,
                )
            except Exception as exc:
                logger.error("Failed to deliver notification %s: %s", notification.id, exc)
                continue
            logger.info("Notification sent: %s", notification.id)
            sent.append(notification)
        return state, sent

    async def _compose(self, ctx: TickContext, rule: Rule, trigger: Any) -> Notification:
        try:
            return await rule.compose(ctx, trigger)
        except Exception as exc:
            logger.error("Composing %s failed, sending bare notification: %s", rule.name.value, exc)
            return Notification(
                id=rule.notification_id(ctx, trigger),
                title=rule.title,
                body="",
                priority=rule.priority,
            )
