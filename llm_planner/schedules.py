"""
LLM Planner - Run Schedules.

============================================================
PURPOSE
============================================================
Recurring plan runs.

RULES:
- frequency: daily | weekly | monthly
- time_of_day: "HH:MM", 24-hour, UTC
- weekly needs day_of_week, 0 = Sunday .. 6 = Saturday
- monthly needs day_of_month 1..31; months shorter than the
  requested day run on their last day

This module only decides WHEN. An external cron calls
run_due_schedules() periodically; each due schedule runs once
per occurrence through the PlanService.

============================================================
"""

import calendar
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from core.clock import ensure_utc, utcnow
from core.exceptions import InvalidConfigError, describe_failure
from storage.database import Database
from storage.models import LlmRunSchedule
from storage.repositories import LlmConfigRepository


logger = logging.getLogger(__name__)


FREQUENCIES = ("daily", "weekly", "monthly")
TIME_PATTERN = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
DEFAULT_DUE_WINDOW = timedelta(minutes=15)

# Longest gap between two occurrences of any rule, plus slack.
_SEARCH_DAYS = 62


# ============================================================
# RULES
# ============================================================

@dataclass(frozen=True)
class ScheduleRule:
    """Validated recurrence rule."""

    frequency: str
    hour: int
    minute: int
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None

    @property
    def time_of_day(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    @classmethod
    def from_model(cls, schedule: LlmRunSchedule) -> "ScheduleRule":
        return validate_schedule(
            schedule.frequency,
            schedule.time_of_day,
            schedule.day_of_week,
            schedule.day_of_month,
        )

    def matches_date(self, day: date) -> bool:
        if self.frequency == "daily":
            return True
        if self.frequency == "weekly":
            # date.weekday(): Monday = 0; rule: Sunday = 0
            return (day.weekday() + 1) % 7 == self.day_of_week
        last_day = calendar.monthrange(day.year, day.month)[1]
        return day.day == min(self.day_of_month, last_day)

    def occurrence_on(self, day: date) -> datetime:
        return ensure_utc(datetime.combine(day, time(self.hour, self.minute)))


def validate_schedule(
    frequency: str,
    time_of_day: str,
    day_of_week: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> ScheduleRule:
    """
    Validate a schedule definition.

    Raises:
        InvalidConfigError: On any rule violation
    """
    if frequency not in FREQUENCIES:
        raise InvalidConfigError("frequency", frequency, f"must be one of {', '.join(FREQUENCIES)}")

    if not isinstance(time_of_day, str) or not TIME_PATTERN.match(time_of_day):
        raise InvalidConfigError("time_of_day", time_of_day, "Time must be in HH:MM 24-hour format")

    if day_of_week is not None and (
        isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6
    ):
        raise InvalidConfigError("day_of_week", day_of_week, "must be an integer 0..6")

    if day_of_month is not None and (
        isinstance(day_of_month, bool) or not isinstance(day_of_month, int) or not 1 <= day_of_month <= 31
    ):
        raise InvalidConfigError("day_of_month", day_of_month, "must be an integer 1..31")

    if frequency == "weekly" and day_of_week is None:
        raise InvalidConfigError("day_of_week", None, "Weekly schedules require a day of the week")
    if frequency == "monthly" and day_of_month is None:
        raise InvalidConfigError("day_of_month", None, "Monthly schedules require a day of the month")

    hour, minute = (int(part) for part in time_of_day.split(":"))
    return ScheduleRule(
        frequency=frequency,
        hour=hour,
        minute=minute,
        day_of_week=day_of_week if frequency == "weekly" else None,
        day_of_month=day_of_month if frequency == "monthly" else None,
    )


# ============================================================
# OCCURRENCES
# ============================================================

def next_run_after(rule: ScheduleRule, after: datetime) -> datetime:
    """First occurrence strictly after `after`."""
    after = ensure_utc(after)
    day = after.date()
    for _ in range(_SEARCH_DAYS):
        if rule.matches_date(day):
            occurrence = rule.occurrence_on(day)
            if occurrence > after:
                return occurrence
        day += timedelta(days=1)
    raise InvalidConfigError("schedule", rule.time_of_day, "no upcoming occurrence")


def previous_run_at(rule: ScheduleRule, at: datetime) -> datetime:
    """Latest occurrence at or before `at`."""
    at = ensure_utc(at)
    day = at.date()
    for _ in range(_SEARCH_DAYS):
        if rule.matches_date(day):
            occurrence = rule.occurrence_on(day)
            if occurrence <= at:
                return occurrence
        day -= timedelta(days=1)
    raise InvalidConfigError("schedule", rule.time_of_day, "no previous occurrence")


def is_due(
    schedule: LlmRunSchedule,
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_DUE_WINDOW,
) -> bool:
    """
    Active, the latest occurrence lies within `window` of now,
    and that occurrence has not run yet.
    """
    if not schedule.is_active:
        return False

    now = ensure_utc(now or utcnow())
    occurrence = previous_run_at(ScheduleRule.from_model(schedule), now)
    if now - occurrence > window:
        return False

    last_run = ensure_utc(schedule.last_run_at) if schedule.last_run_at else None
    return last_run is None or last_run < occurrence


# ============================================================
# RUNNER
# ============================================================

@dataclass
class ScheduleRunOutcome:
    """Result of one scheduled run."""

    schedule_id: int
    portfolio_id: int
    execution_id: Optional[int] = None
    status: str = "error"
    error: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)


async def run_due_schedules(
    service,
    database: Database,
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_DUE_WINDOW,
) -> List[ScheduleRunOutcome]:
    """
    Run every due schedule, one after another.

    A failing schedule is logged and recorded; the others still
    run. last_run_at is stamped whether or not the run succeeded,
    so a failing occurrence is not retried until the next one.
    """
    now = ensure_utc(now or utcnow())

    async with database.transaction_scope() as session:
        schedules = await LlmConfigRepository(session).list_schedules(active_only=True)
        due = [
            (s.id, s.portfolio_id, s.prompt_id, s.provider_id)
            for s in schedules
            if is_due(s, now, window)
        ]

    if due:
        logger.info(f"{len(due)} schedule(s) due at {now.isoformat()}")

    outcomes: List[ScheduleRunOutcome] = []
    for schedule_id, portfolio_id, prompt_id, provider_id in due:
        outcome = ScheduleRunOutcome(schedule_id=schedule_id, portfolio_id=portfolio_id)
        try:
            execution_id, result = await service.run_and_record(
                portfolio_id,
                prompt_id=prompt_id,
                provider_id=provider_id,
            )
            outcome.execution_id = execution_id
            outcome.status = result.status
        except Exception as e:
            outcome.error = describe_failure(e)
            logger.error(
                f"Scheduled run {schedule_id} for portfolio {portfolio_id} failed at {outcome.error}"
            )

        async with database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            schedule = await repo.get_schedule(schedule_id)
            if schedule is not None:
                await repo.update_schedule(schedule, {"last_run_at": now})

        outcomes.append(outcome)

    return outcomes
