"""
Tests for run schedules.

============================================================
PURPOSE
============================================================
Rule validation, occurrence math and the due-schedule runner.

============================================================
"""

import json
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from core.exceptions import InvalidConfigError
from llm_planner.adapters import MockProviderAdapter
from llm_planner.config import PlannerConfig
from llm_planner.plan_runner import PlanRunner
from llm_planner.schedules import (
    ScheduleRule,
    is_due,
    next_run_after,
    previous_run_at,
    run_due_schedules,
    validate_schedule,
)
from llm_planner.service import PlanService
from storage.models import LlmRunSchedule
from storage.repositories import LlmConfigRepository


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def schedule(frequency="daily", time_of_day="09:30", day_of_week=None, day_of_month=None,
             is_active=True, last_run_at=None):
    return LlmRunSchedule(
        portfolio_id=1,
        frequency=frequency,
        time_of_day=time_of_day,
        day_of_week=day_of_week,
        day_of_month=day_of_month,
        is_active=is_active,
        last_run_at=last_run_at,
    )


# ============================================================
# VALIDATION TESTS
# ============================================================

class TestValidateSchedule:
    """Tests for validate_schedule."""

    def test_daily(self):
        rule = validate_schedule("daily", "07:05")
        assert (rule.hour, rule.minute) == (7, 5)
        assert rule.time_of_day == "07:05"

    @pytest.mark.parametrize("value", ["7:05", "24:00", "12:60", "noon", ""])
    def test_bad_time(self, value):
        with pytest.raises(InvalidConfigError) as exc_info:
            validate_schedule("daily", value)
        assert exc_info.value.reason == "Time must be in HH:MM 24-hour format"

    def test_weekly_needs_day(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            validate_schedule("weekly", "09:00")
        assert exc_info.value.reason == "Weekly schedules require a day of the week"

    def test_monthly_needs_day(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            validate_schedule("monthly", "09:00", day_of_week=3)
        assert exc_info.value.reason == "Monthly schedules require a day of the month"

    def test_unknown_frequency(self):
        with pytest.raises(InvalidConfigError):
            validate_schedule("hourly", "09:00")

    @pytest.mark.parametrize("dow", [-1, 7, True])
    def test_day_of_week_range(self, dow):
        with pytest.raises(InvalidConfigError):
            validate_schedule("weekly", "09:00", day_of_week=dow)

    def test_irrelevant_day_fields_cleared(self):
        rule = validate_schedule("daily", "09:00", day_of_week=2, day_of_month=15)
        assert rule.day_of_week is None
        assert rule.day_of_month is None


# ============================================================
# OCCURRENCE TESTS
# ============================================================

class TestOccurrences:
    """Tests for next_run_after / previous_run_at."""

    def test_daily_same_day_and_next_day(self):
        rule = validate_schedule("daily", "09:30")
        assert next_run_after(rule, utc(2024, 5, 1, 8, 0)) == utc(2024, 5, 1, 9, 30)
        assert next_run_after(rule, utc(2024, 5, 1, 9, 30)) == utc(2024, 5, 2, 9, 30)

    def test_weekly_sunday_is_zero(self):
        rule = validate_schedule("weekly", "10:00", day_of_week=0)
        # 2024-05-01 is a Wednesday; the next Sunday is 2024-05-05.
        assert next_run_after(rule, utc(2024, 5, 1, 12, 0)) == utc(2024, 5, 5, 10, 0)

    def test_monthly_clamps_to_last_day(self):
        rule = validate_schedule("monthly", "18:00", day_of_month=31)
        assert next_run_after(rule, utc(2024, 2, 1)) == utc(2024, 2, 29, 18, 0)
        assert next_run_after(rule, utc(2024, 4, 1)) == utc(2024, 4, 30, 18, 0)

    def test_previous_run_includes_exact_instant(self):
        rule = validate_schedule("daily", "09:30")
        assert previous_run_at(rule, utc(2024, 5, 1, 9, 30)) == utc(2024, 5, 1, 9, 30)
        assert previous_run_at(rule, utc(2024, 5, 1, 9, 29)) == utc(2024, 4, 30, 9, 30)

    def test_rule_from_model(self):
        rule = ScheduleRule.from_model(schedule("weekly", "08:00", day_of_week=5))
        assert rule.day_of_week == 5


class TestIsDue:
    """Tests for is_due."""

    def test_due_inside_window(self):
        assert is_due(schedule(), now=utc(2024, 5, 1, 9, 40))

    def test_not_due_outside_window(self):
        assert not is_due(schedule(), now=utc(2024, 5, 1, 10, 0))

    def test_wider_window(self):
        assert is_due(schedule(), now=utc(2024, 5, 1, 10, 0), window=timedelta(hours=1))

    def test_already_ran_this_occurrence(self):
        ran = schedule(last_run_at=utc(2024, 5, 1, 9, 31))
        assert not is_due(ran, now=utc(2024, 5, 1, 9, 40))

    def test_ran_previous_occurrence(self):
        ran = schedule(last_run_at=utc(2024, 4, 30, 9, 31))
        assert is_due(ran, now=utc(2024, 5, 1, 9, 40))

    def test_inactive(self):
        assert not is_due(schedule(is_active=False), now=utc(2024, 5, 1, 9, 40))


# ============================================================
# RUNNER TESTS
# ============================================================

class TestRunDueSchedules:
    """Tests for run_due_schedules."""

    @pytest.fixture
    async def provider(self, config_service):
        """Default provider."""
        return await config_service.create_provider({
            "name": "Primary", "api_base": "http://llm.local", "model": "m", "is_default": True,
        })

    def make_service(self, database, portfolio_service, script):
        runner = PlanRunner(
            database,
            portfolio_service,
            config=PlannerConfig.for_testing(),
            invoker=MockProviderAdapter(script).invoke,
            sleep=AsyncMock(),
        )
        return PlanService(database, runner)

    @pytest.mark.asyncio
    async def test_runs_due_schedule_once(self, database, portfolio_service, config_service, provider):
        await config_service.create_schedule(1, {"frequency": "daily", "time_of_day": "09:30"})
        await config_service.create_schedule(1, {"frequency": "daily", "time_of_day": "15:00"})
        service = self.make_service(database, portfolio_service, [
            json.dumps({"version": "1.0", "generatedAt": "x", "arbitrages": []}),
        ])
        now = utc(2024, 5, 1, 9, 35)

        outcomes = await run_due_schedules(service, database, now=now)
        again = await run_due_schedules(service, database, now=now + timedelta(minutes=1))

        assert len(outcomes) == 1
        assert outcomes[0].status == "planned"
        assert outcomes[0].error is None
        assert outcomes[0].execution_id is not None
        assert again == []

    @pytest.mark.asyncio
    async def test_failure_recorded_and_stamped(self, database, portfolio_service, config_service, provider):
        created = await config_service.create_schedule(1, {"frequency": "daily", "time_of_day": "09:30"})
        service = self.make_service(database, portfolio_service, ["no plan today"])
        now = utc(2024, 5, 1, 9, 35)

        outcomes = await run_due_schedules(service, database, now=now)

        assert outcomes[0].status == "error"
        assert outcomes[0].error == "extracting-plan: Unable to extract JSON payload from LLM response"

        async with database.transaction_scope() as session:
            stored = await LlmConfigRepository(session).get_schedule(created["id"])
            assert stored.last_run_at == now
