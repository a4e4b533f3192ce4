"""
Tests for the plan runner pipeline.

============================================================
PURPOSE
============================================================
End-to-end runs against a real database with a scripted
provider and an in-memory oracle.

TEST PRINCIPLES:
- Attempts are bounded
- Only priced, validated plans reach the ledger
- A rejected batch leaves the ledger untouched

============================================================
"""

import json
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch

from core.constants import INITIAL_CASH_BALANCE
from core.exceptions import (
    NoProviderConfiguredError,
    PersistenceError,
    PlanExecutionError,
    PlanExtractionError,
    PortfolioNotFoundError,
    PricingError,
    PromptNotFoundError,
    ProviderNotFoundError,
    ProviderResponseError,
    ProviderTransportError,
)
from llm_planner.adapters import MockProviderAdapter
from llm_planner.config import PlannerConfig
from llm_planner.plan_runner import PlanRunner, build_chat_request
from llm_planner.types import ProviderConfig, ProviderFamily, RunOverrides


# ============================================================
# HELPERS / FIXTURES
# ============================================================

def plan_text(*orders):
    return json.dumps({
        "version": "1.0",
        "generatedAt": "2024-05-01T14:30:00Z",
        "arbitrages": list(orders),
    })


BUY_AAPL = plan_text({"symbol": "AAPL", "action": "BUY", "quantity": 10})


@pytest.fixture
async def provider(config_service):
    """Default OpenAI-compatible provider."""
    return await config_service.create_provider({
        "name": "Primary",
        "api_base": "http://llm.local/v1",
        "model": "planner-1",
        "temperature": 0.3,
        "is_default": True,
    })


@pytest.fixture
def sleep():
    """Backoff sleep that returns immediately."""
    return AsyncMock()


def make_runner(database, portfolio_service, script, sleep):
    adapter = MockProviderAdapter(script)
    runner = PlanRunner(
        database,
        portfolio_service,
        config=PlannerConfig.for_testing(),
        invoker=adapter.invoke,
        sleep=sleep,
    )
    return runner, adapter


# ============================================================
# PIPELINE TESTS
# ============================================================

class TestPlanRunnerPipeline:
    """Tests for PlanRunner.run_plan outcomes."""

    @pytest.mark.asyncio
    async def test_dry_run_prices_without_trading(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(database, portfolio_service, [BUY_AAPL], sleep)

        result = await runner.run_plan(1, dry_run=True)

        assert result.status == "dry-run"
        assert not result.executed
        assert [(t.symbol, t.quantity, t.price) for t in result.trades] == [
            ("AAPL", Decimal(10), Decimal("190.00")),
        ]
        assert result.total_notional == Decimal("1900.00")
        assert result.states[-1] == "dry-run-complete"
        assert result.attempts == 1
        assert adapter.call_count == 1

        summary = await portfolio_service.get_portfolio_record(1)
        assert summary.cash_balance == INITIAL_CASH_BALANCE

    @pytest.mark.asyncio
    async def test_executes_plan(self, database, portfolio_service, provider, sleep):
        runner, _ = make_runner(database, portfolio_service, [BUY_AAPL], sleep)

        result = await runner.run_plan(1)

        assert result.status == "completed"
        assert result.executed
        assert len(result.executed_trades) == 1
        assert result.snapshot.cash_balance == INITIAL_CASH_BALANCE - Decimal("1900.00")
        assert result.snapshot.symbols == ["AAPL"]
        assert result.states == [
            "building-context",
            "rendering-prompt",
            "invoking-provider",
            "extracting-plan",
            "pricing-orders",
            "executing",
            "executed",
        ]
        assert result.transcript.assistant_message == BUY_AAPL

    @pytest.mark.asyncio
    async def test_empty_plan_is_planned_not_executed(self, database, portfolio_service, provider, sleep):
        runner, _ = make_runner(database, portfolio_service, [plan_text()], sleep)

        result = await runner.run_plan(1)

        assert result.status == "planned"
        assert result.trades == []
        assert result.states[-1] == "dry-run-complete"

    @pytest.mark.asyncio
    async def test_bad_output_retried_then_succeeds(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(database, portfolio_service, ["I think you should buy.", BUY_AAPL], sleep)

        result = await runner.run_plan(1, dry_run=True)

        assert result.attempts == 2
        assert adapter.call_count == 2
        sleep.assert_awaited_once_with(0.0)
        assert result.states.count("invoking-provider") == 2

    @pytest.mark.asyncio
    async def test_provider_errors_retried(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(
            database,
            portfolio_service,
            [ProviderTransportError("connection reset"), BUY_AAPL],
            sleep,
        )

        result = await runner.run_plan(1, dry_run=True)

        assert result.attempts == 2
        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_attempts_are_bounded(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(database, portfolio_service, ["still not json"], sleep)

        with pytest.raises(PlanExtractionError) as exc_info:
            await runner.run_plan(1)

        assert exc_info.value.attempts == 3
        assert exc_info.value.stage == "extracting-plan"
        assert adapter.call_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_succeeds_on_last_attempt(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(
            database,
            portfolio_service,
            [ProviderTransportError("connection reset"), "not json", BUY_AAPL],
            sleep,
        )

        result = await runner.run_plan(1)

        assert result.status == "completed"
        assert result.attempts == 3
        assert adapter.call_count == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_unexpected_provider_failure_retried(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(
            database,
            portfolio_service,
            [TypeError("sequence item 0: expected str instance, NoneType found"), BUY_AAPL],
            sleep,
        )

        result = await runner.run_plan(1, dry_run=True)

        assert result.attempts == 2
        assert adapter.call_count == 2

    @pytest.mark.asyncio
    async def test_unexpected_provider_failure_exhausts_attempts(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(database, portfolio_service, [AttributeError("no get")], sleep)

        with pytest.raises(ProviderResponseError) as exc_info:
            await runner.run_plan(1)

        assert exc_info.value.attempts == 3
        assert exc_info.value.stage == "invoking-provider"
        assert isinstance(exc_info.value.cause, AttributeError)
        assert adapter.call_count == 3

    @pytest.mark.asyncio
    async def test_unpriceable_plan_retried_then_fails(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(
            database,
            portfolio_service,
            [plan_text({"symbol": "ZZZZ", "action": "BUY", "quantity": 1})],
            sleep,
        )

        with pytest.raises(PricingError) as exc_info:
            await runner.run_plan(1)

        assert exc_info.value.attempts == 3
        assert adapter.call_count == 3

    @pytest.mark.asyncio
    async def test_ledger_rejection_not_retried(self, database, portfolio_service, provider, sleep):
        runner, adapter = make_runner(
            database,
            portfolio_service,
            [plan_text(
                {"symbol": "MSFT", "action": "BUY", "quantity": 1},
                {"symbol": "AAPL", "action": "BUY", "quantity": 100000},
            )],
            sleep,
        )

        with pytest.raises(PlanExecutionError) as exc_info:
            await runner.run_plan(1)

        error = exc_info.value
        assert error.message == "Insufficient cash balance for this trade"
        assert adapter.call_count == 1
        assert len(error.result.trades) == 2
        assert error.result.plan is not None
        assert error.result.states[-1] == "execution-failed"
        assert not error.result.executed

        summary = await portfolio_service.get_portfolio_record(1)
        assert summary.cash_balance == INITIAL_CASH_BALANCE
        assert await portfolio_service.list_trades(1) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failure", [
        PersistenceError("database is locked", operation="transaction"),
        PortfolioNotFoundError(1),
    ])
    async def test_storage_failure_during_execution(self, database, portfolio_service, provider, sleep, failure):
        runner, adapter = make_runner(database, portfolio_service, [BUY_AAPL], sleep)

        with patch.object(portfolio_service.executor, "execute", AsyncMock(side_effect=failure)):
            with pytest.raises(PlanExecutionError) as exc_info:
                await runner.run_plan(1)

        error = exc_info.value
        assert error.cause is failure
        assert error.stage == "executing"
        assert error.result.states[-1] == "execution-failed"
        assert len(error.result.trades) == 1
        assert adapter.call_count == 1

    @pytest.mark.asyncio
    async def test_context_failure_not_retried(self, database, portfolio_service, oracle, provider, sleep):
        await portfolio_service.submit_trade("AAPL", "BUY", 1, price="100")
        oracle.fail_quote("AAPL", RuntimeError("feed down"))
        runner, adapter = make_runner(database, portfolio_service, [BUY_AAPL], sleep)

        with pytest.raises(RuntimeError) as exc_info:
            await runner.run_plan(1)

        assert adapter.call_count == 0
        assert exc_info.value.stage == "building-context"


# ============================================================
# REQUEST TESTS
# ============================================================

class TestRequestConstruction:
    """Tests for prompts and chat requests sent to the provider."""

    @pytest.mark.asyncio
    async def test_prompt_and_overrides_reach_provider(
        self, database, portfolio_service, config_service, provider, sleep
    ):
        await config_service.create_prompt(1, {
            "name": "Tech only",
            "system_prompt": "Only trade large-cap tech.",
            "user_template": "Cash: {{BASE_CURRENCY}} {{CASH_BALANCE}}",
            "is_default": True,
        })
        runner, adapter = make_runner(database, portfolio_service, [plan_text()], sleep)

        await runner.run_plan(1, overrides=RunOverrides(model="override-model", max_tokens=256))

        _, request = adapter.calls[0]
        assert request.model == "override-model"
        assert request.max_tokens == 256
        assert request.temperature == pytest.approx(0.3)
        assert request.response_format == {"type": "json_object"}
        assert request.messages[0].content.endswith("\n\nOnly trade large-cap tech.")
        assert request.messages[1].content == "Cash: USD 100000.00"

    def test_build_chat_request_defaults(self):
        provider = ProviderConfig(
            id=1, name="p", family=ProviderFamily.LOCAL, api_base="http://x", model="m",
        )
        request = build_chat_request(provider, "sys", "user")
        assert request.model == "m"
        assert request.temperature == 0.0
        assert request.max_tokens is None
        assert [m.role.value for m in request.messages] == ["system", "user"]

    def test_build_chat_request_zero_temperature_override(self):
        provider = ProviderConfig(
            id=1, name="p", family=ProviderFamily.LOCAL, api_base="http://x", model="m", temperature=0.9,
        )
        request = build_chat_request(provider, "sys", "user", RunOverrides(temperature=0.0))
        assert request.temperature == 0.0


# ============================================================
# RESOLUTION TESTS
# ============================================================

class TestConfigurationResolution:
    """Tests for PlanRunner.resolve_configuration."""

    @pytest.mark.asyncio
    async def test_no_provider(self, database, portfolio_service, sleep):
        runner, _ = make_runner(database, portfolio_service, [], sleep)
        with pytest.raises(NoProviderConfiguredError):
            await runner.resolve_configuration(1)

    @pytest.mark.asyncio
    async def test_unknown_portfolio(self, database, portfolio_service, provider, sleep):
        runner, _ = make_runner(database, portfolio_service, [], sleep)
        with pytest.raises(PortfolioNotFoundError):
            await runner.resolve_configuration(7)

    @pytest.mark.asyncio
    async def test_explicit_ids_must_exist(self, database, portfolio_service, provider, sleep):
        runner, _ = make_runner(database, portfolio_service, [], sleep)
        with pytest.raises(ProviderNotFoundError):
            await runner.resolve_configuration(1, provider_id=999)
        with pytest.raises(PromptNotFoundError):
            await runner.resolve_configuration(1, prompt_id=999)

    @pytest.mark.asyncio
    async def test_oldest_provider_when_no_default(self, database, portfolio_service, config_service, sleep):
        first = await config_service.create_provider({"name": "First", "api_base": "http://a", "model": "a"})
        await config_service.create_provider({"name": "Second", "api_base": "http://b", "model": "b"})
        runner, _ = make_runner(database, portfolio_service, [], sleep)

        configuration = await runner.resolve_configuration(1)

        assert configuration.provider.id == first["id"]
        assert configuration.prompt is None

    @pytest.mark.asyncio
    async def test_precedence(self, database, portfolio_service, config_service, provider, sleep):
        other = await config_service.create_provider({
            "name": "Claude", "provider_type": "anthropic", "api_base": "https://api.anthropic.com", "model": "c",
        })
        third = await config_service.create_provider({"name": "Third", "api_base": "http://c", "model": "t"})
        prompt = await config_service.create_prompt(1, {
            "name": "Uses Claude", "provider_id": other["id"], "is_default": True,
        })
        runner, _ = make_runner(database, portfolio_service, [], sleep)

        by_prompt = await runner.resolve_configuration(1)
        explicit = await runner.resolve_configuration(1, provider_id=third["id"])

        assert by_prompt.prompt.id == prompt["id"]
        assert by_prompt.provider.id == other["id"]
        assert by_prompt.provider.family == ProviderFamily.ANTHROPIC
        assert explicit.provider.id == third["id"]
