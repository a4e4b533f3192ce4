"""
Tests for execution context building and prompt rendering.
"""

import json
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from llm_planner.config import ContextConfig
from llm_planner.context_builder import (
    BASE_SYSTEM_PROMPT,
    DEFAULT_USER_TEMPLATE,
    ContextBuilder,
    build_system_prompt,
    render_template,
    resolve_user_template,
)
from market_data.oracle import Candle


def candles(count):
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        Candle(date=start + timedelta(days=i), close=Decimal(100 + i), volume=1000)
        for i in range(count)
    ]


@pytest.fixture
def builder(portfolio_service, oracle):
    """Context builder with a short history window."""
    return ContextBuilder(portfolio_service, oracle, ContextConfig(history_limit=5, recent_trades_limit=2))


class TestContextBuilder:
    """Tests for ContextBuilder.build."""

    @pytest.mark.asyncio
    async def test_empty_portfolio(self, builder):
        context = await builder.build(1)

        assert context.base_currency == "USD"
        assert context.cash_balance == Decimal("100000")
        assert json.loads(context.quotes_json) == {}
        assert json.loads(context.trades_json) == []
        assert json.loads(context.schema_json)["required"] == ["version", "generatedAt", "arbitrages"]

    @pytest.mark.asyncio
    async def test_held_symbols_get_quotes_and_trimmed_history(self, builder, portfolio_service, oracle):
        await portfolio_service.submit_trade("AAPL", "BUY", 10, price="180")
        oracle.set_history("AAPL", candles(8))

        context = await builder.build(1)

        assert context.quote_for("AAPL").price == Decimal("190.00")
        history = json.loads(context.histories_json)["AAPL"]
        assert len(history) == 5
        assert history[-1]["close"] == 107.0
        assert json.loads(context.portfolio_json)["positions"][0]["symbol"] == "AAPL"

    @pytest.mark.asyncio
    async def test_history_failure_degrades_to_empty(self, builder, portfolio_service, oracle):
        await portfolio_service.submit_trade("MSFT", "BUY", 1, price="400")
        oracle.fail_history("MSFT", RuntimeError("rate limited"))

        context = await builder.build(1)

        assert context.raw.histories == {"MSFT": []}

    @pytest.mark.asyncio
    async def test_quote_failure_propagates(self, builder, portfolio_service, oracle):
        await portfolio_service.submit_trade("MSFT", "BUY", 1, price="400")
        oracle.fail_quote("MSFT", RuntimeError("feed down"))

        with pytest.raises(RuntimeError):
            await builder.build(1)

    @pytest.mark.asyncio
    async def test_recent_trades_limited_newest_first(self, builder, portfolio_service):
        for symbol in ("AAPL", "MSFT", "AAPL"):
            await portfolio_service.submit_trade(symbol, "BUY", 1, price="100")

        context = await builder.build(1)

        trades = json.loads(context.trades_json)
        assert len(trades) == 2
        assert trades[0]["symbol"] == "AAPL"
        assert trades[1]["symbol"] == "MSFT"


class TestRendering:
    """Tests for prompt rendering."""

    @pytest.mark.asyncio
    async def test_placeholders_substituted(self, builder):
        context = await builder.build(1)
        now = datetime(2024, 5, 1, 14, 30, tzinfo=timezone.utc)

        rendered = render_template(
            "{{CURRENT_DATETIME}} | {{BASE_CURRENCY}} {{CASH_BALANCE}} | {{UNKNOWN}} | {{QUOTES_JSON}}",
            context,
            now=now,
        )

        assert rendered == "2024-05-01T14:30:00.000Z | USD 100000.00 | {{UNKNOWN}} | {}"

    @pytest.mark.asyncio
    async def test_default_template_leaves_no_known_placeholders(self, builder):
        context = await builder.build(1)
        rendered = render_template(DEFAULT_USER_TEMPLATE, context)
        assert "{{" not in rendered
        assert "USD 100000.00" in rendered

    def test_system_prompt(self):
        assert build_system_prompt(None) == BASE_SYSTEM_PROMPT
        assert build_system_prompt("   ") == BASE_SYSTEM_PROMPT
        assert build_system_prompt(" Max 5% per name. ") == BASE_SYSTEM_PROMPT + "\n\nMax 5% per name."

    def test_blank_template_falls_back(self):
        assert resolve_user_template("  ") == DEFAULT_USER_TEMPLATE
        assert resolve_user_template("custom") == "custom"
