"""
Tests for the portfolio service.

============================================================
PURPOSE
============================================================
Portfolio lifecycle, snapshots and manual trades.

============================================================
"""

import pytest
from decimal import Decimal

from core.constants import INITIAL_CASH_BALANCE
from core.exceptions import InvalidRequestError, PortfolioNotFoundError, PricingError


class TestPortfolioLifecycle:
    """Tests for create/list/delete/reset."""

    @pytest.mark.asyncio
    async def test_default_portfolio_created_on_first_access(self, portfolio_service):
        summary = await portfolio_service.get_portfolio_record()
        assert summary.id == 1
        assert summary.cash_balance == INITIAL_CASH_BALANCE
        assert summary.base_currency == "USD"

    @pytest.mark.asyncio
    async def test_unknown_portfolio(self, portfolio_service):
        with pytest.raises(PortfolioNotFoundError):
            await portfolio_service.get_portfolio_record(42)

    @pytest.mark.asyncio
    async def test_create_and_list(self, portfolio_service):
        created = await portfolio_service.create_portfolio("  Growth ", "eur")
        assert created.name == "Growth"
        assert created.base_currency == "EUR"

        portfolios = await portfolio_service.list_portfolios()
        assert [p.id for p in portfolios] == [1, created.id]

    @pytest.mark.asyncio
    async def test_create_rejects_bad_input(self, portfolio_service):
        with pytest.raises(InvalidRequestError):
            await portfolio_service.create_portfolio("   ")
        with pytest.raises(InvalidRequestError):
            await portfolio_service.create_portfolio("Fine", "EURO")

    @pytest.mark.asyncio
    async def test_default_cannot_be_deleted(self, portfolio_service):
        with pytest.raises(InvalidRequestError):
            await portfolio_service.delete_portfolio(1)

    @pytest.mark.asyncio
    async def test_delete_removes_portfolio_and_trades(self, portfolio_service):
        created = await portfolio_service.create_portfolio("Scratch")
        await portfolio_service.submit_trade("AAPL", "BUY", 1, portfolio_id=created.id)

        await portfolio_service.delete_portfolio(created.id)

        with pytest.raises(PortfolioNotFoundError):
            await portfolio_service.get_portfolio_record(created.id)

    @pytest.mark.asyncio
    async def test_reset_restores_cash(self, portfolio_service):
        await portfolio_service.submit_trade("AAPL", "BUY", 10, price="100")

        summary = await portfolio_service.reset_portfolio(1)

        assert summary.cash_balance == INITIAL_CASH_BALANCE
        assert await portfolio_service.list_trades(1) == []
        snapshot = await portfolio_service.build_snapshot(1)
        assert snapshot.positions == []


class TestSnapshotsAndTrades:
    """Tests for build_snapshot, submit_trade and export."""

    @pytest.mark.asyncio
    async def test_manual_trade_uses_oracle_price(self, portfolio_service):
        trade = await portfolio_service.submit_trade(" aapl ", "buy", 10)
        assert trade.symbol == "AAPL"
        assert trade.price == Decimal("190.00")

    @pytest.mark.asyncio
    async def test_manual_trade_falls_back_to_previous_close(self, portfolio_service, oracle):
        oracle.set_price("NVDA", None, previous_close="880")
        trade = await portfolio_service.submit_trade("NVDA", "BUY", 1)
        assert trade.price == Decimal("880")

    @pytest.mark.asyncio
    async def test_manual_trade_without_price_source(self, portfolio_service):
        with pytest.raises(PricingError):
            await portfolio_service.submit_trade("UNKNOWN", "BUY", 1)

    @pytest.mark.asyncio
    async def test_snapshot_marks_positions(self, portfolio_service):
        await portfolio_service.submit_trade("AAPL", "BUY", 10, price="180")
        await portfolio_service.submit_trade("MSFT", "BUY", 2, price="400")

        snapshot = await portfolio_service.build_snapshot()

        assert snapshot.symbols == ["AAPL", "MSFT"]
        assert snapshot.cash_balance == INITIAL_CASH_BALANCE - Decimal(1800) - Decimal(800)
        aapl = snapshot.positions[0]
        assert aapl.market_value == Decimal("1900.00")
        assert aapl.unrealized_pnl == Decimal("100.00")
        assert snapshot.total_market_value == Decimal("1900.00") + Decimal("821.00")

    @pytest.mark.asyncio
    async def test_snapshot_fails_when_quote_fails(self, portfolio_service, oracle):
        await portfolio_service.submit_trade("AAPL", "BUY", 1, price="180")
        oracle.fail_quote("AAPL", RuntimeError("feed down"))

        with pytest.raises(RuntimeError):
            await portfolio_service.build_snapshot()

    @pytest.mark.asyncio
    async def test_trades_listed_newest_first(self, portfolio_service):
        await portfolio_service.submit_trade("AAPL", "BUY", 1, price="100")
        await portfolio_service.submit_trade("MSFT", "BUY", 1, price="100")

        trades = await portfolio_service.list_trades(limit=1)

        assert [t.symbol for t in trades] == ["MSFT"]

    @pytest.mark.asyncio
    async def test_export(self, portfolio_service):
        await portfolio_service.submit_trade("AAPL", "BUY", 2, price="150.25")

        exported = await portfolio_service.export_portfolio(1)

        assert exported["portfolio"]["cashBalance"] == float(INITIAL_CASH_BALANCE - Decimal("300.50"))
        assert exported["positions"] == [{"symbol": "AAPL", "qty": 2.0, "avgPrice": 150.25}]
        assert exported["trades"][0]["side"] == "BUY"
        assert exported["trades"][0]["timestamp"].endswith("Z")
