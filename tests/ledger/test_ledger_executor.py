"""
Tests for the ledger executor.

============================================================
PURPOSE
============================================================
Batch execution against a real SQLite database.

TEST PRINCIPLES:
- A batch applies completely or not at all
- Cash never goes negative
- Closed positions disappear

============================================================
"""

import asyncio
import pytest
from decimal import Decimal

from core.constants import INITIAL_CASH_BALANCE
from core.exceptions import InsufficientCashError, OversellError, PortfolioNotFoundError, PositionNotFoundError
from ledger.executor import LedgerExecutor
from ledger.types import TradeSide, make_instruction
from storage.repositories import PortfolioRepository, PositionRepository, TradeRepository


@pytest.fixture
def executor(database):
    """Executor over the test database."""
    return LedgerExecutor(database)


async def read_state(database, portfolio_id=1):
    async with database.transaction_scope() as session:
        portfolio = await PortfolioRepository(session).get(portfolio_id)
        positions = await PositionRepository(session).list_for_portfolio(portfolio_id)
        trade_count = await TradeRepository(session).count_for_portfolio(portfolio_id)
        return (
            portfolio.cash_balance if portfolio is not None else None,
            {p.symbol: (p.quantity, p.average_price) for p in positions},
            trade_count,
        )


class TestLedgerExecutor:
    """Tests for LedgerExecutor.execute."""

    @pytest.mark.asyncio
    async def test_empty_batch_is_noop(self, executor):
        assert await executor.execute(1, []) == []
        assert executor.get_stats()["batches"] == 0

    @pytest.mark.asyncio
    async def test_buy_then_sell_updates_cash_and_position(self, executor, database):
        executed = await executor.execute(1, [
            make_instruction("AAPL", "BUY", 10, 100),
            make_instruction("AAPL", "BUY", 10, 110),
            make_instruction("AAPL", "SELL", 5, 120),
        ])

        assert [t.side for t in executed] == [TradeSide.BUY, TradeSide.BUY, TradeSide.SELL]
        assert all(t.id is not None for t in executed)

        cash, positions, trade_count = await read_state(database)
        assert cash == INITIAL_CASH_BALANCE - Decimal(1000) - Decimal(1100) + Decimal(600)
        assert positions == {"AAPL": (Decimal(15), Decimal(105))}
        assert trade_count == 3

    @pytest.mark.asyncio
    async def test_selling_everything_deletes_position(self, executor, database):
        await executor.execute(1, [
            make_instruction("MSFT", "BUY", 2, 400),
            make_instruction("MSFT", "SELL", 2, 410),
        ])

        cash, positions, trade_count = await read_state(database)
        assert positions == {}
        assert cash == INITIAL_CASH_BALANCE + Decimal(20)
        assert trade_count == 2

    @pytest.mark.asyncio
    async def test_insufficient_cash_rolls_back_whole_batch(self, executor, database):
        with pytest.raises(InsufficientCashError):
            await executor.execute(1, [
                make_instruction("AAPL", "BUY", 10, 100),
                make_instruction("MSFT", "BUY", 1000, 1000),
            ])

        cash, positions, trade_count = await read_state(database)
        assert cash == INITIAL_CASH_BALANCE
        assert positions == {}
        assert trade_count == 0
        assert executor.get_stats()["rejected"] == 1

    @pytest.mark.asyncio
    async def test_oversell_rolls_back(self, executor, database):
        await executor.execute(1, [make_instruction("AAPL", "BUY", 5, 100)])

        with pytest.raises(OversellError):
            await executor.execute(1, [
                make_instruction("AAPL", "SELL", 2, 100),
                make_instruction("AAPL", "SELL", 10, 100),
            ])

        cash, positions, trade_count = await read_state(database)
        assert positions == {"AAPL": (Decimal(5), Decimal(100))}
        assert cash == INITIAL_CASH_BALANCE - Decimal(500)
        assert trade_count == 1

    @pytest.mark.asyncio
    async def test_sell_without_position(self, executor):
        with pytest.raises(PositionNotFoundError):
            await executor.execute(1, [make_instruction("TSLA", "SELL", 1, 200)])

    @pytest.mark.asyncio
    async def test_unknown_portfolio(self, executor):
        with pytest.raises(PortfolioNotFoundError):
            await executor.execute(99, [make_instruction("AAPL", "BUY", 1, 100)])

    @pytest.mark.asyncio
    async def test_concurrent_batches_are_serialized(self, executor, database):
        """Two batches that each fit alone but not together: exactly one wins."""
        batch = [make_instruction("AAPL", "BUY", 600, 100)]

        results = await asyncio.gather(
            executor.execute(1, batch),
            executor.execute(1, batch),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientCashError)

        cash, positions, _ = await read_state(database)
        assert cash == INITIAL_CASH_BALANCE - Decimal(60000)
        assert positions == {"AAPL": (Decimal(600), Decimal(100))}

    def test_lock_is_per_portfolio(self, executor):
        assert executor.lock_for(1) is executor.lock_for(1)
        assert executor.lock_for(1) is not executor.lock_for(2)
