"""
Ledger - Executor.

============================================================
PURPOSE
============================================================
Applies a batch of trade instructions to one portfolio
atomically.

============================================================
GUARANTEES
============================================================
- All instructions commit together or none do
- Cash never goes negative
- Position rows exist only with quantity > 0
- One Trade row appended per instruction
- Batches for the same portfolio never interleave
  (per-portfolio asyncio.Lock plus one DB transaction)
- Cancellation mid-batch rolls the transaction back

============================================================
"""

import asyncio
import logging
from typing import Dict, List, Sequence

from core.constants import DEFAULT_PORTFOLIO_ID
from core.exceptions import PortfolioNotFoundError
from ledger.position_math import apply_cash, apply_trade
from ledger.types import ExecutedTrade, PositionState, TradeInstruction, TradeSide
from storage.database import Database
from storage.repositories import PortfolioRepository, PositionRepository, TradeRepository


logger = logging.getLogger(__name__)


class LedgerExecutor:
    """
    Transactional trade application.

    Usage:
        executor = LedgerExecutor(database)
        trades = await executor.execute(portfolio_id, instructions)
    """

    def __init__(self, database: Database) -> None:
        self._database = database
        self._locks: Dict[int, asyncio.Lock] = {}
        self._stats = {
            "batches": 0,
            "trades": 0,
            "rejected": 0,
        }

    def lock_for(self, portfolio_id: int) -> asyncio.Lock:
        lock = self._locks.get(portfolio_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[portfolio_id] = lock
        return lock

    async def execute(
        self,
        portfolio_id: int,
        instructions: Sequence[TradeInstruction],
    ) -> List[ExecutedTrade]:
        """
        Apply every instruction or none.

        Raises:
            PortfolioNotFoundError: Unknown portfolio
            LedgerError: Cash, oversell or missing position; the
                whole batch is rolled back
        """
        if not instructions:
            return []

        async with self.lock_for(portfolio_id):
            self._stats["batches"] += 1
            if portfolio_id == DEFAULT_PORTFOLIO_ID:
                # Committed on its own so a rejected batch keeps the portfolio.
                async with self._database.transaction_scope() as session:
                    await PortfolioRepository(session).get_or_create_default()

            try:
                async with self._database.transaction_scope() as session:
                    executed = await self._apply_batch(session, portfolio_id, instructions)
            except Exception:
                self._stats["rejected"] += 1
                logger.warning(
                    f"Ledger batch of {len(instructions)} trade(s) for portfolio "
                    f"{portfolio_id} rolled back"
                )
                raise

        self._stats["trades"] += len(executed)
        logger.info(
            f"Executed {len(executed)} trade(s) for portfolio {portfolio_id}: "
            + ", ".join(f"{t.side.value} {t.quantity} {t.symbol} @ {t.price}" for t in executed)
        )
        return executed

    async def _apply_batch(
        self,
        session,
        portfolio_id: int,
        instructions: Sequence[TradeInstruction],
    ) -> List[ExecutedTrade]:
        portfolios = PortfolioRepository(session)
        positions = PositionRepository(session)
        trades = TradeRepository(session)

        portfolio = await portfolios.get(portfolio_id)
        if portfolio is None:
            raise PortfolioNotFoundError(portfolio_id)

        cash = portfolio.cash_balance
        executed: List[ExecutedTrade] = []

        for instruction in instructions:
            cash = apply_cash(cash, instruction)

            existing = await positions.get(portfolio_id, instruction.symbol)
            current = (
                PositionState(existing.quantity, existing.average_price)
                if existing is not None
                else None
            )
            updated = apply_trade(current, instruction)

            if existing is None:
                await positions.create(
                    portfolio_id, instruction.symbol, updated.quantity, updated.average_price
                )
            elif updated.is_closed:
                await positions.delete(existing)
            else:
                await positions.update(existing, updated.quantity, updated.average_price)

            record = await trades.append(
                portfolio_id,
                instruction.symbol,
                instruction.side.value,
                instruction.quantity,
                instruction.price,
            )
            executed.append(
                ExecutedTrade(
                    id=record.id,
                    portfolio_id=portfolio_id,
                    symbol=record.symbol,
                    side=TradeSide(record.side),
                    quantity=record.quantity,
                    price=record.price,
                    executed_at=record.executed_at,
                )
            )

        await portfolios.set_cash(portfolio, cash)
        return executed

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
