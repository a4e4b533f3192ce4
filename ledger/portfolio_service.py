"""
Ledger - Portfolio Service.

============================================================
PURPOSE
============================================================
Portfolio lifecycle and read models on top of the ledger.

- Default portfolio bootstrap
- Create / list / delete / reset / export
- Marked-to-market snapshots (quotes fetched concurrently)
- Manual trades through the same LedgerExecutor as plans

============================================================
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from core.clock import format_iso_z
from core.constants import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_PORTFOLIO_ID,
    INITIAL_CASH_BALANCE,
)
from core.exceptions import InvalidRequestError, PortfolioNotFoundError
from core.money import to_float
from ledger.executor import LedgerExecutor
from ledger.position_math import build_snapshot_view, mark_position
from ledger.types import ExecutedTrade, PortfolioSnapshot, TradeSide, make_instruction
from market_data.oracle import PriceOracle, derive_market_price
from storage.database import Database
from storage.models import Portfolio
from storage.repositories import (
    ExecutionRepository,
    LlmConfigRepository,
    PortfolioRepository,
    PositionRepository,
    TradeRepository,
)


logger = logging.getLogger(__name__)


CURRENCY_PATTERN = re.compile(r"^[A-Za-z]{3}$")


@dataclass(frozen=True)
class PortfolioSummary:
    """Portfolio row without positions."""

    id: int
    name: str
    base_currency: str
    cash_balance: Decimal

    @classmethod
    def from_model(cls, portfolio: Portfolio) -> "PortfolioSummary":
        return cls(
            id=portfolio.id,
            name=portfolio.name,
            base_currency=portfolio.base_currency,
            cash_balance=portfolio.cash_balance,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "baseCurrency": self.base_currency,
            "cashBalance": to_float(self.cash_balance),
        }


class PortfolioService:
    """
    Portfolio operations.

    Usage:
        service = PortfolioService(database, oracle)
        snapshot = await service.build_snapshot(1)
    """

    def __init__(
        self,
        database: Database,
        oracle: PriceOracle,
        executor: Optional[LedgerExecutor] = None,
    ) -> None:
        self._database = database
        self._oracle = oracle
        self._executor = executor or LedgerExecutor(database)

    @property
    def executor(self) -> LedgerExecutor:
        return self._executor

    @property
    def oracle(self) -> PriceOracle:
        return self._oracle

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def get_portfolio_record(self, portfolio_id: int = DEFAULT_PORTFOLIO_ID) -> PortfolioSummary:
        """
        Fetch a portfolio; the default one is created on first access.

        Raises:
            PortfolioNotFoundError: Any other unknown id
        """
        async with self._database.transaction_scope() as session:
            repo = PortfolioRepository(session)
            if portfolio_id == DEFAULT_PORTFOLIO_ID:
                portfolio = await repo.get_or_create_default()
            else:
                portfolio = await repo.get(portfolio_id)
            if portfolio is None:
                raise PortfolioNotFoundError(portfolio_id)
            return PortfolioSummary.from_model(portfolio)

    async def create_portfolio(self, name: str, base_currency: str = DEFAULT_BASE_CURRENCY) -> PortfolioSummary:
        clean_name = (name or "").strip()
        if not clean_name:
            raise InvalidRequestError("name", "must not be empty")
        if len(clean_name) > 100:
            raise InvalidRequestError("name", "must be at most 100 characters")
        if not CURRENCY_PATTERN.match(base_currency or ""):
            raise InvalidRequestError("base_currency", "must be a 3-letter code")

        async with self._database.transaction_scope() as session:
            repo = PortfolioRepository(session)
            # Id 1 is reserved for the default portfolio.
            await repo.get_or_create_default()
            portfolio = await repo.create(
                name=clean_name,
                base_currency=base_currency.upper(),
                cash_balance=INITIAL_CASH_BALANCE,
            )
            summary = PortfolioSummary.from_model(portfolio)

        logger.info(f"Created portfolio {summary.id} ({summary.name}, {summary.base_currency})")
        return summary

    async def list_portfolios(self) -> List[PortfolioSummary]:
        async with self._database.transaction_scope() as session:
            repo = PortfolioRepository(session)
            await repo.get_or_create_default()
            return [PortfolioSummary.from_model(p) for p in await repo.list_all()]

    async def delete_portfolio(self, portfolio_id: int) -> None:
        """
        Delete a portfolio with its positions, trades, prompts,
        schedules and execution records.

        Raises:
            InvalidRequestError: Default portfolio
            PortfolioNotFoundError: Unknown id
        """
        if portfolio_id == DEFAULT_PORTFOLIO_ID:
            raise InvalidRequestError("portfolio_id", "cannot delete default portfolio")

        async with self._database.transaction_scope() as session:
            portfolios = PortfolioRepository(session)
            portfolio = await portfolios.get(portfolio_id)
            if portfolio is None:
                raise PortfolioNotFoundError(portfolio_id)

            config = LlmConfigRepository(session)
            for schedule in await config.list_schedules(portfolio_id=portfolio_id):
                await config.delete_schedule(schedule)
            await ExecutionRepository(session).delete_for_portfolio(portfolio_id)
            for prompt in await config.list_prompts(portfolio_id):
                if prompt.portfolio_id == portfolio_id:
                    await config.delete_prompt(prompt)
            await TradeRepository(session).delete_for_portfolio(portfolio_id)
            await PositionRepository(session).delete_for_portfolio(portfolio_id)
            await portfolios.delete(portfolio)

        logger.info(f"Deleted portfolio {portfolio_id}")

    async def reset_portfolio(self, portfolio_id: int) -> PortfolioSummary:
        """Clear positions and trades; restore the initial cash balance."""
        await self.get_portfolio_record(portfolio_id)

        async with self._executor.lock_for(portfolio_id):
            async with self._database.transaction_scope() as session:
                portfolios = PortfolioRepository(session)
                portfolio = await portfolios.get(portfolio_id)
                if portfolio is None:
                    raise PortfolioNotFoundError(portfolio_id)
                trades_removed = await TradeRepository(session).delete_for_portfolio(portfolio_id)
                await PositionRepository(session).delete_for_portfolio(portfolio_id)
                await portfolios.set_cash(portfolio, INITIAL_CASH_BALANCE)
                summary = PortfolioSummary.from_model(portfolio)

        logger.info(f"Reset portfolio {portfolio_id} ({trades_removed} trade(s) removed)")
        return summary

    async def export_portfolio(self, portfolio_id: int) -> Dict[str, Any]:
        """Portfolio, positions and full trade history as plain data."""
        async with self._database.transaction_scope() as session:
            portfolio = await PortfolioRepository(session).get(portfolio_id)
            if portfolio is None:
                raise PortfolioNotFoundError(portfolio_id)
            positions = await PositionRepository(session).list_for_portfolio(portfolio_id)
            trades = await TradeRepository(session).list_for_portfolio(portfolio_id)

            return {
                "portfolio": {
                    "name": portfolio.name,
                    "baseCurrency": portfolio.base_currency,
                    "cashBalance": to_float(portfolio.cash_balance),
                    "exportedAt": format_iso_z(),
                },
                "positions": [
                    {
                        "symbol": p.symbol,
                        "qty": to_float(p.quantity),
                        "avgPrice": to_float(p.average_price),
                    }
                    for p in positions
                ],
                "trades": [
                    {
                        "symbol": t.symbol,
                        "side": t.side,
                        "qty": to_float(t.quantity),
                        "price": to_float(t.price),
                        "timestamp": format_iso_z(t.executed_at),
                    }
                    for t in trades
                ],
            }

    # =========================================================
    # READ MODELS
    # =========================================================

    async def build_snapshot(self, portfolio_id: int = DEFAULT_PORTFOLIO_ID) -> PortfolioSnapshot:
        """
        Portfolio with positions marked to market.

        Quotes are fetched concurrently; a failed quote fails the
        snapshot.
        """
        summary = await self.get_portfolio_record(portfolio_id)

        async with self._database.transaction_scope() as session:
            positions = await PositionRepository(session).list_for_portfolio(portfolio_id)
            holdings = [(p.symbol, p.quantity, p.average_price) for p in positions]

        quotes = await asyncio.gather(
            *(self._oracle.get_quote(symbol) for symbol, _, _ in holdings)
        )

        views = [
            mark_position(symbol, quantity, average_price, quote)
            for (symbol, quantity, average_price), quote in zip(holdings, quotes)
        ]
        return build_snapshot_view(
            summary.id,
            summary.name,
            summary.base_currency,
            summary.cash_balance,
            views,
        )

    async def list_trades(self, portfolio_id: int = DEFAULT_PORTFOLIO_ID, limit: int = 100) -> List[ExecutedTrade]:
        """Newest first."""
        await self.get_portfolio_record(portfolio_id)
        async with self._database.transaction_scope() as session:
            records = await TradeRepository(session).list_recent(portfolio_id, limit)
            return [
                ExecutedTrade(
                    id=t.id,
                    portfolio_id=t.portfolio_id,
                    symbol=t.symbol,
                    side=TradeSide(t.side),
                    quantity=t.quantity,
                    price=t.price,
                    executed_at=t.executed_at,
                )
                for t in records
            ]

    # =========================================================
    # MANUAL TRADES
    # =========================================================

    async def submit_trade(
        self,
        symbol: str,
        side: Any,
        quantity: Any,
        price: Any = None,
        portfolio_id: int = DEFAULT_PORTFOLIO_ID,
    ) -> ExecutedTrade:
        """
        Execute one manual trade.

        Without an explicit price the oracle price is used (last
        price, else previous close).

        Raises:
            PricingError: No price derivable
            LedgerError: Rejected by the ledger
        """
        normalized = (symbol or "").strip().upper()
        if not normalized:
            raise InvalidRequestError("symbol", "must not be empty")

        if price is None:
            price = await derive_market_price(self._oracle, normalized)

        instruction = make_instruction(normalized, side, quantity, price)
        await self.get_portfolio_record(portfolio_id)
        executed = await self._executor.execute(portfolio_id, [instruction])
        return executed[0]
