"""
Storage - Portfolio Repositories.

============================================================
RESPONSIBILITY
============================================================
Data access for the simulated ledger.

- PortfolioRepository: portfolios and the default bootstrap
- PositionRepository: open positions keyed by (portfolio, symbol)
- TradeRepository: append-only trade log

============================================================
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_PORTFOLIO_ID,
    DEFAULT_PORTFOLIO_NAME,
    INITIAL_CASH_BALANCE,
)
from storage.models import Portfolio, Position, Trade
from storage.repositories.base import BaseRepository


class PortfolioRepository(BaseRepository[Portfolio]):
    """Portfolio rows."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Portfolio, "PortfolioRepository")

    async def get(self, portfolio_id: int) -> Optional[Portfolio]:
        return await self._get_by_id(portfolio_id)

    async def get_or_create_default(self) -> Portfolio:
        """Fetch the default portfolio, creating it on first access."""
        portfolio = await self._get_by_id(DEFAULT_PORTFOLIO_ID)
        if portfolio is not None:
            return portfolio

        self._logger.info(f"Creating default portfolio {DEFAULT_PORTFOLIO_ID}")
        return await self._add(
            Portfolio(
                id=DEFAULT_PORTFOLIO_ID,
                name=DEFAULT_PORTFOLIO_NAME,
                base_currency=DEFAULT_BASE_CURRENCY,
                cash_balance=INITIAL_CASH_BALANCE,
            )
        )

    async def create(
        self,
        name: str,
        base_currency: str = DEFAULT_BASE_CURRENCY,
        cash_balance: Decimal = INITIAL_CASH_BALANCE,
    ) -> Portfolio:
        return await self._add(
            Portfolio(name=name, base_currency=base_currency, cash_balance=cash_balance)
        )

    async def list_all(self) -> List[Portfolio]:
        return await self._execute_query(select(Portfolio).order_by(Portfolio.id))

    async def delete(self, portfolio: Portfolio) -> None:
        await self._delete_entity(portfolio)

    async def set_cash(self, portfolio: Portfolio, cash_balance: Decimal) -> None:
        portfolio.cash_balance = cash_balance
        await self._flush()


class PositionRepository(BaseRepository[Position]):
    """Open positions."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Position, "PositionRepository")

    async def get(self, portfolio_id: int, symbol: str) -> Optional[Position]:
        stmt = select(Position).where(
            Position.portfolio_id == portfolio_id,
            Position.symbol == symbol,
        )
        return await self._execute_first(stmt)

    async def list_for_portfolio(self, portfolio_id: int) -> List[Position]:
        stmt = (
            select(Position)
            .where(Position.portfolio_id == portfolio_id)
            .order_by(Position.symbol)
        )
        return await self._execute_query(stmt)

    async def create(
        self,
        portfolio_id: int,
        symbol: str,
        quantity: Decimal,
        average_price: Decimal,
    ) -> Position:
        return await self._add(
            Position(
                portfolio_id=portfolio_id,
                symbol=symbol,
                quantity=quantity,
                average_price=average_price,
            )
        )

    async def update(self, position: Position, quantity: Decimal, average_price: Decimal) -> None:
        position.quantity = quantity
        position.average_price = average_price
        await self._flush()

    async def delete(self, position: Position) -> None:
        await self._delete_entity(position)

    async def delete_for_portfolio(self, portfolio_id: int) -> int:
        return await self._delete_where(Position.portfolio_id == portfolio_id)


class TradeRepository(BaseRepository[Trade]):
    """Append-only trade log."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, Trade, "TradeRepository")

    async def append(
        self,
        portfolio_id: int,
        symbol: str,
        side: str,
        quantity: Decimal,
        price: Decimal,
    ) -> Trade:
        return await self._add(
            Trade(
                portfolio_id=portfolio_id,
                symbol=symbol,
                side=side,
                quantity=quantity,
                price=price,
            )
        )

    async def list_recent(self, portfolio_id: int, limit: int) -> List[Trade]:
        """Newest first."""
        stmt = (
            select(Trade)
            .where(Trade.portfolio_id == portfolio_id)
            .order_by(desc(Trade.executed_at), desc(Trade.id))
            .limit(limit)
        )
        return await self._execute_query(stmt)

    async def list_for_portfolio(self, portfolio_id: int) -> List[Trade]:
        """Full history, newest first."""
        stmt = (
            select(Trade)
            .where(Trade.portfolio_id == portfolio_id)
            .order_by(desc(Trade.executed_at), desc(Trade.id))
        )
        return await self._execute_query(stmt)

    async def count_for_portfolio(self, portfolio_id: int) -> int:
        return await self._count(Trade.portfolio_id == portfolio_id)

    async def delete_for_portfolio(self, portfolio_id: int) -> int:
        return await self._delete_where(Trade.portfolio_id == portfolio_id)
