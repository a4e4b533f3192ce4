"""
Portfolio Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the simulated ledger: portfolios, open positions
and the append-only trade log.

============================================================
DATA LIFECYCLE ROLE
============================================================
- Portfolio: MUTABLE (cash balance)
- Position: MUTABLE, row deleted when quantity reaches zero
- Trade: IMMUTABLE (append-only)

============================================================
MODELS
============================================================
- Portfolio: Cash account in one base currency
- Position: Holding of one symbol within a portfolio
- Trade: Executed simulated fill

============================================================
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.clock import utcnow
from core.constants import (
    DEFAULT_BASE_CURRENCY,
    DEFAULT_PORTFOLIO_NAME,
    INITIAL_CASH_BALANCE,
)
from storage.models.base import Base, ExactDecimal, TimestampMixin, UTCDateTime


class Portfolio(Base, TimestampMixin):
    """
    Simulated cash account.

    Deleting a portfolio cascades to its positions, trades,
    prompts, schedules and execution records.
    """

    __tablename__ = "portfolios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default=DEFAULT_PORTFOLIO_NAME,
        comment="Display name"
    )

    base_currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default=DEFAULT_BASE_CURRENCY,
        comment="ISO currency code, upper case"
    )

    cash_balance: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        default=INITIAL_CASH_BALANCE,
        comment="Available cash, never negative"
    )

    def __repr__(self) -> str:
        return f"<Portfolio(id={self.id}, name={self.name}, cash={self.cash_balance})>"


class Position(Base, TimestampMixin):
    """Open holding. Exists only while quantity > 0."""

    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    portfolio_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    )

    symbol: Mapped[str] = mapped_column(String(32), nullable=False)

    quantity: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        comment="Held quantity, strictly positive"
    )

    average_price: Mapped[Decimal] = mapped_column(
        ExactDecimal(),
        nullable=False,
        comment="Weighted average entry price"
    )

    __table_args__ = (
        UniqueConstraint("portfolio_id", "symbol", name="uq_positions_portfolio_symbol"),
    )

    def __repr__(self) -> str:
        return f"<Position({self.symbol}, qty={self.quantity}, avg={self.average_price})>"


class Trade(Base):
    """Executed simulated trade. Append-only."""

    __tablename__ = "trades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    portfolio_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    )

    symbol: Mapped[str] = mapped_column(String(32), nullable=False)

    side: Mapped[str] = mapped_column(
        String(4),
        nullable=False,
        comment="Side: BUY, SELL"
    )

    quantity: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    price: Mapped[Decimal] = mapped_column(ExactDecimal(), nullable=False)

    executed_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utcnow,
        comment="Fill timestamp (UTC)"
    )

    __table_args__ = (
        Index("idx_trades_portfolio_executed", "portfolio_id", "executed_at"),
    )

    def __repr__(self) -> str:
        return f"<Trade({self.side} {self.quantity} {self.symbol} @ {self.price})>"
