"""
Ledger - Types.

============================================================
PURPOSE
============================================================
Value types passed between the planner, the ledger executor
and the portfolio service.

- TradeInstruction: one priced order ready for the ledger
- PositionState: pure (quantity, average price) pair
- PositionView / PortfolioSnapshot: marked-to-market view

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import InvalidTradeError
from core.money import to_decimal, to_float


class TradeSide(str, Enum):
    """Trade direction."""

    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: Any) -> "TradeSide":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError as e:
            raise InvalidTradeError(f"Invalid trade side: {value!r}") from e


@dataclass(frozen=True)
class TradeInstruction:
    """Priced order ready for the ledger."""

    symbol: str
    """Upper-case symbol."""

    side: TradeSide
    """BUY or SELL."""

    quantity: Decimal
    """Strictly positive quantity."""

    price: Decimal
    """Strictly positive execution price."""

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": to_float(self.quantity),
            "price": to_float(self.price),
        }


def make_instruction(symbol: str, side: Any, quantity: Any, price: Any) -> TradeInstruction:
    """
    Build a validated instruction.

    Raises:
        InvalidTradeError: On empty symbol, unknown side or
            non-positive quantity/price
    """
    normalized = (symbol or "").strip().upper()
    if not normalized:
        raise InvalidTradeError("Trade symbol is required")

    qty = to_decimal(quantity)
    px = to_decimal(price)
    if qty <= 0:
        raise InvalidTradeError(f"Invalid quantity for {normalized}", symbol=normalized)
    if px <= 0:
        raise InvalidTradeError(f"Invalid price for {normalized}", symbol=normalized)

    return TradeInstruction(
        symbol=normalized,
        side=TradeSide.parse(side),
        quantity=qty,
        price=px,
    )


@dataclass(frozen=True)
class PositionState:
    """Quantity and weighted average price of one holding."""

    quantity: Decimal
    average_price: Decimal

    @property
    def is_closed(self) -> bool:
        return self.quantity.is_zero()


@dataclass
class PositionView:
    """One position marked to market."""

    symbol: str
    quantity: Decimal
    average_price: Decimal
    market_price: Optional[Decimal] = None
    market_value: Optional[Decimal] = None
    cost_basis: Decimal = Decimal(0)
    unrealized_pnl: Optional[Decimal] = None
    daily_pnl: Optional[Decimal] = None
    change_percent: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "qty": to_float(self.quantity),
            "avgPrice": to_float(self.average_price),
            "marketPrice": _opt_float(self.market_price),
            "marketValue": _opt_float(self.market_value),
            "costBasis": to_float(self.cost_basis),
            "unrealizedPnL": _opt_float(self.unrealized_pnl),
            "dailyPnL": _opt_float(self.daily_pnl),
            "changePercent": _opt_float(self.change_percent),
        }


@dataclass
class PortfolioSnapshot:
    """Portfolio with positions marked to market."""

    id: int
    name: str
    base_currency: str
    cash_balance: Decimal
    total_market_value: Decimal = Decimal(0)
    total_cost_basis: Decimal = Decimal(0)
    total_unrealized_pnl: Decimal = Decimal(0)
    total_daily_pnl: Decimal = Decimal(0)
    positions: List[PositionView] = field(default_factory=list)

    @property
    def symbols(self) -> List[str]:
        return [p.symbol for p in self.positions]

    @property
    def total_value(self) -> Decimal:
        return self.cash_balance + self.total_market_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "baseCurrency": self.base_currency,
            "cashBalance": to_float(self.cash_balance),
            "totalMarketValue": to_float(self.total_market_value),
            "totalCostBasis": to_float(self.total_cost_basis),
            "totalUnrealizedPnL": to_float(self.total_unrealized_pnl),
            "totalDailyPnL": to_float(self.total_daily_pnl),
            "positions": [p.to_dict() for p in self.positions],
        }


def _opt_float(value: Optional[Decimal]) -> Optional[float]:
    return to_float(value) if value is not None else None


@dataclass(frozen=True)
class ExecutedTrade:
    """Trade as recorded by the ledger."""

    id: int
    portfolio_id: int
    symbol: str
    side: TradeSide
    quantity: Decimal
    price: Decimal
    executed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "portfolioId": self.portfolio_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "qty": to_float(self.quantity),
            "price": to_float(self.price),
            "ts": self.executed_at.isoformat(),
        }
