"""
Ledger - Position Arithmetic.

Pure functions; no I/O. Every operation goes through core.money.
"""

from decimal import Decimal
from typing import Iterable, Optional, Tuple

from core import money
from core.exceptions import InsufficientCashError, OversellError, PositionNotFoundError
from ledger.types import PortfolioSnapshot, PositionState, PositionView, TradeInstruction, TradeSide
from market_data.oracle import Quote


def apply_trade(position: Optional[PositionState], trade: TradeInstruction) -> PositionState:
    """
    Apply one trade to a holding.

    BUY: quantity grows, average price is the quantity-weighted
    mean of old and new cost. SELL: quantity shrinks, average
    price unchanged unless the position closes (then zero).

    Raises:
        PositionNotFoundError: SELL without a position
        OversellError: SELL quantity above held quantity
    """
    if position is None:
        if trade.side == TradeSide.SELL:
            raise PositionNotFoundError(symbol=trade.symbol)
        return PositionState(quantity=trade.quantity, average_price=trade.price)

    if trade.side == TradeSide.BUY:
        new_qty = money.add(position.quantity, trade.quantity)
        total_cost = money.add(
            money.mul(position.average_price, position.quantity),
            money.mul(trade.price, trade.quantity),
        )
        new_avg = Decimal(0) if money.is_zero(new_qty) else money.div(total_cost, new_qty)
        return PositionState(quantity=new_qty, average_price=new_avg)

    if money.compare(trade.quantity, position.quantity) > 0:
        raise OversellError(symbol=trade.symbol)

    new_qty = money.sub(position.quantity, trade.quantity)
    new_avg = Decimal(0) if money.is_zero(new_qty) else position.average_price
    return PositionState(quantity=new_qty, average_price=new_avg)


def apply_cash(cash: Decimal, trade: TradeInstruction) -> Decimal:
    """
    Cash after one trade.

    Raises:
        InsufficientCashError: BUY notional above cash
    """
    cost = money.mul(trade.quantity, trade.price)
    if trade.side == TradeSide.BUY:
        if money.compare(cash, cost) < 0:
            raise InsufficientCashError(symbol=trade.symbol)
        return money.sub(cash, cost)
    return money.add(cash, cost)


def mark_position(symbol: str, quantity: Decimal, average_price: Decimal, quote: Optional[Quote]) -> PositionView:
    """Market value, cost basis and P&L for one holding."""
    market_price = quote.price if quote is not None else None
    change = quote.change if quote is not None else None

    cost_basis = money.mul(quantity, average_price)
    market_value = money.mul(quantity, market_price) if market_price is not None else None
    unrealized = money.sub(market_value, cost_basis) if market_value is not None else None
    daily = money.mul(quantity, change) if change is not None else None

    return PositionView(
        symbol=symbol,
        quantity=quantity,
        average_price=average_price,
        market_price=market_price,
        market_value=market_value,
        cost_basis=cost_basis,
        unrealized_pnl=unrealized,
        daily_pnl=daily,
        change_percent=quote.change_percent if quote is not None else None,
    )


def compute_totals(positions: Iterable[PositionView]) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """(market value, cost basis, unrealized P&L, daily P&L); unknowns count as zero."""
    market_value = cost_basis = unrealized = daily = Decimal(0)
    for p in positions:
        market_value = money.add(market_value, p.market_value or 0)
        cost_basis = money.add(cost_basis, p.cost_basis)
        unrealized = money.add(unrealized, p.unrealized_pnl or 0)
        daily = money.add(daily, p.daily_pnl or 0)
    return market_value, cost_basis, unrealized, daily


def build_snapshot_view(
    portfolio_id: int,
    name: str,
    base_currency: str,
    cash_balance: Decimal,
    positions: Iterable[PositionView],
) -> PortfolioSnapshot:
    ordered = sorted(positions, key=lambda p: p.symbol)
    market_value, cost_basis, unrealized, daily = compute_totals(ordered)
    return PortfolioSnapshot(
        id=portfolio_id,
        name=name,
        base_currency=base_currency,
        cash_balance=cash_balance,
        total_market_value=market_value,
        total_cost_basis=cost_basis,
        total_unrealized_pnl=unrealized,
        total_daily_pnl=daily,
        positions=ordered,
    )
