"""
LLM Planner - Order Pricing.

============================================================
PURPOSE
============================================================
Turns validated plan orders into priced trade instructions.

Price precedence per order:
1. limitPrice for limit orders
2. the quote already fetched for the execution context
3. a fresh oracle lookup (last price, else previous close)

Every failure here is a PlanAttemptError, so a bad plan earns
a fresh attempt rather than reaching the ledger.

============================================================
"""

import logging
from decimal import Decimal
from typing import List, Optional

from core.exceptions import InvalidTradeError, OrderNormalizationError
from ledger.types import TradeInstruction, make_instruction
from llm_planner.context_builder import ExecutionContext
from llm_planner.schema import ArbitrageOrder, ArbitragePlan
from market_data.oracle import PriceOracle, derive_market_price, price_from_quote


logger = logging.getLogger(__name__)


def normalize_order(order: ArbitrageOrder) -> ArbitrageOrder:
    """
    Re-check the order invariants the ledger depends on.

    Raises:
        OrderNormalizationError: Non-positive quantity or limit
            order without a limit price
    """
    symbol = (order.symbol or "").strip().upper()
    if not symbol:
        raise OrderNormalizationError("Order symbol is required")
    if not isinstance(order.quantity, int) or order.quantity <= 0:
        raise OrderNormalizationError(f"Invalid quantity for {symbol}")
    if order.order_type == "limit" and order.limit_price is None:
        raise OrderNormalizationError(f"Order for {symbol} is limit but has no limitPrice")
    if symbol != order.symbol:
        return order.model_copy(update={"symbol": symbol})
    return order


async def determine_price(
    order: ArbitrageOrder,
    context: Optional[ExecutionContext],
    oracle: PriceOracle,
) -> Decimal:
    """
    Resolve the execution price of one order.

    Raises:
        PricingError: No price derivable
    """
    if order.order_type == "limit" and order.limit_price is not None:
        return Decimal(str(order.limit_price))

    if context is not None:
        price = price_from_quote(context.quote_for(order.symbol))
        if price is not None:
            return price

    return await derive_market_price(oracle, order.symbol)


async def build_trade_instructions(
    plan: ArbitragePlan,
    context: Optional[ExecutionContext],
    oracle: PriceOracle,
) -> List[TradeInstruction]:
    """
    Price every order in plan order.

    Raises:
        OrderNormalizationError: Order invariant violated
        PricingError: No price derivable for an order
    """
    instructions: List[TradeInstruction] = []
    for raw_order in plan.arbitrages:
        order = normalize_order(raw_order)
        price = await determine_price(order, context, oracle)
        try:
            instruction = make_instruction(order.symbol, order.action, order.quantity, price)
        except InvalidTradeError as e:
            raise OrderNormalizationError(str(e), cause=e) from e
        instructions.append(instruction)

    logger.debug(f"Priced {len(instructions)} order(s)")
    return instructions
