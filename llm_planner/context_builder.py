"""
LLM Planner - Context Builder.

============================================================
PURPOSE
============================================================
Assembles everything the model sees about a portfolio and
renders it into prompts.

- Portfolio snapshot (positions marked to market)
- Current quote per held symbol
- Recent daily candles per held symbol (history failures
  degrade to an empty series)
- Most recent trades
- The plan JSON Schema

Quotes and histories are fetched concurrently with a single
join point.

============================================================
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from core.clock import format_iso_z
from core.money import quantize_cents
from ledger.portfolio_service import PortfolioService
from ledger.types import ExecutedTrade, PortfolioSnapshot
from llm_planner.config import ContextConfig
from llm_planner.schema import ARBITRAGE_JSON_SCHEMA
from market_data.oracle import Candle, PriceOracle, Quote


logger = logging.getLogger(__name__)


# ============================================================
# PROMPT TEXT
# ============================================================

BASE_SYSTEM_PROMPT = (
    "You are an automated portfolio manager executing paper trades for backtesting purposes. "
    "Follow the risk constraints embedded in the user's instructions. "
    "You MUST reply with a single JSON document that validates against the provided JSON Schema. "
    "Do not include markdown fences or any commentary. "
    "Ensure BUY orders never exceed the available portfolio cash balance "
    "(including an estimated 0.10% fee/slippage buffer)."
)

DEFAULT_USER_TEMPLATE = """Current UTC time: {{CURRENT_DATETIME}}
Portfolio snapshot (positions with market values):
{{PORTFOLIO_JSON}}

Available cash balance: {{BASE_CURRENCY}} {{CASH_BALANCE}}.
You must size BUY orders so the total cost including the 0.10% fee/slippage assumption stays within this cash balance. If funds are insufficient, skip or scale back the trade instead of overspending.

Latest market quotes for held symbols:
{{QUOTES_JSON}}

Recent trades (latest first):
{{RECENT_TRADES_JSON}}

Recent daily candles per symbol (latest 60 observations):
{{HISTORIES_JSON}}

JSON Schema definitions for the response:
{{JSON_SCHEMA}}

Using the schema above, decide on concrete arbitrage trades that comply with the risk limits from your additional instructions."""


# ============================================================
# CONTEXT TYPES
# ============================================================

@dataclass
class RawContext:
    """Structured inputs, kept for pricing and audit."""

    portfolio: PortfolioSnapshot
    quotes: Dict[str, Quote] = field(default_factory=dict)
    histories: Dict[str, List[Candle]] = field(default_factory=dict)
    recent_trades: List[ExecutedTrade] = field(default_factory=list)


@dataclass
class ExecutionContext:
    """Serialized context ready for template substitution."""

    base_currency: str
    cash_balance: Any
    portfolio_json: str
    quotes_json: str
    histories_json: str
    trades_json: str
    schema_json: str
    raw: RawContext

    def quote_for(self, symbol: str) -> Optional[Quote]:
        return self.raw.quotes.get(symbol)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseCurrency": self.base_currency,
            "cashBalance": float(self.cash_balance),
            "portfolio": self.raw.portfolio.to_dict(),
            "quotes": {s: q.to_dict() for s, q in self.raw.quotes.items()},
            "histories": {
                s: [c.to_dict() for c in candles] for s, candles in self.raw.histories.items()
            },
            "recentTrades": [t.to_dict() for t in self.raw.recent_trades],
        }


def _dumps(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


# ============================================================
# BUILDER
# ============================================================

class ContextBuilder:
    """
    Builds ExecutionContext objects.

    Usage:
        builder = ContextBuilder(portfolio_service, oracle)
        context = await builder.build(portfolio_id)
    """

    def __init__(
        self,
        portfolios: PortfolioService,
        oracle: PriceOracle,
        config: Optional[ContextConfig] = None,
    ) -> None:
        self._portfolios = portfolios
        self._oracle = oracle
        self._config = config or ContextConfig()

    async def build(self, portfolio_id: int) -> ExecutionContext:
        snapshot = await self._portfolios.build_snapshot(portfolio_id)
        symbols = list(dict.fromkeys(snapshot.symbols))

        quote_tasks = [self._oracle.get_quote(symbol) for symbol in symbols]
        history_tasks = [self._load_history(symbol) for symbol in symbols]
        results = await asyncio.gather(*quote_tasks, *history_tasks)

        quotes = dict(zip(symbols, results[:len(symbols)]))
        histories = dict(results[len(symbols):])

        recent_trades = await self._portfolios.list_trades(
            portfolio_id, limit=self._config.recent_trades_limit
        )

        raw = RawContext(
            portfolio=snapshot,
            quotes=quotes,
            histories=histories,
            recent_trades=recent_trades,
        )

        logger.info(
            f"Built context for portfolio {portfolio_id}: {len(symbols)} symbol(s), "
            f"{len(recent_trades)} recent trade(s)"
        )

        return ExecutionContext(
            base_currency=snapshot.base_currency,
            cash_balance=snapshot.cash_balance,
            portfolio_json=_dumps(snapshot.to_dict()),
            quotes_json=_dumps({s: q.to_dict() for s, q in quotes.items()}),
            histories_json=_dumps(
                {s: [c.to_dict() for c in candles] for s, candles in histories.items()}
            ),
            trades_json=_dumps([t.to_dict() for t in recent_trades]),
            schema_json=_dumps(ARBITRAGE_JSON_SCHEMA),
            raw=raw,
        )

    async def _load_history(self, symbol: str) -> Tuple[str, List[Candle]]:
        try:
            candles = await self._oracle.get_history(
                symbol, self._config.history_range, self._config.history_interval
            )
        except Exception as e:
            logger.error(f"Failed to load history for {symbol}: {e}")
            return symbol, []
        return symbol, candles[-self._config.history_limit:]


# ============================================================
# RENDERING
# ============================================================

def build_system_prompt(additional: Optional[str] = None) -> str:
    """Base instruction plus optional portfolio-specific text."""
    extras = (additional or "").strip()
    if extras:
        return f"{BASE_SYSTEM_PROMPT}\n\n{extras}"
    return BASE_SYSTEM_PROMPT


def render_template(template: str, context: ExecutionContext, now: Optional[datetime] = None) -> str:
    """
    Substitute the known placeholders.

    Unknown {{PLACEHOLDERS}} are left verbatim.
    """
    replacements = {
        "{{PORTFOLIO_JSON}}": context.portfolio_json,
        "{{QUOTES_JSON}}": context.quotes_json,
        "{{HISTORIES_JSON}}": context.histories_json,
        "{{RECENT_TRADES_JSON}}": context.trades_json,
        "{{JSON_SCHEMA}}": context.schema_json,
        "{{CURRENT_DATETIME}}": format_iso_z(now),
        "{{BASE_CURRENCY}}": context.base_currency,
        "{{CASH_BALANCE}}": f"{quantize_cents(context.cash_balance):f}",
    }
    rendered = template
    for placeholder, value in replacements.items():
        rendered = rendered.replace(placeholder, value)
    return rendered


def resolve_user_template(template: Optional[str]) -> str:
    """Prompt template, or the built-in one when blank."""
    if template and template.strip():
        return template
    return DEFAULT_USER_TEMPLATE
