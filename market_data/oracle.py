"""
Market Data - Price Oracle.

============================================================
PURPOSE
============================================================
Abstract interface for quote and history lookups, the price
derivation rule shared by planner and manual trades, and an
in-memory oracle for tests and offline runs.

DESIGN PRINCIPLES:
- Provider-agnostic interface
- Prices as Decimal, never float
- Fully testable with the mock oracle

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from core.exceptions import PricingError


logger = logging.getLogger(__name__)


# ============================================================
# TYPES
# ============================================================

@dataclass
class Quote:
    """Latest quote for a symbol."""

    symbol: str
    """Upper-case symbol."""

    price: Optional[Decimal] = None
    """Last traded price."""

    previous_close: Optional[Decimal] = None
    """Prior session close."""

    change: Optional[Decimal] = None
    """Absolute change versus previous close."""

    change_percent: Optional[Decimal] = None
    """Percent change versus previous close."""

    currency: Optional[str] = None

    as_of: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": _as_float(self.price),
            "previousClose": _as_float(self.previous_close),
            "change": _as_float(self.change),
            "changePercent": _as_float(self.change_percent),
            "currency": self.currency,
            "asOf": self.as_of.isoformat() if self.as_of else None,
        }


@dataclass
class Candle:
    """One OHLCV bar."""

    date: datetime
    open: Optional[Decimal] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    close: Optional[Decimal] = None
    volume: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "open": _as_float(self.open),
            "high": _as_float(self.high),
            "low": _as_float(self.low),
            "close": _as_float(self.close),
            "volume": self.volume,
        }


def _as_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


# ============================================================
# ORACLE INTERFACE
# ============================================================

class PriceOracle(ABC):
    """
    Source of quotes and historical candles.

    Implementations raise on lookup failure; callers decide
    whether a failure is fatal.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Oracle name for logging."""

    @abstractmethod
    async def get_quote(self, symbol: str) -> Quote:
        """Latest quote for symbol."""

    @abstractmethod
    async def get_history(self, symbol: str, range_: str, interval: str) -> List[Candle]:
        """Candles oldest first."""


def price_from_quote(quote: Optional[Quote]) -> Optional[Decimal]:
    """Last price, else previous close, else None."""
    if quote is None:
        return None
    if quote.price is not None and quote.price > 0:
        return quote.price
    if quote.previous_close is not None and quote.previous_close > 0:
        return quote.previous_close
    return None


async def derive_market_price(oracle: PriceOracle, symbol: str) -> Decimal:
    """
    Fetch a quote and derive a usable price.

    Raises:
        PricingError: If the oracle fails or has neither price
            nor previous close
    """
    try:
        quote = await oracle.get_quote(symbol)
    except PricingError:
        raise
    except Exception as e:
        logger.warning(f"Quote lookup failed for {symbol} via {oracle.name}: {e}")
        raise PricingError(symbol) from e

    price = price_from_quote(quote)
    if price is None:
        raise PricingError(symbol)
    return price


# ============================================================
# MOCK ORACLE
# ============================================================

@dataclass
class MockOracleConfig:
    """Configuration for the in-memory oracle."""

    quotes: Dict[str, Quote] = field(default_factory=dict)
    """Quotes by symbol."""

    histories: Dict[str, List[Candle]] = field(default_factory=dict)
    """Candles by symbol."""

    failing_quotes: Dict[str, Exception] = field(default_factory=dict)
    """Errors raised by get_quote per symbol."""

    failing_histories: Dict[str, Exception] = field(default_factory=dict)
    """Errors raised by get_history per symbol."""


class MockPriceOracle(PriceOracle):
    """
    In-memory oracle.

    Records every call so tests can assert on lookups.
    """

    def __init__(self, config: Optional[MockOracleConfig] = None) -> None:
        self._config = config or MockOracleConfig()
        self.quote_calls: List[str] = []
        self.history_calls: List[Tuple[str, str, str]] = []

    @property
    def name(self) -> str:
        return "mock"

    def set_price(self, symbol: str, price: Any, previous_close: Any = None) -> None:
        self._config.quotes[symbol.upper()] = Quote(
            symbol=symbol.upper(),
            price=Decimal(str(price)) if price is not None else None,
            previous_close=Decimal(str(previous_close)) if previous_close is not None else None,
        )

    def set_history(self, symbol: str, candles: List[Candle]) -> None:
        self._config.histories[symbol.upper()] = candles

    def fail_quote(self, symbol: str, error: Exception) -> None:
        self._config.failing_quotes[symbol.upper()] = error

    def fail_history(self, symbol: str, error: Exception) -> None:
        self._config.failing_histories[symbol.upper()] = error

    async def get_quote(self, symbol: str) -> Quote:
        key = symbol.upper()
        self.quote_calls.append(key)
        if key in self._config.failing_quotes:
            raise self._config.failing_quotes[key]
        quote = self._config.quotes.get(key)
        if quote is None:
            raise LookupError(f"No quote for {key}")
        return quote

    async def get_history(self, symbol: str, range_: str, interval: str) -> List[Candle]:
        key = symbol.upper()
        self.history_calls.append((key, range_, interval))
        if key in self._config.failing_histories:
            raise self._config.failing_histories[key]
        return list(self._config.histories.get(key, []))
