"""
Market Data - Yahoo Finance Oracle.

============================================================
PURPOSE
============================================================
Concrete PriceOracle backed by yfinance.

- yfinance is blocking; every call runs in a worker thread
- Quotes cached for 5 minutes, histories for 15 minutes
- Range and interval strings normalized to what Yahoo accepts

============================================================
"""

import asyncio
import logging
import math
import time
from decimal import Decimal
from typing import Any, Dict, Generic, List, Optional, Tuple, TypeVar

import yfinance as yf

from core.clock import ensure_utc, utcnow
from market_data.oracle import Candle, PriceOracle, Quote


logger = logging.getLogger(__name__)


QUOTE_TTL_SECONDS = 5 * 60
HISTORY_TTL_SECONDS = 15 * 60
CACHE_MAX_ENTRIES = 200

RANGE_ALIASES = {
    "1m": "1mo",
    "1mo": "1mo",
    "3m": "3mo",
    "3mo": "3mo",
    "6m": "6mo",
    "6mo": "6mo",
    "1y": "1y",
    "2y": "2y",
    "5y": "5y",
    "max": "max",
}

CHART_INTERVALS = (
    "1m", "2m", "5m", "15m", "30m", "60m", "90m", "1h",
    "1d", "5d", "1wk", "1mo", "3mo",
)


def normalize_range(range_: str) -> str:
    return RANGE_ALIASES.get(range_.lower(), range_)


def normalize_interval(interval: str) -> str:
    lower = interval.lower()
    return lower if lower in CHART_INTERVALS else "1d"


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return Decimal(str(number))


V = TypeVar("V")


class TTLCache(Generic[V]):
    """Small time-bounded cache; oldest entry evicted when full."""

    def __init__(self, ttl_seconds: float, max_entries: int = CACHE_MAX_ENTRIES) -> None:
        self._ttl = ttl_seconds
        self._max = max_entries
        self._items: Dict[str, Tuple[float, V]] = {}

    def get(self, key: str) -> Optional[V]:
        entry = self._items.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if time.monotonic() - stored_at > self._ttl:
            del self._items[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        if key not in self._items and len(self._items) >= self._max:
            oldest = min(self._items, key=lambda k: self._items[k][0])
            del self._items[oldest]
        self._items[key] = (time.monotonic(), value)


class YahooPriceOracle(PriceOracle):
    """Quotes and daily candles from Yahoo Finance."""

    def __init__(self) -> None:
        self._quotes: TTLCache[Quote] = TTLCache(QUOTE_TTL_SECONDS)
        self._histories: TTLCache[List[Candle]] = TTLCache(HISTORY_TTL_SECONDS)

    @property
    def name(self) -> str:
        return "yahoo"

    async def get_quote(self, symbol: str) -> Quote:
        normalized = symbol.strip().upper()
        cached = self._quotes.get(normalized)
        if cached is not None:
            return cached

        try:
            quote = await asyncio.to_thread(self._fetch_quote, normalized)
        except Exception as e:
            logger.error(f"Yahoo Finance quote failed for {normalized}: {e}")
            raise

        self._quotes.set(normalized, quote)
        return quote

    async def get_history(self, symbol: str, range_: str, interval: str) -> List[Candle]:
        normalized = symbol.strip().upper()
        period = normalize_range(range_)
        bar = normalize_interval(interval)
        key = f"{normalized}|{period}|{bar}"
        cached = self._histories.get(key)
        if cached is not None:
            return list(cached)

        try:
            candles = await asyncio.to_thread(self._fetch_history, normalized, period, bar)
        except Exception as e:
            logger.error(f"Yahoo Finance history failed for {normalized}: {e}")
            raise

        self._histories.set(key, candles)
        return list(candles)

    # ------------------------------------------------------------------
    # Blocking fetches (worker thread)
    # ------------------------------------------------------------------

    def _fetch_quote(self, symbol: str) -> Quote:
        info = yf.Ticker(symbol).fast_info
        price = _to_decimal(getattr(info, "last_price", None))
        previous_close = _to_decimal(getattr(info, "previous_close", None))

        change = None
        change_percent = None
        if price is not None and previous_close:
            change = price - previous_close
            change_percent = (change / previous_close * 100).quantize(Decimal("0.0001"))

        return Quote(
            symbol=symbol,
            price=price,
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            currency=getattr(info, "currency", None),
            as_of=utcnow(),
        )

    def _fetch_history(self, symbol: str, period: str, interval: str) -> List[Candle]:
        df = yf.Ticker(symbol).history(period=period, interval=interval, actions=False)
        if df is None or df.empty:
            logger.warning(f"Yahoo Finance returned no history for {symbol}")
            return []

        candles: List[Candle] = []
        for ts, row in df.iterrows():
            volume = _to_decimal(row.get("Volume"))
            candles.append(
                Candle(
                    date=ensure_utc(ts.to_pydatetime()),
                    open=_to_decimal(row.get("Open")),
                    high=_to_decimal(row.get("High")),
                    low=_to_decimal(row.get("Low")),
                    close=_to_decimal(row.get("Close")),
                    volume=int(volume) if volume is not None else None,
                )
            )
        return candles
