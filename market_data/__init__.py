"""
Market Data Package.

Price oracle interface, derivation helpers and implementations.

Modules:
- oracle: PriceOracle, Quote, Candle, MockPriceOracle
- yahoo: YahooPriceOracle (yfinance)
"""

from market_data.oracle import (
    Candle,
    MockOracleConfig,
    MockPriceOracle,
    PriceOracle,
    Quote,
    derive_market_price,
    price_from_quote,
)

__all__ = [
    "Candle",
    "MockOracleConfig",
    "MockPriceOracle",
    "PriceOracle",
    "Quote",
    "derive_market_price",
    "price_from_quote",
]
