"""
LLM Planner - Configuration.

============================================================
PURPOSE
============================================================
All configuration for the trade-planning pipeline.

CRITICAL CONSTRAINTS:
- Bounded retries, no infinite loops
- Bounded provider calls (connect and total timeouts)

============================================================
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from core.constants import (
    HISTORY_INTERVAL,
    HISTORY_LIMIT,
    HISTORY_RANGE,
    MAX_PLAN_ATTEMPTS,
    RECENT_TRADES_LIMIT,
)
from core.exceptions import InvalidConfigError


load_dotenv()


# ============================================================
# RETRY CONFIGURATION
# ============================================================

@dataclass
class RetryConfig:
    """
    Retry configuration for plan attempts.

    One attempt = invoke provider, extract and validate the plan,
    price the orders. Ledger failures are never retried.
    """

    max_attempts: int = MAX_PLAN_ATTEMPTS
    """Total attempts including the first."""

    initial_delay_seconds: float = 0.5
    """Delay before the second attempt."""

    max_delay_seconds: float = 8.0
    """Maximum delay between attempts."""

    backoff_multiplier: float = 2.0
    """Exponential backoff multiplier."""

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        delay = self.initial_delay_seconds * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


# ============================================================
# TIMEOUT CONFIGURATION
# ============================================================

@dataclass
class TimeoutConfig:
    """Provider call timeouts."""

    connect_timeout_seconds: float = 10.0
    """Connection timeout."""

    request_timeout_seconds: float = 120.0
    """Total timeout for one provider request."""


# ============================================================
# CONTEXT CONFIGURATION
# ============================================================

@dataclass
class ContextConfig:
    """What goes into the execution context."""

    history_range: str = HISTORY_RANGE
    """History lookback passed to the oracle."""

    history_interval: str = HISTORY_INTERVAL
    """Candle interval passed to the oracle."""

    history_limit: int = HISTORY_LIMIT
    """Candles kept per symbol (most recent)."""

    recent_trades_limit: int = RECENT_TRADES_LIMIT
    """Trades included, newest first."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class PlannerConfig:
    """Master configuration for the planner."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    context: ContextConfig = field(default_factory=ContextConfig)

    default_max_tokens_anthropic: int = 1024
    """Anthropic requires max_tokens on every request."""

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        """
        Read overrides from the environment.

        LLM_MAX_ATTEMPTS, LLM_RETRY_DELAY_SECONDS,
        LLM_CONNECT_TIMEOUT_SECONDS, LLM_REQUEST_TIMEOUT_SECONDS
        """
        config = cls()
        config.retry.max_attempts = _env_int("LLM_MAX_ATTEMPTS", config.retry.max_attempts)
        config.retry.initial_delay_seconds = _env_float(
            "LLM_RETRY_DELAY_SECONDS", config.retry.initial_delay_seconds
        )
        config.timeout.connect_timeout_seconds = _env_float(
            "LLM_CONNECT_TIMEOUT_SECONDS", config.timeout.connect_timeout_seconds
        )
        config.timeout.request_timeout_seconds = _env_float(
            "LLM_REQUEST_TIMEOUT_SECONDS", config.timeout.request_timeout_seconds
        )
        if config.retry.max_attempts < 1:
            raise InvalidConfigError("LLM_MAX_ATTEMPTS", config.retry.max_attempts, "must be >= 1")
        return config

    @classmethod
    def for_testing(cls) -> "PlannerConfig":
        """No backoff delays."""
        return cls(retry=RetryConfig(initial_delay_seconds=0.0, max_delay_seconds=0.0))


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidConfigError(key, raw, "expected an integer") from e


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise InvalidConfigError(key, raw, "expected a number") from e
