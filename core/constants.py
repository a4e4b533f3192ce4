"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines all desk-wide constants.

- Provides single source of truth for magic values
- Documents the meaning of each constant

============================================================
"""

from decimal import Decimal


# ============================================================
# PORTFOLIO CONSTANTS
# ============================================================

DEFAULT_PORTFOLIO_ID = 1
"""Portfolio auto-created on first access."""

DEFAULT_PORTFOLIO_NAME = "Default"

DEFAULT_BASE_CURRENCY = "USD"

INITIAL_CASH_BALANCE = Decimal("100000")
"""Starting cash for new and reset portfolios."""


# ============================================================
# PLAN CONSTANTS
# ============================================================

PLAN_SCHEMA_VERSION = "1.0"

MAX_PLAN_ORDERS = 25
"""Upper bound on orders in one arbitrage plan."""

MAX_PLAN_ATTEMPTS = 3


# ============================================================
# CONTEXT CONSTANTS
# ============================================================

HISTORY_RANGE = "3mo"
HISTORY_INTERVAL = "1d"
HISTORY_LIMIT = 60
RECENT_TRADES_LIMIT = 20
EXECUTIONS_LIST_LIMIT = 50
