"""
Repository Layer Package.

============================================================
PURPOSE
============================================================
The Repository Layer is the ONLY gateway to persistent storage.
All database access MUST go through repository classes.

============================================================
ARCHITECTURE PRINCIPLES
============================================================
1. Session Injection: Sessions are injected, not created internally
2. Explicit Methods: Clear method names per query
3. Immutability: Trades are append-only
4. Exception Handling: All DB errors wrapped in PersistenceError

============================================================
REPOSITORY GROUPS
============================================================
- PortfolioRepository, PositionRepository, TradeRepository
- LlmConfigRepository: providers, prompts, schedules
- ExecutionRepository: plan run audit records

============================================================
"""

from storage.repositories.base import BaseRepository
from storage.repositories.execution_repo import ExecutionRepository
from storage.repositories.llm_config_repo import LlmConfigRepository
from storage.repositories.portfolio_repo import (
    PortfolioRepository,
    PositionRepository,
    TradeRepository,
)

__all__ = [
    "BaseRepository",
    "ExecutionRepository",
    "LlmConfigRepository",
    "PortfolioRepository",
    "PositionRepository",
    "TradeRepository",
]
