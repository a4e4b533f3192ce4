"""
Storage Models Package.

This package contains all ORM models for the desk database.
Models are organized by domain.

============================================================
MODEL ORGANIZATION
============================================================

Domain 1: Ledger (portfolio.py)
- Portfolio
- Position
- Trade

Domain 2: Planner configuration and audit (llm.py)
- LlmProvider
- PortfolioPrompt
- LlmRunSchedule
- LlmExecution

============================================================
"""

from storage.models.base import Base, ExactDecimal, TimestampMixin, UTCDateTime
from storage.models.llm import LlmExecution, LlmProvider, LlmRunSchedule, PortfolioPrompt
from storage.models.portfolio import Portfolio, Position, Trade

__all__ = [
    "Base",
    "ExactDecimal",
    "TimestampMixin",
    "UTCDateTime",
    "Portfolio",
    "Position",
    "Trade",
    "LlmProvider",
    "PortfolioPrompt",
    "LlmRunSchedule",
    "LlmExecution",
]
