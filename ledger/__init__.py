"""
Ledger Package.

Simulated cash/position ledger.

Modules:
- types: TradeInstruction, PositionState, snapshots
- position_math: pure position and cash arithmetic
- executor: atomic batch application
- portfolio_service: portfolio lifecycle, snapshots, manual trades
"""

from ledger.executor import LedgerExecutor
from ledger.portfolio_service import PortfolioService, PortfolioSummary
from ledger.types import (
    ExecutedTrade,
    PortfolioSnapshot,
    PositionState,
    PositionView,
    TradeInstruction,
    TradeSide,
    make_instruction,
)

__all__ = [
    "ExecutedTrade",
    "LedgerExecutor",
    "PortfolioService",
    "PortfolioSnapshot",
    "PortfolioSummary",
    "PositionState",
    "PositionView",
    "TradeInstruction",
    "TradeSide",
    "make_instruction",
]
