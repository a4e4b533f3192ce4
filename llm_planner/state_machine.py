"""
LLM Planner - Run State Machine.

============================================================
PURPOSE
============================================================
Tracks the lifecycle of one plan run with strict transitions.

STATE MACHINE:

    BUILDING_CONTEXT
           │
           ▼
    RENDERING_PROMPT
           │
           ▼
    INVOKING_PROVIDER ◄──────────┐  (retry)
           │                     │
           ▼                     │
    EXTRACTING_PLAN ─────────────┤
           │                     │
           ▼                     │
    PRICING_ORDERS ──────────────┘
           │
           ├──► DRY_RUN_COMPLETE
           │
           ▼
       EXECUTING ──► EXECUTED
           │
           └──────► EXECUTION_FAILED

    Any non-terminal state before EXECUTING can move to FAILED.

INVARIANTS:
- Terminal states are final
- Every transition is recorded

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Set

from core.clock import utcnow


logger = logging.getLogger(__name__)


class RunState(str, Enum):
    BUILDING_CONTEXT = "building-context"
    RENDERING_PROMPT = "rendering-prompt"
    INVOKING_PROVIDER = "invoking-provider"
    EXTRACTING_PLAN = "extracting-plan"
    PRICING_ORDERS = "pricing-orders"
    DRY_RUN_COMPLETE = "dry-run-complete"
    EXECUTING = "executing"
    EXECUTED = "executed"
    EXECUTION_FAILED = "execution-failed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES: Set[RunState] = {
    RunState.DRY_RUN_COMPLETE,
    RunState.EXECUTED,
    RunState.EXECUTION_FAILED,
    RunState.FAILED,
}


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[RunState, Set[RunState]] = {
    RunState.BUILDING_CONTEXT: {
        RunState.RENDERING_PROMPT,
        RunState.FAILED,
    },
    RunState.RENDERING_PROMPT: {
        RunState.INVOKING_PROVIDER,
        RunState.FAILED,
    },
    RunState.INVOKING_PROVIDER: {
        RunState.EXTRACTING_PLAN,
        RunState.INVOKING_PROVIDER,
        RunState.FAILED,
    },
    RunState.EXTRACTING_PLAN: {
        RunState.PRICING_ORDERS,
        RunState.INVOKING_PROVIDER,
        RunState.FAILED,
    },
    RunState.PRICING_ORDERS: {
        RunState.DRY_RUN_COMPLETE,
        RunState.EXECUTING,
        RunState.INVOKING_PROVIDER,
        RunState.FAILED,
    },
    RunState.EXECUTING: {
        RunState.EXECUTED,
        RunState.EXECUTION_FAILED,
    },
    # Terminal states - no transitions out
    RunState.DRY_RUN_COMPLETE: set(),
    RunState.EXECUTED: set(),
    RunState.EXECUTION_FAILED: set(),
    RunState.FAILED: set(),
}


@dataclass
class RunTransition:
    """One recorded transition."""

    from_state: RunState
    to_state: RunState
    timestamp: datetime = field(default_factory=utcnow)
    reason: str = ""


class RunStateTracker:
    """
    Guards and records the states of one run.

    Raises ValueError on a transition the table does not allow.
    """

    def __init__(self, portfolio_id: int) -> None:
        self._portfolio_id = portfolio_id
        self._state = RunState.BUILDING_CONTEXT
        self._history: List[RunTransition] = []

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def history(self) -> List[RunTransition]:
        return list(self._history)

    @property
    def visited(self) -> List[str]:
        """State values in visit order, starting state included."""
        states = [RunState.BUILDING_CONTEXT.value]
        states.extend(t.to_state.value for t in self._history)
        return states

    def can_transition_to(self, target: RunState) -> bool:
        return target in VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: RunState, reason: str = "") -> RunTransition:
        if not self.can_transition_to(target):
            raise ValueError(
                f"Invalid run transition for portfolio {self._portfolio_id}: "
                f"{self._state.value} -> {target.value}"
            )

        event = RunTransition(from_state=self._state, to_state=target, reason=reason)
        self._state = target
        self._history.append(event)

        logger.debug(
            f"Run for portfolio {self._portfolio_id}: "
            f"{event.from_state.value} -> {event.to_state.value}"
            + (f" ({reason})" if reason else "")
        )
        return event

    def fail(self, reason: str = "") -> None:
        """Move to FAILED unless already terminal or executing."""
        if self.can_transition_to(RunState.FAILED):
            self.transition_to(RunState.FAILED, reason)
