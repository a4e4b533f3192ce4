"""
LLM Planner - Plan Service.

============================================================
PURPOSE
============================================================
Runs plans and keeps an audit record of every run.

LIFECYCLE OF AN EXECUTION RECORD:
- pending      written before the provider is called
- completed    trades executed
- dry-run      plan priced, dry run requested
- planned      plan priced, nothing to execute
- error        run failed (message prefixed with the failed
               stage; for a ledger failure the attempted plan
               and trades too)

Configuration errors (unknown portfolio, prompt or provider)
are raised before any record is written.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from core.clock import format_iso_z
from core.constants import DEFAULT_PORTFOLIO_ID, EXECUTIONS_LIST_LIMIT
from core.exceptions import PlanExecutionError, describe_failure
from llm_planner.plan_runner import PlanRunner
from llm_planner.types import PlanRunResult, RunOverrides
from storage.database import Database
from storage.models import LlmExecution
from storage.repositories import ExecutionRepository


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionView:
    """Read model of one execution record."""

    id: int
    portfolio_id: int
    prompt_id: Optional[int]
    provider_id: Optional[int]
    status: str
    request: Optional[Dict[str, Any]]
    response_text: Optional[str]
    response_json: Optional[Any]
    executed_orders: Optional[Any]
    error_message: Optional[str]
    created_at: Any

    @classmethod
    def from_model(cls, execution: LlmExecution) -> "ExecutionView":
        return cls(
            id=execution.id,
            portfolio_id=execution.portfolio_id,
            prompt_id=execution.prompt_id,
            provider_id=execution.provider_id,
            status=execution.status,
            request=execution.request_payload,
            response_text=execution.response_text,
            response_json=execution.response_json,
            executed_orders=execution.executed_orders,
            error_message=execution.error_message,
            created_at=execution.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "portfolioId": self.portfolio_id,
            "promptId": self.prompt_id,
            "providerId": self.provider_id,
            "status": self.status,
            "request": self.request,
            "responseJson": self.response_json,
            "executedOrders": self.executed_orders,
            "responseText": self.response_text,
            "errorMessage": self.error_message,
            "createdAt": format_iso_z(self.created_at) if self.created_at else None,
        }


def _request_payload(
    prompt_id: Optional[int],
    provider_id: Optional[int],
    overrides: Optional[RunOverrides],
    dry_run: bool,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"dryRun": dry_run}
    if prompt_id is not None:
        payload["promptId"] = prompt_id
    if provider_id is not None:
        payload["providerId"] = provider_id
    if overrides is not None:
        payload["overrides"] = {k: v for k, v in overrides.to_dict().items() if v is not None}
    return payload


def _outcome_fields(result: PlanRunResult) -> Dict[str, Any]:
    return {
        "response_text": result.transcript.assistant_message,
        "response_json": result.plan.to_payload() if result.plan is not None else None,
        "executed_orders": [t.to_dict() for t in result.trades],
    }


class PlanService:
    """
    Plan runs with execution records.

    Usage:
        service = PlanService(database, runner)
        execution_id, result = await service.run_and_record(1, dry_run=True)
    """

    def __init__(self, database: Database, runner: PlanRunner) -> None:
        self._database = database
        self._runner = runner

    @property
    def runner(self) -> PlanRunner:
        return self._runner

    async def run_and_record(
        self,
        portfolio_id: int = DEFAULT_PORTFOLIO_ID,
        prompt_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        overrides: Optional[RunOverrides] = None,
        dry_run: bool = False,
    ) -> Tuple[int, PlanRunResult]:
        """
        Run a plan and record it.

        Returns:
            (execution_id, result)

        Raises:
            Whatever the run raised, after the record is updated
        """
        configuration = await self._runner.resolve_configuration(portfolio_id, prompt_id, provider_id)

        async with self._database.transaction_scope() as session:
            execution = await ExecutionRepository(session).create_pending(
                portfolio_id=portfolio_id,
                prompt_id=configuration.prompt.id if configuration.prompt is not None else None,
                provider_id=configuration.provider.id,
                request_payload=_request_payload(prompt_id, provider_id, overrides, dry_run),
            )
            execution_id = execution.id

        logger.info(f"Execution {execution_id} started for portfolio {portfolio_id}")

        try:
            result = await self._runner.run_resolved(configuration, overrides=overrides, dry_run=dry_run)
        except Exception as e:
            message = describe_failure(e)
            changes: Dict[str, Any] = {"status": "error", "error_message": message}
            if isinstance(e, PlanExecutionError):
                changes.update(_outcome_fields(e.result))
            await self._update(execution_id, changes)
            logger.error(f"Execution {execution_id} failed at {message}")
            raise

        await self._update(execution_id, {
            "status": result.status,
            "error_message": None,
            **_outcome_fields(result),
        })
        logger.info(f"Execution {execution_id} finished with status {result.status}")
        return execution_id, result

    async def list_executions(
        self,
        portfolio_id: int = DEFAULT_PORTFOLIO_ID,
        limit: int = EXECUTIONS_LIST_LIMIT,
    ) -> List[ExecutionView]:
        """Newest first."""
        async with self._database.transaction_scope() as session:
            records = await ExecutionRepository(session).list_recent(portfolio_id, limit)
            return [ExecutionView.from_model(r) for r in records]

    async def get_execution(self, execution_id: int) -> Optional[ExecutionView]:
        async with self._database.transaction_scope() as session:
            record = await ExecutionRepository(session).get(execution_id)
            return ExecutionView.from_model(record) if record is not None else None

    async def _update(self, execution_id: int, changes: Dict[str, Any]) -> None:
        async with self._database.transaction_scope() as session:
            await ExecutionRepository(session).update_outcome(execution_id, changes)
