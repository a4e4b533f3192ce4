"""
Storage - Execution Record Repository.

============================================================
RESPONSIBILITY
============================================================
Persists the audit trail of plan runs: one LlmExecution row
per run, created as "pending" and updated with the outcome.

============================================================
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import EXECUTIONS_LIST_LIMIT
from storage.models import LlmExecution
from storage.repositories.base import BaseRepository


class ExecutionRepository(BaseRepository[LlmExecution]):
    """Execution records."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, LlmExecution, "ExecutionRepository")

    async def create_pending(
        self,
        portfolio_id: int,
        prompt_id: Optional[int],
        provider_id: Optional[int],
        request_payload: Optional[Dict[str, Any]] = None,
    ) -> LlmExecution:
        return await self._add(
            LlmExecution(
                portfolio_id=portfolio_id,
                prompt_id=prompt_id,
                provider_id=provider_id,
                status="pending",
                request_payload=request_payload,
            )
        )

    async def get(self, execution_id: int) -> Optional[LlmExecution]:
        return await self._get_by_id(execution_id)

    async def update_outcome(self, execution_id: int, changes: Dict[str, Any]) -> Optional[LlmExecution]:
        execution = await self._get_by_id(execution_id)
        if execution is None:
            self._logger.warning(f"Execution {execution_id} vanished before outcome update")
            return None
        for key, value in changes.items():
            setattr(execution, key, value)
        await self._flush()
        return execution

    async def list_recent(self, portfolio_id: int, limit: int = EXECUTIONS_LIST_LIMIT) -> List[LlmExecution]:
        """Newest first."""
        stmt = (
            select(LlmExecution)
            .where(LlmExecution.portfolio_id == portfolio_id)
            .order_by(desc(LlmExecution.created_at), desc(LlmExecution.id))
            .limit(limit)
        )
        return await self._execute_query(stmt)

    async def delete_for_portfolio(self, portfolio_id: int) -> int:
        return await self._delete_where(LlmExecution.portfolio_id == portfolio_id)
