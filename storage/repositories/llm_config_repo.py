"""
Storage - LLM Configuration Repository.

============================================================
RESPONSIBILITY
============================================================
Configuration store for the planner: providers, prompt
templates and run schedules.

============================================================
INVARIANTS
============================================================
- Setting a provider as default clears the flag on every
  other provider in the same transaction.
- Setting a prompt as default clears the flag on every other
  prompt of the same portfolio in the same transaction.
- "Oldest" means lowest (created_at, id).

Input validation lives in llm_planner.config_service; this
layer only persists.

============================================================
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models import LlmProvider, LlmRunSchedule, PortfolioPrompt
from storage.repositories.base import BaseRepository


class LlmConfigRepository(BaseRepository[LlmProvider]):
    """Providers, prompts and schedules."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, LlmProvider, "LlmConfigRepository")

    # =========================================================
    # PROVIDERS
    # =========================================================

    async def get_provider(self, provider_id: int) -> Optional[LlmProvider]:
        return await self._get_by_id(provider_id)

    async def list_providers(self) -> List[LlmProvider]:
        stmt = select(LlmProvider).order_by(LlmProvider.created_at, LlmProvider.id)
        return await self._execute_query(stmt)

    async def get_default_provider(self) -> Optional[LlmProvider]:
        stmt = (
            select(LlmProvider)
            .where(LlmProvider.is_default.is_(True))
            .order_by(LlmProvider.created_at, LlmProvider.id)
        )
        return await self._execute_first(stmt)

    async def get_oldest_provider(self) -> Optional[LlmProvider]:
        stmt = select(LlmProvider).order_by(LlmProvider.created_at, LlmProvider.id)
        return await self._execute_first(stmt)

    async def create_provider(self, is_default: bool = False, **fields: Any) -> LlmProvider:
        if is_default:
            await self._clear_default_providers()
        provider = await self._add(LlmProvider(is_default=is_default, **fields))
        self._logger.info(
            f"Created LLM provider {provider.id} ({provider.provider_type}, model={provider.model})"
        )
        return provider

    async def update_provider(self, provider: LlmProvider, changes: Dict[str, Any]) -> LlmProvider:
        if changes.get("is_default"):
            await self._clear_default_providers(exclude_id=provider.id)
        for key, value in changes.items():
            setattr(provider, key, value)
        await self._flush()
        return provider

    async def set_default_provider(self, provider: LlmProvider) -> LlmProvider:
        return await self.update_provider(provider, {"is_default": True})

    async def delete_provider(self, provider: LlmProvider) -> None:
        await self._delete_entity(provider)

    async def _clear_default_providers(self, exclude_id: Optional[int] = None) -> None:
        stmt = update(LlmProvider).where(LlmProvider.is_default.is_(True))
        if exclude_id is not None:
            stmt = stmt.where(LlmProvider.id != exclude_id)
        await self._execute_update(stmt.values(is_default=False), "clear_default_providers")

    # =========================================================
    # PROMPTS
    # =========================================================

    async def get_prompt(self, prompt_id: int) -> Optional[PortfolioPrompt]:
        try:
            return await self._session.get(PortfolioPrompt, prompt_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_prompt")
            raise

    async def list_prompts(self, portfolio_id: int) -> List[PortfolioPrompt]:
        """Portfolio's own prompts first, then the ones shared by other portfolios."""
        stmt = select(PortfolioPrompt).order_by(PortfolioPrompt.created_at, PortfolioPrompt.id)
        prompts = await self._execute_query(stmt)
        owned = [p for p in prompts if p.portfolio_id == portfolio_id]
        shared = [p for p in prompts if p.portfolio_id != portfolio_id]
        return owned + shared

    async def get_default_prompt(self, portfolio_id: int) -> Optional[PortfolioPrompt]:
        """Default prompt of the portfolio, only if it is also active."""
        stmt = (
            select(PortfolioPrompt)
            .where(
                PortfolioPrompt.portfolio_id == portfolio_id,
                PortfolioPrompt.is_default.is_(True),
                PortfolioPrompt.is_active.is_(True),
            )
            .order_by(PortfolioPrompt.created_at, PortfolioPrompt.id)
        )
        return await self._execute_first(stmt)

    async def create_prompt(self, portfolio_id: int, is_default: bool = False, **fields: Any) -> PortfolioPrompt:
        if is_default:
            await self._clear_default_prompts(portfolio_id)
        prompt = PortfolioPrompt(portfolio_id=portfolio_id, is_default=is_default, **fields)
        self._session.add(prompt)
        await self._flush()
        self._logger.info(f"Created prompt {prompt.id} for portfolio {portfolio_id}")
        return prompt

    async def update_prompt(self, prompt: PortfolioPrompt, changes: Dict[str, Any]) -> PortfolioPrompt:
        if changes.get("is_default"):
            await self._clear_default_prompts(prompt.portfolio_id, exclude_id=prompt.id)
        for key, value in changes.items():
            setattr(prompt, key, value)
        await self._flush()
        return prompt

    async def delete_prompt(self, prompt: PortfolioPrompt) -> None:
        try:
            await self._session.delete(prompt)
            await self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "delete_prompt")
            raise

    async def _clear_default_prompts(self, portfolio_id: int, exclude_id: Optional[int] = None) -> None:
        stmt = update(PortfolioPrompt).where(
            PortfolioPrompt.portfolio_id == portfolio_id,
            PortfolioPrompt.is_default.is_(True),
        )
        if exclude_id is not None:
            stmt = stmt.where(PortfolioPrompt.id != exclude_id)
        await self._execute_update(stmt.values(is_default=False), "clear_default_prompts")

    # =========================================================
    # SCHEDULES
    # =========================================================

    async def get_schedule(self, schedule_id: int) -> Optional[LlmRunSchedule]:
        try:
            return await self._session.get(LlmRunSchedule, schedule_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_schedule")
            raise

    async def list_schedules(self, portfolio_id: Optional[int] = None, active_only: bool = False) -> List[LlmRunSchedule]:
        stmt = select(LlmRunSchedule).order_by(LlmRunSchedule.created_at, LlmRunSchedule.id)
        if portfolio_id is not None:
            stmt = stmt.where(LlmRunSchedule.portfolio_id == portfolio_id)
        if active_only:
            stmt = stmt.where(LlmRunSchedule.is_active.is_(True))
        return await self._execute_query(stmt)

    async def create_schedule(self, portfolio_id: int, **fields: Any) -> LlmRunSchedule:
        schedule = LlmRunSchedule(portfolio_id=portfolio_id, **fields)
        self._session.add(schedule)
        await self._flush()
        self._logger.info(
            f"Created {schedule.frequency} schedule {schedule.id} for portfolio {portfolio_id}"
        )
        return schedule

    async def update_schedule(self, schedule: LlmRunSchedule, changes: Dict[str, Any]) -> LlmRunSchedule:
        for key, value in changes.items():
            setattr(schedule, key, value)
        await self._flush()
        return schedule

    async def delete_schedule(self, schedule: LlmRunSchedule) -> None:
        try:
            await self._session.delete(schedule)
            await self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "delete_schedule")
            raise

    # =========================================================
    # HELPERS
    # =========================================================

    async def _execute_update(self, stmt: Any, operation: str) -> None:
        try:
            await self._session.execute(stmt.execution_options(synchronize_session="fetch"))
        except SQLAlchemyError as e:
            self._handle_db_error(e, operation)
            raise
