"""
LLM Planner - Configuration Service.

============================================================
PURPOSE
============================================================
Validated CRUD for providers, prompt templates and run
schedules.

- Inputs are pydantic models; violations become
  InvalidRequestError before anything is written
- Default flags are kept unique by LlmConfigRepository
- Prompts and schedules are addressed through their owning
  portfolio; a mismatch reads as "not found"

============================================================
"""

import logging
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.clock import format_iso_z
from core.exceptions import (
    InvalidConfigError,
    InvalidRequestError,
    PromptNotFoundError,
    ProviderNotFoundError,
)
from core.money import to_decimal, to_float
from ledger.portfolio_service import PortfolioService
from llm_planner.schedules import validate_schedule
from storage.database import Database
from storage.models import LlmProvider, LlmRunSchedule, PortfolioPrompt
from storage.repositories import LlmConfigRepository


logger = logging.getLogger(__name__)


ProviderType = Literal["openai-compatible", "local", "google-gemini", "anthropic"]
Frequency = Literal["daily", "weekly", "monthly"]

M = TypeVar("M", bound=BaseModel)


# =============================================================
# INPUT SCHEMAS
# =============================================================

class ProviderInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    provider_type: ProviderType = "openai-compatible"
    api_base: str = Field(min_length=1)
    api_key: Optional[str] = None
    model: str = Field(min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    is_default: bool = False


class ProviderUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    provider_type: Optional[ProviderType] = None
    api_base: Optional[str] = Field(default=None, min_length=1)
    api_key: Optional[str] = None
    model: Optional[str] = Field(default=None, min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, gt=0)
    is_default: Optional[bool] = None


class PromptInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    system_prompt: str = ""
    user_template: str = ""
    provider_id: Optional[int] = Field(default=None, gt=0)
    is_default: bool = False
    is_active: bool = True


class PromptUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    system_prompt: Optional[str] = None
    user_template: Optional[str] = None
    provider_id: Optional[int] = Field(default=None, gt=0)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class ScheduleInput(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt_id: Optional[int] = Field(default=None, gt=0)
    provider_id: Optional[int] = Field(default=None, gt=0)
    frequency: Frequency
    time_of_day: str
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    is_active: bool = True


class ScheduleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    prompt_id: Optional[int] = Field(default=None, gt=0)
    provider_id: Optional[int] = Field(default=None, gt=0)
    frequency: Optional[Frequency] = None
    time_of_day: Optional[str] = None
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    is_active: Optional[bool] = None


def _parse(model_class: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise InvalidRequestError(field, first.get("msg", "invalid value")) from e


def _provided(update: BaseModel) -> Dict[str, Any]:
    """Only the fields the caller actually passed; explicit None included."""
    return {name: getattr(update, name) for name in update.model_fields_set}


# =============================================================
# VIEWS
# =============================================================

def provider_view(provider: LlmProvider) -> Dict[str, Any]:
    """API key is reported as present or absent, never returned."""
    return {
        "id": provider.id,
        "name": provider.name,
        "type": provider.provider_type,
        "apiBase": provider.api_base,
        "model": provider.model,
        "temperature": to_float(provider.temperature) if provider.temperature is not None else None,
        "maxTokens": provider.max_tokens,
        "isDefault": provider.is_default,
        "hasApiKey": bool(provider.api_key),
        "createdAt": format_iso_z(provider.created_at),
    }


def prompt_view(prompt: PortfolioPrompt) -> Dict[str, Any]:
    return {
        "id": prompt.id,
        "portfolioId": prompt.portfolio_id,
        "name": prompt.name,
        "description": prompt.description,
        "systemPrompt": prompt.system_prompt,
        "userTemplate": prompt.user_template,
        "providerId": prompt.provider_id,
        "isDefault": prompt.is_default,
        "isActive": prompt.is_active,
    }


def schedule_view(schedule: LlmRunSchedule) -> Dict[str, Any]:
    return {
        "id": schedule.id,
        "portfolioId": schedule.portfolio_id,
        "promptId": schedule.prompt_id,
        "providerId": schedule.provider_id,
        "frequency": schedule.frequency,
        "timeOfDay": schedule.time_of_day,
        "dayOfWeek": schedule.day_of_week,
        "dayOfMonth": schedule.day_of_month,
        "isActive": schedule.is_active,
        "lastRunAt": format_iso_z(schedule.last_run_at) if schedule.last_run_at else None,
    }


# =============================================================
# SERVICE
# =============================================================

class ConfigService:
    """
    Provider, prompt and schedule management.

    Usage:
        config = ConfigService(database, portfolio_service)
        provider = await config.create_provider({"name": "Local", ...})
    """

    def __init__(self, database: Database, portfolios: PortfolioService) -> None:
        self._database = database
        self._portfolios = portfolios

    # ---------------------------------------------------------
    # PROVIDERS
    # ---------------------------------------------------------

    async def list_providers(self) -> List[Dict[str, Any]]:
        async with self._database.transaction_scope() as session:
            return [provider_view(p) for p in await LlmConfigRepository(session).list_providers()]

    async def create_provider(self, data: Dict[str, Any]) -> Dict[str, Any]:
        body = _parse(ProviderInput, data)
        fields = body.model_dump(exclude={"is_default"})
        if fields["temperature"] is not None:
            fields["temperature"] = to_decimal(fields["temperature"])

        async with self._database.transaction_scope() as session:
            provider = await LlmConfigRepository(session).create_provider(
                is_default=body.is_default, **fields
            )
            return provider_view(provider)

    async def update_provider(self, provider_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        changes = _provided(_parse(ProviderUpdate, data))
        for required in ("name", "provider_type", "api_base", "model", "is_default"):
            if required in changes and changes[required] is None:
                raise InvalidRequestError(required, "must not be null")
        if changes.get("temperature") is not None:
            changes["temperature"] = to_decimal(changes["temperature"])

        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            provider = await repo.get_provider(provider_id)
            if provider is None:
                raise ProviderNotFoundError(provider_id)
            await repo.update_provider(provider, changes)
            return provider_view(provider)

    async def set_default_provider(self, provider_id: int) -> Dict[str, Any]:
        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            provider = await repo.get_provider(provider_id)
            if provider is None:
                raise ProviderNotFoundError(provider_id)
            await repo.set_default_provider(provider)
            return provider_view(provider)

    async def delete_provider(self, provider_id: int) -> None:
        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            provider = await repo.get_provider(provider_id)
            if provider is None:
                raise ProviderNotFoundError(provider_id)
            await repo.delete_provider(provider)
        logger.info(f"Deleted LLM provider {provider_id}")

    # ---------------------------------------------------------
    # PROMPTS
    # ---------------------------------------------------------

    async def list_prompts(self, portfolio_id: int) -> List[Dict[str, Any]]:
        await self._portfolios.get_portfolio_record(portfolio_id)
        async with self._database.transaction_scope() as session:
            return [prompt_view(p) for p in await LlmConfigRepository(session).list_prompts(portfolio_id)]

    async def create_prompt(self, portfolio_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._portfolios.get_portfolio_record(portfolio_id)
        body = _parse(PromptInput, data)

        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            await self._require_provider(repo, body.provider_id)
            prompt = await repo.create_prompt(
                portfolio_id,
                is_default=body.is_default,
                **body.model_dump(exclude={"is_default"}),
            )
            return prompt_view(prompt)

    async def update_prompt(self, portfolio_id: int, prompt_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._portfolios.get_portfolio_record(portfolio_id)
        changes = _provided(_parse(PromptUpdate, data))
        for required in ("name", "is_default", "is_active"):
            if required in changes and changes[required] is None:
                raise InvalidRequestError(required, "must not be null")
        for text_field in ("system_prompt", "user_template"):
            if text_field in changes and changes[text_field] is None:
                changes[text_field] = ""

        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            prompt = await self._owned_prompt(repo, portfolio_id, prompt_id)
            await self._require_provider(repo, changes.get("provider_id"))
            await repo.update_prompt(prompt, changes)
            return prompt_view(prompt)

    async def delete_prompt(self, portfolio_id: int, prompt_id: int) -> None:
        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            prompt = await self._owned_prompt(repo, portfolio_id, prompt_id)
            await repo.delete_prompt(prompt)
        logger.info(f"Deleted prompt {prompt_id} of portfolio {portfolio_id}")

    # ---------------------------------------------------------
    # SCHEDULES
    # ---------------------------------------------------------

    async def list_schedules(self, portfolio_id: int) -> List[Dict[str, Any]]:
        await self._portfolios.get_portfolio_record(portfolio_id)
        async with self._database.transaction_scope() as session:
            schedules = await LlmConfigRepository(session).list_schedules(portfolio_id=portfolio_id)
            return [schedule_view(s) for s in schedules]

    async def create_schedule(self, portfolio_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._portfolios.get_portfolio_record(portfolio_id)
        body = _parse(ScheduleInput, data)
        rule = self._validate_rule(body.frequency, body.time_of_day, body.day_of_week, body.day_of_month)

        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            await self._require_prompt(repo, body.prompt_id)
            await self._require_provider(repo, body.provider_id)
            schedule = await repo.create_schedule(
                portfolio_id,
                prompt_id=body.prompt_id,
                provider_id=body.provider_id,
                frequency=rule.frequency,
                time_of_day=rule.time_of_day,
                day_of_week=rule.day_of_week,
                day_of_month=rule.day_of_month,
                is_active=body.is_active,
            )
            return schedule_view(schedule)

    async def update_schedule(self, portfolio_id: int, schedule_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._portfolios.get_portfolio_record(portfolio_id)
        changes = _provided(_parse(ScheduleUpdate, data))
        for required in ("frequency", "time_of_day", "is_active"):
            if required in changes and changes[required] is None:
                raise InvalidRequestError(required, "must not be null")

        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            schedule = await repo.get_schedule(schedule_id)
            if schedule is None or schedule.portfolio_id != portfolio_id:
                raise InvalidRequestError("schedule_id", "Schedule not found")

            await self._require_prompt(repo, changes.get("prompt_id"))
            await self._require_provider(repo, changes.get("provider_id"))

            # Re-validate the merged rule; day fields of other frequencies are cleared.
            rule = self._validate_rule(
                changes.get("frequency", schedule.frequency),
                changes.get("time_of_day", schedule.time_of_day),
                changes.get("day_of_week", schedule.day_of_week),
                changes.get("day_of_month", schedule.day_of_month),
            )
            changes.update(
                frequency=rule.frequency,
                time_of_day=rule.time_of_day,
                day_of_week=rule.day_of_week,
                day_of_month=rule.day_of_month,
            )
            await repo.update_schedule(schedule, changes)
            return schedule_view(schedule)

    async def delete_schedule(self, portfolio_id: int, schedule_id: int) -> None:
        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)
            schedule = await repo.get_schedule(schedule_id)
            if schedule is None or schedule.portfolio_id != portfolio_id:
                raise InvalidRequestError("schedule_id", "Schedule not found")
            await repo.delete_schedule(schedule)
        logger.info(f"Deleted schedule {schedule_id} of portfolio {portfolio_id}")

    # ---------------------------------------------------------
    # HELPERS
    # ---------------------------------------------------------

    @staticmethod
    def _validate_rule(frequency: str, time_of_day: str, day_of_week: Any, day_of_month: Any):
        try:
            return validate_schedule(frequency, time_of_day, day_of_week, day_of_month)
        except InvalidConfigError as e:
            raise InvalidRequestError(e.key, e.reason) from e

    @staticmethod
    async def _owned_prompt(repo: LlmConfigRepository, portfolio_id: int, prompt_id: int) -> PortfolioPrompt:
        prompt = await repo.get_prompt(prompt_id)
        if prompt is None or prompt.portfolio_id != portfolio_id:
            raise PromptNotFoundError(prompt_id, portfolio_id)
        return prompt

    @staticmethod
    async def _require_provider(repo: LlmConfigRepository, provider_id: Optional[int]) -> None:
        if provider_id is not None and await repo.get_provider(provider_id) is None:
            raise ProviderNotFoundError(provider_id)

    @staticmethod
    async def _require_prompt(repo: LlmConfigRepository, prompt_id: Optional[int]) -> None:
        if prompt_id is not None and await repo.get_prompt(prompt_id) is None:
            raise PromptNotFoundError(prompt_id)

