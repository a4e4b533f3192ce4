"""
Tests for provider, prompt and schedule management.

============================================================
PURPOSE
============================================================
Validated CRUD over the planner configuration tables.

TEST PRINCIPLES:
- At most one default provider, one default prompt per portfolio
- API keys are never returned
- Invalid input is rejected before anything is written

============================================================
"""

import pytest

from core.exceptions import InvalidRequestError, PromptNotFoundError, ProviderNotFoundError


PROVIDER = {"name": "Local", "provider_type": "local", "api_base": "http://localhost:11434", "model": "llama3"}


class TestProviders:
    """Tests for provider CRUD."""

    @pytest.mark.asyncio
    async def test_create_hides_api_key(self, config_service):
        view = await config_service.create_provider({**PROVIDER, "api_key": "secret", "temperature": 0.2})

        assert view["hasApiKey"] is True
        assert "secret" not in str(view)
        assert view["temperature"] == 0.2
        assert view["type"] == "local"

    @pytest.mark.asyncio
    async def test_single_default(self, config_service):
        first = await config_service.create_provider({**PROVIDER, "is_default": True})
        second = await config_service.create_provider({**PROVIDER, "name": "Other", "is_default": True})

        providers = {p["id"]: p for p in await config_service.list_providers()}
        assert providers[first["id"]]["isDefault"] is False
        assert providers[second["id"]]["isDefault"] is True

        await config_service.set_default_provider(first["id"])
        providers = {p["id"]: p for p in await config_service.list_providers()}
        assert [pid for pid, p in providers.items() if p["isDefault"]] == [first["id"]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("override", [
        {"provider_type": "carrier-pigeon"},
        {"api_base": ""},
        {"temperature": 3},
        {"max_tokens": 0},
        {"unexpected": True},
    ])
    async def test_invalid_input(self, config_service, override):
        with pytest.raises(InvalidRequestError):
            await config_service.create_provider({**PROVIDER, **override})
        assert await config_service.list_providers() == []

    @pytest.mark.asyncio
    async def test_partial_update(self, config_service):
        created = await config_service.create_provider({**PROVIDER, "api_key": "secret"})

        updated = await config_service.update_provider(created["id"], {"model": "llama3.1", "api_key": None})

        assert updated["model"] == "llama3.1"
        assert updated["name"] == "Local"
        assert updated["hasApiKey"] is False

    @pytest.mark.asyncio
    async def test_update_rejects_null_required(self, config_service):
        created = await config_service.create_provider(PROVIDER)
        with pytest.raises(InvalidRequestError):
            await config_service.update_provider(created["id"], {"name": None})

    @pytest.mark.asyncio
    async def test_unknown_provider(self, config_service):
        with pytest.raises(ProviderNotFoundError):
            await config_service.update_provider(99, {"model": "x"})
        with pytest.raises(ProviderNotFoundError):
            await config_service.delete_provider(99)

    @pytest.mark.asyncio
    async def test_delete(self, config_service):
        created = await config_service.create_provider(PROVIDER)
        await config_service.delete_provider(created["id"])
        assert await config_service.list_providers() == []


class TestPrompts:
    """Tests for prompt CRUD."""

    @pytest.mark.asyncio
    async def test_single_default_per_portfolio(self, config_service, portfolio_service):
        other = await portfolio_service.create_portfolio("Other")
        a = await config_service.create_prompt(1, {"name": "A", "is_default": True})
        b = await config_service.create_prompt(1, {"name": "B", "is_default": True})
        c = await config_service.create_prompt(other.id, {"name": "C", "is_default": True})

        own = {p["id"]: p for p in await config_service.list_prompts(1)}
        assert own[a["id"]]["isDefault"] is False
        assert own[b["id"]]["isDefault"] is True
        assert own[c["id"]]["isDefault"] is True

    @pytest.mark.asyncio
    async def test_owned_prompts_listed_first(self, config_service, portfolio_service):
        other = await portfolio_service.create_portfolio("Other")
        shared = await config_service.create_prompt(other.id, {"name": "Shared"})
        own = await config_service.create_prompt(1, {"name": "Own"})

        listed = [p["id"] for p in await config_service.list_prompts(1)]

        assert listed == [own["id"], shared["id"]]

    @pytest.mark.asyncio
    async def test_unknown_provider_reference(self, config_service):
        with pytest.raises(ProviderNotFoundError):
            await config_service.create_prompt(1, {"name": "A", "provider_id": 42})

    @pytest.mark.asyncio
    async def test_foreign_prompt_reads_as_missing(self, config_service, portfolio_service):
        other = await portfolio_service.create_portfolio("Other")
        prompt = await config_service.create_prompt(other.id, {"name": "Theirs"})

        with pytest.raises(PromptNotFoundError):
            await config_service.update_prompt(1, prompt["id"], {"name": "Mine now"})
        with pytest.raises(PromptNotFoundError):
            await config_service.delete_prompt(1, prompt["id"])

    @pytest.mark.asyncio
    async def test_update_and_delete(self, config_service):
        prompt = await config_service.create_prompt(1, {"name": "A", "user_template": "{{CASH_BALANCE}}"})

        updated = await config_service.update_prompt(1, prompt["id"], {"user_template": None, "is_active": False})
        assert updated["userTemplate"] == ""
        assert updated["isActive"] is False

        await config_service.delete_prompt(1, prompt["id"])
        assert await config_service.list_prompts(1) == []


class TestSchedules:
    """Tests for schedule CRUD."""

    @pytest.mark.asyncio
    async def test_create_weekly(self, config_service):
        view = await config_service.create_schedule(1, {
            "frequency": "weekly", "time_of_day": "08:15", "day_of_week": 1, "day_of_month": 9,
        })
        assert view["frequency"] == "weekly"
        assert view["dayOfWeek"] == 1
        assert view["dayOfMonth"] is None
        assert view["lastRunAt"] is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data,field", [
        ({"frequency": "weekly", "time_of_day": "08:15"}, "day_of_week"),
        ({"frequency": "daily", "time_of_day": "8:15"}, "time_of_day"),
        ({"frequency": "hourly", "time_of_day": "08:15"}, "frequency"),
    ])
    async def test_invalid_rule(self, config_service, data, field):
        with pytest.raises(InvalidRequestError) as exc_info:
            await config_service.create_schedule(1, data)
        assert exc_info.value.context["field"] == field

    @pytest.mark.asyncio
    async def test_update_revalidates_merged_rule(self, config_service):
        created = await config_service.create_schedule(1, {"frequency": "daily", "time_of_day": "08:15"})

        with pytest.raises(InvalidRequestError):
            await config_service.update_schedule(1, created["id"], {"frequency": "monthly"})

        updated = await config_service.update_schedule(
            1, created["id"], {"frequency": "monthly", "day_of_month": 31},
        )
        assert updated["frequency"] == "monthly"
        assert updated["dayOfMonth"] == 31
        assert updated["timeOfDay"] == "08:15"

    @pytest.mark.asyncio
    async def test_foreign_schedule(self, config_service, portfolio_service):
        other = await portfolio_service.create_portfolio("Other")
        created = await config_service.create_schedule(other.id, {"frequency": "daily", "time_of_day": "08:15"})

        with pytest.raises(InvalidRequestError):
            await config_service.delete_schedule(1, created["id"])

        await config_service.delete_schedule(other.id, created["id"])
        assert await config_service.list_schedules(other.id) == []
