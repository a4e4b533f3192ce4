"""
LLM Planner - Provider Adapter Factory.

============================================================
PURPOSE
============================================================
Registry of adapter classes keyed by provider family, plus the
invoke_provider() entry point the planner calls.

USAGE:
    response = await invoke_provider(provider, request)

Adding a family = one ProviderAdapter subclass + one register().

============================================================
"""

import logging
from typing import Dict, List, Optional, Type

import aiohttp

from core.exceptions import UnsupportedProviderError
from llm_planner.adapters.anthropic import AnthropicAdapter
from llm_planner.adapters.base import ProviderAdapter
from llm_planner.adapters.gemini import GeminiAdapter
from llm_planner.adapters.openai_compatible import LocalAdapter, OpenAICompatibleAdapter
from llm_planner.config import TimeoutConfig
from llm_planner.types import ChatRequest, ProviderConfig, ProviderFamily, ProviderResponse


logger = logging.getLogger(__name__)


class AdapterFactory:
    """
    Factory for provider adapters.

    Provides centralized adapter creation with timeout and
    session injection.
    """

    # Registry of adapter classes
    _registry: Dict[ProviderFamily, Type[ProviderAdapter]] = {
        ProviderFamily.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
        ProviderFamily.LOCAL: LocalAdapter,
        ProviderFamily.GOOGLE_GEMINI: GeminiAdapter,
        ProviderFamily.ANTHROPIC: AnthropicAdapter,
    }

    @classmethod
    def register(cls, family: ProviderFamily, adapter_class: Type[ProviderAdapter]) -> None:
        cls._registry[family] = adapter_class

    @classmethod
    def supported_families(cls) -> List[str]:
        return [family.value for family in cls._registry]

    @classmethod
    def create(
        cls,
        family: ProviderFamily,
        timeout: Optional[TimeoutConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> ProviderAdapter:
        """
        Create an adapter.

        Raises:
            UnsupportedProviderError: No adapter registered for family
        """
        adapter_class = cls._registry.get(ProviderFamily.parse(family))
        if adapter_class is None:
            raise UnsupportedProviderError(family)
        return adapter_class(timeout=timeout, session=session)


async def invoke_provider(
    provider: ProviderConfig,
    request: ChatRequest,
    timeout: Optional[TimeoutConfig] = None,
) -> ProviderResponse:
    """Dispatch one chat request to the adapter of the provider's family."""
    adapter = AdapterFactory.create(provider.family, timeout=timeout)
    logger.info(
        f"Invoking {provider.family.value} provider '{provider.name}' (model={request.model})"
    )
    return await adapter.invoke(provider, request)
