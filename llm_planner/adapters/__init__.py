"""
Provider Adapter Layer.

One adapter class per wire-protocol family, created through
AdapterFactory and called through invoke_provider().
"""

from llm_planner.adapters.anthropic import AnthropicAdapter
from llm_planner.adapters.base import HttpResponse, ProviderAdapter
from llm_planner.adapters.factory import AdapterFactory, invoke_provider
from llm_planner.adapters.gemini import GeminiAdapter
from llm_planner.adapters.mock import MockProviderAdapter
from llm_planner.adapters.openai_compatible import (
    LocalAdapter,
    OpenAICompatibleAdapter,
    RequestVariant,
    build_request_variants,
)
from llm_planner.adapters.urls import (
    build_chat_completions_url,
    build_chat_completions_url_without_version,
)

__all__ = [
    "AdapterFactory",
    "AnthropicAdapter",
    "GeminiAdapter",
    "HttpResponse",
    "LocalAdapter",
    "MockProviderAdapter",
    "OpenAICompatibleAdapter",
    "ProviderAdapter",
    "RequestVariant",
    "build_chat_completions_url",
    "build_chat_completions_url_without_version",
    "build_request_variants",
    "invoke_provider",
]
