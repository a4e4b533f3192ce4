"""
LLM Planner - OpenAI-Compatible Adapter.

============================================================
PURPOSE
============================================================
Chat-completions adapter for OpenAI-compatible servers and
local runtimes (Ollama, LM Studio, vLLM, ...).

============================================================
REQUEST VARIANTS
============================================================
Tried in order; the next one only when the previous answered
HTTP 404, and duplicates are skipped:
1. primary         versioned URL, with response_format
2. no-json-hint    versioned URL, without response_format
3. unversioned     version segment stripped, no response_format

Any non-2xx on the last attempt raises ProviderRequestError.

============================================================
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from llm_planner.adapters.base import HttpResponse, ProviderAdapter
from llm_planner.adapters.logging_utils import mask_url
from llm_planner.adapters.urls import (
    build_chat_completions_url,
    build_chat_completions_url_without_version,
)
from llm_planner.types import ChatRequest, ProviderConfig, ProviderResponse


logger = logging.getLogger(__name__)


NOT_FOUND = 404


@dataclass(frozen=True)
class RequestVariant:
    """One request shape in the degradation sequence."""

    name: str
    url: str
    include_response_format: bool


def build_request_variants(provider: ProviderConfig, request: ChatRequest) -> List[RequestVariant]:
    """Ordered, de-duplicated request variants."""
    versioned = build_chat_completions_url(provider.api_base)
    unversioned = build_chat_completions_url_without_version(provider.api_base)
    has_hint = request.response_format is not None

    candidates = [RequestVariant("primary", versioned, has_hint)]
    if has_hint:
        candidates.append(RequestVariant("no-json-hint", versioned, False))
    candidates.append(RequestVariant("unversioned", unversioned, False))

    variants: List[RequestVariant] = []
    seen = set()
    for variant in candidates:
        key = (variant.url, variant.include_response_format)
        if key in seen:
            continue
        seen.add(key)
        variants.append(variant)
    return variants


class OpenAICompatibleAdapter(ProviderAdapter):
    """Adapter for /chat/completions endpoints."""

    family_name = "openai-compatible"

    def build_body(self, request: ChatRequest, include_response_format: bool) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": request.model,
            "messages": [m.to_dict() for m in request.messages],
            "temperature": request.temperature if request.temperature is not None else 0,
        }
        if request.max_tokens:
            body["max_tokens"] = request.max_tokens
        if include_response_format and request.response_format is not None:
            body["response_format"] = request.response_format
        return body

    def build_headers(self, provider: ProviderConfig) -> Dict[str, str]:
        headers = self._json_headers()
        if provider.api_key:
            headers["Authorization"] = f"Bearer {provider.api_key}"
        return headers

    async def invoke(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        headers = self.build_headers(provider)
        variants = build_request_variants(provider, request)

        http: Optional[HttpResponse] = None
        for index, variant in enumerate(variants):
            body = self.build_body(request, variant.include_response_format)
            http = await self._post_json(variant.url, headers, body)
            if http.status != NOT_FOUND or index == len(variants) - 1:
                break
            logger.warning(
                f"{provider.name}: {mask_url(variant.url)} answered 404 for variant "
                f"'{variant.name}', trying '{variants[index + 1].name}'"
            )

        self._raise_for_status(http)
        data = http.json()
        self._raise_for_error_envelope(data)

        content = self._extract_content(data)
        return ProviderResponse(
            content=self._require_content(content),
            raw_response=data,
            raw_text=http.text,
        )

    @classmethod
    def _extract_content(cls, data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        message = choices[0].get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        if isinstance(content, list):
            # Some servers return content parts instead of a string.
            return "".join(cls._part_text(part) for part in content)
        return content if isinstance(content, str) else None


class LocalAdapter(OpenAICompatibleAdapter):
    """Local runtimes speak the OpenAI-compatible protocol."""

    family_name = "local"
