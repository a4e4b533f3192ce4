"""
LLM Planner - Anthropic Adapter.

Messages protocol:
- URL {base}/v1/messages, key in x-api-key, anthropic-version header
- system messages joined into the top-level "system" field
- max_tokens always sent (1024 when unset)
- only "text" content blocks contribute to the answer
"""

from typing import Any, Dict, Optional

from llm_planner.adapters.base import ProviderAdapter
from llm_planner.adapters.urls import build_anthropic_url
from llm_planner.types import ChatRequest, ChatRole, ProviderConfig, ProviderResponse


ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024


class AnthropicAdapter(ProviderAdapter):
    """Adapter for Anthropic-style providers."""

    family_name = "anthropic"

    def __init__(self, *args: Any, default_max_tokens: int = DEFAULT_MAX_TOKENS, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._default_max_tokens = default_max_tokens

    def build_body(self, request: ChatRequest) -> Dict[str, Any]:
        system, turns = self._split_system(request.messages)
        body: Dict[str, Any] = {
            "model": request.model,
            "messages": [
                {
                    "role": "user" if m.role == ChatRole.USER else "assistant",
                    "content": [{"type": "text", "text": m.content}],
                }
                for m in turns
            ],
            "max_tokens": request.max_tokens or self._default_max_tokens,
            "temperature": request.temperature if request.temperature is not None else 0,
        }
        if system:
            body["system"] = system
        return body

    def build_headers(self, provider: ProviderConfig) -> Dict[str, str]:
        headers = self._json_headers()
        headers["anthropic-version"] = ANTHROPIC_VERSION
        if provider.api_key:
            headers["x-api-key"] = provider.api_key
        return headers

    async def invoke(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        url = build_anthropic_url(provider.api_base)
        http = await self._post_json(url, self.build_headers(provider), self.build_body(request))

        self._raise_for_status(http)
        data = http.json()
        self._raise_for_error_envelope(data)

        return ProviderResponse(
            content=self._require_content(self._extract_text(data)),
            raw_response=data,
            raw_text=http.text,
        )

    @classmethod
    def _extract_text(cls, data: Any) -> Optional[str]:
        if not isinstance(data, dict):
            return None
        blocks = data.get("content")
        if not isinstance(blocks, list):
            return None
        return "".join(
            cls._part_text(block)
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
