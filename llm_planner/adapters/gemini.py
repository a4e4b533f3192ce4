"""
LLM Planner - Gemini Adapter.

Google generateContent protocol:
- URL {base}/models/{model}:generateContent, key in x-goog-api-key
- system messages become systemInstruction
- assistant turns use Gemini's "model" role
- temperature / max tokens go into generationConfig
- grounding metadata is surfaced but never interpreted
"""

import logging
from typing import Any, Dict, Optional, Tuple

from llm_planner.adapters.base import ProviderAdapter
from llm_planner.adapters.urls import build_gemini_url
from llm_planner.types import ChatRequest, ChatRole, ProviderConfig, ProviderResponse


logger = logging.getLogger(__name__)


class GeminiAdapter(ProviderAdapter):
    """Adapter for Gemini-style providers."""

    family_name = "google-gemini"

    def build_body(self, request: ChatRequest) -> Dict[str, Any]:
        system, turns = self._split_system(request.messages)

        body: Dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == ChatRole.ASSISTANT else m.role.value,
                    "parts": [{"text": m.content}],
                }
                for m in turns
            ]
        }
        if system:
            body["systemInstruction"] = {"role": "system", "parts": [{"text": system}]}

        generation_config: Dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.max_tokens:
            generation_config["maxOutputTokens"] = request.max_tokens
        if generation_config:
            body["generationConfig"] = generation_config
        return body

    def build_headers(self, provider: ProviderConfig) -> Dict[str, str]:
        headers = self._json_headers()
        if provider.api_key:
            headers["x-goog-api-key"] = provider.api_key
        return headers

    async def invoke(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        url = build_gemini_url(provider.api_base, request.model)
        http = await self._post_json(url, self.build_headers(provider), self.build_body(request))

        self._raise_for_status(http)
        data = http.json()
        self._raise_for_error_envelope(data)

        content, grounding = self._extract(data)
        if grounding:
            logger.info(f"{provider.name}: response carried grounding metadata")
        return ProviderResponse(
            content=self._require_content(content),
            raw_response=data,
            raw_text=http.text,
            grounding=grounding,
        )

    @classmethod
    def _extract(cls, data: Any) -> Tuple[Optional[str], Optional[Any]]:
        if not isinstance(data, dict):
            return None, None
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
            return None, None
        first = candidates[0]
        content = first.get("content")
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return None, first.get("groundingMetadata")
        text = "".join(cls._part_text(part) for part in parts)
        return text, first.get("groundingMetadata")
