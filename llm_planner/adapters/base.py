"""
LLM Planner - Provider Adapter Base.

============================================================
PURPOSE
============================================================
Abstract interface for LLM provider adapters.

DESIGN PRINCIPLES:
- One adapter per wire-protocol family
- Every adapter answers invoke(provider, request)
- All HTTP goes through _post_json (one seam for tests)
- Transport failures become ProviderTransportError

============================================================
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from core.exceptions import ProviderRequestError, ProviderResponseError, ProviderTransportError
from llm_planner.adapters.logging_utils import mask_headers, mask_url, preview, summarize_body
from llm_planner.config import TimeoutConfig
from llm_planner.types import ChatMessage, ChatRequest, ChatRole, ProviderConfig, ProviderResponse


logger = logging.getLogger(__name__)


# ============================================================
# HTTP RESPONSE
# ============================================================

@dataclass
class HttpResponse:
    """Status and body of one provider HTTP call."""

    status: int
    """HTTP status code."""

    text: str
    """Raw response body."""

    url: str = ""
    """Requested URL."""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        """
        Decode the body.

        Raises:
            ProviderResponseError: Body is not JSON
        """
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise ProviderResponseError(
                f"LLM provider returned invalid JSON: {preview(self.text)}",
                cause=e,
            ) from e


# ============================================================
# ADAPTER BASE
# ============================================================

class ProviderAdapter(ABC):
    """
    Base class for provider adapters.

    Subclasses build the family-specific payload and pick the
    assistant text out of the family-specific response.
    """

    family_name: str = "base"

    def __init__(
        self,
        timeout: Optional[TimeoutConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout or TimeoutConfig()
        self._session = session

    @abstractmethod
    async def invoke(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        """
        Send one chat request.

        Raises:
            ProviderError: Transport, status or content failure
        """

    # --------------------------------------------------------
    # HTTP
    # --------------------------------------------------------

    def _client_timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self._timeout.request_timeout_seconds,
            connect=self._timeout.connect_timeout_seconds,
        )

    async def _post_json(
        self,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
    ) -> HttpResponse:
        """
        POST a JSON body.

        Raises:
            ProviderTransportError: Network failure or timeout
        """
        started = time.monotonic()
        logger.debug(
            f"{self.family_name} POST {mask_url(url)} headers={mask_headers(headers)} "
            f"body={summarize_body(body)}"
        )

        try:
            if self._session is not None:
                http = await self._send(self._session, url, headers, body)
            else:
                async with aiohttp.ClientSession(timeout=self._client_timeout()) as session:
                    http = await self._send(session, url, headers, body)
        except aiohttp.ClientError as e:
            logger.warning(f"{self.family_name} network error for {mask_url(url)}: {e}")
            raise ProviderTransportError(f"LLM provider network error: {e}", cause=e) from e
        except asyncio.TimeoutError as e:
            logger.warning(f"{self.family_name} timeout for {mask_url(url)}")
            raise ProviderTransportError(
                f"LLM provider request timed out after {self._timeout.request_timeout_seconds}s",
                cause=e,
            ) from e

        latency_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"{self.family_name} {mask_url(url)} -> {http.status} in {latency_ms:.0f}ms"
        )
        return http

    async def _send(
        self,
        session: aiohttp.ClientSession,
        url: str,
        headers: Dict[str, str],
        body: Dict[str, Any],
    ) -> HttpResponse:
        async with session.post(url, json=body, headers=headers, timeout=self._client_timeout()) as response:
            text = await response.text()
            return HttpResponse(status=response.status, text=text, url=url)

    # --------------------------------------------------------
    # RESPONSE HELPERS
    # --------------------------------------------------------

    @staticmethod
    def _raise_for_status(http: HttpResponse) -> None:
        if not http.ok:
            raise ProviderRequestError(http.status, http.text)

    @staticmethod
    def _raise_for_error_envelope(data: Any) -> None:
        if not isinstance(data, dict):
            return
        error = data.get("error")
        if not error:
            return
        if isinstance(error, dict):
            message = error.get("message")
            if not message:
                return
        else:
            message = str(error)
        raise ProviderResponseError(f"LLM provider error: {message}")

    @staticmethod
    def _part_text(part: Any) -> str:
        """Text of one content part; any other shape counts as empty."""
        if not isinstance(part, dict):
            return ""
        text = part.get("text")
        return text if isinstance(text, str) else ""

    @staticmethod
    def _require_content(content: Optional[str]) -> str:
        text = (content or "").strip()
        if not text:
            raise ProviderResponseError("LLM provider returned no content")
        return text

    @staticmethod
    def _split_system(messages: List[ChatMessage]) -> Tuple[str, List[ChatMessage]]:
        """System texts joined by a blank line, plus the remaining turns."""
        system = "\n\n".join(
            m.content for m in messages if m.role == ChatRole.SYSTEM
        ).strip()
        turns = [m for m in messages if m.role != ChatRole.SYSTEM]
        return system, turns

    @staticmethod
    def _json_headers() -> Dict[str, str]:
        return {"Content-Type": "application/json"}
