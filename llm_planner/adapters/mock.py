"""
LLM Planner - Mock Provider Adapter.

============================================================
PURPOSE
============================================================
Scripted adapter for tests and offline runs.

FEATURES:
- Scripted answers (text) and failures (exceptions), consumed in order
- Last script entry repeats once the script is exhausted
- Every call recorded with its provider and request

============================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

from llm_planner.adapters.base import ProviderAdapter
from llm_planner.types import ChatRequest, ProviderConfig, ProviderResponse


logger = logging.getLogger(__name__)


ScriptEntry = Union[str, ProviderResponse, BaseException]


@dataclass
class MockProviderConfig:
    """Configuration for the mock adapter."""

    script: List[ScriptEntry] = field(default_factory=list)
    """Answers or exceptions, in call order."""

    repeat_last: bool = True
    """Keep returning the last entry once the script runs out."""


class MockProviderAdapter(ProviderAdapter):
    """Adapter that never touches the network."""

    family_name = "mock"

    def __init__(self, script: Optional[Sequence[ScriptEntry]] = None, config: Optional[MockProviderConfig] = None) -> None:
        super().__init__()
        self._config = config or MockProviderConfig(script=list(script or []))
        self._position = 0
        self.calls: List[Tuple[ProviderConfig, ChatRequest]] = []

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def invoke(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        self.calls.append((provider, request))
        entry = self._next_entry()
        logger.debug(f"Mock provider call #{self.call_count} -> {type(entry).__name__}")

        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, ProviderResponse):
            return entry
        return ProviderResponse(
            content=self._require_content(entry),
            raw_response={"mock": True},
            raw_text=entry,
        )

    def _next_entry(self) -> Any:
        script = self._config.script
        if not script:
            return ""
        if self._position < len(script):
            entry = script[self._position]
            self._position += 1
            return entry
        if self._config.repeat_last:
            return script[-1]
        return ""
