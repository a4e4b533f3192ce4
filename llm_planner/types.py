"""
LLM Planner - Types.

============================================================
PURPOSE
============================================================
Type definitions shared by the planner, the provider
adapters and the plan service.

============================================================
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import UnsupportedProviderError
from core.money import to_float
from ledger.types import ExecutedTrade, PortfolioSnapshot, TradeInstruction
from llm_planner.schema import ArbitragePlan


# ============================================================
# PROVIDERS
# ============================================================

class ProviderFamily(str, Enum):
    """Wire-protocol family of an LLM provider."""

    OPENAI_COMPATIBLE = "openai-compatible"
    LOCAL = "local"
    GOOGLE_GEMINI = "google-gemini"
    ANTHROPIC = "anthropic"

    @classmethod
    def parse(cls, value: Any) -> "ProviderFamily":
        """
        Parse a stored family tag.

        Raises:
            UnsupportedProviderError: Unknown tag
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise UnsupportedProviderError(value) from e


@dataclass(frozen=True)
class ProviderConfig:
    """Connection settings of one provider."""

    id: Optional[int]
    name: str
    family: ProviderFamily
    api_base: str
    model: str
    api_key: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    @classmethod
    def from_model(cls, provider: Any) -> "ProviderConfig":
        """Build from an LlmProvider row."""
        return cls(
            id=provider.id,
            name=provider.name,
            family=ProviderFamily.parse(provider.provider_type),
            api_base=provider.api_base,
            model=provider.model,
            api_key=provider.api_key or None,
            temperature=float(provider.temperature) if provider.temperature is not None else None,
            max_tokens=provider.max_tokens,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Public view; the API key is never included."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.family.value,
            "apiBase": self.api_base,
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
            "hasApiKey": bool(self.api_key),
        }


# ============================================================
# PROMPTS
# ============================================================

@dataclass(frozen=True)
class PromptTemplate:
    """Prompt used for one run."""

    id: Optional[int]
    name: str
    user_template: str
    system_prompt: Optional[str] = None
    provider_id: Optional[int] = None

    @classmethod
    def from_model(cls, prompt: Any) -> "PromptTemplate":
        """Build from a PortfolioPrompt row."""
        return cls(
            id=prompt.id,
            name=prompt.name,
            user_template=prompt.user_template,
            system_prompt=prompt.system_prompt,
            provider_id=prompt.provider_id,
        )


# ============================================================
# CHAT REQUEST / RESPONSE
# ============================================================

class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    role: ChatRole
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class ChatRequest:
    """Provider-neutral chat completion request."""

    model: str
    """Model name sent to the provider."""

    messages: List[ChatMessage]
    """Conversation, system message first."""

    temperature: float = 0.0
    """Sampling temperature."""

    max_tokens: Optional[int] = None
    """Output token cap, when set."""

    response_format: Optional[Dict[str, Any]] = None
    """JSON-mode hint; only OpenAI-family providers receive it."""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_dict() for m in self.messages],
            "temperature": self.temperature,
        }
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.response_format is not None:
            payload["response_format"] = self.response_format
        return payload


@dataclass
class ProviderResponse:
    """Normalized provider answer."""

    content: str
    """Assistant text."""

    raw_response: Any = None
    """Decoded provider JSON."""

    raw_text: str = ""
    """Response body as received."""

    grounding: Optional[Any] = None
    """Gemini grounding metadata; informational only."""


# ============================================================
# RUN INPUTS
# ============================================================

@dataclass
class RunOverrides:
    """Per-run overrides of provider settings."""

    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "temperature": self.temperature,
            "maxTokens": self.max_tokens,
        }


@dataclass
class RunConfiguration:
    """Resolved prompt and provider for one run."""

    portfolio_id: int
    provider: ProviderConfig
    prompt: Optional[PromptTemplate] = None


# ============================================================
# RUN RESULT
# ============================================================

@dataclass
class PlanTranscript:
    """What was sent and what came back."""

    system_prompt: str = ""
    user_prompt: str = ""
    messages: List[Dict[str, str]] = field(default_factory=list)
    assistant_message: Optional[str] = None
    raw_response: Any = None
    raw_text: str = ""
    grounding: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "systemPrompt": self.system_prompt,
            "userPrompt": self.user_prompt,
            "messages": self.messages,
            "assistantMessage": self.assistant_message,
            "rawResponse": self.raw_text,
        }


@dataclass
class PlanRunResult:
    """Outcome of one plan run."""

    portfolio_id: int
    plan: Optional[ArbitragePlan] = None
    trades: List[TradeInstruction] = field(default_factory=list)
    executed_trades: List[ExecutedTrade] = field(default_factory=list)
    executed: bool = False
    dry_run: bool = False
    snapshot: Optional[PortfolioSnapshot] = None
    context: Optional[Dict[str, Any]] = None
    transcript: PlanTranscript = field(default_factory=PlanTranscript)
    attempts: int = 0
    states: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        """completed, dry-run or planned."""
        if self.executed:
            return "completed"
        return "dry-run" if self.dry_run else "planned"

    @property
    def total_notional(self) -> Decimal:
        return sum((t.notional for t in self.trades), Decimal(0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "portfolioId": self.portfolio_id,
            "status": self.status,
            "plan": self.plan.to_payload() if self.plan is not None else None,
            "trades": [t.to_dict() for t in self.trades],
            "executed": self.executed,
            "snapshot": self.snapshot.to_dict() if self.snapshot is not None else None,
            "context": self.context,
            "attempts": self.attempts,
            "totalNotional": to_float(self.total_notional),
            **self.transcript.to_dict(),
        }
