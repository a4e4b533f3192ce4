"""
LLM Planner - Plan Schema.

============================================================
PURPOSE
============================================================
Boundary between untrusted model output and typed plans.

Two explicit stages:
1. extract_json_candidate(text) -> Optional[str]
   Total; never raises. Finds a JSON document in free text.
2. validate_plan(candidate) -> PlanValidation
   Tagged result; the typed plan or a readable error.

parse_arbitrage_plan() composes both and raises the planner
errors the retry loop understands.

============================================================
PLAN RULES
============================================================
- version == "1.0", generatedAt is a string
- at most 25 orders
- symbol non-empty, upper-cased
- action BUY | SELL
- quantity positive integer (integral floats accepted)
- orderType market | limit (default market)
- limitPrice > 0, required for limit orders
- confidence in [0, 1]

============================================================
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from core.constants import MAX_PLAN_ORDERS, PLAN_SCHEMA_VERSION
from core.exceptions import PlanExtractionError, PlanValidationError


# ============================================================
# MODELS
# ============================================================

def _reject_non_numeric(value: Any, field_name: str) -> Any:
    if isinstance(value, bool) or isinstance(value, str):
        raise ValueError(f"{field_name} must be numeric")
    return value


class ArbitrageOrder(BaseModel):
    """One order proposed by the model."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    symbol: str = Field(min_length=1)
    action: Literal["BUY", "SELL"]
    quantity: int = Field(gt=0)
    order_type: Literal["market", "limit"] = Field(default="market", alias="orderType")
    limit_price: Optional[float] = Field(default=None, gt=0, alias="limitPrice")
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    rationale: Optional[str] = None

    @field_validator("symbol", mode="before")
    @classmethod
    def _normalize_symbol(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("quantity", mode="before")
    @classmethod
    def _check_quantity(cls, value: Any) -> Any:
        _reject_non_numeric(value, "quantity")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError("quantity must be an integer")
            return int(value)
        return value

    @field_validator("limit_price", mode="before")
    @classmethod
    def _check_limit_price(cls, value: Any) -> Any:
        if value is None:
            return value
        return _reject_non_numeric(value, "limitPrice")

    @field_validator("confidence", mode="before")
    @classmethod
    def _check_confidence(cls, value: Any) -> Any:
        if value is None:
            return value
        return _reject_non_numeric(value, "confidence")

    @model_validator(mode="after")
    def _limit_requires_price(self) -> "ArbitrageOrder":
        if self.order_type == "limit" and self.limit_price is None:
            raise ValueError(f"Order for {self.symbol} is limit but has no limitPrice")
        return self

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ArbitragePlan(BaseModel):
    """Validated trade plan."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    version: Literal["1.0"]
    generated_at: str = Field(alias="generatedAt")
    arbitrages: List[ArbitrageOrder] = Field(max_length=MAX_PLAN_ORDERS)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "generatedAt": self.generated_at,
            "arbitrages": [order.to_payload() for order in self.arbitrages],
        }


# ============================================================
# PUBLISHED JSON SCHEMA
# ============================================================

ARBITRAGE_JSON_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "https://paper-trading.ai/schemas/arbitrage-plan.json",
    "type": "object",
    "additionalProperties": False,
    "required": ["version", "generatedAt", "arbitrages"],
    "properties": {
        "version": {"type": "string", "const": PLAN_SCHEMA_VERSION},
        "generatedAt": {
            "type": "string",
            "description": "ISO-8601 timestamp of when the decisions were generated",
        },
        "arbitrages": {
            "type": "array",
            "maxItems": MAX_PLAN_ORDERS,
            "items": {
                "type": "object",
                "additionalProperties": False,
                "required": ["symbol", "action", "quantity"],
                "properties": {
                    "symbol": {
                        "type": "string",
                        "minLength": 1,
                        "description": "Ticker symbol to trade",
                    },
                    "action": {
                        "type": "string",
                        "enum": ["BUY", "SELL"],
                        "description": "Trade direction",
                    },
                    "quantity": {
                        "type": "integer",
                        "minimum": 1,
                        "description": "Number of shares to trade",
                    },
                    "orderType": {
                        "type": "string",
                        "enum": ["market", "limit"],
                        "default": "market",
                    },
                    "limitPrice": {
                        "type": "number",
                        "exclusiveMinimum": 0,
                        "description": "Required when orderType is limit",
                    },
                    "confidence": {
                        "type": "number",
                        "minimum": 0,
                        "maximum": 1,
                        "description": "Optional confidence score from 0 to 1",
                    },
                    "rationale": {
                        "type": "string",
                        "description": "Short explanation of the decision",
                    },
                },
            },
        },
    },
}


# ============================================================
# STAGE 1: EXTRACTION
# ============================================================

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


def _parses(candidate: str) -> bool:
    try:
        json.loads(candidate)
    except ValueError:
        return False
    return True


def extract_json_candidate(text: Optional[str]) -> Optional[str]:
    """
    Find a JSON document in model output.

    Attempts, first success wins:
    1. text with all code fences removed
    2. the whole trimmed text
    3. substring from the first "{" to the last "}"
    """
    if not text:
        return None

    candidates: List[str] = []
    if "```" in text:
        candidates.append(_FENCE_PATTERN.sub("", text).strip())
    candidates.append(text.strip())

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        if candidate and _parses(candidate):
            return candidate
    return None


# ============================================================
# STAGE 2: VALIDATION
# ============================================================

@dataclass(frozen=True)
class PlanValidation:
    """Tagged validation result."""

    ok: bool
    plan: Optional[ArbitragePlan] = None
    error: Optional[str] = None


def _format_errors(error: ValidationError) -> str:
    issues = []
    for item in error.errors():
        path = ".".join(str(part) for part in item.get("loc", ())) or "(root)"
        message = item.get("msg", "invalid")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        issues.append(f"{path}: {message}")
    return "; ".join(issues)


def validate_plan(candidate: str) -> PlanValidation:
    """Parse and validate one JSON candidate. Never raises."""
    try:
        data = json.loads(candidate)
    except ValueError as e:
        return PlanValidation(ok=False, error=f"(root): invalid JSON ({e})")

    if not isinstance(data, dict):
        return PlanValidation(ok=False, error="(root): expected an object")

    try:
        plan = ArbitragePlan.model_validate(data)
    except ValidationError as e:
        return PlanValidation(ok=False, error=_format_errors(e))
    return PlanValidation(ok=True, plan=plan)


def parse_arbitrage_plan(text: Optional[str]) -> ArbitragePlan:
    """
    Extract and validate a plan from model output.

    Raises:
        PlanExtractionError: No JSON document found
        PlanValidationError: Document violates the plan rules
    """
    candidate = extract_json_candidate(text)
    if candidate is None:
        raise PlanExtractionError()

    result = validate_plan(candidate)
    if not result.ok:
        raise PlanValidationError(result.error or "unknown error")
    return result.plan
