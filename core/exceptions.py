"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the paper-trading desk.

- Provides clear exception hierarchy
- Separates retryable plan failures from terminal ones
- Includes context for debugging and execution records

============================================================
EXCEPTION HIERARCHY
============================================================
TradingException (base)
├── ConfigurationError
│   ├── InvalidConfigError
│   ├── NoProviderConfiguredError
│   ├── UnsupportedProviderError
│   ├── ProviderNotFoundError
│   └── PromptNotFoundError
├── InvalidRequestError
├── PortfolioNotFoundError
├── PersistenceError
├── PlanAttemptError (retryable)
│   ├── ProviderError
│   │   ├── ProviderTransportError
│   │   ├── ProviderRequestError
│   │   └── ProviderResponseError
│   ├── PlanExtractionError
│   ├── PlanValidationError
│   ├── OrderNormalizationError
│   └── PricingError
├── LedgerError
│   ├── InvalidTradeError
│   ├── InsufficientCashError
│   ├── PositionNotFoundError
│   └── OversellError
└── PlanExecutionError

============================================================
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for alerting."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, may impact operations."""

    CRITICAL = "critical"
    """Critical issue, requires immediate action."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from automatically."""

    TRANSIENT = "transient"
    """Temporary error, retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, requires intervention."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class TradingException(Exception):
    """
    Base exception for all desk errors.

    All exceptions carry:
    - severity: for alerting
    - context: for debugging
    - classification: for retry decisions
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE
    stage: Optional[str] = None
    """Plan run stage that failed, when raised inside a run."""

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "stage": self.stage,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(TradingException):
    """Error in configuration. Never retried."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or {}

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class InvalidConfigError(ConfigurationError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            config_key=key,
            actual_value=value,
            context={"reason": reason},
        )
        self.key = key
        self.reason = reason


class NoProviderConfiguredError(ConfigurationError):
    """No LLM provider exists to run a plan."""

    def __init__(self):
        super().__init__("No LLM provider configured")


class UnsupportedProviderError(ConfigurationError):
    """Provider family tag has no adapter."""

    def __init__(self, family: Any):
        super().__init__(
            f"Unsupported provider type: {family}",
            config_key="provider_type",
            actual_value=family,
        )


class ProviderNotFoundError(ConfigurationError):
    """Explicitly requested provider does not exist."""

    def __init__(self, provider_id: int):
        super().__init__(
            f"LLM provider {provider_id} not found",
            config_key="provider_id",
            actual_value=provider_id,
        )
        self.provider_id = provider_id


class PromptNotFoundError(ConfigurationError):
    """Explicitly requested prompt does not exist for the portfolio."""

    def __init__(self, prompt_id: int, portfolio_id: Optional[int] = None):
        super().__init__(
            f"Prompt {prompt_id} not found",
            config_key="prompt_id",
            actual_value=prompt_id,
            context={"portfolio_id": portfolio_id},
        )
        self.prompt_id = prompt_id


# ============================================================
# PORTFOLIO / PERSISTENCE ERRORS
# ============================================================

class InvalidRequestError(TradingException):
    """Caller-supplied value rejected before any state change."""

    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid {field}: {reason}", context={"field": field})
        self.field = field
        self.reason = reason


class PortfolioNotFoundError(TradingException):
    """Referenced portfolio does not exist."""

    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, portfolio_id: int):
        super().__init__(
            f"Portfolio {portfolio_id} not found",
            context={"portfolio_id": portfolio_id},
        )
        self.portfolio_id = portfolio_id


class PersistenceError(TradingException):
    """Database operation failed."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, message: str, operation: str = "unknown", **kwargs):
        context = kwargs.pop("context", None) or {}
        context["operation"] = operation
        super().__init__(message, context=context, **kwargs)
        self.operation = operation


# ============================================================
# PLAN ATTEMPT ERRORS (RETRYABLE)
# ============================================================

class PlanAttemptError(TradingException):
    """
    Failure inside one plan attempt.

    The generator is non-deterministic, so every failure between
    invoking the provider and pricing the orders earns a fresh attempt.
    """

    default_classification = ErrorClassification.TRANSIENT
    stage = "unknown"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts: int = 0


class ProviderError(PlanAttemptError):
    """Provider call failed."""

    stage = "invoking-provider"


class ProviderTransportError(ProviderError):
    """Network failure or timeout talking to the provider."""


class ProviderRequestError(ProviderError):
    """Provider answered with a non-2xx status."""

    def __init__(self, status: int, body: str):
        super().__init__(
            f"LLM provider request failed ({status}): {body}",
            context={"status": status},
        )
        self.status = status
        self.body = body


class ProviderResponseError(ProviderError):
    """Provider answered 2xx but with an error envelope or no content."""


class PlanExtractionError(PlanAttemptError):
    """No JSON candidate could be found in the model output."""

    stage = "extracting-plan"

    def __init__(self, message: str = "Unable to extract JSON payload from LLM response", **kwargs):
        super().__init__(message, **kwargs)


class PlanValidationError(PlanAttemptError):
    """JSON candidate does not satisfy the plan schema."""

    stage = "extracting-plan"

    def __init__(self, issues: str, **kwargs):
        super().__init__(f"LLM response failed schema validation: {issues}", **kwargs)
        self.issues = issues


class OrderNormalizationError(PlanAttemptError):
    """A validated order cannot be turned into a trade instruction."""

    stage = "pricing-orders"


class PricingError(PlanAttemptError):
    """No usable price could be derived for a market order."""

    stage = "pricing-orders"

    def __init__(self, symbol: str, message: str = "Unable to derive price for trade"):
        super().__init__(message, context={"symbol": symbol})
        self.symbol = symbol


# ============================================================
# LEDGER ERRORS
# ============================================================

class LedgerError(TradingException):
    """Ledger rejected a trade batch. Whole batch rolled back."""

    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, message: str, symbol: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", None) or {}
        if symbol:
            context["symbol"] = symbol
        super().__init__(message, context=context, **kwargs)
        self.symbol = symbol


class InvalidTradeError(LedgerError):
    """Trade instruction has a non-positive quantity or price."""


class InsufficientCashError(LedgerError):
    """BUY notional exceeds available cash."""

    def __init__(self, symbol: Optional[str] = None, **kwargs):
        super().__init__("Insufficient cash balance for this trade", symbol=symbol, **kwargs)


class PositionNotFoundError(LedgerError):
    """SELL of a symbol with no open position."""

    def __init__(self, symbol: Optional[str] = None, **kwargs):
        super().__init__("Cannot sell a position that does not exist", symbol=symbol, **kwargs)


class OversellError(LedgerError):
    """SELL quantity exceeds the held quantity."""

    def __init__(self, symbol: Optional[str] = None, **kwargs):
        super().__init__("Cannot sell more shares than currently held", symbol=symbol, **kwargs)


# ============================================================
# PLAN EXECUTION ERROR
# ============================================================

class PlanExecutionError(TradingException):
    """
    A valid plan failed at the ledger.

    Carries the partial result (plan, attempted instructions and
    transcript) so the caller can record what was attempted.
    """

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE
    stage = "executing"

    def __init__(self, message: str, result: Any, cause: Optional[Exception] = None):
        super().__init__(message, cause=cause)
        self.result = result


def describe_failure(error: BaseException) -> str:
    """Error message prefixed with the failed run stage, when known."""
    stage = getattr(error, "stage", None)
    return f"{stage}: {error}" if stage else str(error)
