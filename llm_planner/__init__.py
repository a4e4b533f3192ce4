"""
LLM Planner Package.

============================================================
PURPOSE
============================================================
Asks a language model for a trade plan, validates it, prices
it and hands it to the ledger.

CRITICAL PRINCIPLE:
    "Model output is untrusted until it validates."
    "Only priced, validated plans reach the ledger."

============================================================
MODULES
============================================================
- config: retry, timeout and context configuration
- types: provider, prompt, request and result types
- schema: plan models, JSON Schema, extraction/validation
- adapters: one provider adapter per wire-protocol family
- context_builder: execution context and prompt rendering
- order_pricing: plan orders -> trade instructions
- state_machine: run lifecycle
- plan_runner: the end-to-end pipeline
- service: execution records around runs
- config_service: provider/prompt/schedule CRUD
- schedules: recurring runs

============================================================
"""

# ============================================================
# CONFIG / TYPES / SCHEMA
# ============================================================
from llm_planner.config import ContextConfig, PlannerConfig, RetryConfig, TimeoutConfig
from llm_planner.schema import (
    ARBITRAGE_JSON_SCHEMA,
    ArbitrageOrder,
    ArbitragePlan,
    extract_json_candidate,
    parse_arbitrage_plan,
    validate_plan,
)
from llm_planner.types import (
    ChatMessage,
    ChatRequest,
    ChatRole,
    PlanRunResult,
    PromptTemplate,
    ProviderConfig,
    ProviderFamily,
    ProviderResponse,
    RunConfiguration,
    RunOverrides,
)

# ============================================================
# PIPELINE
# ============================================================
from llm_planner.adapters import AdapterFactory, MockProviderAdapter, invoke_provider
from llm_planner.context_builder import (
    BASE_SYSTEM_PROMPT,
    DEFAULT_USER_TEMPLATE,
    ContextBuilder,
    ExecutionContext,
    render_template,
)
from llm_planner.plan_runner import PlanRunner
from llm_planner.state_machine import RunState, RunStateTracker

# ============================================================
# SERVICES
# ============================================================
from llm_planner.config_service import ConfigService
from llm_planner.schedules import is_due, next_run_after, run_due_schedules, validate_schedule
from llm_planner.service import ExecutionView, PlanService

__all__ = [
    # Config
    "ContextConfig",
    "PlannerConfig",
    "RetryConfig",
    "TimeoutConfig",
    # Schema
    "ARBITRAGE_JSON_SCHEMA",
    "ArbitrageOrder",
    "ArbitragePlan",
    "extract_json_candidate",
    "parse_arbitrage_plan",
    "validate_plan",
    # Types
    "ChatMessage",
    "ChatRequest",
    "ChatRole",
    "PlanRunResult",
    "PromptTemplate",
    "ProviderConfig",
    "ProviderFamily",
    "ProviderResponse",
    "RunConfiguration",
    "RunOverrides",
    # Pipeline
    "AdapterFactory",
    "MockProviderAdapter",
    "invoke_provider",
    "BASE_SYSTEM_PROMPT",
    "DEFAULT_USER_TEMPLATE",
    "ContextBuilder",
    "ExecutionContext",
    "render_template",
    "PlanRunner",
    "RunState",
    "RunStateTracker",
    # Services
    "ConfigService",
    "ExecutionView",
    "PlanService",
    "is_due",
    "next_run_after",
    "run_due_schedules",
    "validate_schedule",
]
