"""
LLM Planner - Plan Runner.

============================================================
PURPOSE
============================================================
Orchestrates one plan run for one portfolio.

PIPELINE:
1. Resolve prompt and provider
2. Build the execution context
3. Render the prompts and the chat request
4. Attempt loop (bounded): invoke provider -> extract and
   validate plan -> price orders
5. Dry run / empty plan: stop with executed=False
6. Submit all instructions to the ledger once
7. Rebuild the snapshot

RETRY POLICY:
- Only PlanAttemptError (step 4) is retried, with backoff;
  anything else the provider call raises becomes
  ProviderResponseError
- Configuration, context and ledger failures are not
- A ledger or storage failure while executing raises
  PlanExecutionError carrying the partial result
- Every failure carries the stage it happened in

============================================================
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from core.constants import DEFAULT_PORTFOLIO_ID
from core.exceptions import (
    LedgerError,
    NoProviderConfiguredError,
    PersistenceError,
    PlanAttemptError,
    PlanExecutionError,
    PortfolioNotFoundError,
    PromptNotFoundError,
    ProviderNotFoundError,
    ProviderResponseError,
    TradingException,
)
from ledger.portfolio_service import PortfolioService
from ledger.types import TradeInstruction
from llm_planner.adapters.factory import invoke_provider
from llm_planner.config import PlannerConfig
from llm_planner.context_builder import (
    ContextBuilder,
    ExecutionContext,
    build_system_prompt,
    render_template,
    resolve_user_template,
)
from llm_planner.order_pricing import build_trade_instructions
from llm_planner.schema import ArbitragePlan, parse_arbitrage_plan
from llm_planner.state_machine import RunState, RunStateTracker
from llm_planner.types import (
    ChatMessage,
    ChatRequest,
    ChatRole,
    PlanRunResult,
    PlanTranscript,
    PromptTemplate,
    ProviderConfig,
    ProviderResponse,
    RunConfiguration,
    RunOverrides,
)
from market_data.oracle import PriceOracle
from storage.database import Database
from storage.repositories import LlmConfigRepository


logger = logging.getLogger(__name__)


Invoker = Callable[[ProviderConfig, ChatRequest], Awaitable[ProviderResponse]]
Sleeper = Callable[[float], Awaitable[None]]

JSON_RESPONSE_FORMAT = {"type": "json_object"}


def build_chat_request(
    provider: ProviderConfig,
    system_prompt: str,
    user_prompt: str,
    overrides: Optional[RunOverrides] = None,
) -> ChatRequest:
    """
    Chat request for one run.

    model: override, else provider model
    temperature: override, else provider, else 0
    max_tokens: override, else provider
    """
    overrides = overrides or RunOverrides()

    if overrides.temperature is not None:
        temperature = overrides.temperature
    elif provider.temperature is not None:
        temperature = provider.temperature
    else:
        temperature = 0.0

    return ChatRequest(
        model=overrides.model or provider.model,
        messages=[
            ChatMessage(role=ChatRole.SYSTEM, content=system_prompt),
            ChatMessage(role=ChatRole.USER, content=user_prompt),
        ],
        temperature=temperature,
        max_tokens=overrides.max_tokens or provider.max_tokens,
        response_format=dict(JSON_RESPONSE_FORMAT),
    )


class PlanRunner:
    """
    Runs plans end to end.

    Usage:
        runner = PlanRunner(database, portfolio_service, oracle)
        result = await runner.run_plan(1, dry_run=True)

    The provider call and the backoff sleep are injectable.
    """

    def __init__(
        self,
        database: Database,
        portfolios: PortfolioService,
        oracle: Optional[PriceOracle] = None,
        config: Optional[PlannerConfig] = None,
        invoker: Optional[Invoker] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self._database = database
        self._portfolios = portfolios
        self._oracle = oracle or portfolios.oracle
        self._config = config or PlannerConfig()
        self._invoker = invoker or self._default_invoker
        self._sleep = sleep or asyncio.sleep
        self._context_builder = ContextBuilder(portfolios, self._oracle, self._config.context)

    @property
    def config(self) -> PlannerConfig:
        return self._config

    async def _default_invoker(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        return await invoke_provider(provider, request, timeout=self._config.timeout)

    # =========================================================
    # CONFIGURATION RESOLUTION
    # =========================================================

    async def resolve_configuration(
        self,
        portfolio_id: int = DEFAULT_PORTFOLIO_ID,
        prompt_id: Optional[int] = None,
        provider_id: Optional[int] = None,
    ) -> RunConfiguration:
        """
        Pick the prompt and provider for a run.

        Prompt: explicit id, else the portfolio's active default,
        else none (built-in template).
        Provider: explicit id, else the prompt's provider, else the
        default provider, else the oldest provider.

        Raises:
            PortfolioNotFoundError: Unknown portfolio
            PromptNotFoundError: Explicit prompt id unknown
            ProviderNotFoundError: Explicit provider id unknown
            NoProviderConfiguredError: No provider at all
        """
        await self._portfolios.get_portfolio_record(portfolio_id)

        async with self._database.transaction_scope() as session:
            repo = LlmConfigRepository(session)

            if prompt_id is not None:
                prompt_row = await repo.get_prompt(prompt_id)
                if prompt_row is None:
                    raise PromptNotFoundError(prompt_id, portfolio_id)
            else:
                prompt_row = await repo.get_default_prompt(portfolio_id)
            prompt = PromptTemplate.from_model(prompt_row) if prompt_row is not None else None

            provider_row = None
            if provider_id is not None:
                provider_row = await repo.get_provider(provider_id)
                if provider_row is None:
                    raise ProviderNotFoundError(provider_id)
            if provider_row is None and prompt is not None and prompt.provider_id is not None:
                provider_row = await repo.get_provider(prompt.provider_id)
            if provider_row is None:
                provider_row = await repo.get_default_provider()
            if provider_row is None:
                provider_row = await repo.get_oldest_provider()
            if provider_row is None:
                raise NoProviderConfiguredError()

            provider = ProviderConfig.from_model(provider_row)

        logger.info(
            f"Resolved run for portfolio {portfolio_id}: provider '{provider.name}' "
            f"({provider.family.value}), prompt "
            f"{prompt.name if prompt is not None else '(built-in)'}"
        )
        return RunConfiguration(portfolio_id=portfolio_id, provider=provider, prompt=prompt)

    # =========================================================
    # RUN
    # =========================================================

    async def run_plan(
        self,
        portfolio_id: int = DEFAULT_PORTFOLIO_ID,
        prompt_id: Optional[int] = None,
        provider_id: Optional[int] = None,
        overrides: Optional[RunOverrides] = None,
        dry_run: bool = False,
    ) -> PlanRunResult:
        """Resolve configuration, then run."""
        configuration = await self.resolve_configuration(portfolio_id, prompt_id, provider_id)
        return await self.run_resolved(configuration, overrides=overrides, dry_run=dry_run)

    async def run_resolved(
        self,
        configuration: RunConfiguration,
        overrides: Optional[RunOverrides] = None,
        dry_run: bool = False,
    ) -> PlanRunResult:
        """
        Run with an already resolved prompt and provider.

        Raises:
            PlanAttemptError: Every attempt failed (last error,
                with attempts set)
            PlanExecutionError: The ledger rejected a valid plan
        """
        portfolio_id = configuration.portfolio_id
        tracker = RunStateTracker(portfolio_id)

        try:
            context = await self._context_builder.build(portfolio_id)
        except Exception as e:
            if getattr(e, "stage", None) is None:
                e.stage = RunState.BUILDING_CONTEXT.value
            tracker.fail(str(e))
            raise
        tracker.transition_to(RunState.RENDERING_PROMPT)

        prompt = configuration.prompt
        system_prompt = build_system_prompt(prompt.system_prompt if prompt is not None else None)
        user_prompt = render_template(
            resolve_user_template(prompt.user_template if prompt is not None else None),
            context,
        )
        request = build_chat_request(configuration.provider, system_prompt, user_prompt, overrides)

        transcript = PlanTranscript(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            messages=[m.to_dict() for m in request.messages],
        )
        result = PlanRunResult(
            portfolio_id=portfolio_id,
            dry_run=dry_run,
            context=context.to_dict(),
            transcript=transcript,
        )

        plan, trades = await self._attempt_loop(configuration.provider, request, context, tracker, result)
        result.plan = plan
        result.trades = trades

        if dry_run or not trades:
            tracker.transition_to(RunState.DRY_RUN_COMPLETE, "dry run" if dry_run else "no orders")
            result.states = tracker.visited
            logger.info(
                f"Plan for portfolio {portfolio_id} not executed "
                f"({'dry run' if dry_run else 'no orders'}, {len(trades)} order(s))"
            )
            return result

        tracker.transition_to(RunState.EXECUTING)
        try:
            result.executed_trades = await self._portfolios.executor.execute(portfolio_id, trades)
        except (LedgerError, PersistenceError, PortfolioNotFoundError) as e:
            tracker.transition_to(RunState.EXECUTION_FAILED, e.message)
            result.states = tracker.visited
            logger.error(f"Plan execution failed for portfolio {portfolio_id}: {e}")
            raise PlanExecutionError(str(e), result=result, cause=e) from e

        result.executed = True
        tracker.transition_to(RunState.EXECUTED)
        result.states = tracker.visited
        result.snapshot = await self._portfolios.build_snapshot(portfolio_id)

        logger.info(
            f"Executed plan for portfolio {portfolio_id}: {len(trades)} trade(s) "
            f"after {result.attempts} attempt(s)"
        )
        return result

    async def _attempt_loop(
        self,
        provider: ProviderConfig,
        request: ChatRequest,
        context: ExecutionContext,
        tracker: RunStateTracker,
        result: PlanRunResult,
    ) -> Tuple[ArbitragePlan, List[TradeInstruction]]:
        max_attempts = max(1, self._config.retry.max_attempts)
        last_error: Optional[PlanAttemptError] = None

        for attempt in range(1, max_attempts + 1):
            result.attempts = attempt
            tracker.transition_to(RunState.INVOKING_PROVIDER, f"attempt {attempt}")
            try:
                response = await self._invoke(provider, request)
                result.transcript.assistant_message = response.content
                result.transcript.raw_response = response.raw_response
                result.transcript.raw_text = response.raw_text
                result.transcript.grounding = response.grounding

                tracker.transition_to(RunState.EXTRACTING_PLAN)
                plan = parse_arbitrage_plan(response.content)
                result.plan = plan

                tracker.transition_to(RunState.PRICING_ORDERS)
                trades = await build_trade_instructions(plan, context, self._oracle)
                return plan, trades
            except PlanAttemptError as e:
                last_error = e
                logger.warning(
                    f"Plan attempt {attempt}/{max_attempts} failed at {e.stage}: {e}"
                )
                if attempt < max_attempts:
                    await self._sleep(self._config.retry.delay_for(attempt))

        last_error.attempts = max_attempts
        tracker.fail(str(last_error))
        result.states = tracker.visited
        logger.error(
            f"Plan failed at {last_error.stage} after {max_attempts} attempt(s): {last_error}"
        )
        raise last_error

    async def _invoke(self, provider: ProviderConfig, request: ChatRequest) -> ProviderResponse:
        """Invoke the provider; unexpected failures count as a bad response."""
        try:
            return await self._invoker(provider, request)
        except TradingException:
            raise
        except Exception as e:
            logger.warning(
                f"Provider '{provider.name}' raised {type(e).__name__} while answering: {e}"
            )
            raise ProviderResponseError(
                f"LLM provider returned an unusable response: {e}", cause=e
            ) from e
