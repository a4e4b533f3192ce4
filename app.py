#!/usr/bin/env python3
"""
Paper Trading Desk - Command Line Entry Point.

============================================================
SINGLE ENTRYPOINT
============================================================
One executable for the desk. Every command builds the same
runtime (database, price oracle, ledger, planner) and exits
with a process status code.

============================================================
USAGE
============================================================
    python app.py init-db
    python app.py schema
    python app.py snapshot --portfolio 1
    python app.py trade AAPL BUY 10 --price 187.5
    python app.py provider-add "Local" --type local \\
        --api-base http://localhost:11434 --model llama3 --default
    python app.py run --portfolio 1 --dry-run
    python app.py executions --portfolio 1
    python app.py run-due --window-minutes 15

Cron (every 5 minutes):
    */5 * * * * cd /srv/desk && python app.py run-due

============================================================
ENVIRONMENT
============================================================
DATABASE_URL, LOG_LEVEL, LLM_MAX_ATTEMPTS,
LLM_RETRY_DELAY_SECONDS, LLM_CONNECT_TIMEOUT_SECONDS,
LLM_REQUEST_TIMEOUT_SECONDS (a .env file is honoured)

============================================================
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, List, Optional

from dotenv import load_dotenv

from core.exceptions import PlanExecutionError, TradingException, describe_failure
from ledger.portfolio_service import PortfolioService
from llm_planner.config import PlannerConfig
from llm_planner.config_service import ConfigService
from llm_planner.plan_runner import PlanRunner
from llm_planner.schedules import run_due_schedules
from llm_planner.schema import ARBITRAGE_JSON_SCHEMA
from llm_planner.service import PlanService
from llm_planner.types import RunOverrides
from market_data.oracle import MockPriceOracle, PriceOracle
from market_data.yahoo import YahooPriceOracle
from storage.database import Database, DatabaseConfig


logger = logging.getLogger("app")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="paper-trading-desk",
        description="LLM-driven paper trading desk",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )

    parser.add_argument(
        "--oracle",
        type=str,
        choices=["yahoo", "mock"],
        default="yahoo",
        help="Price source (default: yahoo)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # --------------------------------------------------------
    # Setup
    # --------------------------------------------------------
    subparsers.add_parser("init-db", help="Create tables and the default portfolio")
    subparsers.add_parser("schema", help="Print the plan JSON Schema")

    # --------------------------------------------------------
    # Portfolio
    # --------------------------------------------------------
    snapshot = subparsers.add_parser("snapshot", help="Print a marked-to-market snapshot")
    snapshot.add_argument("--portfolio", type=int, default=1)

    trade = subparsers.add_parser("trade", help="Submit a manual trade")
    trade.add_argument("symbol")
    trade.add_argument("side", choices=["BUY", "SELL", "buy", "sell"])
    trade.add_argument("quantity", type=str)
    trade.add_argument("--price", type=str, default=None, help="Execution price (default: market)")
    trade.add_argument("--portfolio", type=int, default=1)

    # --------------------------------------------------------
    # Providers
    # --------------------------------------------------------
    provider_add = subparsers.add_parser("provider-add", help="Register an LLM provider")
    provider_add.add_argument("name")
    provider_add.add_argument(
        "--type",
        dest="provider_type",
        choices=["openai-compatible", "local", "google-gemini", "anthropic"],
        default="openai-compatible",
    )
    provider_add.add_argument("--api-base", required=True)
    provider_add.add_argument("--model", required=True)
    provider_add.add_argument("--api-key", default=None)
    provider_add.add_argument("--temperature", type=float, default=None)
    provider_add.add_argument("--max-tokens", type=int, default=None)
    provider_add.add_argument("--default", dest="is_default", action="store_true")

    subparsers.add_parser("providers", help="List LLM providers")

    # --------------------------------------------------------
    # Planner
    # --------------------------------------------------------
    run = subparsers.add_parser("run", help="Run the planner once")
    run.add_argument("--portfolio", type=int, default=1)
    run.add_argument("--prompt", type=int, default=None, help="Prompt id")
    run.add_argument("--provider", type=int, default=None, help="Provider id")
    run.add_argument("--model", default=None, help="Model override")
    run.add_argument("--temperature", type=float, default=None, help="Temperature override")
    run.add_argument("--max-tokens", type=int, default=None, help="Max tokens override")
    run.add_argument("--dry-run", action="store_true", help="Plan and price without trading")

    executions = subparsers.add_parser("executions", help="List recent execution records")
    executions.add_argument("--portfolio", type=int, default=1)

    run_due = subparsers.add_parser("run-due", help="Run every schedule that is due now")
    run_due.add_argument("--window-minutes", type=int, default=15)

    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Validate CLI arguments."""
    errors = []
    if args.command == "run":
        if args.temperature is not None and not 0 <= args.temperature <= 2:
            errors.append("--temperature must be between 0 and 2")
        if args.max_tokens is not None and args.max_tokens <= 0:
            errors.append("--max-tokens must be positive")
    if args.command == "run-due" and args.window_minutes < 1:
        errors.append("--window-minutes must be at least 1")
    return errors


def setup_logging(level: Optional[str]) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or os.getenv("LOG_LEVEL", "INFO")).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ============================================================
# RUNTIME WIRING
# ============================================================

@dataclass
class Runtime:
    """Everything a command needs."""

    database: Database
    oracle: PriceOracle
    portfolios: PortfolioService
    config: ConfigService
    runner: PlanRunner
    plans: PlanService


def build_runtime(args: argparse.Namespace) -> Runtime:
    database = Database(DatabaseConfig.from_env())
    oracle: PriceOracle = MockPriceOracle() if args.oracle == "mock" else YahooPriceOracle()
    portfolios = PortfolioService(database, oracle)
    runner = PlanRunner(database, portfolios, oracle, PlannerConfig.from_env())
    return Runtime(
        database=database,
        oracle=oracle,
        portfolios=portfolios,
        config=ConfigService(database, portfolios),
        runner=runner,
        plans=PlanService(database, runner),
    )


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


# ============================================================
# COMMANDS
# ============================================================

async def run_command(args: argparse.Namespace, runtime: Runtime) -> int:
    command = args.command

    if command == "schema":
        _print_json(ARBITRAGE_JSON_SCHEMA)
        return 0

    await runtime.database.create_all_tables()

    if command == "init-db":
        summary = await runtime.portfolios.get_portfolio_record()
        logger.info(f"Database ready; default portfolio '{summary.name}' (id {summary.id})")
        return 0

    if command == "snapshot":
        snapshot = await runtime.portfolios.build_snapshot(args.portfolio)
        _print_json(snapshot.to_dict())
        return 0

    if command == "trade":
        executed = await runtime.portfolios.submit_trade(
            args.symbol,
            args.side,
            args.quantity,
            price=args.price,
            portfolio_id=args.portfolio,
        )
        _print_json(executed.to_dict())
        return 0

    if command == "provider-add":
        provider = await runtime.config.create_provider({
            "name": args.name,
            "provider_type": args.provider_type,
            "api_base": args.api_base,
            "model": args.model,
            "api_key": args.api_key,
            "temperature": args.temperature,
            "max_tokens": args.max_tokens,
            "is_default": args.is_default,
        })
        _print_json(provider)
        return 0

    if command == "providers":
        _print_json(await runtime.config.list_providers())
        return 0

    if command == "run":
        overrides = RunOverrides(
            model=args.model,
            temperature=args.temperature,
            max_tokens=args.max_tokens,
        )
        try:
            execution_id, result = await runtime.plans.run_and_record(
                args.portfolio,
                prompt_id=args.prompt,
                provider_id=args.provider,
                overrides=overrides,
                dry_run=args.dry_run,
            )
        except PlanExecutionError as e:
            _print_json({"error": e.message, "stage": e.stage, **e.result.to_dict()})
            return 1
        _print_json({"executionId": execution_id, **result.to_dict()})
        return 0

    if command == "executions":
        views = await runtime.plans.list_executions(args.portfolio)
        _print_json([v.to_dict() for v in views])
        return 0

    if command == "run-due":
        outcomes = await run_due_schedules(
            runtime.plans,
            runtime.database,
            window=timedelta(minutes=args.window_minutes),
        )
        _print_json([
            {
                "scheduleId": o.schedule_id,
                "portfolioId": o.portfolio_id,
                "executionId": o.execution_id,
                "status": o.status,
                "error": o.error,
            }
            for o in outcomes
        ])
        return 0 if all(o.error is None for o in outcomes) else 1

    logger.error(f"Unknown command: {command}")
    return 2


async def async_main(args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    runtime = build_runtime(args)
    try:
        return await run_command(args, runtime)
    except TradingException as e:
        logger.error(f"{type(e).__name__}: {describe_failure(e)}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    finally:
        await runtime.database.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(args.log_level)
    return asyncio.run(async_main(args))


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
