"""
LLM Configuration Domain ORM Models.

============================================================
PURPOSE
============================================================
Models for the planner configuration store and its audit
trail: providers, prompt templates, run schedules and
execution records.

============================================================
INVARIANTS
============================================================
- At most one LlmProvider has is_default = True
- At most one PortfolioPrompt per portfolio has is_default = True
Both are enforced at write time by LlmConfigRepository.

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, ExactDecimal, TimestampMixin, UTCDateTime


class LlmProvider(Base, TimestampMixin):
    """Configured LLM endpoint."""

    __tablename__ = "llm_providers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    provider_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Family tag: openai-compatible, local, google-gemini, anthropic"
    )

    api_base: Mapped[str] = mapped_column(String(500), nullable=False)

    api_key: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    model: Mapped[str] = mapped_column(String(200), nullable=False)

    temperature: Mapped[Optional[Decimal]] = mapped_column(ExactDecimal(), nullable=True)

    max_tokens: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<LlmProvider(id={self.id}, type={self.provider_type}, model={self.model})>"


class PortfolioPrompt(Base, TimestampMixin):
    """Prompt template owned by one portfolio."""

    __tablename__ = "portfolio_prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    portfolio_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    )

    provider_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("llm_providers.id", ondelete="SET NULL"),
        nullable=True,
        comment="Preferred provider for this prompt"
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    system_prompt: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Appended to the base system instruction"
    )

    user_template: Mapped[str] = mapped_column(Text, nullable=False)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_prompts_portfolio", "portfolio_id"),
    )


class LlmRunSchedule(Base, TimestampMixin):
    """Recurring plan run for a portfolio."""

    __tablename__ = "llm_run_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    portfolio_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    )

    prompt_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("portfolio_prompts.id", ondelete="SET NULL"),
        nullable=True,
    )

    provider_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("llm_providers.id", ondelete="SET NULL"),
        nullable=True,
    )

    frequency: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="daily, weekly, monthly"
    )

    time_of_day: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
        comment="HH:MM, 24h, UTC"
    )

    day_of_week: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="0 = Sunday .. 6 = Saturday (weekly only)"
    )

    day_of_month: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="1..31 (monthly only)"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_run_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)


class LlmExecution(Base, TimestampMixin):
    """Audit record of one plan run."""

    __tablename__ = "llm_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    portfolio_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
    )

    prompt_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("portfolio_prompts.id", ondelete="SET NULL"),
        nullable=True,
    )

    provider_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("llm_providers.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending",
        comment="pending, dry-run, planned, completed, error"
    )

    request_payload: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    response_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    response_json: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    executed_orders: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_executions_portfolio_created", "portfolio_id", "created_at"),
    )
