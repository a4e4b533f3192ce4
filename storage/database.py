"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the async engine, sessions and transaction scopes.

- One AsyncEngine per Database instance
- Session factory with expire_on_commit disabled
- transaction_scope(): commit on success, rollback on ANY
  exception (cancellation included), SQLAlchemy failures
  wrapped in PersistenceError
- SQLite connections get foreign keys and WAL enabled

============================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.exceptions import PersistenceError
from storage.models import Base


load_dotenv()

logger = logging.getLogger(__name__)


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./paper_trading.db"


# =============================================================
# CONFIGURATION
# =============================================================

@dataclass
class DatabaseConfig:
    """Database connection configuration."""

    url: str = DEFAULT_DATABASE_URL
    """SQLAlchemy async URL."""

    echo: bool = False
    """Log SQL statements."""

    sqlite_busy_timeout_ms: int = 30000
    """How long SQLite waits on a locked database."""

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Load from DATABASE_URL / DATABASE_ECHO."""
        url = os.getenv("DATABASE_URL")
        if not url:
            url = DEFAULT_DATABASE_URL
            logger.warning(f"DATABASE_URL not set, using default: {url}")
        return cls(
            url=url,
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


# =============================================================
# DATABASE
# =============================================================

class Database:
    """
    Engine and session owner.

    Usage:
        db = Database(DatabaseConfig.from_env())
        await db.create_all_tables()
        async with db.transaction_scope() as session:
            session.add(record)
    """

    def __init__(self, config: Optional[DatabaseConfig] = None) -> None:
        self._config = config or DatabaseConfig.from_env()

        engine_kw: dict = {"echo": self._config.echo}
        if self._config.is_sqlite:
            engine_kw["connect_args"] = {"timeout": self._config.sqlite_busy_timeout_ms / 1000}

        self._engine: AsyncEngine = create_async_engine(self._config.url, **engine_kw)

        if self._config.is_sqlite:
            event.listens_for(self._engine.sync_engine, "connect")(self._set_sqlite_pragma)

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        logger.info(f"Database engine created for: {self._config.url.split('@')[-1]}")

    def _set_sqlite_pragma(self, dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={self._config.sqlite_busy_timeout_ms}")
        cursor.close()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    def session(self) -> AsyncSession:
        """
        Get a new session.

        Caller is responsible for closing it. Prefer
        transaction_scope().
        """
        return self._session_factory()

    @asynccontextmanager
    async def transaction_scope(self) -> AsyncIterator[AsyncSession]:
        """
        Explicit transaction boundary.

        Commits only if no exception occurs. Rolls back on ANY
        exception. Domain errors propagate unchanged; SQLAlchemy
        errors are wrapped in PersistenceError.
        """
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
                logger.debug("Database transaction committed")
            except SQLAlchemyError as e:
                logger.error(f"Database transaction failed, rolled back: {e}")
                raise PersistenceError(f"Transaction failed: {e}", operation="transaction", cause=e) from e

    async def create_all_tables(self) -> None:
        """Create every table registered on Base."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info(f"Database tables ready: {', '.join(sorted(Base.metadata.tables))}")
        except SQLAlchemyError as e:
            logger.error(f"Table creation failed: {e}")
            raise PersistenceError(f"Table creation failed: {e}", operation="create_all", cause=e) from e

    async def dispose(self) -> None:
        await self._engine.dispose()
