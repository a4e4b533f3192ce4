"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Provides common functionality for all repositories including:
- Session handling (session injected, never owned)
- Error handling wrappers
- Common query operations

============================================================
USAGE
============================================================
All domain repositories inherit from BaseRepository.
The caller owns the transaction (Database.transaction_scope);
repositories only flush.

============================================================
"""

import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import PersistenceError
from storage.models.base import Base


# Type variable for ORM model
T = TypeVar("T", bound=Base)


class BaseRepository(Generic[T]):
    """
    Base class for all repositories.

    ============================================================
    RESPONSIBILITIES
    ============================================================
    - Provides common CRUD patterns
    - Wraps database errors in PersistenceError
    - Manages logging for all operations

    ============================================================
    """

    def __init__(
        self,
        session: AsyncSession,
        model_class: Type[T],
        repository_name: str
    ) -> None:
        self._session = session
        self._model_class = model_class
        self._repository_name = repository_name
        self._logger = logging.getLogger(f"repository.{repository_name}")

    @property
    def session(self) -> AsyncSession:
        return self._session

    # =========================================================
    # PROTECTED HELPER METHODS
    # =========================================================

    def _handle_db_error(self, error: Exception, operation: str) -> None:
        """
        Wrap a SQLAlchemy error.

        Raises:
            PersistenceError: Always
        """
        self._logger.error(f"Database error in {operation}: {error}", exc_info=True)
        raise PersistenceError(
            f"[{self._repository_name}] {operation} failed: {error}",
            operation=operation,
            cause=error,
        ) from error

    async def _add(self, entity: T) -> T:
        """Add an entity and flush so its id is assigned."""
        try:
            self._session.add(entity)
            await self._session.flush()
            self._logger.debug(f"Added entity: {entity!r}")
            return entity
        except SQLAlchemyError as e:
            self._handle_db_error(e, "add")
            raise

    async def _get_by_id(self, record_id: int) -> Optional[T]:
        try:
            return await self._session.get(self._model_class, record_id)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "get_by_id")
            raise

    async def _delete_entity(self, entity: T) -> None:
        try:
            await self._session.delete(entity)
            await self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "delete")
            raise

    async def _delete_where(self, *criteria: Any) -> int:
        """Bulk delete; returns affected row count."""
        try:
            result = await self._session.execute(delete(self._model_class).where(*criteria))
            return result.rowcount or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, "delete_where")
            raise

    async def _count(self, *criteria: Any) -> int:
        try:
            stmt = select(func.count()).select_from(self._model_class)
            if criteria:
                stmt = stmt.where(*criteria)
            result = await self._session.execute(stmt)
            return result.scalar() or 0
        except SQLAlchemyError as e:
            self._handle_db_error(e, "count")
            raise

    async def _execute_query(self, stmt: Any) -> List[T]:
        try:
            result = await self._session.execute(stmt)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query")
            raise

    async def _execute_first(self, stmt: Any) -> Optional[T]:
        try:
            result = await self._session.execute(stmt.limit(1))
            return result.scalars().first()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "query_first")
            raise

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            self._handle_db_error(e, "flush")
            raise
