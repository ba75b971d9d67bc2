"""
Base Repository Class.

============================================================
PURPOSE
============================================================
Shared plumbing for the SQL fleet repositories:
- Session injection (the SqlFleetStore owns the transaction)
- Translation of SQLAlchemy errors into storage exceptions
- Primary-key lookups, query helpers and field updates

============================================================
ERROR MAPPING
============================================================
IntegrityError (unique)  -> DuplicateRecordError
IntegrityError (other)   -> ConstraintViolationError
OperationalError         -> StoreUnavailableError
any other SQLAlchemyError -> QueryError

A unique violation is logged at INFO: concurrent alarm raises
hit it routinely.

============================================================
"""

import logging
from typing import Any, Dict, Generic, List, NoReturn, Optional, Type, TypeVar

from sqlalchemy.exc import (
    IntegrityError as SQLAlchemyIntegrityError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession

from storage.models.base import Base
from storage.repositories.exceptions import (
    ConstraintViolationError,
    DuplicateRecordError,
    QueryError,
    RecordNotFoundError,
    StoreUnavailableError,
)


RowT = TypeVar("RowT", bound=Base)


class BaseRepository(Generic[RowT]):
    """
    Common SQL operations for one ORM row type.

    Subclasses pass their row class and a name used in log
    records and error messages:

        class AlarmRepository(BaseRepository[AlarmRow]):
            def __init__(self, session):
                super().__init__(session, AlarmRow, "AlarmRepository")
    """

    def __init__(self, session: AsyncSession, row_class: Type[RowT], name: str) -> None:
        self._session = session
        self._row_class = row_class
        self._name = name
        self._logger = logging.getLogger(f"storage.{name}")

    @property
    def name(self) -> str:
        return self._name

    # =========================================================
    # ERROR TRANSLATION
    # =========================================================

    def _raise_store_error(
        self,
        error: SQLAlchemyError,
        operation: str,
        key: Optional[Dict[str, str]] = None,
    ) -> NoReturn:
        """Re-raise a driver error as a storage exception."""
        key = key or {}

        if isinstance(error, SQLAlchemyIntegrityError):
            text = str(error.orig if error.orig is not None else error).lower()
            if "unique" in text or "duplicate" in text:
                self._logger.info(f"Unique key hit in {operation}: {key}")
                raise DuplicateRecordError(
                    self._name,
                    key.get("field", "unknown"),
                    key.get("value", "unknown"),
                    cause=error,
                ) from error
            self._logger.error(f"Constraint violated in {operation}: {error}")
            raise ConstraintViolationError(self._name, operation, str(error), cause=error) from error

        self._logger.error(f"Database error in {operation}: {error}", exc_info=True)
        if isinstance(error, OperationalError):
            raise StoreUnavailableError(self._name, operation, str(error), cause=error) from error
        raise QueryError(self._name, operation, str(error), cause=error) from error

    # =========================================================
    # HELPERS
    # =========================================================

    async def _add(self, row: RowT, key: Optional[Dict[str, str]] = None) -> RowT:
        """Add and flush so constraint violations surface here."""
        try:
            self._session.add(row)
            await self._session.flush()
        except SQLAlchemyError as e:
            await self._session.rollback()
            self._raise_store_error(e, "add", key)
        return row

    async def _get_by_id(self, record_id: Any) -> Optional[RowT]:
        try:
            return await self._session.get(self._row_class, record_id)
        except SQLAlchemyError as e:
            self._raise_store_error(e, "get", {"field": "id", "value": str(record_id)})

    async def _get_by_id_or_raise(self, record_id: Any, id_field: str = "id") -> RowT:
        row = await self._get_by_id(record_id)
        if row is None:
            raise RecordNotFoundError(self._name, record_id, id_field)
        return row

    async def _update(self, record_id: Any, changes: Dict[str, Any], id_field: str = "id") -> RowT:
        """Set attributes on an existing row. Raises RecordNotFoundError."""
        row = await self._get_by_id_or_raise(record_id, id_field)
        for column, value in changes.items():
            setattr(row, column, value)
        return row

    async def _scalars(self, stmt: Any) -> List[RowT]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._raise_store_error(e, "select")
        return list(result.scalars().all())

    async def _first(self, stmt: Any) -> Optional[RowT]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._raise_store_error(e, "select_first")
        return result.scalars().first()

    async def _execute(self, stmt: Any, operation: str) -> int:
        """Run a DML statement. Returns the affected row count."""
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._raise_store_error(e, operation)
        return result.rowcount or 0

    async def commit(self) -> None:
        """
        Commit the session's transaction.

        Raises:
            DuplicateRecordError: A unique key fired at commit
            QueryError: Commit failed for another reason
        """
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            self._raise_store_error(e, "commit")
