"""
Storage backend for session rows.

``Database`` is the contract the session store persists through. Every
operation is a single statement, atomic on its own; nothing here spans a
larger transaction. ``SQLAlchemyDatabase`` implements it for any engine
SQLAlchemy can talk to.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from sqlalchemy import delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from sessionstore.db.init_db import init_database
from sessionstore.db.models import SessionRow

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps read back from engines without time zones"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Database(Protocol):
    """Persistence contract for session rows"""

    async def load(self, id: str) -> tuple[Optional[datetime], Optional[bytes]]:
        """
        Load a session row.

        Returns:
            (updated_at, data) for an existing row, (None, None) when there
            is no row with this id
        """
        ...

    async def insert(self, id: str, data: bytes) -> None:
        """Create a row. Fails if the id already exists."""
        ...

    async def update(self, id: str, data: bytes) -> None:
        """Overwrite data and refresh updated_at. A missing row is not an error."""
        ...

    async def delete(self, id: str) -> None:
        """Remove a row if present."""
        ...


class SQLAlchemyDatabase:
    """
    Session rows in a SQL database through a SQLAlchemy engine.

    Statements run on the engine's connection pool in a worker thread, so
    awaiting callers can be cancelled or timed out without blocking the
    event loop. A cancelled call may still complete in its thread.
    """

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utc_now):
        """
        Args:
            engine: Engine shared by all requests
            clock: Source of created_at / updated_at timestamps
        """
        self.engine = engine
        self.clock = clock

    def create_schema(self) -> None:
        """Create the sessions table if it does not exist yet"""
        init_database(self.engine, tables=[SessionRow.__table__])

    async def load(self, id: str) -> tuple[Optional[datetime], Optional[bytes]]:
        return await run_in_threadpool(self._load, id)

    async def insert(self, id: str, data: bytes) -> None:
        await run_in_threadpool(self._insert, id, data)

    async def update(self, id: str, data: bytes) -> None:
        await run_in_threadpool(self._update, id, data)

    async def delete(self, id: str) -> None:
        await run_in_threadpool(self._delete, id)

    def _load(self, id: str) -> tuple[Optional[datetime], Optional[bytes]]:
        query = (
            select(SessionRow.data, SessionRow.updated_at)
            .where(SessionRow.id == id)
            .limit(1)
        )
        try:
            with self.engine.connect() as conn:
                row = conn.execute(query).first()
        except SQLAlchemyError as e:
            logger.error("Failed to load session row", extra={"error_type": type(e).__name__})
            raise

        if row is None:
            return None, None
        return as_utc(row.updated_at), bytes(row.data)

    def _insert(self, id: str, data: bytes) -> None:
        now = self.clock()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    insert(SessionRow).values(id=id, data=data, created_at=now, updated_at=now)
                )
        except SQLAlchemyError as e:
            logger.error("Failed to insert session row", extra={"error_type": type(e).__name__})
            raise
        logger.debug("Inserted session row (%d bytes)", len(data))

    def _update(self, id: str, data: bytes) -> None:
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    update(SessionRow)
                    .where(SessionRow.id == id)
                    .values(data=data, updated_at=self.clock())
                )
        except SQLAlchemyError as e:
            logger.error("Failed to update session row", extra={"error_type": type(e).__name__})
            raise

        if result.rowcount == 0:
            # Row was deleted or expired since it was loaded; nothing is written
            logger.warning("Session update matched no rows")
        else:
            logger.debug("Updated session row (%d bytes)", len(data))

    def _delete(self, id: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(SessionRow).where(SessionRow.id == id))
        except SQLAlchemyError as e:
            logger.error("Failed to delete session row", extra={"error_type": type(e).__name__})
            raise
        logger.debug("Deleted session row")
