"""Catalog store - one async connection with explicit transaction control.

The migration needs to decide exactly where transactions begin and end (a
block of records is committed as a unit), so it talks to the database through
a single ``AsyncConnection`` instead of ORM sessions.
"""
import logging
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.engine import CursorResult, Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql import Executable

from s3migrate.errors import CatalogWriteError, ConnectivityError

logger = logging.getLogger(__name__)

MIGRATION_INDEXES = (
    "CREATE INDEX IF NOT EXISTS oc_filecache_fileid_idx ON oc_filecache (fileid)",
    "CREATE INDEX IF NOT EXISTS oc_filecache_storage_idx ON oc_filecache (storage)",
    "CREATE INDEX IF NOT EXISTS oc_filecache_path_idx ON oc_filecache (path)",
)


class CatalogStore:
    """Transactional execute/fetch over the catalog database."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._conn: Optional[AsyncConnection] = None

    async def __aenter__(self) -> "CatalogStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction()

    def _connection(self) -> AsyncConnection:
        if self._conn is None:
            raise ConnectivityError("Catalog store is not connected")
        return self._conn

    async def connect(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await self._engine.connect()
        except (SQLAlchemyError, OSError) as e:
            raise ConnectivityError(f"Database connection failed: {e}") from e
        logger.info("Catalog connection established")

    async def close(self) -> None:
        """Close the connection. An open transaction is rolled back."""
        if self._conn is None:
            return
        try:
            if self._conn.in_transaction():
                await self.rollback()
        finally:
            await self._conn.close()
            self._conn = None
            logger.debug("Catalog connection closed")

    # ── Transactions ─────────────────────────────────────────────

    async def begin(self) -> None:
        conn = self._connection()
        if not conn.in_transaction():
            await conn.begin()
            logger.debug("Transaction started")

    async def commit(self) -> None:
        conn = self._connection()
        if conn.in_transaction():
            try:
                await conn.commit()
            except SQLAlchemyError as e:
                raise CatalogWriteError(f"Commit failed: {e}") from e
            logger.debug("Transaction committed")

    async def rollback(self) -> None:
        if self._conn is None:
            return
        if self._conn.in_transaction():
            await self._conn.rollback()
            logger.debug("Transaction rolled back")

    # ── Statements ───────────────────────────────────────────────

    async def execute(self, statement: Executable | str, params: Optional[dict] = None) -> CursorResult:
        """Run one parameterized statement. Plain strings are wrapped in ``text()``."""
        if isinstance(statement, str):
            statement = text(statement)
        try:
            result = await self._connection().execute(statement, params or {})
        except IntegrityError as e:
            logger.warning(f"Constraint violation: {e.orig}")
            raise CatalogWriteError(f"Constraint violation: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Query execution failed: {e}")
            raise CatalogWriteError(f"Query execution failed: {e}") from e
        return result

    async def fetch_all(self, statement: Executable | str, params: Optional[dict] = None) -> list[Row]:
        result = await self.execute(statement, params)
        return list(result.all())

    async def fetch_scalar(self, statement: Executable | str, params: Optional[dict] = None) -> Any:
        result = await self.execute(statement, params)
        return result.scalar()

    async def ping(self) -> None:
        """Raise ConnectivityError unless a trivial query succeeds."""
        try:
            await self.connect()
            await self._connection().execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise ConnectivityError(f"Database query failed: {e}") from e

    async def create_migration_indexes(self) -> None:
        """Create the indexes the batch queries rely on. Failures only warn."""
        conn = self._connection()
        for sql in MIGRATION_INDEXES:
            try:
                await self.begin()
                await conn.execute(text(sql))
                await self.commit()
                logger.debug(f"Executed: {sql}")
            except (SQLAlchemyError, CatalogWriteError) as e:
                await self.rollback()
                logger.warning(f"Failed to create index: {e}")
