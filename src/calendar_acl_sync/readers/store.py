"""Relational store client used by the roster readers."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..utils.exceptions import StoreError

logger = logging.getLogger(__name__)


class StoreClient(ABC):
    """Minimal query interface over the roster database."""

    @abstractmethod
    async def query(
        self, sql: str, params: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        """
        Run a read-only statement.

        Args:
            sql: SQL text using ``:name`` bind parameters
            params: Values for the bind parameters

        Returns:
            Rows as dictionaries keyed by column label

        Raises:
            StoreError: If the query fails
        """


class SqlAlchemyStoreClient(StoreClient):
    """Store client backed by an async SQLAlchemy engine."""

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: int = 5,
        engine: Optional[AsyncEngine] = None,
    ):
        """
        Initialize the store client.

        Args:
            database_url: SQLAlchemy URL, e.g. ``mysql+aiomysql://user:pw@host/db``
            pool_size: Connection pool size
            engine: Pre-built engine (takes precedence over database_url)
        """
        if engine is None:
            if not database_url:
                raise StoreError("database_url is required when no engine is given")
            engine = create_async_engine(
                database_url,
                pool_size=pool_size,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
        self.engine = engine

    async def query(
        self, sql: str, params: Optional[dict[str, Any]] = None
    ) -> list[dict[str, Any]]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(sql), params or {})
                return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as e:
            logger.error(f"Store query failed: {e}")
            raise StoreError(f"Store query failed: {e}") from e

    async def dispose(self) -> None:
        """Release pooled connections."""
        await self.engine.dispose()
