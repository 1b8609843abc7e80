from collections.abc import Awaitable, Callable
from typing import Any

import asyncpg

from residency.db_context import CONNECTION_ERRORS, DatabaseManager
from residency.errors import UpstreamError

# Transient server-side outcomes a caller may safely retry
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = CONNECTION_ERRORS + (
    asyncpg.SerializationError,
    asyncpg.DeadlockDetectedError,
    asyncpg.QueryCanceledError,
)


class DatabaseOperations:
    """Composition class for database operations.

    Every statement runs on the connection bound by
    `DatabaseManager.transaction()`; driver failures that are not the
    query's fault surface as `UpstreamError`.
    """

    @staticmethod
    def get_connection() -> asyncpg.Connection:
        """Get the current database connection from context"""
        conn = DatabaseManager.get_current_connection()
        if not conn:
            raise ValueError(
                "No active transaction found. Repository methods must be called within a transaction context."
            )
        return conn

    @staticmethod
    async def _run(call: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await call()
        except RETRYABLE_ERRORS as exc:
            raise UpstreamError(f"database unavailable: {exc}") from exc

    async def fetch_all(self, query: str, params: list[Any]) -> list[Any]:
        """Execute query and fetch all rows"""
        conn = self.get_connection()
        DatabaseManager.log_query(query, params)
        return await self._run(lambda: conn.fetch(query, *params))

    async def fetch_one(self, query: str, params: list[Any]) -> Any:
        """Execute a query and fetch one row"""
        conn = self.get_connection()
        DatabaseManager.log_query(query, params)
        return await self._run(lambda: conn.fetchrow(query, *params))

    async def fetch_value(self, query: str, params: list[Any]) -> Any:
        """Execute query and fetch single value"""
        conn = self.get_connection()
        DatabaseManager.log_query(query, params)
        return await self._run(lambda: conn.fetchval(query, *params))

    async def execute_query(self, query: str, params: list[Any]) -> str:
        """Execute query and return the status string, e.g. 'UPDATE 1'"""
        conn = self.get_connection()
        DatabaseManager.log_query(query, params)
        return await self._run(lambda: conn.execute(query, *params))
