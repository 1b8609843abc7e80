import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any

import asyncpg

from residency.errors import UpstreamError

logger = logging.getLogger(__name__)

# Context variable to store the current database connection (only one per context)
_current_connection: ContextVar[asyncpg.Connection | None] = ContextVar(
    "current_connection", default=None
)
_db_pools: dict[str, asyncpg.Pool] = {}

# Failures that mean "the database could not be reached", not "the query was wrong"
CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.CannotConnectNowError,
    OSError,
    TimeoutError,
)


class DatabaseManager:
    """Manages database pools and connections"""

    @classmethod
    async def add_pool(cls, name: str, pool: asyncpg.Pool):
        """Add a database pool with a name"""
        _db_pools[name] = pool

    @classmethod
    async def connect(
        cls,
        dsn: str,
        name: str = "default",
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float | None = None,
    ) -> asyncpg.Pool:
        """Create an asyncpg pool for `dsn` and register it under `name`"""
        try:
            pool = await asyncpg.create_pool(
                dsn,
                min_size=min_size,
                max_size=max_size,
                command_timeout=command_timeout,
            )
        except CONNECTION_ERRORS as exc:
            raise UpstreamError(f"could not connect to database: {exc}") from exc
        await cls.add_pool(name, pool)
        logger.info("database pool %r ready (min=%d, max=%d)", name, min_size, max_size)
        return pool

    @classmethod
    async def close(cls, name: str = "default"):
        """Close and forget a registered pool"""
        pool = _db_pools.pop(name, None)
        if pool is not None:
            await pool.close()
            logger.info("database pool %r closed", name)

    @classmethod
    async def get_pool(cls, name: str = "default") -> asyncpg.Pool:
        """Get a database pool by name"""
        if name not in _db_pools:
            raise ValueError(f"Database pool '{name}' not found")
        return _db_pools[name]

    @classmethod
    def get_current_connection(cls) -> asyncpg.Connection | None:
        """Get the current active connection from context"""
        return _current_connection.get()

    @classmethod
    def log_query(cls, query: str, params: list[Any]):
        logger.debug("sql: %s params=%r", query, params)

    @classmethod
    @asynccontextmanager
    async def transaction(cls, db_name: str = "default"):
        """Context manager for database transactions.

        Behavior:
        - If called within an existing transaction/connection, it opens a nested
          transaction (savepoint) on the same connection.
        - Otherwise it acquires a connection from the pool and starts a transaction.
          The connection is always released back to the pool on exit.
        - Failing to obtain a connection raises UpstreamError.

        Args:
            db_name: Name of the database pool to use
        """
        current_conn = _current_connection.get()

        # If a connection already exists, use nested transaction
        if current_conn:
            async with current_conn.transaction():
                yield current_conn
            return

        pool = await cls.get_pool(db_name)
        try:
            conn = await pool.acquire()
        except CONNECTION_ERRORS as exc:
            raise UpstreamError(f"could not acquire connection: {exc}") from exc

        try:
            async with conn.transaction():
                conn_token = _current_connection.set(conn)
                try:
                    yield conn
                finally:
                    _current_connection.reset(conn_token)
        finally:
            await pool.release(conn)


def transactional(db_name: str = "default"):
    """Decorator to run a coroutine function within a database transaction.

    Example:
        @transactional("default")
        async def rename_building(building_id, name):
            return await building_repo.update(building_id, BuildingUpdate(name=name))
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            async with DatabaseManager.transaction(db_name):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
