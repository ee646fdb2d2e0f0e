"""
Database connection pool manager using asyncpg.

This module owns the physical connections to the PostgreSQL server. It knows
nothing about payroll classes: every statement runs on whatever schema the
caller selected on the connection it leased.
"""

import asyncio
from contextlib import asynccontextmanager
from json import dumps, loads
from typing import Any, AsyncIterator, Optional

import asyncpg
import structlog

from payroll.exceptions.database import ConnectionLost, PoolExhausted, QueryError
from payroll.settings.database import DatabaseConfig

logger = structlog.get_logger(__name__)

# Failures that leave the connection itself unusable. Any other InterfaceError
# only counts when the connection is closed afterwards, see is_connection_lost().
CONNECTION_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.exceptions.ConnectionDoesNotExistError,
    ConnectionError,
    OSError,
)


def is_connection_lost(error: BaseException, connection=None) -> bool:
    """Tell whether ``error`` broke ``connection`` rather than the statement."""
    if isinstance(error, asyncio.TimeoutError):
        return False
    if isinstance(error, CONNECTION_ERRORS):
        return True
    if isinstance(error, asyncpg.InterfaceError):
        return connection is not None and connection.is_closed()
    return False


class DatabasePool:
    """
    Manages asyncpg connection pool for PostgreSQL database.

    Connections are leased with :meth:`acquire_connection` and must be handed
    back with :meth:`release` or, when they failed mid-use, :meth:`discard`.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        """
        Initialize database pool manager.

        Args:
            config: Database configuration settings
        """
        self.config = config
        self._pool: Optional[asyncpg.Pool] = None
        self._is_initialized = False

    async def init_connection(self, connection: asyncpg.Connection):
        await connection.set_type_codec(
            "json",
            encoder=dumps,
            decoder=loads,
            schema="pg_catalog",
        )

    async def connect(self) -> None:
        """
        Create and initialize the connection pool.

        Raises:
            ConnectionLost: If the server cannot be reached
        """
        if self._is_initialized:
            logger.warning("Database pool already initialized")
            return

        try:
            logger.info(
                "Creating database connection pool",
                min_size=self.config.POOL_MIN_SIZE,
                max_size=self.config.POOL_MAX_SIZE,
            )

            self._pool = await asyncpg.create_pool(
                host=self.config.HOST,
                port=self.config.PORT,
                database=self.config.NAME,
                user=self.config.USER,
                password=self.config.PASSWORD,
                min_size=self.config.POOL_MIN_SIZE,
                max_size=self.config.POOL_MAX_SIZE,
                max_inactive_connection_lifetime=self.config.POOL_MAX_INACTIVE_CONNECTION_LIFETIME,
                timeout=self.config.POOL_TIMEOUT,
                command_timeout=self.config.COMMAND_TIMEOUT,
                init=self.init_connection,
            )

            self._is_initialized = True
            logger.info("Database connection pool created successfully")

        except CONNECTION_ERRORS as e:
            logger.error("Failed to create database connection pool", error=str(e))
            raise ConnectionLost(f"Cannot connect to database: {e}") from e

    def attach(self, pool: Any) -> None:
        """Adopt an already created pool (used by tooling and tests)."""
        self._pool = pool
        self._is_initialized = True

    async def disconnect(self) -> None:
        """
        Close the connection pool and cleanup resources.
        """
        if not self._is_initialized or self._pool is None:
            logger.warning("Database pool not initialized or already closed")
            return

        try:
            logger.info("Closing database connection pool")
            await asyncio.wait_for(self._pool.close(), timeout=10)
            self._pool = None
            self._is_initialized = False
            logger.info("Database connection pool closed successfully")

        except Exception as e:
            logger.error("Error closing database connection pool", error=str(e))
            raise

    def _require_pool(self):
        if not self._is_initialized or self._pool is None:
            raise RuntimeError(
                "Database pool is not initialized. Call connect() first."
            )
        return self._pool

    async def acquire_connection(self) -> asyncpg.Connection:
        """
        Lease one connection from the pool.

        Raises:
            RuntimeError: If pool is not initialized
            PoolExhausted: If no connection became free within POOL_TIMEOUT
            ConnectionLost: If a new connection could not be opened
        """
        pool = self._require_pool()
        timeout = self.config.POOL_TIMEOUT
        try:
            connection = await pool.acquire(timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("Timed out waiting for a pooled connection", timeout=timeout)
            raise PoolExhausted(timeout=timeout) from e
        except asyncpg.TooManyConnectionsError as e:
            logger.error("Too many connections in pool", error=str(e))
            raise PoolExhausted(message=str(e)) from e
        except CONNECTION_ERRORS as e:
            logger.error("Pool connection error", error=str(e))
            raise ConnectionLost(str(e)) from e
        logger.debug("Connection acquired from pool")
        return connection

    async def release(self, connection: asyncpg.Connection) -> None:
        """Return a healthy connection to the pool."""
        pool = self._require_pool()
        try:
            await pool.release(connection)
            logger.debug("Connection released back to pool")
        except Exception as e:
            logger.error("Error releasing connection", error=str(e))
            raise

    async def discard(self, connection: asyncpg.Connection) -> None:
        """Close a broken connection so it never serves another lease."""
        pool = self._require_pool()
        connection.terminate()
        # asyncpg drops closed connections on release and opens a fresh one
        # on the next acquire.
        await pool.release(connection)
        logger.warning("Broken connection discarded from pool")

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Acquire a connection from the pool.

        The connection is released on every exit path, or discarded if it
        broke while in use.

        Yields:
            asyncpg.Connection: Database connection
        """
        connection = await self.acquire_connection()
        broken = False
        try:
            yield connection
        except ConnectionLost:
            broken = True
            raise
        except Exception as e:
            broken = is_connection_lost(e, connection)
            raise
        finally:
            if broken:
                await self.discard(connection)
            else:
                await self.release(connection)

    async def _run(self, method: str, connection, query: str, *args, **kwargs):
        try:
            return await getattr(connection, method)(query, *args, **kwargs)
        except asyncio.TimeoutError as e:
            # Checked before CONNECTION_ERRORS: TimeoutError is an OSError.
            logger.error("Statement timed out")
            raise QueryError("Statement timed out") from e
        except CONNECTION_ERRORS as e:
            logger.error("Connection lost while running statement", error=str(e))
            raise ConnectionLost(str(e)) from e
        except asyncpg.InterfaceError as e:
            if is_connection_lost(e, connection):
                logger.error("Connection closed while running statement", error=str(e))
                raise ConnectionLost(str(e)) from e
            # Misuse such as a wrong argument count; the connection is fine.
            logger.error("Statement rejected by driver", error=str(e))
            raise QueryError(str(e)) from e
        except asyncpg.PostgresError as e:
            logger.error(
                "Statement failed",
                error=str(e),
                sqlstate=getattr(e, "sqlstate", None),
            )
            raise QueryError(str(e), sqlstate=getattr(e, "sqlstate", None)) from e

    async def execute(
        self,
        connection: asyncpg.Connection,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Execute a SQL command on ``connection``.

        Returns:
            Status of the command execution

        Raises:
            QueryError: If the server rejected the statement
            ConnectionLost: If the connection broke
        """
        return await self._run("execute", connection, query, *args, timeout=timeout)

    async def fetch(
        self,
        connection: asyncpg.Connection,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> list[asyncpg.Record]:
        """Fetch all rows matching the query on ``connection``."""
        return await self._run("fetch", connection, query, *args, timeout=timeout)

    async def fetchrow(
        self,
        connection: asyncpg.Connection,
        query: str,
        *args,
        timeout: Optional[float] = None,
    ) -> Optional[asyncpg.Record]:
        """Fetch a single row matching the query on ``connection``."""
        return await self._run("fetchrow", connection, query, *args, timeout=timeout)

    async def fetchval(
        self,
        connection: asyncpg.Connection,
        query: str,
        *args,
        column: int = 0,
        timeout: Optional[float] = None,
    ):
        """Fetch a single value from the query result on ``connection``."""
        return await self._run(
            "fetchval", connection, query, *args, column=column, timeout=timeout
        )

    @property
    def is_initialized(self) -> bool:
        """Check if the pool is initialized."""
        return self._is_initialized

    async def get_pool_stats(self) -> dict:
        """
        Get current pool statistics.

        Returns:
            Dictionary with pool statistics
        """
        if not self._is_initialized or self._pool is None:
            return {
                "initialized": False,
                "size": 0,
                "free": 0,
            }

        return {
            "initialized": True,
            "size": self._pool.get_size(),
            "free": self._pool.get_idle_size(),
            "min_size": self._pool.get_min_size(),
            "max_size": self._pool.get_max_size(),
        }


# Global database pool instance
_db_pool: Optional[DatabasePool] = None


def get_db_pool() -> DatabasePool:
    """
    Get the global database pool instance.

    Raises:
        RuntimeError: If pool has not been initialized
    """
    if _db_pool is None:
        raise RuntimeError("Database pool not initialized. Call init_db_pool() first.")
    return _db_pool


def init_db_pool(config: DatabaseConfig) -> DatabasePool:
    """
    Initialize the global database pool instance.

    Args:
        config: Database configuration

    Returns:
        DatabasePool instance, not yet connected
    """
    global _db_pool
    if _db_pool is None:
        _db_pool = DatabasePool(config)
        logger.info("Database pool instance created")
    return _db_pool


async def close_db_pool() -> None:
    """Close the global database pool instance."""
    global _db_pool
    if _db_pool is not None:
        await _db_pool.disconnect()
        _db_pool = None
        logger.info("Database pool instance closed and cleaned up")
