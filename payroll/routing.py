"""
Payroll class aware database routing.

Every database call made while serving a request goes through the
``ContextRouter``. The router finds the schema of the request's payroll class
through the session bound in :class:`payroll.context.SessionContext`, leases a
connection from the shared pool and selects that schema on the lease before
running anything. A pooled connection's previous ``search_path`` is never
trusted.
"""

import re
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Iterable,
    Optional,
    Sequence,
    TypeVar,
)

import asyncpg
import structlog

from payroll.context import SessionContext
from payroll.database import DatabasePool, is_connection_lost
from payroll.exceptions.database import ConnectionLost, QueryError
from payroll.repository.registry import SchemaRegistry
from payroll.repository.utils import quote_ident, search_path_statement
from payroll.settings.payroll import PayrollConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Session key used for calls made outside any request scope.
PROCESS_SESSION = "default"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class PendingSwitch:
    """Schema that was current before a temporary payroll class switch."""

    session_id: str
    previous_schema: str
    target_schema: str


_pending_switches: ContextVar[tuple[PendingSwitch, ...]] = ContextVar(
    "payroll_pending_switches", default=()
)


class ContextRouter:
    """Routes database operations to the schema of the current payroll class.

    State is a table of session id to schema plus one process wide
    ``default_tenant``. The default is only written on startup and
    administrative paths and is not isolated between concurrent writers.

    Attributes:
        db_pool: Shared pool of physical connections
        registry: Payroll class to schema mapping
        config: Payroll routing configuration
    """

    def __init__(
        self,
        db_pool: DatabasePool,
        registry: SchemaRegistry,
        config: PayrollConfig,
    ) -> None:
        self.db_pool = db_pool
        self.registry = registry
        self.config = config
        self.default_tenant: str = registry.default_schema
        self._sessions: dict[str, str] = {}
        self._master_tables = {table.lower() for table in config.MASTER_TABLES}
        logger.debug(
            "ContextRouter initialized",
            default_tenant=self.default_tenant,
            master_schema=registry.master_schema,
        )

    def use_database(
        self, tenant_id_or_schema: str, session_id: Optional[str] = None
    ) -> str:
        """Bind a payroll class to a session.

        Args:
            tenant_id_or_schema: Payroll class id or raw schema name
            session_id: Session to bind; defaults to the active session

        Returns:
            str: The schema now bound to the session
        """
        schema = self.registry.resolve(tenant_id_or_schema)
        active = SessionContext.current()
        key = session_id or active or PROCESS_SESSION
        self._sessions[key] = schema
        if session_id is None and active is None:
            # Outside a request there is no isolation to preserve.
            self.default_tenant = schema
        logger.info(
            "Database context set",
            payroll_class=tenant_id_or_schema,
            schema=schema,
            session_id=key,
        )
        return schema

    def current_database(self) -> str:
        """Return the schema of the current session, else the process default.

        Never raises: maintenance jobs legitimately run outside any request.
        """
        session_id = SessionContext.current()
        if session_id is None:
            logger.warning(
                "No session context active, using process default database",
                schema=self.default_tenant,
            )
            return self.default_tenant
        return self._sessions.get(session_id, self.default_tenant)

    def current_tenant(self) -> str:
        """Payroll class id of :meth:`current_database` (or the raw schema)."""
        return self.registry.reverse_resolve(self.current_database())

    def clear_session(self, session_id: Optional[str] = None) -> bool:
        """Forget the binding of a session. Returns whether one existed."""
        key = session_id or SessionContext.current() or PROCESS_SESSION
        cleared = self._sessions.pop(key, None) is not None
        if cleared:
            logger.debug("Session cleared", session_id=key)
        return cleared

    def active_sessions(self) -> list[str]:
        return list(self._sessions)

    def session_mappings(self) -> dict[str, str]:
        return dict(self._sessions)

    def cleanup_inactive_sessions(self, active_session_ids: Iterable[str]) -> int:
        """Drop bindings of sessions that are no longer active."""
        keep = set(active_session_ids)
        stale = [sid for sid in self._sessions if sid not in keep]
        for session_id in stale:
            del self._sessions[session_id]
        if stale:
            logger.info("Cleaned up inactive sessions", count=len(stale))
        return len(stale)

    async def _select_schema(self, connection: asyncpg.Connection, schema: str) -> None:
        await self.db_pool.execute(
            connection, search_path_statement(schema, self.registry.master_schema)
        )

    async def get_connection(self) -> asyncpg.Connection:
        """Lease a connection pointed at the current schema.

        The caller owns the connection and must hand it back with
        :meth:`release` (or :meth:`discard` if it broke).
        """
        schema = self.current_database()
        connection = await self.db_pool.acquire_connection()
        try:
            await self._select_schema(connection, schema)
        except ConnectionLost:
            await self.db_pool.discard(connection)
            raise
        except BaseException:
            await self.db_pool.release(connection)
            raise
        logger.debug("Connection leased", schema=schema)
        return connection

    async def release(self, connection: asyncpg.Connection) -> None:
        await self.db_pool.release(connection)

    async def discard(self, connection: asyncpg.Connection) -> None:
        await self.db_pool.discard(connection)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Lease a schema-bound connection for the duration of the block."""
        connection = await self.get_connection()
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

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Run the block in one transaction on a schema-bound connection.

        Commits when the block exits normally, rolls back when it raises.
        """
        async with self.connection() as connection:
            async with connection.transaction():
                logger.debug("Transaction started", schema=self.current_database())
                try:
                    yield connection
                except Exception as e:
                    logger.error("Transaction failed, rolling back", error=str(e))
                    raise

    async def _run(self, method: str, sql: str, *args, **kwargs):
        schema = self.current_database()
        connection = await self.db_pool.acquire_connection()
        broken = False
        try:
            await self._select_schema(connection, schema)
            return await getattr(self.db_pool, method)(connection, sql, *args, **kwargs)
        except (ConnectionLost, QueryError) as e:
            broken = isinstance(e, ConnectionLost)
            e.schema = e.value = e.schema or schema
            logger.error(
                "Query failed",
                schema=schema,
                session_id=SessionContext.current() or PROCESS_SESSION,
                connection_lost=broken,
                error=e.message,
            )
            raise
        finally:
            # Runs on cancellation too.
            if broken:
                await self.db_pool.discard(connection)
            else:
                await self.db_pool.release(connection)

    async def query(self, sql: str, *args, timeout: Optional[float] = None) -> list:
        """Run ``sql`` against the current schema and return all rows."""
        return await self._run("fetch", sql, *args, timeout=timeout)

    async def execute(self, sql: str, *args, timeout: Optional[float] = None) -> str:
        """Run a command (INSERT, UPDATE, ...) against the current schema."""
        return await self._run("execute", sql, *args, timeout=timeout)

    async def fetchrow(self, sql: str, *args, timeout: Optional[float] = None):
        return await self._run("fetchrow", sql, *args, timeout=timeout)

    async def fetchval(
        self, sql: str, *args, column: int = 0, timeout: Optional[float] = None
    ):
        return await self._run("fetchval", sql, *args, column=column, timeout=timeout)

    async def batch_query(
        self, statements: Iterable[tuple[str, Sequence[Any]]]
    ) -> list[list]:
        """Run several queries in order, each on its own schema-bound lease."""
        results = []
        for sql, params in statements:
            results.append(await self.query(sql, *params))
        return results

    @asynccontextmanager
    async def switch_tenant(self, tenant_id_or_schema: str) -> AsyncIterator[str]:
        """Switch payroll class for the block and restore the previous one.

        The previous schema is restored when the block raises or is cancelled.
        The binding belongs to the session, not to the task: tasks spawned
        inside one session share it, so switches within a session must be
        sequential. Run concurrent work on different classes under separate
        sessions (see ``SessionContext.run``).
        """
        session_id = SessionContext.current() or PROCESS_SESSION
        previous = self.current_database()
        target = self.use_database(tenant_id_or_schema)
        switch = PendingSwitch(
            session_id=session_id, previous_schema=previous, target_schema=target
        )
        token = _pending_switches.set(_pending_switches.get() + (switch,))
        try:
            yield target
        finally:
            _pending_switches.reset(token)
            self.use_database(previous)
            logger.debug(
                "Database context restored",
                schema=previous,
                switched_from=target,
                session_id=session_id,
            )

    async def with_tenant(
        self,
        tenant_id_or_schema: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``fn`` with another payroll class current, then restore.

        Calls within one session must not overlap: two concurrent
        ``with_tenant`` calls in the same session overwrite each other's
        binding, and whichever restores last wins.
        """
        async with self.switch_tenant(tenant_id_or_schema):
            return await fn(*args, **kwargs)

    @staticmethod
    def pending_switches() -> tuple[PendingSwitch, ...]:
        """Switches currently open in this call tree, outermost first."""
        return _pending_switches.get()

    def is_master_table(self, table: str) -> bool:
        return table.lower() in self._master_tables

    def qualify(self, table: str) -> str:
        """Prefix master-only tables with the master schema."""
        if self.is_master_table(table) and _IDENTIFIER.match(table):
            return f"{quote_ident(self.registry.master_schema)}.{table}"
        return table

    async def get_stats(self) -> dict[str, Any]:
        return {
            "current_session": SessionContext.current(),
            "current_database": self.current_database(),
            "default_database": self.default_tenant,
            "master_database": self.registry.master_schema,
            "active_sessions": len(self._sessions),
            "master_tables": len(self._master_tables),
            "pool": await self.db_pool.get_pool_stats(),
        }

    async def health_check(self) -> dict[str, Any]:
        """Probe the server through the router and report its state."""
        try:
            await self.fetchval("SELECT 1")
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc),
            }
        stats = await self.get_stats()
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc),
            "current_session": stats["current_session"],
            "current_database": stats["current_database"],
            "active_sessions": stats["active_sessions"],
            "pool": stats["pool"],
        }

    async def close(self) -> None:
        self._sessions.clear()
        logger.info("Database router closed")


# Global router instance
_router: Optional[ContextRouter] = None


def get_context_router() -> ContextRouter:
    """
    Get the global context router.

    Raises:
        RuntimeError: If the router has not been initialized
    """
    if _router is None:
        raise RuntimeError(
            "Context router not initialized. Call init_context_router() first."
        )
    return _router


def init_context_router(
    db_pool: DatabasePool, registry: SchemaRegistry, config: PayrollConfig
) -> ContextRouter:
    """Create the global context router."""
    global _router
    if _router is None:
        _router = ContextRouter(db_pool, registry, config)
        logger.info("Context router instance created")
    return _router


async def close_context_router() -> None:
    """Close and forget the global context router."""
    global _router
    if _router is not None:
        await _router.close()
        _router = None
