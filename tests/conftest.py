"""Shared test fixtures.

The PostgreSQL server is replaced by an in-memory stand-in for an asyncpg
pool. Every statement is recorded together with the schema its connection
had selected and the session that issued it, which is what the routing tests
assert on.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

import asyncpg
import pytest

from payroll.context import SessionContext
from payroll.database import DatabasePool
from payroll.repository.registry import SchemaRegistry
from payroll.routing import ContextRouter
from payroll.settings.database import DatabaseConfig
from payroll.settings.payroll import PayrollConfig

MASTER_SCHEMA = "hicaddata"
REGISTRY_TABLE = "py_payrollclass_schema"

REGISTRY_ROWS = [
    {"id": "MASTER", "schema_name": MASTER_SCHEMA, "display_name": "Military", "is_active": True},
    {"id": "DIV_A", "schema_name": "div_a", "display_name": "Civilian", "is_active": True},
    {"id": "DIV_B", "schema_name": "div_b", "display_name": "Pension", "is_active": True},
    {"id": "DIV_C", "schema_name": "div_c", "display_name": "NYSC", "is_active": True},
    {"id": "DIV_D", "schema_name": "div_d", "display_name": "Running Cost", "is_active": True},
    {"id": "OFFICERS", "schema_name": MASTER_SCHEMA, "display_name": "Officers", "is_active": True},
    {"id": "JUNIOR", "schema_name": "div_junior", "display_name": "Junior Trainee", "is_active": False},
]

SEARCH_PATH = re.compile(r'^SET search_path TO "((?:[^"]|"")+)"')


@dataclass
class Statement:
    connection_id: int
    schema: Optional[str]
    session_id: Optional[str]
    sql: str
    args: tuple


class FakeServer:
    """Holds what the fake connections read and records what they run."""

    def __init__(self, registry_rows=None, latency: float = 0.0):
        self.registry_rows = list(REGISTRY_ROWS if registry_rows is None else registry_rows)
        self.latency = latency
        self.reachable = True
        self.statements: list[Statement] = []
        self._failures: list[tuple[Callable[[str, Optional[str]], bool], BaseException, bool]] = []

    def fail_once(
        self,
        exc: BaseException,
        sql_contains: str = "",
        schema: Optional[str] = None,
        close: bool = False,
    ):
        """Make the next matching statement raise ``exc``.

        With ``close`` the connection is closed before the error surfaces.
        """

        def matches(sql: str, current_schema: Optional[str]) -> bool:
            if sql_contains and sql_contains not in sql:
                return False
            return schema is None or schema == current_schema

        self._failures.append((matches, exc, close))

    def take_failure(self, sql: str, schema: Optional[str]):
        for index, (matches, exc, close) in enumerate(self._failures):
            if matches(sql, schema):
                del self._failures[index]
                return exc, close
        return None

    @property
    def selections(self) -> list[Statement]:
        return [s for s in self.statements if s.sql.startswith("SET search_path")]

    @property
    def queries(self) -> list[Statement]:
        return [s for s in self.statements if not s.sql.startswith("SET search_path")]

    def rows(self, schema: Optional[str], sql: str) -> list[dict[str, Any]]:
        if REGISTRY_TABLE in sql:
            if schema != MASTER_SCHEMA:
                raise asyncpg.exceptions.UndefinedTableError(
                    f'relation "{REGISTRY_TABLE}" does not exist'
                )
            return [dict(row) for row in self.registry_rows]
        if sql.strip().upper().startswith("SELECT 1"):
            return [{"?column?": 1}]
        return [{"schema": schema}]


class FakeTransaction:
    def __init__(self, connection: "FakeConnection"):
        self.connection = connection

    async def __aenter__(self):
        await self.connection.execute("BEGIN;")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.connection.execute("ROLLBACK;" if exc_type else "COMMIT;")
        return False


class FakeConnection:
    def __init__(self, server: FakeServer, connection_id: int):
        self.server = server
        self.connection_id = connection_id
        self.search_path: Optional[str] = None
        self.closed = False

    def is_closed(self) -> bool:
        return self.closed

    def terminate(self) -> None:
        self.closed = True

    async def _run(self, sql: str, args: tuple) -> None:
        if self.closed or not self.server.reachable:
            raise asyncpg.exceptions.ConnectionDoesNotExistError(
                "connection was closed in the middle of operation"
            )
        await asyncio.sleep(self.server.latency)
        failure = self.server.take_failure(sql, self.search_path)
        if failure is not None:
            exc, close = failure
            self.closed = self.closed or close
            raise exc
        match = SEARCH_PATH.match(sql)
        if match:
            self.search_path = match.group(1).replace('""', '"')
        self.server.statements.append(
            Statement(
                connection_id=self.connection_id,
                schema=self.search_path,
                session_id=SessionContext.current(),
                sql=sql,
                args=args,
            )
        )

    async def execute(self, sql: str, *args, timeout=None) -> str:
        await self._run(sql, args)
        return sql.split(" ", 1)[0].strip(";").upper()

    async def fetch(self, sql: str, *args, timeout=None) -> list[dict]:
        await self._run(sql, args)
        return self.server.rows(self.search_path, sql)

    async def fetchrow(self, sql: str, *args, timeout=None) -> Optional[dict]:
        rows = await self.fetch(sql, *args, timeout=timeout)
        return rows[0] if rows else None

    async def fetchval(self, sql: str, *args, column: int = 0, timeout=None):
        row = await self.fetchrow(sql, *args, timeout=timeout)
        return list(row.values())[column] if row else None

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)


class FakePool:
    """Bounded pool handing out FakeConnections, most recently released first."""

    def __init__(self, server: FakeServer, max_size: int = 10):
        self.server = server
        self.max_size = max_size
        self._slots = asyncio.Semaphore(max_size)
        self._idle: list[FakeConnection] = []
        self.in_use: set[FakeConnection] = set()
        self.discarded: list[FakeConnection] = []
        self._next_id = 1

    async def acquire(self, timeout=None) -> FakeConnection:
        await asyncio.wait_for(self._slots.acquire(), timeout)
        if self._idle:
            connection = self._idle.pop()
        else:
            connection = FakeConnection(self.server, self._next_id)
            self._next_id += 1
        self.in_use.add(connection)
        return connection

    async def release(self, connection: FakeConnection) -> None:
        self.in_use.discard(connection)
        if connection.is_closed():
            self.discarded.append(connection)
        else:
            self._idle.append(connection)
        self._slots.release()

    async def close(self) -> None:
        self._idle.clear()

    def get_size(self) -> int:
        return len(self._idle) + len(self.in_use)

    def get_idle_size(self) -> int:
        return len(self._idle)

    def get_min_size(self) -> int:
        return 1

    def get_max_size(self) -> int:
        return self.max_size


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def fake_pool(server) -> FakePool:
    return FakePool(server, max_size=10)


@pytest.fixture
def db_pool(fake_pool) -> DatabasePool:
    pool = DatabasePool(DatabaseConfig(POOL_TIMEOUT=0.2))
    pool.attach(fake_pool)
    return pool


@pytest.fixture
def payroll_config() -> PayrollConfig:
    return PayrollConfig(
        MASTER_CLASS="MASTER",
        MASTER_SCHEMA=MASTER_SCHEMA,
        REGISTRY_TABLE=REGISTRY_TABLE,
        CLASSES={"SEEDED": "seeded_schema"},
        MASTER_TABLES=["hr_employees", "py_bank"],
    )


@pytest.fixture
async def registry(db_pool, payroll_config) -> SchemaRegistry:
    registry = SchemaRegistry(db_pool, payroll_config)
    await registry.load()
    return registry


@pytest.fixture
def router(db_pool, registry, payroll_config, server) -> ContextRouter:
    router = ContextRouter(db_pool, registry, payroll_config)
    # Registry loading is not what the routing tests look at.
    server.statements.clear()
    return router
