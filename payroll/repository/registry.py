from typing import Optional

import structlog
from pydantic import ValidationError

from payroll.database import DatabasePool
from payroll.exceptions.database import (
    ConnectionLost,
    PoolExhausted,
    QueryError,
    RegistryUnavailable,
    UnknownTenant,
)
from payroll.models.payroll_class import PayrollClass, Resolution
from payroll.repository.utils import quote_ident, search_path_statement
from payroll.settings.payroll import PayrollConfig

logger = structlog.get_logger(__name__)


class SchemaRegistry:
    """Maps payroll class ids to physical schema names and back.

    The mapping is read from the registry table in the master schema and
    merged over the static seed from configuration. Every reload replaces the
    whole mapping in one step; a failed reload keeps the previous mapping.

    Attributes:
        db_pool: Database connection pool for executing queries
        config: Payroll routing configuration
    """

    def __init__(self, db_pool: DatabasePool, config: PayrollConfig):
        """Initialize the SchemaRegistry with the configured seed mapping.

        Args:
            db_pool: DatabasePool instance for managing database connections
            config: PayrollConfig naming the master class and schema
        """
        self.db_pool = db_pool
        self.config = config
        self._tenants: dict[str, PayrollClass] = {}
        self._by_schema: dict[str, str] = {}
        self._loaded = False
        self._install(self._seed())
        logger.debug(
            "SchemaRegistry initialized",
            master_class=config.MASTER_CLASS,
            master_schema=config.MASTER_SCHEMA,
        )

    @property
    def master(self) -> PayrollClass:
        return self._tenants[self.config.MASTER_CLASS]

    @property
    def master_schema(self) -> str:
        return self.config.MASTER_SCHEMA

    @property
    def default_schema(self) -> str:
        return self.config.default_schema

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def _seed(self) -> list[PayrollClass]:
        return [
            PayrollClass(id=class_id, schema_name=schema, display_name=class_id)
            for class_id, schema in self.config.CLASSES.items()
        ]

    def _install(self, tenants: list[PayrollClass]) -> None:
        """Replace the whole mapping with ``tenants``.

        The master class is forced to the master schema and ordered first, so
        it owns that schema when other entries point at it too.
        """
        master_id = self.config.MASTER_CLASS
        master = next((t for t in tenants if t.id == master_id), None)
        if master is None:
            master = PayrollClass(
                id=master_id,
                schema_name=self.config.MASTER_SCHEMA,
                display_name=master_id,
            )
        elif master.schema_name != self.config.MASTER_SCHEMA:
            logger.warning(
                "Master class registered with a foreign schema, using master schema",
                master_class=master_id,
                registered_schema=master.schema_name,
                master_schema=self.config.MASTER_SCHEMA,
            )
            master = master.model_copy(update={"schema_name": self.config.MASTER_SCHEMA})

        tenants_by_id: dict[str, PayrollClass] = {master.id: master}
        by_schema: dict[str, str] = {master.schema_name: master.id}
        for tenant in tenants:
            if tenant.id == master_id:
                continue
            tenants_by_id[tenant.id] = tenant
            by_schema.setdefault(tenant.schema_name, tenant.id)

        self._tenants = tenants_by_id
        self._by_schema = by_schema

    async def load(self) -> int:
        """Read the registry table from the master schema.

        Returns:
            int: Number of payroll classes known after the reload

        Raises:
            RegistryUnavailable: If the master schema or table cannot be read
        """
        schema = self.config.MASTER_SCHEMA
        query = f"""
        SELECT id, schema_name, display_name, is_active
        FROM {quote_ident(self.config.REGISTRY_TABLE)}
        ORDER BY id;
        """
        logger.debug("Loading payroll class registry", master_schema=schema)

        try:
            async with self.db_pool.acquire() as connection:
                await self.db_pool.execute(connection, search_path_statement(schema))
                rows = await self.db_pool.fetch(connection, query)
        except (PoolExhausted, ConnectionLost, QueryError) as e:
            logger.error(
                "Payroll class registry unavailable",
                master_schema=schema,
                error=str(e),
            )
            raise RegistryUnavailable(master_schema=schema) from e

        loaded = []
        for row in rows:
            try:
                loaded.append(
                    PayrollClass(
                        id=str(row["id"]),
                        schema_name=row["schema_name"],
                        display_name=row["display_name"] or str(row["id"]),
                        is_active=row["is_active"],
                    )
                )
            except ValidationError as e:
                logger.warning(
                    "Skipping malformed payroll class row",
                    payroll_class=row["id"],
                    errors=[error["loc"] for error in e.errors()],
                )

        seeded = {t.id: t for t in self._seed()}
        seeded.update({t.id: t for t in loaded})
        self._install(list(seeded.values()))
        self._loaded = True
        logger.info(
            "Payroll class registry loaded",
            master_schema=schema,
            loaded=len(loaded),
            total=len(self._tenants),
        )
        return len(self._tenants)

    async def bootstrap(self) -> None:
        """Create the master schema and registry table if they are missing.

        Seeds the table with the master class and the configured classes.
        """
        schema = quote_ident(self.config.MASTER_SCHEMA)
        table = f"{schema}.{quote_ident(self.config.REGISTRY_TABLE)}"
        statements = [
            f"CREATE SCHEMA IF NOT EXISTS {schema};",
            f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                schema_name TEXT NOT NULL,
                display_name TEXT NOT NULL,
                is_active BOOLEAN NOT NULL DEFAULT TRUE
            );
            """,
        ]
        insert = f"""
        INSERT INTO {table} (id, schema_name, display_name, is_active)
        VALUES ($1, $2, $3, $4)
        ON CONFLICT (id) DO NOTHING;
        """
        async with self.db_pool.acquire() as connection:
            for statement in statements:
                await self.db_pool.execute(connection, statement)
            for tenant in self._tenants.values():
                await self.db_pool.execute(
                    connection,
                    insert,
                    tenant.id,
                    tenant.schema_name,
                    tenant.display_name,
                    tenant.is_active,
                )
        logger.info("Payroll class registry bootstrapped", master_schema=self.config.MASTER_SCHEMA)

    def _match(self, value: str) -> tuple[str, Optional[str]]:
        if not value:
            raise UnknownTenant(str(value))

        if value in self._by_schema:
            return value, self._by_schema[value]
        if value == self.default_schema:
            return value, None
        tenant = self._tenants.get(value)
        if tenant is not None:
            return tenant.schema_name, tenant.id

        lowered = value.lower()
        for schema, tenant_id in self._by_schema.items():
            if schema.lower() == lowered:
                return schema, tenant_id
        for tenant in self._tenants.values():
            if tenant.id.lower() == lowered:
                return tenant.schema_name, tenant.id

        raise UnknownTenant(value)

    def lookup(self, tenant_id_or_schema: str) -> Resolution:
        """Resolve a payroll class id or schema name.

        Unregistered input is not an error: many schemas predate the
        registry, so the default schema is substituted and a warning logged.
        """
        try:
            schema, tenant_id = self._match(tenant_id_or_schema)
        except UnknownTenant as e:
            logger.warning(
                "Unknown payroll class, falling back to default schema",
                requested=tenant_id_or_schema,
                default_schema=self.default_schema,
                error=e.message,
            )
            return Resolution(
                requested=str(tenant_id_or_schema),
                schema_name=self.default_schema,
                tenant_id=self._by_schema.get(self.default_schema),
                found=False,
            )
        return Resolution(
            requested=tenant_id_or_schema,
            schema_name=schema,
            tenant_id=tenant_id,
            found=True,
        )

    def resolve(self, tenant_id_or_schema: str) -> str:
        """Return the physical schema for a payroll class id or schema name."""
        return self.lookup(tenant_id_or_schema).schema_name

    def reverse_resolve(self, schema_name: str) -> str:
        """Return the payroll class owning ``schema_name``, or the name itself."""
        return self._by_schema.get(schema_name, schema_name)

    def get_tenant(self, tenant_id: str) -> Optional[PayrollClass]:
        return self._tenants.get(tenant_id)

    def display_name(self, tenant_id_or_schema: str) -> str:
        """Friendly division name for API responses."""
        tenant = self._tenants.get(self.reverse_resolve(tenant_id_or_schema))
        if tenant is None:
            tenant = self._tenants.get(tenant_id_or_schema)
        return tenant.display_name if tenant else tenant_id_or_schema

    def list_tenants(self, active_only: bool = False) -> list[PayrollClass]:
        """Return every known payroll class, master first.

        A class pointing at a schema already listed (the master's schema under
        a second id, for instance) is skipped, so each schema appears once.
        """
        seen: set[str] = set()
        tenants = []
        for tenant in self._tenants.values():
            if tenant.schema_name in seen:
                continue
            if active_only and not tenant.is_active:
                continue
            seen.add(tenant.schema_name)
            tenants.append(tenant)
        return tenants

    def schemas(self) -> frozenset[str]:
        return frozenset(self._by_schema)
