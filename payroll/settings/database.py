"""
PostgreSQL connection settings.

One pool serves every payroll class; the schema is selected per lease, so
nothing here names a schema.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Server address, credentials and pool bounds."""

    HOST: str = Field(default="localhost", description="Database host address")
    PORT: int = Field(default=5432, ge=1, le=65535, description="Database port")
    NAME: str = Field(default="payroll", description="Database name")
    USER: str = Field(default="postgres", description="Database user")
    PASSWORD: str = Field(default="", description="Database password")
    POOL_MIN_SIZE: int = Field(
        default=1, ge=1, description="Connections opened when the pool starts"
    )
    POOL_MAX_SIZE: int = Field(
        default=20, ge=1, description="Upper bound on concurrently leased connections"
    )
    POOL_MAX_INACTIVE_CONNECTION_LIFETIME: float = Field(
        default=900.0,
        description="Idle connections older than this are closed, in seconds",
    )
    POOL_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Bounded wait for a free connection before PoolExhausted, in seconds",
    )
    COMMAND_TIMEOUT: float = Field(
        default=60.0,
        gt=0,
        description="Default timeout for a single statement in seconds",
    )

    model_config = SettingsConfigDict(case_sensitive=False, extra="forbid")

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "DatabaseConfig":
        if self.POOL_MIN_SIZE > self.POOL_MAX_SIZE:
            raise ValueError("POOL_MIN_SIZE must not exceed POOL_MAX_SIZE")
        return self

    @property
    def dsn(self) -> str:
        """Get PostgreSQL DSN string."""
        return (
            f"postgresql://{self.USER}:{self.PASSWORD}@"
            f"{self.HOST}:{self.PORT}/{self.NAME}"
        )
