"""
HTTP server settings: bind address, uvicorn workers, CORS and the
threshold above which a request is logged as slow.
"""

from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class ServerConfig(BaseSettings):
    """Settings read by ``payroll.main`` and ``payroll.app``."""

    HOST: str = Field(default="0.0.0.0", description="Server host address")
    PORT: int = Field(default=8000, ge=1, le=65535, description="Server port")
    WORKERS: int = Field(default=1, ge=1, description="Number of worker processes")
    RELOAD: bool = Field(default=False, description="Enable auto-reload on code changes")

    CORS_ENABLED: bool = Field(default=True, description="Enable CORS middleware")
    CORS_ORIGINS: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(
        default=True, description="Allow credentials in CORS requests"
    )
    CORS_ALLOW_METHODS: Annotated[list[str], NoDecode] = Field(
        default=["*"], description="Allowed HTTP methods for CORS"
    )
    CORS_ALLOW_HEADERS: Annotated[list[str], NoDecode] = Field(
        default=["*"], description="Allowed headers for CORS"
    )

    SLOW_REQUEST_THRESHOLD_MS: float = Field(
        default=1000.0,
        gt=0,
        description="Requests slower than this are logged as warnings",
    )

    model_config = SettingsConfigDict(case_sensitive=False, extra="forbid")

    @field_validator(
        "CORS_ORIGINS", "CORS_ALLOW_METHODS", "CORS_ALLOW_HEADERS", mode="before"
    )
    @classmethod
    def parse_comma_separated(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v
