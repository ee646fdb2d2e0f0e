"""
Payroll class routing settings.

Describes where the payroll class registry lives, which schema is used when a
class cannot be resolved, and which tables are shared from the master schema.
"""

from typing import Annotated, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class PayrollConfig(BaseSettings):
    """Configuration for payroll class (tenant) routing."""

    MASTER_CLASS: str = Field(
        default="MILITARY",
        description="Identifier of the payroll class that owns the registry",
    )
    MASTER_SCHEMA: str = Field(
        default="hicaddata",
        description="Schema holding the payroll class registry and shared tables",
    )
    DEFAULT_SCHEMA: Optional[str] = Field(
        default=None,
        description="Schema used for unresolved classes (defaults to MASTER_SCHEMA)",
    )
    REGISTRY_TABLE: str = Field(
        default="py_payrollclass_schema",
        description="Registry table name inside the master schema",
    )
    CLASSES: dict[str, str] = Field(
        default_factory=dict,
        description="Static payroll class id to schema mapping used as a seed",
    )
    MASTER_TABLES: Annotated[list[str], NoDecode] = Field(
        default=[
            "hr_employees",
            "py_bank",
            "py_grade",
            "py_gradelevel",
            "py_payrollclass",
            "py_salarygroup",
            "py_salaryscale",
            "py_status",
            "roles",
            "menu_items",
            "role_menu_permissions",
            "users",
        ],
        description="Tables that only exist in the master schema",
    )

    model_config = SettingsConfigDict(case_sensitive=False, extra="forbid")

    @field_validator("MASTER_TABLES", mode="before")
    @classmethod
    def parse_master_tables(cls, v):
        """Parse master tables from a comma separated string or list."""
        if isinstance(v, str):
            return [table.strip() for table in v.split(",") if table.strip()]
        return v

    @property
    def default_schema(self) -> str:
        return self.DEFAULT_SCHEMA or self.MASTER_SCHEMA
