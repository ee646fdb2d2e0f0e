"""
Pydantic models for payroll classes (tenants).
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PayrollClass(BaseModel):
    """A payroll class as registered in the master schema. Immutable."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str = Field(..., min_length=1, description="Payroll class identifier")
    schema_name: str = Field(..., min_length=1, description="Physical schema name")
    display_name: str = Field(..., description="Friendly division name")
    is_active: bool = Field(default=True, description="Whether the class is active")


class Resolution(BaseModel):
    """Outcome of a registry lookup.

    ``found`` is False when the input was not registered and the default
    schema was substituted.
    """

    model_config = ConfigDict(frozen=True)

    requested: str
    schema_name: str
    tenant_id: Optional[str] = None
    found: bool


class PayrollClassResponse(BaseModel):
    """Model for payroll class API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Payroll class identifier")
    schema_name: str = Field(..., description="Physical schema name")
    display_name: str = Field(..., description="Friendly division name")
    is_active: bool = Field(..., description="Whether the class is active")
    is_master: bool = Field(default=False, description="Whether this class owns the registry")


class CurrentPayrollClass(BaseModel):
    """The payroll class bound to the calling request."""

    session_id: Optional[str] = Field(None, description="Session the class is bound to")
    tenant_id: str = Field(..., description="Payroll class identifier or raw schema")
    schema_name: str = Field(..., description="Physical schema name")
    display_name: str = Field(..., description="Friendly division name")


class PayrollClassSwitch(BaseModel):
    """Model for switching the payroll class of the current request."""

    payroll_class: str = Field(
        ..., min_length=1, description="Payroll class id or schema name"
    )

    @field_validator("payroll_class")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        """Validate and normalize the class identifier."""
        if not v.strip():
            raise ValueError("Field cannot be empty")
        return v.strip()


class PayrollClassToken(BaseModel):
    """A token re-issued for another payroll class.

    Clients send it as their bearer token from then on, which is what makes
    the switch last beyond the current request.
    """

    token: str = Field(..., description="Signed bearer token")
    token_type: str = Field(default="Bearer", description="Authorization scheme")
    expires_at: datetime = Field(..., description="Token expiry (UTC)")
    tenant_id: str = Field(..., description="Payroll class identifier")
    schema_name: str = Field(..., description="Physical schema name")
    display_name: str = Field(..., description="Friendly division name")
    is_primary: bool = Field(..., description="Whether this is the user's primary class")


class RegistryReloadResponse(BaseModel):
    """Result of a full registry reload."""

    total_count: int = Field(..., description="Number of payroll classes loaded")
    master_class: str = Field(..., description="Identifier of the master class")


class DatabaseHealth(BaseModel):
    """Health check response for the routing layer."""

    status: str
    current_session: Optional[str] = None
    current_database: Optional[str] = None
    active_sessions: int = 0
    pool: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
