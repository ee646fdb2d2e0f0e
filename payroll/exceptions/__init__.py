"""
Exceptions module for custom application exceptions.

This module contains all custom exception classes that extend from AppException
and are used throughout the application for error handling.
"""

from payroll.exceptions.app import (
    AppException,
    ErrorTypes,
    UnauthorizedException,
)
from payroll.exceptions.database import (
    ConnectionLost,
    ContextLeak,
    PoolExhausted,
    QueryError,
    RegistryUnavailable,
    UnknownTenant,
)

__all__ = [
    # Base exceptions
    "AppException",
    "ErrorTypes",
    "UnauthorizedException",
    # Database routing
    "ConnectionLost",
    "ContextLeak",
    "PoolExhausted",
    "QueryError",
    "RegistryUnavailable",
    "UnknownTenant",
]
