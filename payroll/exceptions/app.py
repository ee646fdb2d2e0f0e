from enum import StrEnum
from typing import Any, Optional


class ErrorTypes(StrEnum):
    """Error categories shared by every exception and the JSON error envelope."""

    InputValidationError = "VALIDATION_ERROR"
    ResourceNotFound = "RESOURCE_NOT_FOUND"
    InvalidOperation = "INVALID_OPERATION"
    NotEnoughPermission = "NOT_ENOUGH_PERMISSION"
    ServiceUnavailable = "SERVICE_UNAVAILABLE"
    DatabaseError = "DATABASE_ERROR"
    InternalError = "INTERNAL_ERROR"
    UnkownError = "UNKNOWN_ERROR"


class AppException(Exception):
    """Base class for all application-specific exceptions.

    ``resource``, ``field`` and ``value`` locate the failure (for routing
    errors: the payroll class or schema involved). Extra keyword arguments
    are kept in ``context`` for logging.
    """

    def __init__(
        self,
        type: ErrorTypes,
        message: str,
        resource: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ) -> None:
        self.type = type
        self.message = message
        self.resource = resource
        self.field = field
        self.value = value
        self.context = kwargs
        super().__init__(f"{type}: {message}")


class UnauthorizedException(AppException):
    """The bearer token of a request could not be verified."""

    def __init__(self, message: str = "Invalid credentials", **kwargs) -> None:
        super().__init__(
            ErrorTypes.NotEnoughPermission, message, resource="token", **kwargs
        )
