"""
Custom exceptions for payroll class routing and database access.
"""

from typing import Optional

from payroll.exceptions.app import AppException, ErrorTypes


class RegistryUnavailable(AppException):
    """Raised when the payroll class registry cannot be read from the master schema."""

    def __init__(
        self,
        master_schema: Optional[str] = None,
        message: Optional[str] = None,
        **kwargs,
    ) -> None:
        if message is None:
            if master_schema:
                message = f"Payroll class registry in schema '{master_schema}' is unavailable"
            else:
                message = "Payroll class registry is unavailable"
        super().__init__(
            type=ErrorTypes.ServiceUnavailable,
            message=message,
            resource="payroll_class_registry",
            value=master_schema,
            **kwargs,
        )


class UnknownTenant(AppException):
    """Raised when a payroll class id or schema name is not registered.

    The registry absorbs it and falls back to the default schema.
    """

    def __init__(self, tenant: str, message: Optional[str] = None, **kwargs) -> None:
        super().__init__(
            type=ErrorTypes.ResourceNotFound,
            message=message or f"Payroll class '{tenant}' is not registered",
            resource="payroll_class",
            field="id",
            value=tenant,
            **kwargs,
        )


class InvalidPayrollClass(AppException):
    """Raised when a user asks to switch to an unknown or inactive payroll class."""

    def __init__(self, tenant: str, message: Optional[str] = None, **kwargs) -> None:
        super().__init__(
            type=ErrorTypes.InvalidOperation,
            message=message or f"Invalid payroll class selected: '{tenant}'",
            resource="payroll_class",
            field="payroll_class",
            value=tenant,
            **kwargs,
        )


class PoolExhausted(AppException):
    """Raised when no pooled connection became free within the acquire timeout."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        message: Optional[str] = None,
        **kwargs,
    ) -> None:
        if message is None:
            if timeout is not None:
                message = f"No database connection available after {timeout}s"
            else:
                message = "No database connection available"
        super().__init__(
            type=ErrorTypes.ServiceUnavailable,
            message=message,
            resource="database",
            value=timeout,
            **kwargs,
        )


class QueryError(AppException):
    """Wraps a statement failure reported by the server."""

    def __init__(
        self,
        message: str,
        schema: Optional[str] = None,
        sqlstate: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(
            type=ErrorTypes.DatabaseError,
            message=message,
            resource="database",
            field="schema",
            value=schema,
            **kwargs,
        )
        self.schema = schema
        self.sqlstate = sqlstate


class ConnectionLost(AppException):
    """Raised when a connection broke mid-use. The connection is discarded."""

    def __init__(
        self,
        message: str = "Database connection lost",
        schema: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(
            type=ErrorTypes.ServiceUnavailable,
            message=message,
            resource="database",
            field="schema",
            value=schema,
            **kwargs,
        )
        self.schema = schema


class ContextLeak(AppException):
    """A session observed a payroll class bound by another session.

    This is a defect, never an expected runtime condition.
    """

    def __init__(
        self,
        session_id: str,
        expected: str,
        observed: str,
        message: Optional[str] = None,
        **kwargs,
    ) -> None:
        super().__init__(
            type=ErrorTypes.InternalError,
            message=message
            or f"Session '{session_id}' expected schema '{expected}' but observed '{observed}'",
            resource="session",
            field="schema",
            value=observed,
            **kwargs,
        )
        self.session_id = session_id
        self.expected = expected
        self.observed = observed
