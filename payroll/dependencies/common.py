"""
FastAPI dependencies for dependency injection.

This module contains reusable dependencies for FastAPI endpoints
giving access to the database router, the payroll class service and the
session resolved for the current request.
"""

from typing import Annotated

from fastapi import Depends, Request

from payroll.routing import ContextRouter, get_context_router
from payroll.service.payroll_class import PayrollClassService
from payroll.service.session import RequestSession, SessionResolver
from payroll.settings import get_settings


def get_session_resolver() -> SessionResolver:
    """Dependency to create a SessionResolver from the JWT settings."""
    return SessionResolver(get_settings().JWT)


def get_request_session(request: Request) -> RequestSession:
    """The session SessionScopeMiddleware resolved for this request."""
    return request.state.payroll_session


async def get_payroll_class_service(
    router: Annotated[ContextRouter, Depends(get_context_router)],
    resolver: Annotated[SessionResolver, Depends(get_session_resolver)],
) -> PayrollClassService:
    """Dependency to create and return PayrollClassService instance."""
    return PayrollClassService(router, resolver)


# Type aliases for cleaner endpoint signatures
ContextRouterDep = Annotated[ContextRouter, Depends(get_context_router)]
RequestSessionDep = Annotated[RequestSession, Depends(get_request_session)]
PayrollClassServiceDep = Annotated[
    PayrollClassService, Depends(get_payroll_class_service)
]
