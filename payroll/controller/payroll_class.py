"""
Payroll class controller/router for FastAPI endpoints.

Payroll classes are the divisions whose data lives in separate schemas. These
endpoints expose the registry for display, report the class a request is
routed to and switch a user to another class by re-issuing their token.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, HTTPException, Query, status

from payroll.dependencies.common import (
    ContextRouterDep,
    PayrollClassServiceDep,
    RequestSessionDep,
)
from payroll.exceptions.database import RegistryUnavailable
from payroll.models import ListResponseModel, ResponseModel
from payroll.models.payroll_class import (
    CurrentPayrollClass,
    DatabaseHealth,
    PayrollClassResponse,
    PayrollClassSwitch,
    PayrollClassToken,
    RegistryReloadResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/payroll-classes",
    tags=["Payroll Classes"],
    responses={
        404: {"description": "Resource Not Found"},
        500: {"description": "Internal Server Error"},
        503: {"description": "Database unavailable"},
    },
)

health_router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "",
    response_model=ListResponseModel[PayrollClassResponse],
    summary="List payroll classes",
    description="List every registered payroll class with its friendly name",
)
async def list_payroll_classes(
    service: PayrollClassServiceDep,
    active_only: Annotated[
        bool, Query(description="Only return active payroll classes")
    ] = False,
):
    classes = service.list_classes(active_only=active_only)
    return ListResponseModel(
        status_code=status.HTTP_200_OK,
        data=classes,
        total_count=len(classes),
    )


@router.get(
    "/current",
    response_model=ResponseModel[CurrentPayrollClass],
    summary="Get the payroll class of this request",
)
async def get_current_payroll_class(service: PayrollClassServiceDep):
    return ResponseModel(status_code=status.HTTP_200_OK, data=service.current_class())


@router.post(
    "/current",
    response_model=ResponseModel[PayrollClassToken],
    responses={
        400: {"description": "Unknown or inactive payroll class"},
        403: {"description": "No valid bearer token"},
    },
    summary="Switch the user's payroll class",
    description=(
        "Issue a new bearer token whose current payroll class is the requested "
        "one. Later requests presenting that token run on the new class."
    ),
)
async def switch_payroll_class(
    payload: PayrollClassSwitch,
    session: RequestSessionDep,
    service: PayrollClassServiceDep,
):
    issued = service.switch_class(payload.payroll_class, session)
    return ResponseModel(status_code=status.HTTP_200_OK, data=issued)


@router.post(
    "/current/reset",
    response_model=ResponseModel[PayrollClassToken],
    responses={
        400: {"description": "Token carries no usable primary payroll class"},
        403: {"description": "No valid bearer token"},
    },
    summary="Switch back to the user's primary payroll class",
)
async def reset_payroll_class(
    session: RequestSessionDep,
    service: PayrollClassServiceDep,
):
    issued = service.reset_to_primary(session)
    return ResponseModel(status_code=status.HTTP_200_OK, data=issued)


@router.post(
    "/reload",
    response_model=ResponseModel[RegistryReloadResponse],
    responses={503: {"description": "Registry unavailable"}},
    summary="Reload the payroll class registry",
)
async def reload_payroll_classes(service: PayrollClassServiceDep):
    """
    Re-read the registry table from the master schema.

    The mapping is replaced as a whole; if the master schema cannot be read
    the previous mapping stays in place.
    """
    try:
        result = await service.reload_registry()
        return ResponseModel(status_code=status.HTTP_200_OK, data=result)

    except RegistryUnavailable as e:
        logger.error("Registry reload failed", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=e.message,
        )


@health_router.get(
    "/database",
    response_model=DatabaseHealth,
    summary="Database routing health check",
)
async def database_health(router: ContextRouterDep):
    health = await router.health_check()
    return DatabaseHealth(
        status=health["status"],
        current_session=health.get("current_session"),
        current_database=health.get("current_database"),
        active_sessions=health.get("active_sessions", 0),
        pool=health.get("pool", {}),
        error=health.get("error"),
    )
