"""
Exception handlers turning routing and database failures into JSON errors.

Every failing endpoint answers with the same envelope
(:class:`payroll.models.errors.HTTPException`). Failures the client may retry
(pool exhausted, lost connection, registry unreachable) are 503 with a
``Retry-After`` header.
"""

from http import HTTPStatus
from typing import Optional, Union

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from payroll.exceptions.app import AppException, ErrorTypes
from payroll.models.errors import HTTPDetail
from payroll.models.errors import HTTPException as HTTPExceptionModel

logger = structlog.get_logger(__name__)

STATUS_BY_ERROR_TYPE = {
    ErrorTypes.InputValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorTypes.ResourceNotFound: status.HTTP_404_NOT_FOUND,
    ErrorTypes.InvalidOperation: status.HTTP_400_BAD_REQUEST,
    ErrorTypes.NotEnoughPermission: status.HTTP_403_FORBIDDEN,
    ErrorTypes.ServiceUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorTypes.DatabaseError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorTypes.InternalError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorTypes.UnkownError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

ERROR_TYPE_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ErrorTypes.InvalidOperation,
    status.HTTP_403_FORBIDDEN: ErrorTypes.NotEnoughPermission,
    status.HTTP_404_NOT_FOUND: ErrorTypes.ResourceNotFound,
    status.HTTP_503_SERVICE_UNAVAILABLE: ErrorTypes.ServiceUnavailable,
}

RETRY_AFTER_SECONDS = "1"


def _error_response(
    status_code: int,
    detail: str,
    errors: list[HTTPDetail],
    title: Optional[str] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    body = HTTPExceptionModel(
        status_code=status_code,
        title=title or HTTPStatus(status_code).phrase,
        detail=detail,
        errors=errors,
    )
    if status_code == status.HTTP_503_SERVICE_UNAVAILABLE:
        headers = {"Retry-After": RETRY_AFTER_SECONDS, **(headers or {})}
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True, mode="json"),
        headers=headers,
    )


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle every AppException, database routing failures included."""
    status_code = STATUS_BY_ERROR_TYPE.get(
        exc.type, status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    if status_code >= 500:
        logger.error(
            "Request failed",
            error_type=str(exc.type),
            error=exc.message,
            resource=exc.resource,
            value=exc.value,
            path=request.url.path,
        )

    detail = HTTPDetail(
        type=exc.type,
        message=exc.message,
        resource=exc.resource,
        field=exc.field,
        value=exc.value,
    )
    return _error_response(status_code, exc.message, [detail])


async def validation_exception_handler(
    request: Request, exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    errors = [
        HTTPDetail(
            type=error.get("type", ErrorTypes.InputValidationError.value),
            message=error.get("msg", "Validation error"),
            field=".".join(str(loc) for loc in error.get("loc", ())) or None,
            value=error.get("input"),
        )
        for error in exc.errors()
    ]
    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "One or more fields failed validation",
        errors,
        title="Validation Error",
    )


async def fastapi_http_exception_handler(
    request: Request, exc: FastAPIHTTPException
) -> JSONResponse:
    """Wrap FastAPI's HTTPException in the common envelope."""
    error_type = ERROR_TYPE_BY_STATUS.get(exc.status_code)
    if error_type is None:
        error_type = (
            ErrorTypes.InternalError if exc.status_code >= 500 else ErrorTypes.UnkownError
        )
    detail = HTTPDetail(
        type=error_type, message=str(exc.detail), resource=request.url.path
    )
    return _error_response(
        exc.status_code, str(exc.detail), [detail], headers=exc.headers
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        exc_info=exc,
    )
    detail = HTTPDetail(
        type=ErrorTypes.InternalError,
        message="An unexpected error occurred. Please try again later.",
        resource=request.url.path,
    )
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred", [detail]
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(FastAPIHTTPException, fastapi_http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
