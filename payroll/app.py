"""
FastAPI application instance with lifespan management.

This module creates the FastAPI application with proper configuration,
middleware, and lifespan management for database routing and logging setup.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payroll.controller.payroll_class import health_router
from payroll.controller.payroll_class import router as payroll_class_router
from payroll.exceptions.handler import register_exception_handlers
from payroll.lifespan import lifespan
from payroll.middleware import (
    ContextMiddleware,
    LoggingMiddleware,
    RequestIDMiddleware,
    SessionScopeMiddleware,
)
from payroll.models.errors import HTTPException
from payroll.service.session import SessionResolver
from payroll.settings import get_settings

# Load settings
settings = get_settings()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        responses={
            500: {"model": HTTPException, "description": "Internal Server Error"},
            503: {"model": HTTPException, "description": "Service Unavailable"},
            404: {"model": HTTPException, "description": "Resource Not Found"},
            403: {"model": HTTPException, "description": "Forbidden"},
            422: {"model": HTTPException, "description": "Unprocessable Entity"},
        },
    )
    register_exception_handlers(app)
    # Innermost: the session scope must wrap the whole route call.
    app.add_middleware(
        SessionScopeMiddleware,
        resolver=SessionResolver(settings.JWT),
    )
    if settings.SERVER.CORS_ENABLED:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.SERVER.CORS_ORIGINS,
            allow_credentials=settings.SERVER.CORS_ALLOW_CREDENTIALS,
            allow_methods=settings.SERVER.CORS_ALLOW_METHODS,
            allow_headers=settings.SERVER.CORS_ALLOW_HEADERS,
        )
    app.add_middleware(
        LoggingMiddleware,
        slow_request_threshold_ms=settings.SERVER.SLOW_REQUEST_THRESHOLD_MS,
    )
    app.add_middleware(ContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.include_router(payroll_class_router, prefix="/api/v1")
    app.include_router(health_router, prefix="/api/v1")

    return app


app = create_app()
