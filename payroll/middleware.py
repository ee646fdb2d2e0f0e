"""
FastAPI middleware for request ids, structured logging and payroll sessions.
"""

from time import time
from uuid import uuid4

from fastapi import Request
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send
from structlog import get_logger
from structlog.contextvars import bind_contextvars, bound_contextvars, clear_contextvars

from payroll.context import SessionContext
from payroll.exceptions.app import UnauthorizedException
from payroll.exceptions.handler import app_exception_handler
from payroll.routing import get_context_router
from payroll.service.session import SessionResolver

logger = get_logger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class ContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        clear_contextvars()
        bind_contextvars(
            request_id=request.state.request_id,
            method=request.method,
            path=request.url.path,
        )
        try:
            return await call_next(request)
        finally:
            clear_contextvars()


class LoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, slow_request_threshold_ms: float = 1000.0):
        super().__init__(app)
        self.slow_request_threshold_ms = slow_request_threshold_ms

    async def dispatch(self, request: Request, call_next):
        logger.info("request_received")
        start_time = time()
        response = await call_next(request)
        duration_ms = (time() - start_time) * 1000
        logger.info(
            "response_sent",
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )
        if duration_ms > self.slow_request_threshold_ms:
            logger.warning(
                "slow_request_detected",
                duration_ms=round(duration_ms, 2),
                threshold_ms=self.slow_request_threshold_ms,
            )
        return response


class SessionScopeMiddleware:
    """Binds the request's payroll class for the whole request.

    Written as a plain ASGI middleware so the session scope also covers the
    streaming of the response body. The binding is removed from the router
    when the request ends, whether it succeeded, failed or the client went
    away.
    """

    def __init__(self, app: ASGIApp, resolver: SessionResolver):
        self.app = app
        self.resolver = resolver

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        request_id = getattr(request.state, "request_id", None) or str(uuid4())
        try:
            session = self.resolver.resolve(Headers(scope=scope), request_id)
        except UnauthorizedException as exc:
            response = await app_exception_handler(request, exc)
            await response(scope, receive, send)
            return
        request.state.payroll_session = session

        router = get_context_router()
        with SessionContext.scope(session.session_id):
            try:
                if session.payroll_class:
                    router.use_database(session.payroll_class)
                with bound_contextvars(
                    payroll_class=session.payroll_class,
                    user_id=session.user_id,
                ):
                    await self.app(scope, receive, send)
            finally:
                router.clear_session(session.session_id)
