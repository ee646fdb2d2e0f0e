"""
Service layer for payroll class operations.

Sits between the API layer and the router: lists payroll classes with their
friendly names, reports the class of the current request, switches a user
to another class by re-issuing their token, reloads the registry and runs
work across several classes in turn.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

import structlog

from payroll.context import SessionContext
from payroll.exceptions.app import AppException, UnauthorizedException
from payroll.exceptions.database import InvalidPayrollClass
from payroll.models.payroll_class import (
    CurrentPayrollClass,
    PayrollClass,
    PayrollClassResponse,
    PayrollClassToken,
    RegistryReloadResponse,
)
from payroll.routing import ContextRouter
from payroll.service.session import RequestSession, SessionResolver

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class CrossClassResult(Generic[T]):
    """Per payroll class outcome of :meth:`PayrollClassService.for_each_class`."""

    results: dict[str, T] = field(default_factory=dict)
    failures: dict[str, AppException] = field(default_factory=dict)


class PayrollClassService:
    """
    Service for payroll class routing operations.

    All database access goes through the router, so the schema of every
    statement follows the payroll class of the calling request.
    """

    def __init__(
        self, router: ContextRouter, resolver: Optional[SessionResolver] = None
    ) -> None:
        self.router = router
        self.registry = router.registry
        self.resolver = resolver

    def list_classes(self, active_only: bool = False) -> list[PayrollClassResponse]:
        master_id = self.registry.master.id
        return [
            PayrollClassResponse(
                id=tenant.id,
                schema_name=tenant.schema_name,
                display_name=tenant.display_name,
                is_active=tenant.is_active,
                is_master=tenant.id == master_id,
            )
            for tenant in self.registry.list_tenants(active_only=active_only)
        ]

    def current_class(self) -> CurrentPayrollClass:
        schema = self.router.current_database()
        return CurrentPayrollClass(
            session_id=SessionContext.current(),
            tenant_id=self.registry.reverse_resolve(schema),
            schema_name=schema,
            display_name=self.registry.display_name(schema),
        )

    def _switchable(self, payroll_class: str) -> PayrollClass:
        resolution = self.registry.lookup(payroll_class)
        tenant = self.registry.get_tenant(resolution.tenant_id) if resolution.found else None
        if tenant is None or not tenant.is_active:
            logger.warning(
                "Rejected switch to unknown or inactive payroll class",
                requested=payroll_class,
            )
            raise InvalidPayrollClass(payroll_class)
        return tenant

    def _reissue(self, tenant: PayrollClass, session: RequestSession) -> PayrollClassToken:
        if self.resolver is None:
            raise RuntimeError("PayrollClassService needs a SessionResolver to issue tokens")
        issued = self.resolver.issue_token(session, tenant.id)
        # The rest of this request follows the new class too.
        self.router.use_database(tenant.id)

        primary_id = None
        if session.primary_class:
            primary = self.registry.lookup(session.primary_class)
            primary_id = primary.tenant_id if primary.found else None
        return PayrollClassToken(
            token=issued.token,
            token_type=self.resolver.jwt_config.TOKEN_TYPE,
            expires_at=issued.expires_at,
            tenant_id=tenant.id,
            schema_name=tenant.schema_name,
            display_name=tenant.display_name,
            is_primary=primary_id == tenant.id,
        )

    def switch_class(self, payroll_class: str, session: RequestSession) -> PayrollClassToken:
        """Switch the user to another active payroll class.

        The switch lasts as long as the client presents the returned token.

        Raises:
            UnauthorizedException: If the request carried no verified token
            InvalidPayrollClass: If the class is unknown or inactive
        """
        if not session.authenticated:
            raise UnauthorizedException("Authentication required")
        return self._reissue(self._switchable(payroll_class), session)

    def reset_to_primary(self, session: RequestSession) -> PayrollClassToken:
        """Switch the user back to the ``primary_class`` of their token."""
        if not session.authenticated:
            raise UnauthorizedException("Authentication required")
        if not session.primary_class:
            raise InvalidPayrollClass(
                "", message="Token carries no primary payroll class"
            )
        return self._reissue(self._switchable(session.primary_class), session)

    async def reload_registry(self) -> RegistryReloadResponse:
        total = await self.registry.load()
        return RegistryReloadResponse(
            total_count=total, master_class=self.registry.master.id
        )

    async def for_each_class(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        tenant_ids: Optional[Iterable[str]] = None,
        stop_on_error: bool = True,
        **kwargs: Any,
    ) -> CrossClassResult[T]:
        """Await ``fn`` once per payroll class, each with that class current.

        Classes are visited one after the other. The caller's class is
        current again afterwards, also when a visit failed. With
        ``stop_on_error`` False a failing class is recorded in ``failures``
        and the remaining classes are still visited.
        """
        if tenant_ids is None:
            tenant_ids = [t.id for t in self.registry.list_tenants(active_only=True)]

        outcome: CrossClassResult[T] = CrossClassResult()
        for tenant_id in tenant_ids:
            try:
                outcome.results[tenant_id] = await self.router.with_tenant(
                    tenant_id, fn, *args, **kwargs
                )
            except AppException as e:
                if stop_on_error:
                    raise
                logger.error(
                    "Payroll class visit failed",
                    payroll_class=tenant_id,
                    error=e.message,
                )
                outcome.failures[tenant_id] = e
        return outcome
