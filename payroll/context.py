"""
Per-request session context.

The active session id lives in a ``contextvars.ContextVar``. asyncio gives
every task its own copy of the context at creation time, so a binding made
inside one request's call tree is never visible to another request, even when
both are suspended and resumed on the same event loop. The binding must never
be stored as an attribute of a shared object.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

import structlog
from structlog.contextvars import bound_contextvars

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_current_session: ContextVar[Optional[str]] = ContextVar(
    "payroll_session_id", default=None
)


class SessionContext:
    """Binds a session id to the current asynchronous call tree."""

    @staticmethod
    def current() -> Optional[str]:
        """Return the session id bound to the caller's call tree, if any."""
        return _current_session.get()

    @staticmethod
    @contextmanager
    def scope(session_id: str) -> Iterator[str]:
        """Bind ``session_id`` until the block exits.

        Nested scopes shadow the outer binding and restore it on exit, also
        when the block raises.
        """
        if not session_id:
            raise ValueError("session_id must be a non-empty string")
        token = _current_session.set(session_id)
        try:
            with bound_contextvars(session_id=session_id):
                yield session_id
        finally:
            _current_session.reset(token)

    @classmethod
    async def run(
        cls,
        session_id: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``fn(*args, **kwargs)`` with ``session_id`` bound.

        Tasks spawned by ``fn`` inherit the binding because asyncio copies
        the context when a task is created.
        """
        with cls.scope(session_id):
            return await fn(*args, **kwargs)
