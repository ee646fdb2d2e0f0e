"""SessionContext: per call tree session binding."""

import asyncio

import pytest
from structlog.contextvars import get_contextvars

from payroll.context import SessionContext


async def test_no_session_outside_any_scope():
    assert SessionContext.current() is None


async def test_run_binds_session_for_the_call_tree():
    async def inner():
        await asyncio.sleep(0)
        return SessionContext.current()

    async def outer():
        return await inner()

    assert await SessionContext.run("s1", outer) == "s1"
    assert SessionContext.current() is None


async def test_run_passes_arguments_through():
    async def add(a, b, *, scale=1):
        return (a + b) * scale

    assert await SessionContext.run("s1", add, 1, 2, scale=10) == 30


async def test_nested_run_shadows_and_restores():
    seen = []

    async def inner():
        seen.append(SessionContext.current())

    async def outer():
        seen.append(SessionContext.current())
        await SessionContext.run("inner", inner)
        seen.append(SessionContext.current())

    await SessionContext.run("outer", outer)
    assert seen == ["outer", "inner", "outer"]


async def test_binding_restored_when_function_raises():
    async def boom():
        raise RuntimeError("boom")

    async def outer():
        with pytest.raises(RuntimeError):
            await SessionContext.run("inner", boom)
        return SessionContext.current()

    assert await SessionContext.run("outer", outer) == "outer"
    assert SessionContext.current() is None


async def test_concurrent_runs_never_see_each_other():
    observed = {"a": [], "b": []}

    async def worker(name):
        for _ in range(20):
            observed[name].append(SessionContext.current())
            await asyncio.sleep(0)

    await asyncio.gather(
        SessionContext.run("a", worker, "a"),
        SessionContext.run("b", worker, "b"),
    )
    assert set(observed["a"]) == {"a"}
    assert set(observed["b"]) == {"b"}


async def test_tasks_spawned_inside_a_scope_inherit_it():
    async def child():
        await asyncio.sleep(0)
        return SessionContext.current()

    async def parent():
        return await asyncio.gather(
            asyncio.create_task(child()), asyncio.create_task(child())
        )

    assert await SessionContext.run("parent", parent) == ["parent", "parent"]


async def test_scope_binds_session_into_log_context():
    with SessionContext.scope("s42"):
        assert get_contextvars().get("session_id") == "s42"
    assert "session_id" not in get_contextvars()


def test_scope_rejects_empty_session_id():
    with pytest.raises(ValueError):
        with SessionContext.scope(""):
            pass
