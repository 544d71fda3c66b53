"""Tests for the per-request MCP session lifecycle."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import anyio
import pytest

from todo_app.mcp_server.sessions import McpSession, McpSessionManager, SessionState


@dataclass
class FakeServer:
    runs: int = 0

    def create_initialization_options(self) -> object:
        return object()

    async def run(self, read_stream, write_stream, options, stateless=False) -> None:  # type: ignore[no-untyped-def]
        self.runs += 1
        await anyio.sleep_forever()


@dataclass
class FakeTransport:
    fail_terminate: bool = False
    fail_request: bool = False
    terminated: int = 0
    before_terminate: Callable[[], Awaitable[None]] | None = None
    sent: list[dict[str, object]] = field(default_factory=list)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[tuple[object, object]]:
        yield object(), object()

    async def handle_request(self, scope, receive, send) -> None:  # type: ignore[no-untyped-def]
        if self.fail_request:
            raise RuntimeError("transport exploded")
        message = {"type": "http.response.start", "status": 200, "headers": []}
        self.sent.append(message)
        await send(message)

    async def terminate(self) -> None:
        self.terminated += 1
        if self.before_terminate is not None:
            await self.before_terminate()
        if self.fail_terminate:
            raise RuntimeError("terminate failed")


@dataclass
class SessionFactory:
    transports: list[FakeTransport] = field(default_factory=list)
    created: list[McpSession] = field(default_factory=list)

    def __call__(self, request_id: str) -> McpSession:
        index = len(self.created)
        if index < len(self.transports):
            transport = self.transports[index]
        else:
            transport = FakeTransport()
        session = McpSession(
            request_id=request_id, server=FakeServer(), transport=transport
        )
        self.created.append(session)
        return session


def _manager(factory: SessionFactory) -> McpSessionManager:
    return McpSessionManager(registry=None, session_factory=factory)  # type: ignore[arg-type]


async def _receive() -> dict[str, object]:
    return {"type": "http.disconnect"}


async def _send(message) -> None:  # type: ignore[no-untyped-def]
    return None


def test_handle_closes_session_after_response() -> None:
    transport = FakeTransport()
    factory = SessionFactory([transport])
    manager = _manager(factory)

    asyncio.run(manager.handle("req-1", {"type": "http"}, _receive, _send))

    session = factory.created[0]
    assert manager.sessions == {}
    assert session.state is SessionState.CLOSED
    assert session.server_scope.cancel_called
    assert session.server.runs == 1
    assert transport.terminated == 1
    assert len(transport.sent) == 1


def test_failed_transport_close_still_stops_server() -> None:
    transport = FakeTransport(fail_terminate=True)
    manager = _manager(SessionFactory([transport]))

    async def run() -> McpSession:
        session = manager.open("req-1")
        async with anyio.create_task_group() as task_group:
            await task_group.start(session.serve)
            assert session.state is SessionState.CONNECTED
            await manager.close("req-1")
        return session

    session = asyncio.run(run())

    assert transport.terminated == 1
    assert session.server_scope.cancel_called
    assert session.state is SessionState.CLOSED
    assert manager.sessions == {}


def test_close_is_idempotent() -> None:
    transport = FakeTransport()
    manager = _manager(SessionFactory([transport]))

    async def run() -> None:
        manager.open("req-1")
        await manager.close("req-1")
        await manager.close("req-1")
        await manager.close("never-opened")

    asyncio.run(run())

    assert transport.terminated == 1


def test_shutdown_waits_for_a_close_already_in_progress() -> None:
    async def run() -> tuple[FakeTransport, list[SessionState]]:
        terminating = anyio.Event()
        release = anyio.Event()

        async def blocked() -> None:
            terminating.set()
            await release.wait()

        transport = FakeTransport(before_terminate=blocked)
        manager = _manager(SessionFactory([transport]))
        session = manager.open("req-1")
        states_after_shutdown: list[SessionState] = []

        async def shutdown() -> None:
            await manager.close_all()
            states_after_shutdown.append(session.state)

        with anyio.fail_after(2):
            async with anyio.create_task_group() as task_group:
                task_group.start_soon(manager.close, "req-1")
                await terminating.wait()
                task_group.start_soon(shutdown)
                await anyio.wait_all_tasks_blocked()
                assert session.state is SessionState.CLOSING
                assert states_after_shutdown == []
                release.set()
        assert manager.sessions == {}
        return transport, states_after_shutdown

    transport, states_after_shutdown = asyncio.run(run())

    assert states_after_shutdown == [SessionState.CLOSED]
    assert transport.terminated == 1


def test_handle_error_still_closes_session() -> None:
    transport = FakeTransport(fail_request=True)
    manager = _manager(SessionFactory([transport]))

    with pytest.raises(Exception):  # noqa: B017
        asyncio.run(manager.handle("req-1", {"type": "http"}, _receive, _send))

    assert transport.terminated == 1
    assert manager.sessions == {}


def test_duplicate_open_is_rejected() -> None:
    manager = _manager(SessionFactory())

    async def run() -> None:
        manager.open("req-1")
        manager.open("req-1")

    with pytest.raises(ValueError):
        asyncio.run(run())

    assert list(manager.sessions) == ["req-1"]


def test_close_all_closes_sessions_concurrently() -> None:
    factory = SessionFactory()

    async def run() -> list[FakeTransport]:
        all_closing = anyio.Event()
        closing = 0

        async def barrier() -> None:
            nonlocal closing
            closing += 1
            if closing == 3:
                all_closing.set()
            # returns only once every close is in flight
            await all_closing.wait()

        factory.transports = [FakeTransport(before_terminate=barrier) for _ in range(3)]
        manager = _manager(factory)
        for index in range(3):
            manager.open(f"req-{index}")
        with anyio.fail_after(2):
            await manager.close_all()
        assert manager.sessions == {}
        return factory.transports

    transports = asyncio.run(run())

    assert [transport.terminated for transport in transports] == [1, 1, 1]
    assert [session.state for session in factory.created] == [SessionState.CLOSED] * 3


def test_close_all_with_no_sessions() -> None:
    manager = _manager(SessionFactory())

    asyncio.run(manager.close_all())

    assert manager.sessions == {}
