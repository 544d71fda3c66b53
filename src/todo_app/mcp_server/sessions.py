"""Per-request MCP server and transport lifecycle."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum

import anyio
from anyio.abc import TaskStatus
from mcp.server.lowlevel import Server
from mcp.server.streamable_http import StreamableHTTPServerTransport
from starlette.types import Receive, Scope, Send

from todo_app.mcp_server.tools import ToolRegistry

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    CREATED = "CREATED"
    CONNECTED = "CONNECTED"
    ACTIVE = "ACTIVE"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


@dataclass
class McpSession:
    """One protocol server and its transport, serving a single HTTP exchange.

    Must be created inside a running event loop.
    """

    request_id: str
    server: Server
    transport: StreamableHTTPServerTransport
    state: SessionState = SessionState.CREATED
    server_scope: anyio.CancelScope = field(default_factory=anyio.CancelScope)
    closed: anyio.Event = field(default_factory=anyio.Event)

    async def serve(
        self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED
    ) -> None:
        """Attach the server to the transport and run it until closed."""
        with self.server_scope:
            async with self.transport.connect() as (read_stream, write_stream):
                self.state = SessionState.CONNECTED
                task_status.started()
                try:
                    await self.server.run(
                        read_stream,
                        write_stream,
                        self.server.create_initialization_options(),
                        stateless=True,
                    )
                except Exception:
                    logger.exception(
                        "mcp.server.error: request_id=%s", self.request_id
                    )

    async def close_transport(self) -> None:
        await self.transport.terminate()

    async def close_server(self) -> None:
        self.server_scope.cancel()


@dataclass
class McpSessionManager:
    """Owns every live MCP session and guarantees each is torn down once.

    A session is created per inbound request and closed on the first of:
    the response finishing (normally or by client disconnect), or
    ``close_all`` being called at process shutdown.
    """

    registry: ToolRegistry
    json_response: bool = False
    sessions: dict[str, McpSession] = field(default_factory=dict)
    session_factory: Callable[[str], McpSession] | None = None

    def open(self, request_id: str) -> McpSession:
        """Create and register a session for a request."""
        if request_id in self.sessions:
            raise ValueError(f"MCP session already open for request {request_id}")
        factory = self.session_factory or self._create_session
        session = factory(request_id)
        self.sessions[request_id] = session
        logger.info("mcp.session.open: request_id=%s", request_id)
        return session

    async def handle(
        self, request_id: str, scope: Scope, receive: Receive, send: Send
    ) -> None:
        """Serve one MCP HTTP exchange on a fresh session."""
        session = self.open(request_id)
        try:
            async with anyio.create_task_group() as task_group:
                await task_group.start(session.serve)
                session.state = SessionState.ACTIVE
                await session.transport.handle_request(scope, receive, send)
                logger.info("mcp.request.closed: request_id=%s", request_id)
                await self.close(request_id)
        finally:
            await self.close(request_id)

    async def close(self, request_id: str) -> None:
        """Tear down a session exactly once.

        A call for a session that is already closing waits until that
        teardown has finished.
        """
        session = self.sessions.get(request_id)
        if session is None:
            return
        if session.state in {SessionState.CLOSING, SessionState.CLOSED}:
            with anyio.CancelScope(shield=True):
                await session.closed.wait()
            return
        session.state = SessionState.CLOSING
        with anyio.CancelScope(shield=True):
            try:
                try:
                    await session.close_transport()
                except Exception:
                    logger.exception(
                        "mcp.transport.close.error: request_id=%s", request_id
                    )
                try:
                    await session.close_server()
                except Exception:
                    logger.exception(
                        "mcp.server.close.error: request_id=%s", request_id
                    )
            finally:
                session.state = SessionState.CLOSED
                self.sessions.pop(request_id, None)
                session.closed.set()
        logger.info("mcp.session.closed: request_id=%s", request_id)

    async def close_all(self) -> None:
        """Close every live session concurrently and wait for all of them."""
        request_ids = list(self.sessions)
        if not request_ids:
            return
        logger.info("mcp.sessions.cleanup: count=%s", len(request_ids))
        async with anyio.create_task_group() as task_group:
            for request_id in request_ids:
                task_group.start_soon(self.close, request_id)

    def _create_session(self, request_id: str) -> McpSession:
        return McpSession(
            request_id=request_id,
            server=self.registry.build_server(request_id),
            transport=StreamableHTTPServerTransport(
                mcp_session_id=None,
                is_json_response_enabled=self.json_response,
            ),
        )
