"""ASGI endpoint mounted at /mcp."""

import logging
from dataclasses import dataclass
from uuid import uuid4

from starlette.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from todo_app.mcp_server.sessions import McpSessionManager

logger = logging.getLogger(__name__)

METHOD_NOT_ALLOWED = -32000
INTERNAL_ERROR = -32603


def jsonrpc_error(code: int, message: str, status_code: int) -> JSONResponse:
    """Build a transport-level JSON-RPC error response."""
    return JSONResponse(
        {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": None},
        status_code=status_code,
    )


@dataclass
class McpEndpoint:
    """Routes POSTs to a fresh MCP session; every other method gets a 405."""

    session_manager: McpSessionManager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        state = scope.setdefault("state", {})
        request_id = state.get("request_id") or str(uuid4())
        if scope["method"] != "POST":
            response = jsonrpc_error(METHOD_NOT_ALLOWED, "Method not allowed", 405)
            await response(scope, receive, send)
            return

        response_started = False

        async def tracking_send(message: dict) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.session_manager.handle(request_id, scope, receive, tracking_send)
        except Exception as exc:
            logger.exception("mcp.post.error: request_id=%s", request_id)
            if not response_started:
                response = jsonrpc_error(
                    INTERNAL_ERROR, str(exc) or "Internal server error", 500
                )
                await response(scope, receive, send)
