"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from todo_app.api.middleware import RequestContextMiddleware
from todo_app.api.todos import router as todos_router
from todo_app.app_logging import configure_logging
from todo_app.config import parse_cors_origins
from todo_app.containers import AppContainer
from todo_app.errors import NotFoundError, TodoAppError, ValidationError
from todo_app.mcp_server.endpoint import McpEndpoint


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        # runs when the server receives SIGTERM/SIGINT
        logger.info("Shutting down, closing live MCP sessions")
        await app.state.container.mcp_sessions.close_all()
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_cors_origins(container.settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(TodoAppError)
    async def handle_app_error(request: Request, exc: TodoAppError) -> JSONResponse:
        if isinstance(exc, ValidationError):
            status_code = 400
        elif isinstance(exc, NotFoundError):
            status_code = 404
        else:
            status_code = 500
            logger.error(
                "Request failed: request_id=%s",
                getattr(request.state, "request_id", None),
                exc_info=exc,
            )
        return JSONResponse(
            {"code": type(exc).__name__, "message": str(exc)},
            status_code=status_code,
        )

    app.include_router(todos_router)
    app.add_route(
        "/mcp", McpEndpoint(container.mcp_sessions), include_in_schema=False
    )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon() -> Response:
        return Response(status_code=204)

    return app
