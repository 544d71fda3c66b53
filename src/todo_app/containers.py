"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from supabase import create_client

from todo_app.adapters.supabase_blob_store import SupabaseBlobStore
from todo_app.adapters.supabase_todo_repository import SupabaseTodoRepository
from todo_app.config import Settings
from todo_app.domain.images import READ_POLICY, WRITE_POLICY
from todo_app.mcp_server.sessions import McpSessionManager
from todo_app.mcp_server.tools import ToolRegistry
from todo_app.services.blobs import BlobStore
from todo_app.services.codec import ImageCodec
from todo_app.services.ingest import ImageIngestPipeline
from todo_app.services.thumbnails import ThumbnailRenderer
from todo_app.services.todos import TodoRepository, TodoService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    blob_store: BlobStore
    todo_service: TodoService
    ingest_pipeline: ImageIngestPipeline
    thumbnail_renderer: ThumbnailRenderer
    mcp_sessions: McpSessionManager
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    todo_repository = SupabaseTodoRepository(
        supabase_client, table_name=resolved_settings.todos_table
    )
    blob_store = SupabaseBlobStore(
        supabase_client, bucket=resolved_settings.images_bucket
    )
    http_client = httpx.AsyncClient(follow_redirects=True)
    return wire_container(
        settings=resolved_settings,
        todo_repository=todo_repository,
        blob_store=blob_store,
        http_client=http_client,
    )


def wire_container(
    *,
    settings: Settings,
    todo_repository: TodoRepository,
    blob_store: BlobStore,
    http_client: httpx.AsyncClient,
) -> AppContainer:
    """Build services on top of the given adapters."""
    todo_service = TodoService(repository=todo_repository, blob_store=blob_store)
    ingest_pipeline = ImageIngestPipeline(
        codec=ImageCodec(WRITE_POLICY),
        blob_store=blob_store,
        http_client=http_client,
    )
    thumbnail_renderer = ThumbnailRenderer(
        codec=ImageCodec(READ_POLICY), blob_store=blob_store
    )
    registry = ToolRegistry(
        todo_service=todo_service,
        ingest_pipeline=ingest_pipeline,
        thumbnail_renderer=thumbnail_renderer,
    )
    mcp_sessions = McpSessionManager(
        registry=registry, json_response=settings.mcp_json_response
    )

    async def close_resources() -> None:
        await http_client.aclose()

    return AppContainer(
        settings=settings,
        blob_store=blob_store,
        todo_service=todo_service,
        ingest_pipeline=ingest_pipeline,
        thumbnail_renderer=thumbnail_renderer,
        mcp_sessions=mcp_sessions,
        close_resources=close_resources,
    )
