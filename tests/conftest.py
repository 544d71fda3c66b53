"""Shared test fixtures."""

from collections.abc import Callable
from dataclasses import dataclass, field
from io import BytesIO
from uuid import UUID, uuid4

import httpx
import pytest
from PIL import Image

from todo_app.config import Settings
from todo_app.containers import AppContainer, wire_container
from todo_app.domain.images import StoredBlob
from todo_app.domain.todos import Todo
from todo_app.errors import NotFoundError
from todo_app.services.blobs import BlobStore
from todo_app.services.todos import TodoRepository


def make_image(
    image_format: str,
    size: tuple[int, int],
    mode: str = "RGB",
    color: tuple[int, ...] = (200, 80, 40),
) -> bytes:
    """Return encoded bytes of a solid-color test image."""
    image = Image.new(mode, size, color)
    buffer = BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


def open_image(data: bytes) -> Image.Image:
    image = Image.open(BytesIO(data))
    image.load()
    return image


@dataclass
class InMemoryTodoRepository(TodoRepository):
    """In-memory todo repository for tests."""

    todos: dict[UUID, Todo] = field(default_factory=dict)
    deleted: list[UUID] = field(default_factory=list)
    fail_delete: bool = False

    async def scan_all(self) -> list[Todo]:
        return list(self.todos.values())

    async def get(self, todo_id: UUID) -> Todo | None:
        return self.todos.get(todo_id)

    async def put(self, todo: Todo) -> Todo:
        stored = todo if todo.id is not None else todo.model_copy(update={"id": uuid4()})
        self.todos[stored.id] = stored
        return stored

    async def delete(self, todo_id: UUID) -> None:
        self.deleted.append(todo_id)
        if self.fail_delete:
            raise RuntimeError("document store unavailable")
        self.todos.pop(todo_id, None)


@dataclass
class InMemoryBlobStore(BlobStore):
    """In-memory blob store for tests."""

    blobs: dict[UUID, StoredBlob] = field(default_factory=dict)
    puts: list[UUID] = field(default_factory=list)
    deleted: list[UUID] = field(default_factory=list)
    fail_delete: set[UUID] = field(default_factory=set)

    async def get(self, key: UUID) -> StoredBlob:
        if key not in self.blobs:
            raise NotFoundError(f"Image: {key} not found")
        return self.blobs[key]

    async def put(self, data: bytes, content_type: str) -> UUID:
        key = uuid4()
        self.blobs[key] = StoredBlob(content_type=content_type, data=data)
        self.puts.append(key)
        return key

    async def delete(self, key: UUID) -> None:
        self.deleted.append(key)
        if key in self.fail_delete:
            raise RuntimeError(f"blob store refused to delete {key}")
        self.blobs.pop(key, None)

    def add(self, data: bytes, content_type: str = "image/avif") -> UUID:
        key = uuid4()
        self.blobs[key] = StoredBlob(content_type=content_type, data=data)
        return key


@dataclass
class FakeWeb:
    """Serves canned responses for outbound image fetches."""

    responses: dict[str, httpx.Response] = field(default_factory=dict)
    requested: list[str] = field(default_factory=list)

    def serve(
        self,
        url: str,
        content: bytes,
        content_type: str | None = "image/png",
        status_code: int = 200,
    ) -> str:
        headers = {"content-type": content_type} if content_type else {}
        self.responses[url] = httpx.Response(
            status_code, content=content, headers=headers
        )
        return url

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requested.append(url)
        return self.responses.get(url, httpx.Response(404))

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        mcp_json_response=True,
    )


@pytest.fixture
def todo_repository() -> InMemoryTodoRepository:
    return InMemoryTodoRepository()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def fake_web() -> FakeWeb:
    return FakeWeb()


@pytest.fixture
def container(
    settings: Settings,
    todo_repository: InMemoryTodoRepository,
    blob_store: InMemoryBlobStore,
    fake_web: FakeWeb,
) -> AppContainer:
    return wire_container(
        settings=settings,
        todo_repository=todo_repository,
        blob_store=blob_store,
        http_client=fake_web.client(),
    )


@pytest.fixture
def fixed_clock() -> Callable[[], int]:
    return lambda: 1_700_000_000_000
