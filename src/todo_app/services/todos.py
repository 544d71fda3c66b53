"""Application service for todo items."""

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from todo_app.domain.todos import Todo, validate_description, validate_image_count
from todo_app.errors import NotFoundError
from todo_app.services.blobs import BlobStore

logger = logging.getLogger(__name__)


class TodoRepository(Protocol):
    """Persistence interface for todo items."""

    async def scan_all(self) -> list[Todo]:
        """Return every todo item."""

    async def get(self, todo_id: UUID) -> Todo | None:
        """Return a todo item by id, if present."""

    async def put(self, todo: Todo) -> Todo:
        """Insert a todo without an id, otherwise overwrite it."""

    async def delete(self, todo_id: UUID) -> None:
        """Delete a todo item by id."""


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class TodoService:
    """CRUD operations over todo items and their linked images."""

    repository: TodoRepository
    blob_store: BlobStore
    clock: Callable[[], int] = field(default=_now_ms)

    async def list_todos(self) -> list[Todo]:
        """Return all todo items."""
        return await self.repository.scan_all()

    async def get_todo(self, todo_id: UUID) -> Todo:
        """Return a todo item or raise NotFoundError."""
        todo = await self.repository.get(todo_id)
        if todo is None or todo.id is None:
            raise NotFoundError(f"Todo item: {todo_id} not found")
        return todo

    async def create_todo(
        self, description: str | None, image_ids: Sequence[UUID] = ()
    ) -> Todo:
        """Create a new, incomplete todo item."""
        validate_image_count(len(image_ids))
        todo = Todo(
            description=validate_description(description),
            created=self.clock(),
            completed=False,
            images=list(image_ids) or None,
        )
        return await self.repository.put(todo)

    async def update_todo(
        self,
        todo_id: UUID,
        description: str | None = None,
        completed: bool | None = None,
    ) -> Todo:
        """Merge description and completion status into an existing todo.

        This is a plain read-modify-write: concurrent updates to the same
        item race and the last writer wins.
        """
        changes: dict[str, object] = {}
        if description is not None:
            changes["description"] = validate_description(description)
        if completed is not None:
            changes["completed"] = completed
        existing = await self.get_todo(todo_id)
        return await self.repository.put(existing.model_copy(update=changes))

    async def delete_todo(self, todo_id: UUID) -> list[UUID]:
        """Delete a todo item and all of its images, returning the image ids.

        Every delete is issued even when some of them fail; the first failure
        is raised once all have settled.
        """
        todo = await self.get_todo(todo_id)
        image_ids = list(todo.images or [])
        results = await asyncio.gather(
            self.repository.delete(todo_id),
            *(self.blob_store.delete(image_id) for image_id in image_ids),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        for failure in failures:
            logger.error(
                "todo.delete.error: todo_id=%s", todo_id, exc_info=failure
            )
        if failures:
            raise failures[0]
        return image_ids

    async def find_todo_by_image(self, image_id: UUID) -> Todo | None:
        """Return the todo item that links to an image, if any."""
        for todo in await self.repository.scan_all():
            if todo.images and image_id in todo.images:
                return todo
        return None
