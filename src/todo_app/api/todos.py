"""REST endpoints for todo items and their images."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Annotated
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, File, Form, Request, Response, UploadFile
from pydantic import BaseModel

from todo_app.domain.todos import validate_description, validate_image_count

if TYPE_CHECKING:
    from todo_app.containers import AppContainer

router = APIRouter(prefix="/api", tags=["todos"])

_UPLOAD_CHUNK_BYTES = 64 * 1024


class TodoUpdate(BaseModel):
    """Fields of a todo item that can change after creation."""

    description: str | None = None
    completed: bool | None = None


def _container(request: Request) -> AppContainer:
    return request.app.state.container


@router.get("/images/{image_id}")
async def get_image(image_id: UUID, request: Request) -> Response:
    """Return a stored image with its content type."""
    blob = await _container(request).blob_store.get(image_id)
    return Response(
        content=blob.data,
        media_type=blob.content_type or "application/octet-stream",
    )


@router.get("/todos")
async def list_todos(request: Request) -> list[dict[str, object]]:
    """Return all todo items."""
    todos = await _container(request).todo_service.list_todos()
    return [todo.to_payload() for todo in todos]


@router.post("/todos")
async def create_todo(
    request: Request,
    description: Annotated[str | None, Form()] = None,
    image: Annotated[list[UploadFile] | None, File()] = None,
) -> dict[str, object]:
    """Create a todo item from a description and up to six uploaded images."""
    container = _container(request)
    files = image or []
    validate_description(description)
    validate_image_count(len(files))
    image_ids = await asyncio.gather(
        *(
            container.ingest_pipeline.ingest_stream(
                _read_upload(upload),
                upload.content_type,
                f"filename: {upload.filename}",
            )
            for upload in files
        )
    )
    todo = await container.todo_service.create_todo(description, image_ids)
    return todo.to_payload()


@router.get("/todos/{todo_id}")
async def get_todo(todo_id: UUID, request: Request) -> dict[str, object]:
    """Return a single todo item."""
    todo = await _container(request).todo_service.get_todo(todo_id)
    return todo.to_payload()


@router.put("/todos/{todo_id}")
async def update_todo(
    todo_id: UUID, update: TodoUpdate, request: Request
) -> dict[str, object]:
    """Update the description or completion status of a todo item."""
    todo = await _container(request).todo_service.update_todo(
        todo_id,
        description=update.description,
        completed=update.completed,
    )
    return todo.to_payload()


@router.delete("/todos/{todo_id}")
async def delete_todo(todo_id: UUID, request: Request) -> dict[str, str]:
    """Delete a todo item and its images."""
    await _container(request).todo_service.delete_todo(todo_id)
    return {"id": str(todo_id)}


async def _read_upload(upload: UploadFile) -> AsyncIterator[bytes]:
    while chunk := await upload.read(_UPLOAD_CHUNK_BYTES):
        yield chunk
