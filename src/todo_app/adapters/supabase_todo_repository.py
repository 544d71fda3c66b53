"""Supabase-backed todo repository."""

from dataclasses import dataclass
from uuid import UUID

import anyio.to_thread
from supabase import Client

from todo_app.domain.todos import Todo
from todo_app.errors import UpstreamError
from todo_app.services.todos import TodoRepository


@dataclass
class SupabaseTodoRepository(TodoRepository):
    """Supabase implementation for todo persistence.

    The Supabase client is synchronous, so every query runs in a worker thread.
    """

    client: Client
    table_name: str = "todos"

    async def scan_all(self) -> list[Todo]:
        """Return every todo row."""
        return await anyio.to_thread.run_sync(self._scan_all)

    async def get(self, todo_id: UUID) -> Todo | None:
        """Return a todo by id, if present."""
        return await anyio.to_thread.run_sync(self._get, todo_id)

    async def put(self, todo: Todo) -> Todo:
        """Insert a new todo or overwrite an existing one."""
        return await anyio.to_thread.run_sync(self._put, todo)

    async def delete(self, todo_id: UUID) -> None:
        """Delete a todo row."""
        await anyio.to_thread.run_sync(self._delete, todo_id)

    def _scan_all(self) -> list[Todo]:
        response = self.client.table(self.table_name).select("*").execute()
        return [_parse_todo(row) for row in response.data or []]

    def _get(self, todo_id: UUID) -> Todo | None:
        response = (
            self.client.table(self.table_name)
            .select("*")
            .eq("id", str(todo_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_todo(response.data[0])

    def _put(self, todo: Todo) -> Todo:
        payload = todo.model_dump(mode="json", exclude_none=True)
        payload.setdefault("images", None)
        table = self.client.table(self.table_name)
        if todo.id is None:
            response = table.insert(payload).execute()
        else:
            response = table.upsert(payload).execute()
        if not response.data:
            raise UpstreamError("Failed to save todo item")
        return _parse_todo(response.data[0])

    def _delete(self, todo_id: UUID) -> None:
        self.client.table(self.table_name).delete().eq("id", str(todo_id)).execute()


def _parse_todo(row: dict[str, object]) -> Todo:
    return Todo.model_validate(
        {
            "id": row["id"],
            "description": row["description"],
            "created": row["created"],
            "completed": row.get("completed") or False,
            "images": row.get("images") or None,
        }
    )
