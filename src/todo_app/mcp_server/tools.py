"""MCP tool definitions for todo items and their images."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from mcp import types
from mcp.server.lowlevel import Server
from pydantic import BaseModel, Field, HttpUrl

from todo_app.domain.images import Thumbnail
from todo_app.domain.todos import MAX_DESCRIPTION_LENGTH, MAX_IMAGES_PER_TODO, Todo
from todo_app.errors import NotFoundError
from todo_app.services.ingest import ImageIngestPipeline
from todo_app.services.thumbnails import ThumbnailRenderer
from todo_app.services.todos import TodoService

logger = logging.getLogger(__name__)

SERVER_NAME = "todo-app-mcp-server"
SERVER_VERSION = "0.1.0"
SERVER_INSTRUCTIONS = """\
This server manages a todo list. Each todo item has a description, a completion
status, a creation time and up to 6 linked images.

- Use listTodos to see every item, retrieveTodo for a single one.
- Use addTodo to create an item. Images are given as external URLs and must be
  1MB or smaller; they are converted before being stored.
- Use modifyTodo to change the description or mark an item completed.
- Use removeTodo to delete an item and all of its images.
- Use retrieveImage to look at a single image and find the item it belongs to.

Todo and image ids are internal identifiers. Do not show them to end users.
"""

_ASSISTANT = types.Annotations(audience=["assistant"])
_EVERYONE = types.Annotations(audience=["user", "assistant"])

ToolOutput = tuple[list[types.ContentBlock], dict[str, Any]]
ToolHandler = Callable[[Any], Awaitable[ToolOutput]]


class NoInput(BaseModel):
    pass


class TodoIdInput(BaseModel):
    todoId: UUID = Field(description="Identifier of the todo item.")


class AddTodoInput(BaseModel):
    description: str = Field(
        min_length=1,
        max_length=MAX_DESCRIPTION_LENGTH,
        description="Description of the todo item. Maximum length: 256 characters.",
    )
    images: list[HttpUrl] | None = Field(
        default=None,
        min_length=1,
        max_length=MAX_IMAGES_PER_TODO,
        description=(
            "External URLs of images to link to the todo item, between 1 and 6. "
            "Each image must be 1MB or smaller. Omit when there are no images."
        ),
    )


class ModifyTodoInput(BaseModel):
    todoId: UUID = Field(description="Identifier of the todo item.")
    description: str | None = Field(
        default=None,
        min_length=1,
        max_length=MAX_DESCRIPTION_LENGTH,
        description="New description of the todo item.",
    )
    completed: bool | None = Field(
        default=None, description="New completion status of the todo item."
    )


class ImageIdInput(BaseModel):
    imageId: UUID = Field(description="Identifier of an image linked to a todo item.")


class TodoList(BaseModel):
    items: list[Todo]


class RemovedTodo(BaseModel):
    id: UUID
    deleted: bool


class ImageLookup(BaseModel):
    imageId: UUID
    todo: Todo | None = None


@dataclass(frozen=True)
class ToolDefinition:
    """One MCP tool: its schemas, hints and handler."""

    name: str
    title: str
    description: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    handler: ToolHandler
    read_only: bool = False
    destructive: bool = False
    idempotent: bool = False

    def to_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(),
            outputSchema=self.output_model.model_json_schema(),
            annotations=types.ToolAnnotations(
                title=self.title,
                readOnlyHint=self.read_only,
                destructiveHint=self.destructive,
                idempotentHint=self.idempotent,
                openWorldHint=False,
            ),
        )


@dataclass
class ToolRegistry:
    """Builds the six todo tools and binds them to protocol servers."""

    todo_service: TodoService
    ingest_pipeline: ImageIngestPipeline
    thumbnail_renderer: ThumbnailRenderer

    def definitions(self) -> dict[str, ToolDefinition]:
        """Return tool definitions keyed by name."""
        definitions = [
            ToolDefinition(
                name="listTodos",
                title="List Todo Items",
                description="Returns all todo items and their linked images.",
                input_model=NoInput,
                output_model=TodoList,
                handler=self._list_todos,
                read_only=True,
                idempotent=True,
            ),
            ToolDefinition(
                name="retrieveTodo",
                title="Retrieve Todo Item",
                description=(
                    "Retrieves a todo item by id. Returns the requested todo item "
                    "and its linked images."
                ),
                input_model=TodoIdInput,
                output_model=Todo,
                handler=self._retrieve_todo,
                read_only=True,
                idempotent=True,
            ),
            ToolDefinition(
                name="addTodo",
                title="Add Todo Item",
                description=(
                    "Adds a todo item and its linked images. Only the `description` "
                    "and `images` fields can be provided. Returns the added todo "
                    "item and its linked images."
                ),
                input_model=AddTodoInput,
                output_model=Todo,
                handler=self._add_todo,
            ),
            ToolDefinition(
                name="modifyTodo",
                title="Modify Todo Item",
                description=(
                    "Modifies a todo item by id. Only the `description` and "
                    "`completed` fields can be modified. Returns the modified todo "
                    "item and its linked images."
                ),
                input_model=ModifyTodoInput,
                output_model=Todo,
                handler=self._modify_todo,
            ),
            ToolDefinition(
                name="removeTodo",
                title="Remove Todo Item",
                description=(
                    "Removes the requested todo item and its linked images. Returns "
                    "a confirmation that they have been removed."
                ),
                input_model=TodoIdInput,
                output_model=RemovedTodo,
                handler=self._remove_todo,
                destructive=True,
            ),
            ToolDefinition(
                name="retrieveImage",
                title="Retrieve Image",
                description=(
                    "Retrieves an image by id. Returns the requested image and its "
                    "linked todo item."
                ),
                input_model=ImageIdInput,
                output_model=ImageLookup,
                handler=self._retrieve_image,
                read_only=True,
                idempotent=True,
            ),
        ]
        return {definition.name: definition for definition in definitions}

    def build_server(self, request_id: str) -> Server:
        """Create a protocol server with every tool registered."""
        server: Server = Server(
            SERVER_NAME, version=SERVER_VERSION, instructions=SERVER_INSTRUCTIONS
        )
        definitions = self.definitions()

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return [definition.to_tool() for definition in definitions.values()]

        @server.call_tool(validate_input=False)
        async def call_tool(
            name: str, arguments: dict[str, Any]
        ) -> types.CallToolResult:
            return await self.call(name, arguments, request_id, definitions)

        return server

    async def call(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        request_id: str | None = None,
        definitions: dict[str, ToolDefinition] | None = None,
    ) -> types.CallToolResult:
        """Run a tool, turning any failure into an error result."""
        try:
            definition = (definitions or self.definitions()).get(name)
            if definition is None:
                raise NotFoundError(f"Unknown tool: {name}")
            logger.info(
                "mcp.tool.start: request_id=%s tool=%s params=%s",
                request_id,
                name,
                arguments,
            )
            params = definition.input_model.model_validate(arguments or {})
            content, structured = await definition.handler(params)
            logger.info("mcp.tool.end: request_id=%s tool=%s", request_id, name)
            return types.CallToolResult(content=content, structuredContent=structured)
        except Exception as exc:
            logger.exception("mcp.tool.error: request_id=%s tool=%s", request_id, name)
            return types.CallToolResult(
                isError=True,
                content=[types.TextContent(type="text", text=f"Error: {exc}")],
            )

    async def _list_todos(self, _params: NoInput) -> ToolOutput:
        items = await self.todo_service.list_todos()
        if not items:
            content: list[types.ContentBlock] = [
                types.TextContent(
                    type="text", text="There are no todo items", annotations=_ASSISTANT
                )
            ]
        else:
            groups = await asyncio.gather(
                *(self._todo_and_image_content(item) for item in items)
            )
            content = [block for group in groups for block in group]
        return content, {"items": [item.to_payload() for item in items]}

    async def _retrieve_todo(self, params: TodoIdInput) -> ToolOutput:
        todo = await self.todo_service.get_todo(params.todoId)
        return await self._todo_and_image_content(todo), todo.to_payload()

    async def _add_todo(self, params: AddTodoInput) -> ToolOutput:
        image_ids = []
        if params.images:
            image_ids = await self.ingest_pipeline.ingest_urls(
                [str(url) for url in params.images]
            )
        todo = await self.todo_service.create_todo(params.description, image_ids)
        return await self._todo_and_image_content(todo), todo.to_payload()

    async def _modify_todo(self, params: ModifyTodoInput) -> ToolOutput:
        todo = await self.todo_service.update_todo(
            params.todoId,
            description=params.description,
            completed=params.completed,
        )
        return await self._todo_and_image_content(todo), todo.to_payload()

    async def _remove_todo(self, params: TodoIdInput) -> ToolOutput:
        image_ids = await self.todo_service.delete_todo(params.todoId)
        content: list[types.ContentBlock] = [
            types.TextContent(
                type="text",
                text=f"Todo item {params.todoId} has been removed",
                annotations=_ASSISTANT,
            )
        ]
        content.extend(
            types.TextContent(
                type="text",
                text=f"Image {image_id} has been removed",
                annotations=_ASSISTANT,
            )
            for image_id in image_ids
        )
        return content, {"id": str(params.todoId), "deleted": True}

    async def _retrieve_image(self, params: ImageIdInput) -> ToolOutput:
        thumbnail = await self.thumbnail_renderer.render(params.imageId)
        content = _image_content(thumbnail)
        owner = await self.todo_service.find_todo_by_image(params.imageId)
        if owner is None:
            content.append(
                types.TextContent(
                    type="text",
                    text=f"Image {params.imageId} is not linked to a todo item",
                    annotations=_ASSISTANT,
                )
            )
            return content, {"imageId": str(params.imageId), "todo": None}
        content.extend(_todo_content(owner))
        return content, {"imageId": str(params.imageId), "todo": owner.to_payload()}

    async def _todo_and_image_content(self, todo: Todo) -> list[types.ContentBlock]:
        content = _todo_content(todo)
        thumbnails = await asyncio.gather(
            *(self.thumbnail_renderer.render(image_id) for image_id in todo.images or [])
        )
        for thumbnail in thumbnails:
            content.extend(_image_content(thumbnail))
        return content


def _todo_text(todo: Todo) -> str:
    lines = []
    for key, value in todo.to_payload().items():
        if isinstance(value, list):
            value = f"[{', '.join(str(item) for item in value)}]"
        lines.append(f"{key}: {value}")
    return "\n".join(lines)


def _todo_content(todo: Todo) -> list[types.ContentBlock]:
    return [
        types.TextContent(
            type="text", text=f"Below is todo item {todo.id}", annotations=_ASSISTANT
        ),
        types.TextContent(type="text", text=_todo_text(todo), annotations=_EVERYONE),
    ]


def _image_content(thumbnail: Thumbnail) -> list[types.ContentBlock]:
    return [
        types.TextContent(
            type="text",
            text=f"Below is image {thumbnail.image_id}.",
            annotations=_ASSISTANT,
        ),
        types.ImageContent(
            type="image",
            data=thumbnail.data,
            mimeType=thumbnail.mime_type,
            annotations=_EVERYONE,
        ),
    ]
