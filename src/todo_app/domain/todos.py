"""Domain models for todo items."""

from uuid import UUID

from pydantic import BaseModel, Field

from todo_app.errors import ValidationError

MAX_DESCRIPTION_LENGTH = 256
MAX_IMAGES_PER_TODO = 6


class Todo(BaseModel):
    """A todo item and the ids of its linked images."""

    id: UUID | None = Field(
        default=None,
        description=(
            "Randomly generated version 4 UUID that serves as an identifier for "
            "the todo item. Do not expose to end users in client responses. "
            "Cannot be modified after creation."
        ),
    )
    description: str = Field(
        min_length=1,
        max_length=MAX_DESCRIPTION_LENGTH,
        description=(
            "Description of the todo item. Can be modified after creation. "
            "Maximum length: 256 characters."
        ),
    )
    created: int = Field(
        description=(
            "Unix timestamp in milliseconds representing when the todo item was "
            "created. Cannot be modified after creation."
        ),
    )
    completed: bool = Field(
        default=False,
        description="Completion status of the todo item. Can be modified after creation.",
    )
    images: list[UUID] | None = Field(
        default=None,
        min_length=1,
        max_length=MAX_IMAGES_PER_TODO,
        description=(
            "Identifiers of images linked to the todo item, between 0 and 6. "
            "Omitted when there are no linked images. Do not expose to end users. "
            "Cannot be modified after creation."
        ),
    )

    def to_payload(self) -> dict[str, object]:
        """Serialize for API output, omitting absent fields."""
        return self.model_dump(mode="json", exclude_none=True)


def validate_description(value: str | None) -> str:
    """Return the description or raise when it is empty or too long."""
    if not value:
        raise ValidationError("Description is required")
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters"
        )
    return value


def validate_image_count(count: int) -> None:
    """Raise when more images are linked than a todo item can hold."""
    if count > MAX_IMAGES_PER_TODO:
        raise ValidationError(
            f"Cannot link more than {MAX_IMAGES_PER_TODO} images to todo item"
        )
