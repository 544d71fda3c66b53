"""Error types shared by the REST and MCP front-ends."""


class TodoAppError(Exception):
    """Base class for application errors."""


class ValidationError(TodoAppError):
    """Input was rejected before any side effect happened."""


class NotFoundError(TodoAppError):
    """A todo item or image does not exist."""


class UpstreamError(TodoAppError):
    """A store, network or codec fault."""


class ImageDecodeError(UpstreamError):
    """Image bytes could not be decoded or re-encoded."""
