"""Blob store interface for normalized images."""

from typing import Protocol
from uuid import UUID

from todo_app.domain.images import StoredBlob


class BlobStore(Protocol):
    """Persistence interface for image bytes keyed by generated id."""

    async def get(self, key: UUID) -> StoredBlob:
        """Return stored bytes, raising NotFoundError for a missing key."""

    async def put(self, data: bytes, content_type: str) -> UUID:
        """Store bytes under a freshly generated key and return it."""

    async def delete(self, key: UUID) -> None:
        """Delete the blob stored under key."""
