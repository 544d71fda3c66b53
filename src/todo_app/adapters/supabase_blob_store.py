"""Supabase Storage-backed image blob store."""

from dataclasses import dataclass
from uuid import UUID, uuid4

import anyio.to_thread
from storage3.exceptions import StorageApiError
from supabase import Client

from todo_app.domain.images import StoredBlob
from todo_app.errors import NotFoundError
from todo_app.services.blobs import BlobStore

_NOT_FOUND_CODES = {"not_found", "NoSuchKey"}


@dataclass
class SupabaseBlobStore(BlobStore):
    """Stores normalized images in a Supabase Storage bucket."""

    client: Client
    bucket: str = "images"

    async def get(self, key: UUID) -> StoredBlob:
        """Download an image, raising NotFoundError for a missing key."""
        try:
            data = await anyio.to_thread.run_sync(self._download, key)
        except StorageApiError as exc:
            if _is_missing_key(exc):
                raise NotFoundError(f"Image: {key} not found") from exc
            raise
        return StoredBlob(content_type=_detect_content_type(data), data=data)

    async def put(self, data: bytes, content_type: str) -> UUID:
        """Upload an image under a new UUID key."""
        key = uuid4()
        await anyio.to_thread.run_sync(self._upload, key, data, content_type)
        return key

    async def delete(self, key: UUID) -> None:
        """Remove an image from the bucket."""
        await anyio.to_thread.run_sync(self._remove, key)

    def _download(self, key: UUID) -> bytes:
        return self.client.storage.from_(self.bucket).download(str(key))

    def _upload(self, key: UUID, data: bytes, content_type: str) -> None:
        self.client.storage.from_(self.bucket).upload(
            path=str(key),
            file=data,
            file_options={"content-type": content_type},
        )

    def _remove(self, key: UUID) -> None:
        self.client.storage.from_(self.bucket).remove([str(key)])


def _is_missing_key(exc: StorageApiError) -> bool:
    return exc.code in _NOT_FOUND_CODES or str(exc.status) == "404"


def _detect_content_type(data: bytes) -> str | None:
    """Infer the stored image MIME type from its file signature."""
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[4:8] == b"ftyp":
        return "image/avif"
    return None
