"""Render stored images as small inline thumbnails."""

import base64
from dataclasses import dataclass
from uuid import UUID

from todo_app.domain.images import Thumbnail
from todo_app.services.blobs import BlobStore
from todo_app.services.codec import ImageCodec


@dataclass
class ThumbnailRenderer:
    """Read-path normalization of stored images. Never writes back."""

    codec: ImageCodec
    blob_store: BlobStore

    async def render(self, image_id: UUID) -> Thumbnail:
        """Return a base64 WEBP thumbnail for a stored image."""
        blob = await self.blob_store.get(image_id)
        normalized = await self.codec.normalize_async(blob.data)
        encoded = base64.b64encode(normalized.data).decode("utf-8")
        return Thumbnail(image_id=image_id, data=encoded, mime_type="image/webp")
