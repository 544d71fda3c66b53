"""Receive, normalize and store uploaded images."""

import asyncio
import logging
from collections.abc import AsyncIterable, Sequence
from dataclasses import dataclass
from uuid import UUID

import httpx

from todo_app.domain.images import MAX_UPLOAD_BYTES
from todo_app.errors import UpstreamError, ValidationError
from todo_app.services.blobs import BlobStore
from todo_app.services.codec import ImageCodec

logger = logging.getLogger(__name__)


@dataclass
class ImageIngestPipeline:
    """Validates image uploads and stores their write-path normalized form.

    Every accepted upload results in exactly one blob store write; a rejected
    upload never reaches the blob store.
    """

    codec: ImageCodec
    blob_store: BlobStore
    http_client: httpx.AsyncClient
    max_bytes: int = MAX_UPLOAD_BYTES

    async def ingest_bytes(
        self, data: bytes, mime_type: str | None, source: str
    ) -> UUID:
        """Store an image that is already fully in memory."""
        _check_mime_type(mime_type, source)
        if len(data) > self.max_bytes:
            raise _too_large(source)
        return await self._store(data, source)

    async def ingest_stream(
        self, chunks: AsyncIterable[bytes], mime_type: str | None, source: str
    ) -> UUID:
        """Store an image received as a stream of chunks."""
        _check_mime_type(mime_type, source)
        data = await self._read_capped(chunks, source)
        return await self._store(data, source)

    async def ingest_url(self, url: str) -> UUID:
        """Fetch an image from an external URL and store it."""
        source = f"URL: {url}"
        try:
            async with self.http_client.stream("GET", url) as response:
                if not response.is_success:
                    raise UpstreamError(
                        f"Failed to fetch image from external URL: {url}"
                    )
                mime_type = response.headers.get("content-type")
                if not mime_type:
                    raise ValidationError(
                        f"No content type found for image at URL: {url}"
                    )
                _check_mime_type(mime_type, source)
                data = await self._read_capped(response.aiter_bytes(), source)
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"Failed to fetch image from external URL: {url} ({exc})"
            ) from exc
        return await self._store(data, source)

    async def ingest_urls(self, urls: Sequence[str]) -> list[UUID]:
        """Ingest several URLs concurrently, failing if any one fails.

        Every fetch settles before the first failure is raised. Images stored
        before a sibling fails are left in the blob store.
        """
        results = await asyncio.gather(
            *(self.ingest_url(url) for url in urls), return_exceptions=True
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        for failure in failures:
            logger.error("image.ingest.error: %s", failure)
        if failures:
            raise failures[0]
        return [result for result in results if isinstance(result, UUID)]

    async def _read_capped(self, chunks: AsyncIterable[bytes], source: str) -> bytes:
        buffer = bytearray()
        async for chunk in chunks:
            buffer.extend(chunk)
            if len(buffer) > self.max_bytes:
                raise _too_large(source)
        return bytes(buffer)

    async def _store(self, data: bytes, source: str) -> UUID:
        normalized = await self.codec.normalize_async(data)
        image_id = await self.blob_store.put(normalized.data, normalized.content_type)
        logger.info(
            "image.ingest.stored: image_id=%s source=%s content_type=%s converted=%s",
            image_id,
            source,
            normalized.content_type,
            normalized.converted,
        )
        return image_id


def _check_mime_type(mime_type: str | None, source: str) -> None:
    if not mime_type or not mime_type.startswith("image/"):
        raise ValidationError(
            f"Invalid content type for image with {source} - "
            f"Expected image/* but got {mime_type}"
        )


def _too_large(source: str) -> ValidationError:
    return ValidationError(
        f"Image with {source} is larger than 1MB - Image must be 1MB or smaller"
    )
