"""Image format and size normalization."""

from dataclasses import dataclass
from io import BytesIO

import anyio.to_thread
from PIL import Image

from todo_app.domain.images import (
    AVIF,
    CONTENT_TYPES,
    ENCODER_OPTIONS,
    HEIF_AV1,
    CodecPolicy,
    ImageMetadata,
    NormalizedImage,
)
from todo_app.errors import ImageDecodeError

_AVIF_BRANDS = {b"avif", b"avis"}
_DECODE_ERRORS = (OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass(frozen=True)
class ConversionPlan:
    """Which transforms an image needs under a policy."""

    needs_format_conversion: bool
    needs_resize: bool

    @property
    def needs_transform(self) -> bool:
        return self.needs_format_conversion or self.needs_resize


@dataclass(frozen=True)
class ImageCodec:
    """Decides on and applies the resize/re-encode transform for a policy."""

    policy: CodecPolicy

    def inspect(self, data: bytes) -> ImageMetadata:
        """Read encoding and dimensions without decoding pixel data."""
        try:
            with Image.open(BytesIO(data)) as image:
                return _metadata(image, data)
        except _DECODE_ERRORS as exc:
            raise ImageDecodeError(f"Unable to read image: {exc}") from exc

    def plan(self, metadata: ImageMetadata) -> ConversionPlan:
        """Return the transforms required by the policy."""
        limit = self.policy.max_dimension
        return ConversionPlan(
            needs_format_conversion=(
                metadata.encoding not in self.policy.accepted_encodings
            ),
            needs_resize=metadata.width > limit or metadata.height > limit,
        )

    def normalize(self, data: bytes) -> NormalizedImage:
        """Resize and re-encode the image if the policy requires it."""
        metadata = self.inspect(data)
        plan = self.plan(metadata)
        if plan.needs_format_conversion:
            encoding = self.policy.target_encoding
        else:
            encoding = metadata.encoding
        content_type = CONTENT_TYPES[encoding]
        if not plan.needs_transform:
            return NormalizedImage(data=data, content_type=content_type, converted=False)
        output = self._transform(data, encoding, resize=plan.needs_resize)
        return NormalizedImage(
            data=output,
            content_type=content_type,
            converted=plan.needs_format_conversion,
        )

    async def normalize_async(self, data: bytes) -> NormalizedImage:
        """Run ``normalize`` in a worker thread."""
        return await anyio.to_thread.run_sync(self.normalize, data)

    def _transform(self, data: bytes, encoding: str, *, resize: bool) -> bytes:
        target = AVIF if encoding == HEIF_AV1 else encoding
        size = (self.policy.max_dimension, self.policy.max_dimension)
        buffer = BytesIO()
        try:
            with Image.open(BytesIO(data)) as image:
                frame = _to_8bit(image)
                if resize:
                    # thumbnail() keeps aspect ratio and never enlarges
                    frame.thumbnail(size, Image.Resampling.LANCZOS)
                frame.save(buffer, format=target.upper(), **ENCODER_OPTIONS[target])
        except _DECODE_ERRORS as exc:
            raise ImageDecodeError(f"Unable to convert image: {exc}") from exc
        return buffer.getvalue()


def _metadata(image: Image.Image, data: bytes) -> ImageMetadata:
    width, height = image.size
    image_format = (image.format or "").lower()
    if image_format == AVIF and data[8:12] not in _AVIF_BRANDS:
        # generic HEIF container carrying an AV1 image
        return ImageMetadata(format="heif", compression="av1", width=width, height=height)
    return ImageMetadata(format=image_format, width=width, height=height)


def _to_8bit(image: Image.Image) -> Image.Image:
    """Return an 8-bit RGB or RGBA copy suitable for lossy encoders."""
    if image.mode in {"RGB", "RGBA"}:
        return image.copy()
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")
