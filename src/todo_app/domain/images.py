"""Models for image normalization."""

from dataclasses import dataclass, field
from uuid import UUID

MAX_UPLOAD_BYTES = 1024**2

AVIF = "avif"
WEBP = "webp"
HEIF_AV1 = "heif:av1"

CONTENT_TYPES = {
    AVIF: "image/avif",
    HEIF_AV1: "image/avif",
    WEBP: "image/webp",
}

ENCODER_OPTIONS: dict[str, dict[str, object]] = {
    AVIF: {"quality": 50, "subsampling": "4:2:0"},
    WEBP: {"quality": 50, "alpha_quality": 50, "lossless": False},
}


@dataclass(frozen=True)
class CodecPolicy:
    """Thresholds and target encoding for one codec path."""

    name: str
    max_dimension: int
    accepted_encodings: frozenset[str]
    target_encoding: str


WRITE_POLICY = CodecPolicy(
    name="write",
    max_dimension=640,
    accepted_encodings=frozenset({AVIF, WEBP, HEIF_AV1}),
    target_encoding=AVIF,
)

READ_POLICY = CodecPolicy(
    name="read",
    max_dimension=160,
    accepted_encodings=frozenset({WEBP}),
    target_encoding=WEBP,
)


@dataclass(frozen=True)
class ImageMetadata:
    """Encoding and dimensions read from an image header."""

    format: str
    width: int
    height: int
    compression: str | None = None

    @property
    def encoding(self) -> str:
        if self.compression:
            return f"{self.format}:{self.compression}"
        return self.format


@dataclass(frozen=True)
class NormalizedImage:
    """Codec output ready to be stored or embedded."""

    data: bytes
    content_type: str
    converted: bool


@dataclass(frozen=True)
class StoredBlob:
    """Bytes and content type read back from the blob store."""

    content_type: str | None
    data: bytes


@dataclass(frozen=True)
class Thumbnail:
    """Base64 image ready for inline tool output."""

    image_id: UUID
    data: str
    mime_type: str = field(default="image/webp")
