"""Re-encode photos to the quality/dimension profile of a compression class."""

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

from event_photo_storage.models import CompressionClass

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "JPEG"
OUTPUT_CONTENT_TYPE = "image/jpeg"
OUTPUT_EXTENSION = "jpg"


@dataclass(frozen=True)
class CompressionProfile:
    """JPEG quality (1-100) and longest-edge limit in pixels."""

    quality: int
    max_dimension: int


DEFAULT_PROFILES: dict[CompressionClass, CompressionProfile] = {
    CompressionClass.PREMIUM: CompressionProfile(quality=95, max_dimension=4000),
    CompressionClass.STANDARD: CompressionProfile(quality=85, max_dimension=2000),
    CompressionClass.THUMBNAIL: CompressionProfile(quality=75, max_dimension=800),
}


@dataclass(frozen=True)
class CompressedImage:
    """Output of the engine.

    ``passthrough`` is set when the input could not be decoded or encoded and
    was returned unchanged.
    """

    data: bytes
    content_type: str
    extension: str | None
    passthrough: bool = False

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class CompressionEngine:
    """Applies compression classes to image buffers."""

    def __init__(
        self, profiles: dict[CompressionClass, CompressionProfile] | None = None
    ) -> None:
        self.profiles = {**DEFAULT_PROFILES, **(profiles or {})}

    @classmethod
    def from_table(
        cls, table: dict[CompressionClass, tuple[int, int]]
    ) -> "CompressionEngine":
        """Build an engine from ``{class: (quality, max_dimension)}``."""
        return cls(
            {
                compression_class: CompressionProfile(quality=quality, max_dimension=dimension)
                for compression_class, (quality, dimension) in table.items()
            }
        )

    def compress(
        self,
        data: bytes,
        compression_class: CompressionClass,
        content_type: str = "application/octet-stream",
    ) -> CompressedImage:
        """Re-encode an image buffer as JPEG within the class profile.

        Aspect ratio is preserved and images are never upscaled. When the
        image cannot be processed the input is returned unchanged so the
        upload can still proceed.

        Args:
            data: Encoded image bytes
            compression_class: Profile to apply
            content_type: MIME type of the input, kept on passthrough

        Returns:
            The compressed image
        """
        profile = self.profiles[compression_class]

        try:
            encoded = _reencode(data, profile)
        except Exception as e:
            logger.warning(
                f"Image codec unavailable for {compression_class.value} compression, "
                f"storing original bytes: {e}"
            )
            return CompressedImage(
                data=data, content_type=content_type, extension=None, passthrough=True
            )

        logger.debug(
            f"Compressed {len(data)} -> {len(encoded)} bytes "
            f"({compression_class.value}, q={profile.quality}, max={profile.max_dimension}px)"
        )
        return CompressedImage(
            data=encoded, content_type=OUTPUT_CONTENT_TYPE, extension=OUTPUT_EXTENSION
        )


def _reencode(data: bytes, profile: CompressionProfile) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        image = ImageOps.exif_transpose(image)
        if image.mode != "RGB":
            image = _flatten_to_rgb(image)

        # thumbnail() keeps the aspect ratio and never enlarges
        image.thumbnail((profile.max_dimension, profile.max_dimension), Image.Resampling.LANCZOS)

        output = io.BytesIO()
        image.save(
            output,
            format=OUTPUT_FORMAT,
            quality=profile.quality,
            optimize=True,
            progressive=True,
        )
        return output.getvalue()


def _flatten_to_rgb(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")
