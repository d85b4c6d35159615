"""Tests for the compression engine."""

import io

from PIL import Image

from event_photo_storage.compression import (
    CompressionEngine,
    CompressionProfile,
)
from event_photo_storage.models import CompressionClass


def _dimensions(data: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(data)) as image:
        return image.size


class TestCompressionEngine:
    """Test CompressionEngine.compress."""

    def test_downscales_to_profile(self, make_jpeg) -> None:
        """Test that the longest edge is capped and aspect ratio kept."""
        engine = CompressionEngine()

        result = engine.compress(make_jpeg(4000, 3000), CompressionClass.THUMBNAIL)

        assert _dimensions(result.data) == (800, 600)
        assert result.content_type == "image/jpeg"
        assert result.extension == "jpg"
        assert not result.passthrough

    def test_never_upscales(self, make_jpeg) -> None:
        """Test that small images keep their size."""
        engine = CompressionEngine()

        result = engine.compress(make_jpeg(320, 200), CompressionClass.PREMIUM)

        assert _dimensions(result.data) == (320, 200)

    def test_portrait_orientation(self, make_jpeg) -> None:
        """Test that the height is capped for portrait images."""
        engine = CompressionEngine(
            {CompressionClass.STANDARD: CompressionProfile(quality=80, max_dimension=100)}
        )

        result = engine.compress(make_jpeg(300, 600), CompressionClass.STANDARD)

        assert _dimensions(result.data) == (50, 100)

    def test_png_with_alpha_becomes_jpeg(self, make_jpeg) -> None:
        """Test that transparent images are flattened and re-encoded."""
        engine = CompressionEngine()
        png = make_jpeg(100, 100, mode="RGBA", fmt="PNG")

        result = engine.compress(png, CompressionClass.STANDARD, "image/png")

        with Image.open(io.BytesIO(result.data)) as image:
            assert image.format == "JPEG"
            assert image.mode == "RGB"

    def test_undecodable_input_passes_through(self) -> None:
        """Test that bytes Pillow cannot read are returned unchanged."""
        engine = CompressionEngine()
        data = b"definitely not an image"

        result = engine.compress(data, CompressionClass.STANDARD, "image/heic")

        assert result.passthrough
        assert result.data == data
        assert result.content_type == "image/heic"
        assert result.extension is None

    def test_corrupt_png_passes_through(self, make_jpeg) -> None:
        """Test that a PNG with damaged chunk data is returned unchanged."""
        data = bytearray(make_jpeg(300, 200, fmt="PNG"))
        middle = len(data) // 2
        data[middle : middle + 30] = b"\xff" * 30
        engine = CompressionEngine()

        result = engine.compress(bytes(data), CompressionClass.STANDARD, "image/png")

        assert result.passthrough
        assert result.data == bytes(data)
        assert result.content_type == "image/png"

    def test_from_table(self) -> None:
        """Test building profiles from a (quality, dimension) table."""
        engine = CompressionEngine.from_table({CompressionClass.PREMIUM: (90, 3000)})

        assert engine.profiles[CompressionClass.PREMIUM] == CompressionProfile(90, 3000)
        assert engine.profiles[CompressionClass.STANDARD].max_dimension == 2000
