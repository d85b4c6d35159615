"""Tests for logical path generation."""

import re

from event_photo_storage.models import PhotoMetadata
from event_photo_storage.paths import (
    generate_logical_path,
    replace_extension,
    sanitize_name,
    unique_file_name,
)


def _metadata(**overrides) -> PhotoMetadata:
    values = {"album_name": "Ceremony", "uploader_name": "Alex", "file_size_bytes": 1}
    values.update(overrides)
    return PhotoMetadata(**values)


class TestSanitizeName:
    """Test file name sanitizing."""

    def test_unsafe_characters_replaced(self) -> None:
        """Test that spaces and symbols become underscores."""
        assert sanitize_name("my photo (1)!.JPG") == "my_photo__1__.JPG"

    def test_safe_name_unchanged(self) -> None:
        """Test that a safe name passes through."""
        assert sanitize_name("IMG-0001.jpg") == "IMG-0001.jpg"


class TestUniqueFileName:
    """Test unique file naming."""

    def test_format(self) -> None:
        """Test the timestamp, random suffix and base name layout."""
        name = unique_file_name("party pic.jpeg", timestamp_ms=1700000000000)

        assert re.fullmatch(r"1700000000000_[0-9a-z]{6}_party_pic\.jpeg", name)

    def test_default_extension(self) -> None:
        """Test that names without an extension get jpg."""
        assert unique_file_name("scan", timestamp_ms=1).endswith("_scan.jpg")

    def test_same_timestamp_does_not_collide(self) -> None:
        """Test that the random suffix separates same-millisecond uploads."""
        names = {unique_file_name("a.jpg", timestamp_ms=5) for _ in range(50)}

        assert len(names) == 50


class TestGenerateLogicalPath:
    """Test logical path layout."""

    def test_event_with_album(self) -> None:
        """Test event photos land under their album."""
        path = generate_logical_path("a.jpg", _metadata(event_id="evt1"), timestamp_ms=1)

        assert path.startswith("events/evt1/Ceremony/1_")

    def test_event_without_album(self) -> None:
        """Test event photos without an album."""
        path = generate_logical_path("a.jpg", _metadata(event_id="evt1", album_name=""))

        assert re.fullmatch(r"events/evt1/\d+_[0-9a-z]{6}_a\.jpg", path)

    def test_homepage(self) -> None:
        """Test homepage photos."""
        path = generate_logical_path("a.jpg", _metadata(is_homepage=True))

        assert path.startswith("homepage/")

    def test_uploads(self) -> None:
        """Test photos without event or homepage flag."""
        assert generate_logical_path("a.jpg", _metadata()).startswith("uploads/")

    def test_album_override(self) -> None:
        """Test that the override replaces the album directory."""
        path = generate_logical_path(
            "thumb.jpg", _metadata(event_id="evt1"), album_override="thumbnails"
        )

        assert path.startswith("events/evt1/thumbnails/")

    def test_slashes_in_segments_are_neutralized(self) -> None:
        """Test that album names cannot add directory levels."""
        path = generate_logical_path("a.jpg", _metadata(event_id="evt1", album_name="../x"))

        assert path.split("/")[2] == ".._x"


class TestReplaceExtension:
    """Test extension replacement."""

    def test_replaces(self) -> None:
        """Test swapping an extension."""
        assert replace_extension("photo.png", "jpg") == "photo.jpg"

    def test_adds_when_missing(self) -> None:
        """Test adding an extension."""
        assert replace_extension("photo", "jpg") == "photo.jpg"
