"""Tests for utility functions."""

import pytest
from pathlib import Path

from event_photo_storage.utils import (
    content_type_for,
    format_bytes,
    is_image_file,
    scan_photos,
)


class TestIsImageFile:
    """Test image file detection."""

    def test_supported_image_formats(self, tmp_path: Path) -> None:
        """Test that supported image formats are recognized."""
        supported = [".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".heic"]

        for ext in supported:
            photo = tmp_path / f"test{ext}"
            photo.write_text("fake image")
            assert is_image_file(photo)

    def test_case_insensitive(self, tmp_path: Path) -> None:
        """Test that extension matching is case-insensitive."""
        photo = tmp_path / "test.JPG"
        photo.write_text("fake image")
        assert is_image_file(photo)

    def test_unsupported_formats(self, tmp_path: Path) -> None:
        """Test that unsupported formats are not recognized."""
        for ext in [".txt", ".pdf", ".mp4"]:
            file = tmp_path / f"test{ext}"
            file.write_text("fake content")
            assert not is_image_file(file)

    def test_directory_not_image(self, tmp_path: Path) -> None:
        """Test that directories are not considered image files."""
        dir_path = tmp_path / "test.jpg"
        dir_path.mkdir()
        assert not is_image_file(dir_path)


class TestScanPhotos:
    """Test photo scanning."""

    def test_scan_photos(self, temp_photos_dir: Path) -> None:
        """Test that only top-level images are returned, sorted."""
        photos = scan_photos(temp_photos_dir)

        assert [photo.name for photo in photos] == ["photo1.jpg", "photo2.png"]

    def test_nonexistent_directory(self, tmp_path: Path) -> None:
        """Test scanning a directory that does not exist."""
        with pytest.raises(FileNotFoundError):
            scan_photos(tmp_path / "missing")

    def test_file_instead_of_directory(self, tmp_path: Path) -> None:
        """Test scanning a file path."""
        file_path = tmp_path / "file.txt"
        file_path.write_text("x")

        with pytest.raises(NotADirectoryError):
            scan_photos(file_path)


class TestContentTypeFor:
    """Test MIME type guessing."""

    def test_known_types(self) -> None:
        """Test common photo extensions."""
        assert content_type_for(Path("a.jpg")) == "image/jpeg"
        assert content_type_for(Path("a.png")) == "image/png"

    def test_unknown_type(self) -> None:
        """Test the fallback type."""
        assert content_type_for(Path("a.unknownext")) == "application/octet-stream"


class TestFormatBytes:
    """Test size formatting."""

    @pytest.mark.parametrize(
        "size,expected",
        [
            (512, "512 B"),
            (2048, "2.00 KB"),
            (5 * 1024 * 1024, "5.00 MB"),
            (int(1.5 * 1024**3), "1.50 GB"),
        ],
    )
    def test_units(self, size: int, expected: str) -> None:
        """Test unit selection."""
        assert format_bytes(size) == expected
