"""Utility functions for scanning photos and formatting sizes."""

import logging
import mimetypes
from pathlib import Path

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".heic"}


def is_image_file(path: Path) -> bool:
    """Check if a file is a supported image format.

    Args:
        path: Path to the file to check

    Returns:
        True if the file is a supported image format, False otherwise
    """
    return path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS


def scan_photos(directory: Path) -> list[Path]:
    """Collect the image files directly inside a directory, sorted by name.

    Args:
        directory: Directory to scan

    Returns:
        List of image paths

    Raises:
        FileNotFoundError: If directory doesn't exist
        NotADirectoryError: If directory is not a directory
    """
    if not directory.exists():
        raise FileNotFoundError(f"Directory does not exist: {directory}")

    if not directory.is_dir():
        raise NotADirectoryError(f"Path is not a directory: {directory}")

    photos = []
    for path in sorted(directory.iterdir()):
        if is_image_file(path):
            photos.append(path)
        else:
            logger.debug(f"Skipping non-image entry: {path}")

    logger.info(f"Found {len(photos)} photo(s) in {directory}")
    return photos


def content_type_for(path: Path) -> str:
    """Guess the MIME type of a photo from its extension."""
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"


def format_bytes(size: int) -> str:
    """Render a byte count with a binary unit, e.g. ``1.50 GB``."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if abs(value) < 1024:
            return f"{int(value)} B" if unit == "B" else f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"
