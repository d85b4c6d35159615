"""Logical path generation shared by the object-store and local tiers."""

import re
import secrets
import string
import time

from event_photo_storage.models import PhotoMetadata

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")
_BASE36 = string.digits + string.ascii_lowercase
RANDOM_SUFFIX_LENGTH = 6


def sanitize_name(name: str) -> str:
    """Replace every character outside ``[a-zA-Z0-9.-]`` with an underscore."""
    return _UNSAFE_CHARS.sub("_", name)


def _sanitize_segment(segment: str) -> str:
    return segment.replace("/", "_").replace("\\", "_").strip() or "default"


def random_suffix(length: int = RANDOM_SUFFIX_LENGTH) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def unique_file_name(file_name: str, timestamp_ms: int | None = None) -> str:
    """Build ``{timestamp}_{random}_{name}.{ext}`` from an original file name.

    Args:
        file_name: Original file name, possibly with unsafe characters
        timestamp_ms: Epoch milliseconds; defaults to now

    Returns:
        A collision-resistant file name
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)

    clean = sanitize_name(file_name)
    base, dot, extension = clean.rpartition(".")
    if not dot or not base:
        base, extension = clean, "jpg"

    return f"{timestamp_ms}_{random_suffix()}_{base}.{extension}"


def generate_logical_path(
    file_name: str,
    metadata: PhotoMetadata,
    timestamp_ms: int | None = None,
    album_override: str | None = None,
) -> str:
    """Generate the portable storage path for a photo.

    Event photos land in ``events/{eventId}/{albumName}/``, homepage photos in
    ``homepage/`` and anything else in ``uploads/``.

    Args:
        file_name: File name to embed (extension included)
        metadata: Photo metadata supplying event and album
        timestamp_ms: Epoch milliseconds; defaults to now
        album_override: Album directory to use instead of ``metadata.album_name``

    Returns:
        Slash-separated logical path
    """
    unique = unique_file_name(file_name, timestamp_ms)
    album = album_override if album_override is not None else metadata.album_name

    if metadata.event_id and album:
        return f"events/{_sanitize_segment(metadata.event_id)}/{_sanitize_segment(album)}/{unique}"
    if metadata.event_id:
        return f"events/{_sanitize_segment(metadata.event_id)}/{unique}"
    if metadata.is_homepage:
        return f"homepage/{unique}"
    return f"uploads/{unique}"


def replace_extension(file_name: str, extension: str) -> str:
    """Swap the extension of ``file_name`` for ``extension`` (without dot)."""
    base, dot, _ = file_name.rpartition(".")
    if not dot or not base:
        base = file_name
    return f"{base}.{extension}"
