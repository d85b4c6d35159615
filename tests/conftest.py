"""Pytest configuration and shared fixtures."""

import asyncio
import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from event_photo_storage.config import get_settings
from event_photo_storage.exceptions import (
    ContainerAlreadyExists,
    ContainerCreationFailed,
    ProviderReadFailed,
    ProviderWriteFailed,
)
from event_photo_storage.models import PhotoMetadata, Tier, UsageState
from event_photo_storage.providers import (
    Container,
    ProviderAdapter,
    PutResult,
    StoredObject,
)

CREDENTIAL_ENV_VARS = [
    "CLOUDFLARE_R2_ACCOUNT_ID",
    "CLOUDFLARE_R2_ACCESS_KEY_ID",
    "CLOUDFLARE_R2_SECRET_ACCESS_KEY",
    "GOOGLE_DRIVE_CLIENT_ID",
    "GOOGLE_DRIVE_CLIENT_SECRET",
    "GOOGLE_DRIVE_REFRESH_TOKEN",
    "GOOGLE_DRIVE_ROOT_FOLDER_ID",
    "LOCAL_BACKUP_PATH",
]

PROVIDER_NAMES = {
    Tier.PRIMARY: "cloudflare-r2",
    Tier.SECONDARY: "google-drive",
    Tier.LOCAL: "local",
}


class FakeAdapter(ProviderAdapter):
    """In-memory adapter recording every call.

    ``fail_put`` makes every write raise; ``fail_on`` fails only writes whose
    path contains one of the given fragments. ``put_error`` is raised as is
    from every write.
    """

    def __init__(
        self,
        tier: Tier,
        fail_put: bool = False,
        fail_on: tuple[str, ...] = (),
        fail_create: bool = False,
        put_delay: float = 0.0,
        put_error: Exception | None = None,
    ) -> None:
        self.tier = tier
        self.provider = PROVIDER_NAMES[tier]
        self.fail_put = fail_put
        self.fail_on = fail_on
        self.fail_create = fail_create
        self.put_delay = put_delay
        self.put_error = put_error
        self.objects: dict[str, bytes] = {}
        self.puts: list[dict] = []
        self.containers: dict[str, Container] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    async def put(
        self,
        data: bytes,
        logical_path: str,
        metadata: dict[str, str] | None = None,
        *,
        container_id: str | None = None,
        content_type: str = "image/jpeg",
    ) -> PutResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.put_delay:
                await asyncio.sleep(self.put_delay)
            if self.put_error is not None:
                raise self.put_error
            if self.fail_put or any(fragment in logical_path for fragment in self.fail_on):
                raise ProviderWriteFailed(f"{self.provider} refused {logical_path}")

            path = f"{container_id}/{logical_path}" if container_id else logical_path
            self.objects[path] = data
            self.puts.append(
                {
                    "path": path,
                    "data": data,
                    "metadata": metadata or {},
                    "container_id": container_id,
                    "content_type": content_type,
                }
            )
            return PutResult(
                url=f"https://{self.provider}.test/{path}",
                path=path,
                size_bytes=len(data),
                etag='"etag"' if self.tier is Tier.PRIMARY else None,
                file_id=path if self.tier is Tier.SECONDARY else None,
            )
        finally:
            self.in_flight -= 1

    async def get(self, provider_path: str) -> bytes:
        if provider_path not in self.objects:
            raise ProviderReadFailed(f"{provider_path} not found")
        return self.objects[provider_path]

    async def delete(self, provider_path: str) -> bool:
        return self.objects.pop(provider_path, None) is not None

    async def list(self, prefix: str = "") -> list[StoredObject]:
        return [
            StoredObject(path=path, size_bytes=len(data))
            for path, data in self.objects.items()
            if path.startswith(prefix)
        ]

    async def usage_snapshot(self) -> UsageState:
        used = sum(len(data) for data in self.objects.values())
        return UsageState(used_bytes=used, capacity_bytes=10 * 1024 * 1024)

    async def find_container(
        self, name: str, parent_id: str | None = None
    ) -> Container | None:
        return self.containers.get(f"{parent_id}/{name}" if parent_id else name)

    async def create_container(
        self, name: str, parent_id: str | None = None
    ) -> Container:
        if self.fail_create:
            raise ContainerCreationFailed(f"Cannot create folder {name}")
        key = f"{parent_id}/{name}" if parent_id else name
        if key in self.containers:
            raise ContainerAlreadyExists(self.containers[key])
        container = Container(id=key, name=name, url=f"https://{self.provider}.test/{key}")
        self.containers[key] = container
        return container


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate every test from real credentials and cached settings."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_jpeg() -> Callable[..., bytes]:
    """Return a factory producing encoded test images."""

    def factory(width: int = 640, height: int = 480, mode: str = "RGB", fmt: str = "JPEG") -> bytes:
        color = (200, 80, 40, 128) if mode == "RGBA" else (200, 80, 40)
        image = Image.new(mode, (width, height), color)
        output = io.BytesIO()
        image.save(output, format=fmt)
        return output.getvalue()

    return factory


@pytest.fixture
def make_metadata() -> Callable[..., PhotoMetadata]:
    """Return a factory for photo metadata with sensible defaults."""

    def factory(**overrides) -> PhotoMetadata:
        values = {
            "album_name": "Ceremony",
            "uploader_name": "Alex",
            "file_size_bytes": 1024,
            "event_id": "evt1",
            "original_name": "IMG_0001.jpg",
        }
        values.update(overrides)
        return PhotoMetadata(**values)

    return factory


@pytest.fixture
def fake_adapters() -> dict[Tier, FakeAdapter]:
    """Return one in-memory adapter per tier."""
    return {tier: FakeAdapter(tier) for tier in (Tier.PRIMARY, Tier.SECONDARY, Tier.LOCAL)}


@pytest.fixture
def temp_photos_dir(tmp_path: Path, make_jpeg) -> Path:
    """Create a directory with test photos.

    Structure:
        photos/
            photo1.jpg
            photo2.png
            notes.txt
            nested/
                photo3.jpg
    """
    photos = tmp_path / "photos"
    photos.mkdir()
    (photos / "photo1.jpg").write_bytes(make_jpeg())
    (photos / "photo2.png").write_bytes(make_jpeg(fmt="PNG"))
    (photos / "notes.txt").write_text("not a photo")
    nested = photos / "nested"
    nested.mkdir()
    (nested / "photo3.jpg").write_bytes(make_jpeg())
    return photos
