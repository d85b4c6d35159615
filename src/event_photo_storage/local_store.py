"""Local filesystem tier used as the last-resort fallback."""

import asyncio
import logging
import time
from pathlib import Path

from event_photo_storage.exceptions import (
    ContainerAlreadyExists,
    ContainerCreationFailed,
    ProviderReadFailed,
    ProviderUnavailable,
    ProviderWriteFailed,
)
from event_photo_storage.models import Tier, UsageState
from event_photo_storage.providers import (
    Container,
    ProviderAdapter,
    PutResult,
    StoredObject,
)

logger = logging.getLogger(__name__)


class LocalStore(ProviderAdapter):
    """Stores photos below a backup directory using the logical path layout."""

    tier = Tier.LOCAL
    provider = "local"

    def __init__(
        self,
        root_dir: Path | str,
        capacity_bytes: int,
        public_base_url: str | None = None,
    ) -> None:
        """Initialize local store.

        Args:
            root_dir: Backup directory; created if missing
            capacity_bytes: Advisory ceiling reported in usage snapshots
            public_base_url: Base URL serving the backup directory, if any

        Raises:
            ProviderUnavailable: If the backup directory cannot be created
        """
        self.root_dir = Path(root_dir).expanduser().resolve()
        self.capacity_bytes = capacity_bytes
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ProviderUnavailable(f"Cannot use backup directory {self.root_dir}: {e}") from e

    def _resolve(self, relative_path: str) -> Path:
        """Resolve a relative path, refusing anything outside the root."""
        target = (self.root_dir / relative_path).resolve()
        if not target.is_relative_to(self.root_dir):
            raise ValueError(f"Path escapes backup directory: {relative_path}")
        return target

    def url_for(self, relative_path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{relative_path}"
        return self._resolve(relative_path).as_uri()

    async def put(
        self,
        data: bytes,
        logical_path: str,
        metadata: dict[str, str] | None = None,
        *,
        container_id: str | None = None,
        content_type: str = "image/jpeg",
    ) -> PutResult:
        relative = f"{container_id.rstrip('/')}/{logical_path}" if container_id else logical_path

        try:
            target = self._resolve(relative)
            await asyncio.to_thread(_write_file, target, data)
        except (OSError, ValueError) as e:
            logger.error(f"Local write failed for {relative}: {e}")
            raise ProviderWriteFailed(f"Local write failed: {e}") from e

        logger.info(f"Saved to local: {target}")
        return PutResult(url=self.url_for(relative), path=relative, size_bytes=len(data))

    async def get(self, provider_path: str) -> bytes:
        try:
            target = self._resolve(provider_path)
            return await asyncio.to_thread(target.read_bytes)
        except (OSError, ValueError) as e:
            raise ProviderReadFailed(f"Local read failed for {provider_path}: {e}") from e

    async def delete(self, provider_path: str) -> bool:
        try:
            target = self._resolve(provider_path)
        except ValueError as e:
            logger.error(f"Refusing to delete {provider_path}: {e}")
            return False

        if not target.is_file():
            return False

        try:
            await asyncio.to_thread(target.unlink)
        except OSError as e:
            logger.error(f"Local delete failed for {provider_path}: {e}")
            return False

        logger.info(f"File deleted from local storage: {provider_path}")
        return True

    async def list(self, prefix: str = "") -> list[StoredObject]:
        try:
            base = self._resolve(prefix) if prefix else self.root_dir
            files = await asyncio.to_thread(_walk_files, base)
        except (OSError, ValueError) as e:
            raise ProviderReadFailed(f"Local listing failed: {e}") from e

        objects = []
        for path, size in files:
            relative = path.relative_to(self.root_dir).as_posix()
            objects.append(StoredObject(path=relative, size_bytes=size, url=self.url_for(relative)))
        return objects

    async def usage_snapshot(self) -> UsageState:
        objects = await self.list()
        return UsageState(
            used_bytes=sum(obj.size_bytes for obj in objects),
            capacity_bytes=self.capacity_bytes,
        )

    async def find_container(
        self, name: str, parent_id: str | None = None
    ) -> Container | None:
        relative = f"{parent_id}/{name}" if parent_id else name
        try:
            target = self._resolve(relative)
        except ValueError:
            return None
        if not target.is_dir():
            return None
        return Container(id=relative, name=name, url=self.url_for(relative))

    async def create_container(
        self, name: str, parent_id: str | None = None
    ) -> Container:
        relative = f"{parent_id}/{name}" if parent_id else name
        try:
            target = self._resolve(relative)
            await asyncio.to_thread(target.mkdir, parents=True, exist_ok=False)
        except FileExistsError:
            raise ContainerAlreadyExists(
                Container(id=relative, name=name, url=self.url_for(relative))
            )
        except (OSError, ValueError) as e:
            raise ContainerCreationFailed(f"Cannot create folder {relative}: {e}") from e

        logger.info(f"Created local folder: {relative}")
        return Container(id=relative, name=name, url=self.url_for(relative))

    async def cleanup_older_than(self, days: int) -> int:
        """Delete backup files not modified within the last ``days`` days.

        Args:
            days: Retention threshold in days

        Returns:
            Number of files deleted
        """
        cutoff = time.time() - days * 24 * 60 * 60
        removed = await asyncio.to_thread(_remove_older_than, self.root_dir, cutoff)
        logger.info(f"Cleaned up {removed} old file(s) from {self.root_dir}")
        return removed


def _write_file(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)


def _walk_files(base: Path) -> list[tuple[Path, int]]:
    if not base.exists():
        return []
    return [(path, path.stat().st_size) for path in sorted(base.rglob("*")) if path.is_file()]


def _remove_older_than(root: Path, cutoff: float) -> int:
    removed = 0
    for path in root.rglob("*"):
        if path.is_file() and path.stat().st_mtime < cutoff:
            path.unlink()
            removed += 1
    return removed
