"""End-of-event backup into the archival tier with bounded concurrency."""

import asyncio
import json
import logging
import mimetypes
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import httpx

from event_photo_storage.cache import BackupRegistry
from event_photo_storage.exceptions import (
    BackupNotCompleted,
    ContainerAlreadyExists,
    ContainerCreationFailed,
    NoPhotosFound,
    ProviderReadFailed,
    ProviderUnavailable,
    StorageError,
)
from event_photo_storage.models import (
    BackupJob,
    BackupStatus,
    PhotoRecord,
    Tier,
)
from event_photo_storage.paths import random_suffix, sanitize_name
from event_photo_storage.providers import Container, ProviderAdapter

logger = logging.getLogger(__name__)

# storage_provider values written by the router, mapped back to tiers
PROVIDER_TIERS = {
    "cloudflare-r2": Tier.PRIMARY,
    "google-drive": Tier.SECONDARY,
    "local": Tier.LOCAL,
}

ProgressCallback = Callable[[BackupJob], None]


class PhotoSource(Protocol):
    """Data-layer collaborator listing an event's photos."""

    async def list_event_photos(self, event_id: str) -> list[PhotoRecord]: ...


class EventStore(Protocol):
    """Data-layer collaborator that records an event as archived."""

    async def mark_archived(
        self, event_id: str, backup_id: str, destination_url: str | None
    ) -> None: ...


class JsonPhotoSource:
    """Reads photo records from a JSON manifest.

    The manifest is either a list of photo rows or an object with a
    ``photos`` list; rows belonging to other events are ignored.
    """

    def __init__(self, manifest_path: Path) -> None:
        self.manifest_path = manifest_path

    async def list_event_photos(self, event_id: str) -> list[PhotoRecord]:
        raw = json.loads(await asyncio.to_thread(self.manifest_path.read_text))
        rows = raw.get("photos", []) if isinstance(raw, dict) else raw
        return [
            PhotoRecord.from_dict(row)
            for row in rows
            if str(row.get("event_id", event_id)) == event_id
        ]


def backup_file_name(photo: PhotoRecord) -> str:
    """Name of a photo inside the archive folder: ``{photoId}_{originalName}``."""
    original = photo.original_name
    if not original and photo.storage_path:
        original = photo.storage_path.rsplit("/", 1)[-1]
    return f"{photo.id}_{sanitize_name(original or 'photo.jpg')}"


class BatchArchiver:
    """Copies every photo of an event into a dated folder on the archival tier."""

    def __init__(
        self,
        adapters: Mapping[Tier, ProviderAdapter],
        photo_source: PhotoSource,
        registry: BackupRegistry | None = None,
        max_concurrent_uploads: int = 3,
        batch_delay: float = 1.0,
        root_folder_name: str = "EventBackups",
        archive_tier: Tier = Tier.SECONDARY,
    ) -> None:
        """Initialize batch archiver.

        Args:
            adapters: Initialized adapters, used both as download sources and
                as the archival destination
            photo_source: Lists an event's photos
            registry: Where job status is kept; a default-sized one if omitted
            max_concurrent_uploads: Batch size, i.e. uploads in flight at once
            batch_delay: Seconds to pause between batches
            root_folder_name: Parent folder holding every event backup
            archive_tier: Destination tier
        """
        if max_concurrent_uploads < 1:
            raise ValueError("max_concurrent_uploads must be at least 1")

        self.adapters = dict(adapters)
        self.photo_source = photo_source
        self.registry = registry or BackupRegistry()
        self.max_concurrent_uploads = max_concurrent_uploads
        self.batch_delay = batch_delay
        self.root_folder_name = root_folder_name
        self.archive_tier = archive_tier
        self._tasks: set[asyncio.Task[BackupJob]] = set()

    @staticmethod
    def new_backup_id(event_id: str) -> str:
        return f"backup_{event_id}_{int(time.time() * 1000)}_{random_suffix()}"

    def _register(self, event_id: str) -> BackupJob:
        job = BackupJob(backup_id=self.new_backup_id(event_id), event_id=event_id)
        self.registry.put(job)
        logger.info(f"Registered backup {job.backup_id} for event {event_id}")
        return job

    async def backup_event(
        self, event_id: str, *, progress_callback: ProgressCallback | None = None
    ) -> BackupJob:
        """Back up an event and wait for the job to finish.

        Job-level problems (no photos, listing or folder creation failure)
        end the job as FAILED rather than raising.

        Args:
            event_id: Event to back up
            progress_callback: Called with the job after every batch

        Returns:
            The finished job
        """
        job = self._register(event_id)
        return await self._run(job, progress_callback)

    def start_backup(
        self, event_id: str, *, progress_callback: ProgressCallback | None = None
    ) -> str:
        """Start a backup in the background and return its id immediately."""
        job = self._register(event_id)
        task = asyncio.create_task(self._run(job, progress_callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job.backup_id

    async def wait_for_all(self) -> None:
        """Wait until every background backup has finished."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _run(
        self, job: BackupJob, progress_callback: ProgressCallback | None
    ) -> BackupJob:
        logger.info(f"Starting event backup: {job.event_id}")

        try:
            photos = await self.photo_source.list_event_photos(job.event_id)
            if not photos:
                raise NoPhotosFound(f"No photos found for event {job.event_id}")
            logger.info(f"Found {len(photos)} photo(s) to back up for event {job.event_id}")

            destination = await self._create_destination(job.event_id)
        except Exception as e:
            logger.error(f"Event backup failed for {job.event_id}: {e}")
            job.fail(f"{type(e).__name__}: {e}")
            return job

        job.begin_backup(len(photos), destination.id, destination.url)
        adapter = self.adapters[self.archive_tier]

        try:
            for start in range(0, len(photos), self.max_concurrent_uploads):
                batch = photos[start : start + self.max_concurrent_uploads]
                outcomes = await asyncio.gather(
                    *(self._archive_photo(adapter, photo, destination.id) for photo in batch),
                    return_exceptions=True,
                )

                for photo, outcome in zip(batch, outcomes):
                    if isinstance(outcome, BaseException):
                        logger.error(f"Failed to back up photo {photo.id}: {outcome}")
                        job.record_failure(photo.id, str(outcome) or type(outcome).__name__)
                    else:
                        job.record_success()

                logger.info(
                    f"Backup progress: {job.processed_photos}/{job.total_photos} photos processed"
                )
                _notify(progress_callback, job)

                if start + self.max_concurrent_uploads < len(photos) and self.batch_delay > 0:
                    await asyncio.sleep(self.batch_delay)
        except Exception as e:
            logger.error(f"Event backup aborted for {job.event_id}: {e}")
            job.fail(f"{type(e).__name__}: {e}")
            return job

        job.complete()
        logger.info(
            f"Event backup completed: {job.event_id} "
            f"({job.successful_uploads}/{job.total_photos} photos backed up)"
        )
        return job

    async def _create_destination(self, event_id: str) -> Container:
        """Ensure the archive root folder, then create the event folder in it."""
        adapter = self.adapters.get(self.archive_tier)
        if adapter is None:
            raise ProviderUnavailable(f"Archival tier {self.archive_tier.value} is not configured")

        parent_id: str | None = None
        try:
            root = await adapter.find_container(self.root_folder_name)
            if root is None:
                root = await _create_or_reuse(adapter, self.root_folder_name)
            parent_id = root.id
            logger.info(f"Parent backup folder ready: {self.root_folder_name}")
        except ContainerCreationFailed as e:
            logger.warning(f"Parent folder creation failed, using root: {e}")

        folder_name = f"Event_{event_id}_{datetime.now(timezone.utc).date().isoformat()}"
        folder = await _create_or_reuse(adapter, folder_name, parent_id)
        logger.info(f"Created backup folder: {folder_name}")
        return folder

    async def _archive_photo(
        self, adapter: ProviderAdapter, photo: PhotoRecord, container_id: str
    ) -> None:
        data = await self.download_photo(photo)
        name = backup_file_name(photo)
        content_type = mimetypes.guess_type(name)[0] or "image/jpeg"

        await adapter.put(
            data,
            name,
            {
                "photo-id": photo.id,
                "event-id": photo.event_id,
                "uploader": photo.uploader_name or "unknown",
                "album-name": photo.album_name or "default",
            },
            container_id=container_id,
            content_type=content_type,
        )
        logger.debug(f"Backed up photo: {name}")

    async def download_photo(self, photo: PhotoRecord) -> bytes:
        """Fetch the highest-fidelity copy of a photo.

        The tier holding the photo is asked first: the primary object store
        keeps the copy written at upload time, then the drive file id, then
        the local path. The public URL is the last resort since it may serve
        a compressed copy.

        Raises:
            ProviderReadFailed: If no location yields the bytes
        """
        tier = PROVIDER_TIERS.get(photo.storage_provider or "")
        adapter = self.adapters.get(tier) if tier else None
        reference = photo.storage_path
        if tier is Tier.SECONDARY:
            reference = photo.storage_file_id or photo.storage_path

        if tier and adapter and reference:
            try:
                logger.debug(f"Downloading photo {photo.id} from {tier.value}: {reference}")
                return await adapter.get(reference)
            except StorageError as e:
                logger.warning(f"Download of photo {photo.id} from {tier.value} failed: {e}")

        if photo.url and photo.url.startswith(("http://", "https://")):
            logger.warning(
                f"Downloading photo {photo.id} from public URL (may be compressed): {photo.url}"
            )
            return await _download_url(photo.url)

        raise ProviderReadFailed(
            f"No valid storage location found for photo {photo.id} "
            f"(provider={photo.storage_provider}, path={photo.storage_path}, "
            f"file_id={photo.storage_file_id}, url={photo.url})"
        )

    def get_backup_status(self, backup_id: str) -> BackupJob | None:
        return self.registry.get(backup_id)

    def list_backups(self, event_id: str | None = None) -> list[BackupJob]:
        jobs = self.registry.all()
        if event_id is not None:
            jobs = [job for job in jobs if job.event_id == event_id]
        return jobs

    def summary(self) -> dict[str, int]:
        """Aggregate counts across every tracked backup."""
        jobs = self.registry.all()
        return {
            "total_backups": len(jobs),
            "active_backups": sum(1 for job in jobs if not job.status.is_terminal),
            "completed_backups": sum(1 for job in jobs if job.status is BackupStatus.COMPLETED),
            "failed_backups": sum(1 for job in jobs if job.status is BackupStatus.FAILED),
            "total_photos_backed_up": sum(job.successful_uploads for job in jobs),
            "total_photos_failed": sum(job.failed_uploads for job in jobs),
        }

    def cleanup_old_backups(self, max_age_seconds: float) -> int:
        removed = self.registry.cleanup(max_age_seconds)
        logger.info(f"Cleaned up {removed} old backup status(es)")
        return removed

    async def archive_event(
        self, event_id: str, backup_id: str, event_store: EventStore
    ) -> dict[str, Any]:
        """Mark an event archived once its backup has completed.

        Raises:
            BackupNotCompleted: If the backup is unknown, for another event,
                or not COMPLETED
        """
        job = self.registry.get(backup_id)
        if job is None or job.event_id != event_id or job.status is not BackupStatus.COMPLETED:
            raise BackupNotCompleted(
                f"Cannot archive event {event_id}: backup {backup_id} not completed successfully"
            )

        await event_store.mark_archived(event_id, backup_id, job.destination_url)
        logger.info(f"Event {event_id} archived after backup {backup_id}")
        return {
            "event_id": event_id,
            "archived": True,
            "backup_id": backup_id,
            "destination_url": job.destination_url,
        }


def _notify(progress_callback: ProgressCallback | None, job: BackupJob) -> None:
    if progress_callback is None:
        return
    try:
        progress_callback(job)
    except Exception as e:
        logger.warning(f"Progress callback failed for backup {job.backup_id}: {e}")


async def _create_or_reuse(
    adapter: ProviderAdapter, name: str, parent_id: str | None = None
) -> Container:
    try:
        return await adapter.create_container(name, parent_id)
    except ContainerAlreadyExists as e:
        return e.container


async def _download_url(url: str) -> bytes:
    try:
        async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise ProviderReadFailed(f"Failed to download from URL {url}: {e}") from e
    return response.content
