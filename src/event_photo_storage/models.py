"""Data models for tiered photo storage and event backups."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class Tier(str, Enum):
    """Storage tiers, declared in priority order."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    LOCAL = "local"


TIER_ORDER: tuple[Tier, ...] = (Tier.PRIMARY, Tier.SECONDARY, Tier.LOCAL)


class CompressionClass(str, Enum):
    """Named quality/dimension profiles applied before a write."""

    PREMIUM = "premium"
    STANDARD = "standard"
    THUMBNAIL = "thumbnail"


class BackupStatus(str, Enum):
    """Lifecycle of an event backup job."""

    INITIALIZING = "initializing"
    BACKING_UP = "backing_up"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (BackupStatus.COMPLETED, BackupStatus.FAILED)


@dataclass(frozen=True)
class PhotoMetadata:
    """Routing input describing an incoming photo."""

    album_name: str
    uploader_name: str
    file_size_bytes: int
    file_type: str = "image/jpeg"
    event_id: str | None = None
    is_homepage: bool = False
    is_premium: bool = False
    is_featured: bool = False
    original_name: str = "photo.jpg"

    def __post_init__(self) -> None:
        """Validate photo metadata."""
        if self.file_size_bytes <= 0:
            raise ValueError("File size must be positive")
        if not self.original_name:
            raise ValueError("Original file name cannot be empty")

    @property
    def wants_premium(self) -> bool:
        return self.is_homepage or self.is_premium or self.is_featured


@dataclass(frozen=True)
class TierDecision:
    """Tier and compression class chosen for one upload."""

    tier: Tier
    compression_class: CompressionClass


@dataclass(frozen=True)
class UsageState:
    """Point-in-time usage of one tier."""

    used_bytes: int
    capacity_bytes: int
    reserved_bytes: int = 0

    def has_headroom(self, size_bytes: int) -> bool:
        return self.used_bytes + self.reserved_bytes + size_bytes <= self.capacity_bytes

    @property
    def usage_percent(self) -> float:
        if self.capacity_bytes <= 0:
            return 100.0
        return (self.used_bytes / self.capacity_bytes) * 100

    @property
    def health(self) -> str:
        percent = self.usage_percent
        if percent > 90:
            return "critical"
        if percent > 70:
            return "warning"
        return "good"


@dataclass(frozen=True)
class UploadResult:
    """Normalized result of a successful route call."""

    url: str
    path: str
    size_bytes: int
    tier: Tier
    provider: str
    compression_class: CompressionClass
    thumbnail_url: str | None = None
    etag: str | None = None
    file_id: str | None = None
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate upload result."""
        if not self.url:
            raise ValueError("Upload result must have a url")
        if not self.path:
            raise ValueError("Upload result must have a path")

    def to_record(self) -> dict[str, Any]:
        """Render the columns the photo record persists."""
        return {
            "url": self.url,
            "thumbnail_url": self.thumbnail_url,
            "storage_tier": self.tier.value,
            "storage_provider": self.provider,
            "compression_used": self.compression_class.value,
            "file_size": self.size_bytes,
            "storage_path": self.path,
            "storage_etag": self.etag,
            "storage_file_id": self.file_id,
        }


@dataclass(frozen=True)
class PhotoRecord:
    """A stored photo as listed by the data layer."""

    id: str
    event_id: str
    storage_provider: str | None = None
    storage_path: str | None = None
    storage_file_id: str | None = None
    url: str | None = None
    uploader_name: str | None = None
    album_name: str | None = None
    original_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PhotoRecord":
        """Build a record from a data-layer row, ignoring unknown columns."""
        return cls(
            id=str(data["id"]),
            event_id=str(data["event_id"]),
            storage_provider=data.get("storage_provider"),
            storage_path=data.get("storage_path"),
            storage_file_id=data.get("storage_file_id"),
            url=data.get("url"),
            uploader_name=data.get("uploader_name"),
            album_name=data.get("album_name"),
            original_name=data.get("original_name") or data.get("filename"),
        )


@dataclass(frozen=True)
class BackupError:
    """A per-photo failure recorded by a backup job."""

    photo_id: str
    error: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BackupJob:
    """Progress of one end-of-event backup.

    Counters only move through the mutators below, which refuse to touch a
    job that already reached a terminal status.
    """

    backup_id: str
    event_id: str
    status: BackupStatus = BackupStatus.INITIALIZING
    total_photos: int = 0
    processed_photos: int = 0
    successful_uploads: int = 0
    failed_uploads: int = 0
    errors: list[BackupError] = field(default_factory=list)
    start_time: datetime = field(default_factory=_utcnow)
    end_time: datetime | None = None
    destination_container_id: str | None = None
    destination_url: str | None = None
    error: str | None = None

    def _ensure_active(self) -> None:
        if self.status.is_terminal:
            raise RuntimeError(f"Backup {self.backup_id} is already {self.status.value}")

    def begin_backup(self, total_photos: int, container_id: str, url: str | None) -> None:
        self._ensure_active()
        self.total_photos = total_photos
        self.destination_container_id = container_id
        self.destination_url = url
        self.status = BackupStatus.BACKING_UP

    def record_success(self) -> None:
        self._ensure_active()
        self.successful_uploads += 1
        self.processed_photos = self.successful_uploads + self.failed_uploads

    def record_failure(self, photo_id: str, error: str) -> None:
        self._ensure_active()
        self.failed_uploads += 1
        self.errors.append(BackupError(photo_id=photo_id, error=error))
        self.processed_photos = self.successful_uploads + self.failed_uploads

    def complete(self) -> None:
        self._ensure_active()
        self.status = BackupStatus.COMPLETED
        self.end_time = _utcnow()

    def fail(self, error: str) -> None:
        self._ensure_active()
        self.status = BackupStatus.FAILED
        self.error = error
        self.end_time = _utcnow()

    @property
    def duration(self) -> timedelta | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    def to_dict(self) -> dict[str, Any]:
        """Render the job as a status payload."""
        data = asdict(self)
        data["status"] = self.status.value
        data["start_time"] = self.start_time.isoformat()
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        duration = self.duration
        data["duration_seconds"] = duration.total_seconds() if duration else None
        return data
