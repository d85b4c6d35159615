"""Event Photo Storage - Tiered photo storage routing and event backups."""

__version__ = "0.1.0"

from event_photo_storage.archiver import BatchArchiver
from event_photo_storage.compression import CompressionEngine
from event_photo_storage.models import (
    BackupJob,
    CompressionClass,
    PhotoMetadata,
    Tier,
    UploadResult,
)
from event_photo_storage.router import StorageRouter
from event_photo_storage.selector import select_tier
from event_photo_storage.usage import UsageAccountant

__all__ = [
    "BatchArchiver",
    "CompressionEngine",
    "BackupJob",
    "CompressionClass",
    "PhotoMetadata",
    "Tier",
    "UploadResult",
    "StorageRouter",
    "select_tier",
    "UsageAccountant",
]
