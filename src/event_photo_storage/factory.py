"""Builds adapters, accountant, router and archiver from settings."""

import logging

from event_photo_storage.archiver import BatchArchiver, PhotoSource
from event_photo_storage.cache import BackupRegistry
from event_photo_storage.compression import CompressionEngine
from event_photo_storage.config import Settings
from event_photo_storage.drive_store import DriveStore
from event_photo_storage.exceptions import ProviderUnavailable
from event_photo_storage.local_store import LocalStore
from event_photo_storage.models import TIER_ORDER, Tier
from event_photo_storage.object_store import ObjectStore
from event_photo_storage.providers import ProviderAdapter
from event_photo_storage.router import StorageRouter
from event_photo_storage.usage import UsageAccountant

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def build_adapters(settings: Settings) -> dict[Tier, ProviderAdapter]:
    """Initialize every adapter whose credentials are present.

    Tiers that fail to initialize are left out and logged; the selector
    then treats them as having no headroom.
    """
    builders = {
        Tier.PRIMARY: lambda: ObjectStore(
            account_id=settings.CLOUDFLARE_R2_ACCOUNT_ID,
            access_key_id=settings.CLOUDFLARE_R2_ACCESS_KEY_ID,
            secret_access_key=settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY,
            bucket_name=settings.CLOUDFLARE_R2_BUCKET_NAME,
            capacity_bytes=settings.capacity_bytes(Tier.PRIMARY),
            public_url=settings.CLOUDFLARE_R2_PUBLIC_URL,
            custom_domain=settings.CLOUDFLARE_R2_CUSTOM_DOMAIN,
        ),
        Tier.SECONDARY: lambda: DriveStore(
            client_id=settings.GOOGLE_DRIVE_CLIENT_ID,
            client_secret=settings.GOOGLE_DRIVE_CLIENT_SECRET,
            refresh_token=settings.GOOGLE_DRIVE_REFRESH_TOKEN,
            capacity_bytes=settings.capacity_bytes(Tier.SECONDARY),
            root_folder_id=settings.GOOGLE_DRIVE_ROOT_FOLDER_ID,
        ),
        Tier.LOCAL: lambda: LocalStore(
            root_dir=settings.LOCAL_BACKUP_PATH,
            capacity_bytes=settings.capacity_bytes(Tier.LOCAL),
            public_base_url=settings.LOCAL_PUBLIC_BASE_URL,
        ),
    }

    adapters: dict[Tier, ProviderAdapter] = {}
    for tier in TIER_ORDER:
        try:
            adapters[tier] = builders[tier]()
        except ProviderUnavailable as e:
            logger.warning(f"{tier.value} tier unavailable: {e}")

    return adapters


def build_accountant(settings: Settings) -> UsageAccountant:
    return UsageAccountant({tier: settings.capacity_bytes(tier) for tier in TIER_ORDER})


def build_router(
    settings: Settings,
    adapters: dict[Tier, ProviderAdapter] | None = None,
    accountant: UsageAccountant | None = None,
) -> StorageRouter:
    return StorageRouter(
        adapters if adapters is not None else build_adapters(settings),
        accountant or build_accountant(settings),
        CompressionEngine.from_table(settings.compression_profiles()),
    )


def build_archiver(
    settings: Settings,
    adapters: dict[Tier, ProviderAdapter],
    photo_source: PhotoSource,
) -> BatchArchiver:
    registry = BackupRegistry(
        maxsize=settings.BACKUP_STATUS_MAX_ENTRIES,
        ttl_seconds=settings.BACKUP_STATUS_TTL_DAYS * SECONDS_PER_DAY,
    )
    return BatchArchiver(
        adapters,
        photo_source,
        registry=registry,
        max_concurrent_uploads=settings.BACKUP_MAX_CONCURRENT_UPLOADS,
        batch_delay=settings.BACKUP_BATCH_DELAY_SECONDS,
        root_folder_name=settings.BACKUP_ROOT_FOLDER_NAME,
    )
