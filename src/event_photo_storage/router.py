"""Storage router: tier selection, compression, write and fallback."""

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from event_photo_storage.compression import CompressedImage, CompressionEngine
from event_photo_storage.exceptions import (
    AllTiersFailed,
    ProviderUnavailable,
    ProviderWriteFailed,
    StorageError,
)
from event_photo_storage.models import (
    TIER_ORDER,
    CompressionClass,
    PhotoMetadata,
    Tier,
    UploadResult,
)
from event_photo_storage.paths import generate_logical_path, replace_extension
from event_photo_storage.providers import ProviderAdapter, PutResult
from event_photo_storage.selector import select_tier
from event_photo_storage.usage import UsageAccountant

logger = logging.getLogger(__name__)

THUMBNAIL_ALBUM = "thumbnails"


class StorageRouter:
    """Routes each upload to a tier and cascades down the tiers on failure."""

    def __init__(
        self,
        adapters: Mapping[Tier, ProviderAdapter],
        accountant: UsageAccountant,
        compression: CompressionEngine | None = None,
    ) -> None:
        """Initialize storage router.

        Args:
            adapters: Initialized adapters; a missing tier counts as unavailable
            accountant: Shared usage accountant
            compression: Compression engine, default profiles if omitted
        """
        self.adapters = dict(adapters)
        self.accountant = accountant
        self.compression = compression or CompressionEngine()
        self._background: set[asyncio.Task[Any]] = set()

    async def __aenter__(self) -> "StorageRouter":
        for adapter in self.adapters.values():
            await adapter.__aenter__()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Wait for pending thumbnails and close every adapter."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        for adapter in self.adapters.values():
            await adapter.aclose()

    @property
    def available_tiers(self) -> set[Tier]:
        return set(self.adapters)

    async def route(
        self,
        data: bytes,
        metadata: PhotoMetadata,
        *,
        wait_for_thumbnail: bool = True,
    ) -> UploadResult:
        """Store a photo on the best tier that accepts it.

        Args:
            data: Original image bytes
            metadata: Photo metadata
            wait_for_thumbnail: If False, the thumbnail is generated in the
                background and ``thumbnail_url`` is left empty

        Returns:
            Result describing where the bytes landed

        Raises:
            AllTiersFailed: If no tier accepted the photo
        """
        decision = select_tier(metadata, self.accountant.snapshot(), self.available_tiers)
        logger.info(
            f"Routing {metadata.original_name} to {decision.tier.value} "
            f"({decision.compression_class.value})"
        )

        warnings: list[str] = []
        errors: list[tuple[Tier, Exception]] = []
        attempts = [(decision.tier, decision.compression_class)] + [
            (tier, CompressionClass.STANDARD)
            for tier in TIER_ORDER[TIER_ORDER.index(decision.tier) + 1 :]
        ]

        for index, (tier, compression_class) in enumerate(attempts):
            try:
                put_result, compressed = await self._attempt(
                    tier, compression_class, data, metadata
                )
            except Exception as e:
                error = e if isinstance(e, StorageError) else ProviderWriteFailed(
                    f"{type(e).__name__}: {e}"
                )
                errors.append((tier, error))
                if index + 1 < len(attempts):
                    next_tier = attempts[index + 1][0]
                    message = (
                        f"Upload to {tier.value} failed, falling back to {next_tier.value}: {error}"
                    )
                    logger.warning(message)
                    warnings.append(message)
                continue

            if compressed.passthrough:
                warnings.append(
                    f"Compression skipped on {tier.value}, original bytes stored"
                )

            thumbnail_url = None
            if wait_for_thumbnail:
                thumbnail_url = await self._thumbnail_or_warning(data, metadata, warnings)
            else:
                self._schedule_thumbnail(data, metadata)

            logger.info(f"Stored {metadata.original_name} on {tier.value}: {put_result.path}")
            return UploadResult(
                url=put_result.url,
                path=put_result.path,
                size_bytes=put_result.size_bytes,
                tier=tier,
                provider=self.adapters[tier].provider,
                compression_class=compression_class,
                thumbnail_url=thumbnail_url,
                etag=put_result.etag,
                file_id=put_result.file_id,
                warnings=tuple(warnings),
            )

        logger.error(f"All storage tiers failed for {metadata.original_name}")
        raise AllTiersFailed(errors)

    async def _attempt(
        self,
        tier: Tier,
        compression_class: CompressionClass,
        data: bytes,
        metadata: PhotoMetadata,
    ) -> tuple[PutResult, CompressedImage]:
        adapter = self.adapters.get(tier)
        if adapter is None:
            raise ProviderUnavailable(f"{tier.value} tier is not configured")

        compressed = await asyncio.to_thread(
            self.compression.compress, data, compression_class, metadata.file_type
        )

        reservation = self.accountant.try_reserve(tier, compressed.size_bytes)
        if reservation is None:
            raise ProviderWriteFailed(f"{tier.value} tier has no headroom")

        file_name = metadata.original_name
        if compressed.extension:
            file_name = replace_extension(file_name, compressed.extension)

        try:
            put_result = await adapter.put(
                compressed.data,
                generate_logical_path(file_name, metadata),
                _object_metadata(metadata),
                content_type=compressed.content_type,
            )
        except BaseException:
            self.accountant.release(reservation)
            raise

        self.accountant.commit(reservation, compressed.size_bytes)
        return put_result, compressed

    async def create_thumbnail(self, data: bytes, metadata: PhotoMetadata) -> str | None:
        """Compress a thumbnail and store it on the primary tier.

        Returns:
            The thumbnail URL, or None when the primary tier is unavailable
        """
        adapter = self.adapters.get(Tier.PRIMARY)
        if adapter is None:
            logger.warning("Primary tier unavailable, skipping thumbnail")
            return None

        thumbnail = await asyncio.to_thread(
            self.compression.compress, data, CompressionClass.THUMBNAIL, metadata.file_type
        )
        if thumbnail.passthrough:
            raise ValueError("Thumbnail could not be generated from the image")

        file_name = replace_extension(f"thumb_{metadata.original_name}", thumbnail.extension or "jpg")
        result = await adapter.put(
            thumbnail.data,
            generate_logical_path(file_name, metadata, album_override=THUMBNAIL_ALBUM),
            {**_object_metadata(metadata), "file-type": "thumbnail"},
            content_type=thumbnail.content_type,
        )
        return result.url

    async def _thumbnail_or_warning(
        self, data: bytes, metadata: PhotoMetadata, warnings: list[str]
    ) -> str | None:
        try:
            return await self.create_thumbnail(data, metadata)
        except Exception as e:
            message = f"Thumbnail creation failed: {e}"
            logger.warning(message)
            warnings.append(message)
            return None

    def _schedule_thumbnail(self, data: bytes, metadata: PhotoMetadata) -> None:
        task = asyncio.create_task(self._thumbnail_or_warning(data, metadata, []))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def storage_report(self) -> dict[str, dict[str, Any]]:
        return self.accountant.report()


def _object_metadata(metadata: PhotoMetadata) -> dict[str, str]:
    return {
        "event-id": metadata.event_id or "unknown",
        "album-name": metadata.album_name or "default",
        "uploader": metadata.uploader_name or "system",
        "file-type": "homepage" if metadata.is_homepage else "event",
    }
