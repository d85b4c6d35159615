"""Tier selection policy."""

from collections.abc import Collection, Mapping

from event_photo_storage.models import (
    CompressionClass,
    PhotoMetadata,
    Tier,
    TierDecision,
    UsageState,
)


def select_tier(
    metadata: PhotoMetadata,
    usage: Mapping[Tier, UsageState],
    available: Collection[Tier],
) -> TierDecision:
    """Choose the tier and compression class for an upload.

    Rules are checked in order and the first match wins:

    1. PRIMARY, if its adapter is available and has headroom. Homepage,
       premium and featured photos get PREMIUM compression, others STANDARD.
    2. SECONDARY, if available with headroom, at STANDARD.
    3. LOCAL at STANDARD.

    An unavailable tier (missing credentials) is treated as having no
    headroom. This function performs no I/O.

    Args:
        metadata: Photo being routed
        usage: Current usage per tier
        available: Tiers whose adapters were initialized

    Returns:
        The routing decision
    """
    size = metadata.file_size_bytes

    if Tier.PRIMARY in available and _has_headroom(usage, Tier.PRIMARY, size):
        compression = (
            CompressionClass.PREMIUM if metadata.wants_premium else CompressionClass.STANDARD
        )
        return TierDecision(tier=Tier.PRIMARY, compression_class=compression)

    if Tier.SECONDARY in available and _has_headroom(usage, Tier.SECONDARY, size):
        return TierDecision(tier=Tier.SECONDARY, compression_class=CompressionClass.STANDARD)

    return TierDecision(tier=Tier.LOCAL, compression_class=CompressionClass.STANDARD)


def _has_headroom(usage: Mapping[Tier, UsageState], tier: Tier, size: int) -> bool:
    state = usage.get(tier)
    return state is not None and state.has_headroom(size)
