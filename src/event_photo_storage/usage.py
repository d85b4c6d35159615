"""Process-local accounting of bytes consumed per storage tier."""

import logging
import threading
from dataclasses import dataclass
from typing import Any

from event_photo_storage.models import TIER_ORDER, Tier, UsageState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """Bytes set aside on a tier for one in-flight write."""

    tier: Tier
    size_bytes: int


class UsageAccountant:
    """Tracks used and reserved bytes per tier against configured ceilings.

    Callers reserve before writing and then either commit (write confirmed)
    or release (write failed). Reserving checks headroom and books the bytes
    under one lock, so two concurrent uploads cannot both claim the last
    free space. Committed usage only grows for the lifetime of the process.
    """

    def __init__(
        self,
        capacities: dict[Tier, int],
        enforced: set[Tier] | None = None,
        initial_usage: dict[Tier, int] | None = None,
    ) -> None:
        """Initialize accountant.

        Args:
            capacities: Ceiling in bytes for every tier
            enforced: Tiers whose ceiling refuses reservations; defaults to
                every tier except LOCAL, whose ceiling is advisory
            initial_usage: Bytes already consumed at process start
        """
        self._capacity = {tier: capacities[tier] for tier in TIER_ORDER}
        self._used = {tier: 0 for tier in TIER_ORDER}
        self._reserved = {tier: 0 for tier in TIER_ORDER}
        self._enforced = enforced if enforced is not None else {Tier.PRIMARY, Tier.SECONDARY}
        self._lock = threading.Lock()

        for tier, used in (initial_usage or {}).items():
            self._used[tier] = used

    def snapshot(self) -> dict[Tier, UsageState]:
        """Consistent view of every tier."""
        with self._lock:
            return {tier: self._state(tier) for tier in TIER_ORDER}

    def state(self, tier: Tier) -> UsageState:
        with self._lock:
            return self._state(tier)

    def _state(self, tier: Tier) -> UsageState:
        return UsageState(
            used_bytes=self._used[tier],
            capacity_bytes=self._capacity[tier],
            reserved_bytes=self._reserved[tier],
        )

    def try_reserve(self, tier: Tier, size_bytes: int) -> Reservation | None:
        """Atomically check headroom and book ``size_bytes`` on ``tier``.

        Returns:
            The reservation, or None if the tier lacks headroom
        """
        if size_bytes < 0:
            raise ValueError("Reservation size cannot be negative")

        with self._lock:
            state = self._state(tier)
            if not state.has_headroom(size_bytes):
                if tier in self._enforced:
                    logger.info(
                        f"No headroom on {tier.value}: used={state.used_bytes} "
                        f"reserved={state.reserved_bytes} request={size_bytes} "
                        f"capacity={state.capacity_bytes}"
                    )
                    return None
                logger.warning(f"{tier.value} tier is over its advisory ceiling")

            self._reserved[tier] += size_bytes
            return Reservation(tier=tier, size_bytes=size_bytes)

    def commit(self, reservation: Reservation, actual_bytes: int | None = None) -> None:
        """Turn a reservation into consumed bytes after a confirmed write."""
        consumed = reservation.size_bytes if actual_bytes is None else actual_bytes
        with self._lock:
            self._reserved[reservation.tier] -= reservation.size_bytes
            self._used[reservation.tier] += consumed
        logger.debug(f"Committed {consumed} bytes to {reservation.tier.value}")

    def release(self, reservation: Reservation) -> None:
        """Give back a reservation whose write failed."""
        with self._lock:
            self._reserved[reservation.tier] -= reservation.size_bytes

    def report(self) -> dict[str, dict[str, Any]]:
        """Per-tier usage summary with a health label."""
        report: dict[str, dict[str, Any]] = {}
        for tier, state in self.snapshot().items():
            report[tier.value] = {
                "used_bytes": state.used_bytes,
                "reserved_bytes": state.reserved_bytes,
                "capacity_bytes": state.capacity_bytes,
                "usage_percent": round(state.usage_percent, 1),
                "status": state.health,
            }
        return report
