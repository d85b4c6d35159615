"""Bounded, expiring registry of backup jobs."""

import time
from collections import OrderedDict
from collections.abc import Callable

from event_photo_storage.models import BackupJob


class BackupRegistry:
    """In-memory map of backup jobs with a size bound and TTL.

    - get(backup_id) -> BackupJob | None
    - put(job)
    - all() -> list of live jobs, oldest first

    Entries expire ``ttl_seconds`` after registration. When full, the oldest
    finished job is evicted first; running jobs are only evicted if every
    entry is still running.
    """

    def __init__(
        self,
        maxsize: int = 256,
        ttl_seconds: float = 7 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize backup registry.

        Args:
            maxsize: Most jobs kept at once
            ttl_seconds: Lifetime of an entry after registration
            clock: Time source in epoch seconds
        """
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: OrderedDict[str, BackupJob] = OrderedDict()
        self._exp: dict[str, float] = {}

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._data)

    def __contains__(self, backup_id: str) -> bool:
        return self.get(backup_id) is not None

    def get(self, backup_id: str) -> BackupJob | None:
        exp = self._exp.get(backup_id)
        if exp is None:
            return None
        if self._clock() >= exp:
            self._drop(backup_id)
            return None
        return self._data.get(backup_id)

    def put(self, job: BackupJob) -> None:
        self._purge_expired()
        if job.backup_id not in self._data and len(self._data) >= self.maxsize:
            self._evict_one()
        self._data[job.backup_id] = job
        self._exp[job.backup_id] = self._clock() + self.ttl_seconds

    def all(self) -> list[BackupJob]:
        self._purge_expired()
        return list(self._data.values())

    def cleanup(self, max_age_seconds: float) -> int:
        """Drop finished jobs registered more than ``max_age_seconds`` ago.

        Args:
            max_age_seconds: Age past which a finished job is removed

        Returns:
            Number of jobs removed
        """
        cutoff = self._clock() - max_age_seconds
        stale = [
            backup_id
            for backup_id, job in self._data.items()
            if job.status.is_terminal and self._exp[backup_id] - self.ttl_seconds < cutoff
        ]
        for backup_id in stale:
            self._drop(backup_id)
        return len(stale)

    def _evict_one(self) -> None:
        victim = next(
            (backup_id for backup_id, job in self._data.items() if job.status.is_terminal),
            None,
        )
        if victim is None:
            victim = next(iter(self._data))
        self._drop(victim)

    def _purge_expired(self) -> None:
        now = self._clock()
        for backup_id in [key for key, exp in self._exp.items() if now >= exp]:
            self._drop(backup_id)

    def _drop(self, backup_id: str) -> None:
        self._data.pop(backup_id, None)
        self._exp.pop(backup_id, None)
