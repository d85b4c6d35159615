"""Exception hierarchy for storage routing and archival."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from event_photo_storage.models import Tier
    from event_photo_storage.providers import Container


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


class ProviderUnavailable(StorageError):
    """Raised when a provider is missing credentials or rejects them."""

    pass


class ProviderWriteFailed(StorageError):
    """Raised when a provider fails to store bytes."""

    pass


class ProviderReadFailed(StorageError):
    """Raised when a provider fails to return stored bytes."""

    pass


class ContainerCreationFailed(StorageError):
    """Raised when an archive folder cannot be created."""

    pass


class ContainerAlreadyExists(StorageError):
    """Raised when an archive folder already exists.

    The existing container is attached so callers can keep using it.
    """

    def __init__(self, container: Container) -> None:
        super().__init__(f"Container already exists: {container.name}")
        self.container = container


class AllTiersFailed(StorageError):
    """Raised when every storage tier refused an upload."""

    def __init__(self, errors: list[tuple[Tier, Exception]]) -> None:
        self.errors = errors
        chain = "; ".join(f"{tier.value}: {error}" for tier, error in errors)
        super().__init__(f"All storage tiers failed ({chain})")


class NoPhotosFound(StorageError):
    """Raised when an event has no photos to back up."""

    pass


class BackupNotCompleted(StorageError):
    """Raised when archiving an event whose backup did not complete."""

    pass


class DriveAPIError(StorageError):
    """Base exception for Google Drive API errors."""

    pass


class RateLimitError(DriveAPIError):
    """Exception raised when hitting rate limits."""

    pass


class ServerError(DriveAPIError):
    """Exception raised for 5xx server errors."""

    pass
