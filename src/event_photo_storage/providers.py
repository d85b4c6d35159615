"""Capability interface shared by every storage tier."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from event_photo_storage.exceptions import StorageError
from event_photo_storage.models import Tier, UsageState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutResult:
    """What a provider reports back after storing bytes."""

    url: str
    path: str
    size_bytes: int
    etag: str | None = None
    file_id: str | None = None


@dataclass(frozen=True)
class StoredObject:
    """An entry returned by a provider listing."""

    path: str
    size_bytes: int
    url: str | None = None
    etag: str | None = None


@dataclass(frozen=True)
class Container:
    """A folder-like destination inside a provider."""

    id: str
    name: str
    url: str | None = None


class ProviderAdapter(ABC):
    """Uniform put/get/delete/list/usage surface over one storage backend.

    Adapters know nothing about tiering policy; the router owns that.
    """

    tier: Tier
    provider: str

    async def __aenter__(self) -> "ProviderAdapter":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Release any client held by the adapter."""
        return None

    @abstractmethod
    async def put(
        self,
        data: bytes,
        logical_path: str,
        metadata: dict[str, str] | None = None,
        *,
        container_id: str | None = None,
        content_type: str = "image/jpeg",
    ) -> PutResult:
        """Store bytes and return their location.

        Raises:
            ProviderWriteFailed: If the provider rejects the write
        """

    @abstractmethod
    async def get(self, provider_path: str) -> bytes:
        """Fetch stored bytes.

        Raises:
            ProviderReadFailed: If the object cannot be read
        """

    @abstractmethod
    async def delete(self, provider_path: str) -> bool:
        """Delete an object, returning False when nothing was deleted."""

    @abstractmethod
    async def list(self, prefix: str = "") -> list[StoredObject]:
        """List stored objects under a prefix or folder."""

    @abstractmethod
    async def usage_snapshot(self) -> UsageState:
        """Report what the provider itself says is consumed."""

    @abstractmethod
    async def find_container(
        self, name: str, parent_id: str | None = None
    ) -> Container | None:
        """Look up an existing container by name."""

    @abstractmethod
    async def create_container(
        self, name: str, parent_id: str | None = None
    ) -> Container:
        """Create a container.

        Raises:
            ContainerCreationFailed: If the provider refuses
            ContainerAlreadyExists: If the provider reports a duplicate
        """

    async def test_connection(self) -> bool:
        """Check that the provider answers a cheap read."""
        try:
            await self.list()
        except StorageError as e:
            logger.error(f"{self.provider} connection test failed: {e}")
            return False
        logger.info(f"{self.provider} connection test successful")
        return True
