"""Cloudflare R2 primary tier using aioboto3 against the S3-compatible API."""

import logging
from datetime import datetime, timezone
from typing import Any

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from event_photo_storage.exceptions import (
    ProviderReadFailed,
    ProviderUnavailable,
    ProviderWriteFailed,
)
from event_photo_storage.models import Tier, UsageState
from event_photo_storage.providers import (
    Container,
    ProviderAdapter,
    PutResult,
    StoredObject,
)

logger = logging.getLogger(__name__)

# One year; stored photos never change under the same key
CACHE_CONTROL = "public, max-age=31536000"


class ObjectStore(ProviderAdapter):
    """Primary tier adapter storing photos in an R2 bucket.

    Keys follow the logical path convention verbatim, so a stored path can be
    read back by any component that knows the bucket.
    """

    tier = Tier.PRIMARY
    provider = "cloudflare-r2"

    def __init__(
        self,
        account_id: str | None,
        access_key_id: str | None,
        secret_access_key: str | None,
        bucket_name: str | None,
        capacity_bytes: int,
        public_url: str | None = None,
        custom_domain: str | None = None,
        session: Any | None = None,
    ) -> None:
        """Initialize R2 object store.

        Args:
            account_id: Cloudflare account id, used for the endpoint
            access_key_id: R2 access key id
            secret_access_key: R2 secret access key
            bucket_name: Bucket holding every photo
            capacity_bytes: Usage ceiling reported for this tier
            public_url: Public bucket URL, used when no custom domain is set
            custom_domain: Domain serving the bucket
            session: aioboto3 session, a new one if omitted

        Raises:
            ProviderUnavailable: If any credential or the bucket is missing
        """
        if not all([account_id, access_key_id, secret_access_key, bucket_name]):
            raise ProviderUnavailable("Missing Cloudflare R2 credentials")

        self.account_id = account_id
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.bucket_name = bucket_name
        self.capacity_bytes = capacity_bytes
        self.public_url = public_url.rstrip("/") if public_url else None
        self.custom_domain = custom_domain
        self.endpoint_url = f"https://{account_id}.r2.cloudflarestorage.com"
        self._session = session or aioboto3.Session()

        logger.info(f"R2 configured. Using bucket '{bucket_name}' at {self.endpoint_url}")

    def _client(self) -> Any:
        return self._session.client(
            "s3",
            endpoint_url=self.endpoint_url,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            region_name="auto",  # R2 uses "auto" region
        )

    def public_url_for(self, key: str) -> str:
        """Build the public URL of an object key."""
        if self.custom_domain:
            return f"https://{self.custom_domain}/{key}"
        if self.public_url:
            return f"{self.public_url}/{key}"
        return f"https://pub-{self.account_id}.r2.dev/{key}"

    async def put(
        self,
        data: bytes,
        logical_path: str,
        metadata: dict[str, str] | None = None,
        *,
        container_id: str | None = None,
        content_type: str = "image/jpeg",
    ) -> PutResult:
        """Upload bytes to R2.

        Args:
            data: Object body
            logical_path: Object key (or name inside ``container_id``)
            metadata: Traceability tags stored as object metadata
            container_id: Key prefix acting as a folder
            content_type: MIME type

        Returns:
            Public URL, key and ETag of the stored object

        Raises:
            ProviderWriteFailed: If R2 rejects the upload
        """
        key = f"{container_id.rstrip('/')}/{logical_path}" if container_id else logical_path
        object_metadata = {
            "upload-timestamp": datetime.now(timezone.utc).isoformat(),
            **(metadata or {}),
        }

        try:
            async with self._client() as s3_client:
                response = await s3_client.put_object(
                    Bucket=self.bucket_name,
                    Key=key,
                    Body=data,
                    ContentType=content_type,
                    CacheControl=CACHE_CONTROL,
                    Metadata=object_metadata,
                )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 upload failed for {key}: {e}")
            raise ProviderWriteFailed(f"R2 upload failed: {e}") from e

        logger.info(f"File uploaded to R2: {key}", extra={"bucket": self.bucket_name, "key": key})
        return PutResult(
            url=self.public_url_for(key),
            path=key,
            size_bytes=len(data),
            etag=response.get("ETag"),
        )

    async def get(self, provider_path: str) -> bytes:
        """Download an object's bytes.

        Args:
            provider_path: Object key

        Returns:
            The object body

        Raises:
            ProviderReadFailed: If the object cannot be read
        """
        try:
            async with self._client() as s3_client:
                response = await s3_client.get_object(Bucket=self.bucket_name, Key=provider_path)
                async with response["Body"] as stream:
                    return await stream.read()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 download failed for {provider_path}: {e}")
            raise ProviderReadFailed(f"R2 download failed: {e}") from e

    async def delete(self, provider_path: str) -> bool:
        """Delete an object.

        Returns:
            True if R2 accepted the delete, False on error
        """
        try:
            async with self._client() as s3_client:
                await s3_client.delete_object(Bucket=self.bucket_name, Key=provider_path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 delete failed for {provider_path}: {e}")
            return False

        logger.info(f"File deleted from R2: {provider_path}")
        return True

    async def list(self, prefix: str = "") -> list[StoredObject]:
        """List every object under a prefix, following pagination.

        Raises:
            ProviderReadFailed: If a listing page cannot be fetched
        """
        objects: list[StoredObject] = []
        try:
            async with self._client() as s3_client:
                paginator = s3_client.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                    for item in page.get("Contents", []):
                        objects.append(
                            StoredObject(
                                path=item["Key"],
                                size_bytes=item.get("Size", 0),
                                url=self.public_url_for(item["Key"]),
                                etag=item.get("ETag"),
                            )
                        )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"R2 listing failed for prefix '{prefix}': {e}")
            raise ProviderReadFailed(f"R2 listing failed: {e}") from e

        return objects

    async def usage_snapshot(self) -> UsageState:
        """Sum the sizes of every stored object."""
        objects = await self.list()
        used = sum(obj.size_bytes for obj in objects)
        logger.debug(f"R2 usage: {used} bytes across {len(objects)} objects")
        return UsageState(used_bytes=used, capacity_bytes=self.capacity_bytes)

    async def find_container(
        self, name: str, parent_id: str | None = None
    ) -> Container | None:
        # Prefixes exist implicitly
        return await self.create_container(name, parent_id)

    async def create_container(
        self, name: str, parent_id: str | None = None
    ) -> Container:
        prefix = f"{parent_id.rstrip('/')}/{name}" if parent_id else name
        return Container(id=prefix, name=name, url=self.public_url_for(prefix))
