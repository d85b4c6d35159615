"""Tests for the Cloudflare R2 object store adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import ClientError

from event_photo_storage.exceptions import (
    ProviderReadFailed,
    ProviderUnavailable,
    ProviderWriteFailed,
)
from event_photo_storage.object_store import ObjectStore


class FakePaginator:
    def __init__(self, pages: list[dict]) -> None:
        self.pages = pages
        self.calls: list[dict] = []

    def paginate(self, **kwargs):
        self.calls.append(kwargs)
        return self._iterate()

    async def _iterate(self):
        for page in self.pages:
            yield page


def _client_error(operation: str) -> ClientError:
    return ClientError({"Error": {"Code": "500", "Message": "boom"}}, operation)


@pytest.fixture
def s3_client() -> MagicMock:
    client = MagicMock()
    client.put_object = AsyncMock(return_value={"ETag": '"etag123"'})
    client.delete_object = AsyncMock(return_value={})
    return client


@pytest.fixture
def session(s3_client: MagicMock) -> MagicMock:
    client_context = MagicMock()
    client_context.__aenter__.return_value = s3_client
    client_context.__aexit__.return_value = False
    session = MagicMock()
    session.client.return_value = client_context
    return session


@pytest.fixture
def store(session: MagicMock) -> ObjectStore:
    return ObjectStore(
        account_id="acct",
        access_key_id="key",
        secret_access_key="secret",
        bucket_name="event-photos",
        capacity_bytes=1000,
        session=session,
    )


class TestObjectStoreSetup:
    """Test ObjectStore construction."""

    def test_missing_credentials(self) -> None:
        """Test that missing credentials make the tier unavailable."""
        with pytest.raises(ProviderUnavailable):
            ObjectStore(None, "key", "secret", "bucket", capacity_bytes=1)

    def test_endpoint(self, store: ObjectStore, session: MagicMock) -> None:
        """Test the account-scoped endpoint and auto region."""
        store._client()

        kwargs = session.client.call_args.kwargs
        assert kwargs["endpoint_url"] == "https://acct.r2.cloudflarestorage.com"
        assert kwargs["region_name"] == "auto"

    @pytest.mark.parametrize(
        "public_url,custom_domain,expected",
        [
            (None, None, "https://pub-acct.r2.dev/a/b.jpg"),
            ("https://cdn.test/", None, "https://cdn.test/a/b.jpg"),
            ("https://cdn.test", "photos.test", "https://photos.test/a/b.jpg"),
        ],
    )
    def test_public_url(self, session, public_url, custom_domain, expected) -> None:
        """Test public URL precedence."""
        store = ObjectStore(
            "acct", "key", "secret", "bucket", 1,
            public_url=public_url, custom_domain=custom_domain, session=session,
        )

        assert store.public_url_for("a/b.jpg") == expected


@pytest.mark.asyncio
class TestObjectStore:
    """Test ObjectStore operations against a mocked S3 client."""

    async def test_put(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test uploading an object with metadata and cache headers."""
        result = await store.put(
            b"data", "events/evt1/a.jpg", {"event-id": "evt1"}, content_type="image/jpeg"
        )

        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "event-photos"
        assert kwargs["Key"] == "events/evt1/a.jpg"
        assert kwargs["CacheControl"] == "public, max-age=31536000"
        assert kwargs["Metadata"]["event-id"] == "evt1"
        assert "upload-timestamp" in kwargs["Metadata"]
        assert result.path == "events/evt1/a.jpg"
        assert result.etag == '"etag123"'
        assert result.size_bytes == 4
        assert result.url == "https://pub-acct.r2.dev/events/evt1/a.jpg"

    async def test_put_into_container(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test that a container id acts as a key prefix."""
        container = await store.create_container("Event_evt1", "EventBackups")

        result = await store.put(b"x", "p1_a.jpg", container_id=container.id)

        assert result.path == "EventBackups/Event_evt1/p1_a.jpg"

    async def test_put_failure(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test that client errors become write failures."""
        s3_client.put_object.side_effect = _client_error("PutObject")

        with pytest.raises(ProviderWriteFailed):
            await store.put(b"data", "a.jpg")

    async def test_get(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test downloading an object body."""
        body = MagicMock()
        stream = MagicMock()
        stream.read = AsyncMock(return_value=b"bytes")
        body.__aenter__.return_value = stream
        body.__aexit__.return_value = False
        s3_client.get_object = AsyncMock(return_value={"Body": body})

        assert await store.get("a.jpg") == b"bytes"

    async def test_get_failure(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test that a missing object becomes a read failure."""
        s3_client.get_object = AsyncMock(side_effect=_client_error("GetObject"))

        with pytest.raises(ProviderReadFailed):
            await store.get("a.jpg")

    async def test_delete(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test delete success and failure."""
        assert await store.delete("a.jpg") is True

        s3_client.delete_object.side_effect = _client_error("DeleteObject")
        assert await store.delete("a.jpg") is False

    async def test_list_and_usage(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test that listing follows every page and usage sums sizes."""
        paginator = FakePaginator(
            [
                {"Contents": [{"Key": "a.jpg", "Size": 10, "ETag": '"1"'}]},
                {"Contents": [{"Key": "b.jpg", "Size": 15}]},
                {},
            ]
        )
        s3_client.get_paginator.return_value = paginator

        objects = await store.list("events/")
        usage = await store.usage_snapshot()

        assert [obj.path for obj in objects] == ["a.jpg", "b.jpg"]
        assert paginator.calls[0] == {"Bucket": "event-photos", "Prefix": "events/"}
        assert usage.used_bytes == 25
        assert usage.capacity_bytes == 1000

    async def test_connection_failure(self, store: ObjectStore, s3_client: MagicMock) -> None:
        """Test the connectivity check reports listing failures."""
        s3_client.get_paginator.side_effect = _client_error("ListObjectsV2")

        assert await store.test_connection() is False

    async def test_find_container_is_implicit(self, store: ObjectStore) -> None:
        """Test that prefixes always exist."""
        container = await store.find_container("EventBackups")

        assert container is not None
        assert container.id == "EventBackups"
