"""Google Drive tier with retry logic using httpx for async HTTP calls."""

import asyncio
import json
import logging
import secrets
import time
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from event_photo_storage.exceptions import (
    ContainerCreationFailed,
    DriveAPIError,
    ProviderReadFailed,
    ProviderUnavailable,
    ProviderWriteFailed,
    RateLimitError,
    ServerError,
)
from event_photo_storage.models import Tier, UsageState
from event_photo_storage.providers import (
    Container,
    ProviderAdapter,
    PutResult,
    StoredObject,
)

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DRIVE_API_BASE_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Free accounts without an explicit limit in the quota response
DEFAULT_QUOTA_BYTES = 15 * 1024 * 1024 * 1024

RATE_LIMIT_REASONS = {"rateLimitExceeded", "userRateLimitExceeded"}

# Refresh the access token slightly before Google expires it
TOKEN_EXPIRY_MARGIN_SECONDS = 60

FILE_FIELDS = "id, name, size, webViewLink, webContentLink"


def _escape_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveStore(ProviderAdapter):
    """Stores photos in Google Drive using the v3 REST API.

    Logical paths are mirrored as a folder hierarchy under the root folder;
    the value handed back as ``path`` is the opaque Drive file id.
    """

    tier = Tier.SECONDARY
    provider = "google-drive"

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        refresh_token: str | None,
        capacity_bytes: int,
        root_folder_id: str | None = None,
        make_public: bool = True,
    ) -> None:
        """Initialize Google Drive store.

        Args:
            client_id: OAuth client id
            client_secret: OAuth client secret
            refresh_token: Long-lived refresh token for the storage account
            capacity_bytes: Configured ceiling for this tier
            root_folder_id: Folder all uploads are placed under
            make_public: Grant anyone-with-link read access to uploaded files

        Raises:
            ProviderUnavailable: If any credential is missing
        """
        if not all([client_id, client_secret, refresh_token]):
            raise ProviderUnavailable(
                "Google Drive credentials not configured. Set GOOGLE_DRIVE_CLIENT_ID, "
                "GOOGLE_DRIVE_CLIENT_SECRET and GOOGLE_DRIVE_REFRESH_TOKEN"
            )

        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.capacity_bytes = capacity_bytes
        self.root_folder_id = root_folder_id
        self.make_public = make_public

        self._client: httpx.AsyncClient | None = None
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._folder_ids: dict[str, str] = {}
        self._folder_lock = asyncio.Lock()

    async def __aenter__(self) -> "DriveStore":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, write=120.0))
        return self

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
        self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the httpx AsyncClient instance.

        Returns:
            The httpx.AsyncClient instance

        Raises:
            RuntimeError: If client is used outside of async context manager
        """
        if self._client is None:
            raise RuntimeError("Client must be used within async context manager")
        return self._client

    @retry(
        retry=retry_if_exception_type((RateLimitError, ServerError)),
        wait=wait_exponential(multiplier=1, min=1, max=60),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    async def _refresh_access_token(self) -> str:
        """Exchange the refresh token for a fresh access token.

        Raises:
            ProviderUnavailable: If Google rejects the client or refresh token
            ServerError: If the token endpoint is failing
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
            "grant_type": "refresh_token",
        }

        try:
            response = await self.client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.RequestError as e:
            logger.warning(f"Network error while refreshing Drive token, will retry: {e}")
            raise ServerError(f"Network error: {e}") from e

        result = self._parse_json_response(response, "refreshing access token")

        if response.status_code >= 500:
            raise ServerError(f"Token endpoint error {response.status_code}")
        if response.status_code >= 400:
            raise ProviderUnavailable(
                f"Google Drive rejected credentials: {result.get('error', result)}"
            )

        self._access_token = result["access_token"]
        self._token_expires_at = (
            time.monotonic() + int(result.get("expires_in", 3600)) - TOKEN_EXPIRY_MARGIN_SECONDS
        )
        logger.debug("Refreshed Google Drive access token")
        return self._access_token

    async def _get_access_token(self) -> str:
        if self._access_token and time.monotonic() < self._token_expires_at:
            return self._access_token
        return await self._refresh_access_token()

    @retry(
        retry=retry_if_exception_type((RateLimitError, ServerError)),
        wait=wait_exponential(multiplier=1, min=1, max=60),
        stop=stop_after_attempt(5),
        reraise=True,
    )
    async def _request(
        self, method: str, url: str, context: str, **kwargs: Any
    ) -> httpx.Response:
        """Send an authorized request, classifying failures for retry.

        Args:
            method: HTTP method
            url: Absolute URL
            context: Description of the operation, for logs and errors
            **kwargs: Passed through to httpx

        Returns:
            The successful response

        Raises:
            DriveAPIError: If the request fails permanently
            RateLimitError: If rate limit is exceeded
            ServerError: If server error occurs
        """
        token = await self._get_access_token()
        headers = {**kwargs.pop("headers", {}), "Authorization": f"Bearer {token}"}

        try:
            response = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.warning(f"Network error while {context}, will retry: {e}")
            raise ServerError(f"Network error: {e}") from e

        if response.status_code == 401:
            # Token revoked or expired early; the retry fetches a new one
            self._access_token = None
            raise ServerError(f"Access token rejected while {context}")

        if response.status_code >= 400:
            result = self._parse_json_response(response, context)
            self._handle_error_response(response.status_code, result, context)

        return response

    async def _ensure_folder_path(self, parts: list[str]) -> str | None:
        """Resolve (creating as needed) the folder for a logical directory."""
        parent_id = self.root_folder_id
        if not parts:
            return parent_id

        async with self._folder_lock:
            for depth in range(1, len(parts) + 1):
                key = "/".join(parts[:depth])
                cached = self._folder_ids.get(key)
                if cached:
                    parent_id = cached
                    continue

                name = parts[depth - 1]
                folder = await self.find_container(name, parent_id)
                if folder is None:
                    folder = await self.create_container(name, parent_id)
                self._folder_ids[key] = folder.id
                parent_id = folder.id

        return parent_id

    async def put(
        self,
        data: bytes,
        logical_path: str,
        metadata: dict[str, str] | None = None,
        *,
        container_id: str | None = None,
        content_type: str = "image/jpeg",
    ) -> PutResult:
        """Upload a photo to Google Drive.

        Args:
            data: File content
            logical_path: Logical path; its directories become folders
            metadata: Stored as Drive ``appProperties``
            container_id: Folder id to upload into directly
            content_type: MIME type

        Returns:
            PutResult whose path is the Drive file id

        Raises:
            ProviderWriteFailed: If the upload fails
            ProviderUnavailable: If credentials are rejected
        """
        parts = logical_path.split("/")
        file_name = parts[-1]

        try:
            if container_id:
                folder_id = container_id
            else:
                folder_id = await self._ensure_folder_path(parts[:-1])

            file_metadata: dict[str, Any] = {
                "name": file_name,
                "description": f"Uploaded photo - {logical_path}",
                "appProperties": metadata or {},
            }
            if folder_id:
                file_metadata["parents"] = [folder_id]

            boundary = f"event-photo-storage-{secrets.token_hex(8)}"
            body = _multipart_related_body(boundary, file_metadata, data, content_type)

            response = await self._request(
                "POST",
                DRIVE_UPLOAD_URL,
                f"uploading {file_name}",
                params={"uploadType": "multipart", "fields": FILE_FIELDS},
                content=body,
                headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            )
            result = self._parse_json_response(response, f"uploading {file_name}")
            file_id = result["id"]

            if self.make_public:
                await self._request(
                    "POST",
                    f"{DRIVE_API_BASE_URL}/files/{file_id}/permissions",
                    f"sharing {file_name}",
                    json={"role": "reader", "type": "anyone"},
                )
        except (DriveAPIError, ContainerCreationFailed) as e:
            logger.error(f"Failed to upload {file_name} to Google Drive: {e}")
            raise ProviderWriteFailed(f"Google Drive upload failed: {e}") from e

        logger.info(f"Uploaded to Google Drive: {file_name} ({file_id})")
        return PutResult(
            url=f"https://drive.google.com/uc?id={file_id}",
            path=file_id,
            size_bytes=len(data),
            file_id=file_id,
        )

    async def get(self, provider_path: str) -> bytes:
        try:
            response = await self._request(
                "GET",
                f"{DRIVE_API_BASE_URL}/files/{provider_path}",
                f"downloading {provider_path}",
                params={"alt": "media"},
            )
        except DriveAPIError as e:
            raise ProviderReadFailed(f"Google Drive download failed: {e}") from e
        return response.content

    async def delete(self, provider_path: str) -> bool:
        try:
            await self._request(
                "DELETE",
                f"{DRIVE_API_BASE_URL}/files/{provider_path}",
                f"deleting {provider_path}",
            )
        except DriveAPIError as e:
            logger.error(f"Failed to delete Drive file {provider_path}: {e}")
            return False

        logger.info(f"Deleted file from Google Drive: {provider_path}")
        return True

    async def list(self, prefix: str = "") -> list[StoredObject]:
        """List files inside a folder id (``prefix``) or the root folder."""
        folder_id = prefix or self.root_folder_id
        query = "trashed = false"
        if folder_id:
            query = f"'{_escape_query_value(folder_id)}' in parents and {query}"

        objects: list[StoredObject] = []
        page_token: str | None = None
        try:
            while True:
                params = {
                    "q": query,
                    "pageSize": "100",
                    "fields": "nextPageToken, files(id, name, size, webViewLink)",
                }
                if page_token:
                    params["pageToken"] = page_token

                response = await self._request(
                    "GET", f"{DRIVE_API_BASE_URL}/files", "listing files", params=params
                )
                result = self._parse_json_response(response, "listing files")
                for item in result.get("files", []):
                    objects.append(
                        StoredObject(
                            path=item["id"],
                            size_bytes=int(item.get("size", 0)),
                            url=item.get("webViewLink"),
                        )
                    )

                page_token = result.get("nextPageToken")
                if not page_token:
                    break
        except DriveAPIError as e:
            raise ProviderReadFailed(f"Google Drive listing failed: {e}") from e

        return objects

    async def usage_snapshot(self) -> UsageState:
        """Read the account quota; capacity is the smaller of quota and ceiling."""
        try:
            response = await self._request(
                "GET",
                f"{DRIVE_API_BASE_URL}/about",
                "reading storage quota",
                params={"fields": "storageQuota"},
            )
        except DriveAPIError as e:
            raise ProviderReadFailed(f"Google Drive quota lookup failed: {e}") from e

        quota = self._parse_json_response(response, "reading storage quota").get("storageQuota", {})
        used = int(quota.get("usage") or 0)
        limit = int(quota.get("limit") or DEFAULT_QUOTA_BYTES)
        return UsageState(used_bytes=used, capacity_bytes=min(limit, self.capacity_bytes))

    async def find_container(
        self, name: str, parent_id: str | None = None
    ) -> Container | None:
        query = (
            f"name = '{_escape_query_value(name)}' and mimeType = '{FOLDER_MIME_TYPE}' "
            "and trashed = false"
        )
        if parent_id:
            query += f" and '{_escape_query_value(parent_id)}' in parents"

        try:
            response = await self._request(
                "GET",
                f"{DRIVE_API_BASE_URL}/files",
                f"looking up folder '{name}'",
                params={"q": query, "fields": "files(id, name, webViewLink)"},
            )
        except DriveAPIError as e:
            raise ContainerCreationFailed(f"Cannot look up folder {name}: {e}") from e

        files = self._parse_json_response(response, f"looking up folder '{name}'").get("files", [])
        if not files:
            return None
        folder = files[0]
        return Container(id=folder["id"], name=folder["name"], url=folder.get("webViewLink"))

    async def create_container(
        self, name: str, parent_id: str | None = None
    ) -> Container:
        parent = parent_id or self.root_folder_id
        folder_metadata: dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent:
            folder_metadata["parents"] = [parent]

        try:
            response = await self._request(
                "POST",
                f"{DRIVE_API_BASE_URL}/files",
                f"creating folder '{name}'",
                params={"fields": "id, name, webViewLink"},
                json=folder_metadata,
            )
        except DriveAPIError as e:
            logger.error(f"Failed to create Google Drive folder {name}: {e}")
            raise ContainerCreationFailed(f"Cannot create folder {name}: {e}") from e

        result = self._parse_json_response(response, f"creating folder '{name}'")
        logger.info(f"Created Google Drive folder: {name} ({result['id']})")
        return Container(id=result["id"], name=result.get("name", name), url=result.get("webViewLink"))

    async def test_connection(self) -> bool:
        try:
            usage = await self.usage_snapshot()
        except (ProviderReadFailed, ProviderUnavailable) as e:
            logger.error(f"Google Drive connection test failed: {e}")
            return False
        logger.info(
            f"Google Drive connection test successful ({usage.used_bytes} bytes used)"
        )
        return True

    def _parse_json_response(
        self, response: httpx.Response, context: str
    ) -> dict[str, Any]:
        """Parse JSON response, handling non-JSON responses gracefully.

        Args:
            response: The httpx Response object
            context: Description of what operation was attempted

        Returns:
            Parsed JSON as a dictionary

        Raises:
            ServerError: If response is 5xx with non-JSON body
            DriveAPIError: If response has invalid JSON for non-5xx status
        """
        try:
            return response.json()
        except ValueError:
            # Non-JSON response (e.g., HTML error page during outages)
            if response.status_code >= 500:
                logger.warning(f"Server returned non-JSON response while {context}, will retry")
                raise ServerError(
                    f"Server error {response.status_code}: {response.text[:200]}"
                )
            raise DriveAPIError(
                f"Invalid API response while {context}: {response.text[:200]}"
            )

    def _handle_error_response(
        self, status_code: int, result: dict[str, Any], context: str
    ) -> None:
        """Handle error responses from the Drive API.

        Raises:
            RateLimitError: If rate limit is exceeded
            ServerError: If server error occurs
            DriveAPIError: For other API errors
        """
        error = result.get("error", {})
        if not isinstance(error, dict):
            error = {"message": str(error)}
        error_message = error.get("message", str(result))
        reasons = {item.get("reason") for item in error.get("errors", [])}

        if status_code == 429 or reasons & RATE_LIMIT_REASONS:
            logger.warning(f"Rate limit exceeded while {context}, will retry")
            raise RateLimitError(f"Google Drive rate limit exceeded: {error_message}")

        if status_code >= 500:
            logger.warning(f"Server error while {context}, will retry")
            raise ServerError(f"Google Drive server error: {error_message}")

        # Other errors - don't retry
        error_msg = f"Google Drive API error {status_code} while {context}: {error_message}"
        logger.error(error_msg)
        raise DriveAPIError(error_msg)


def _multipart_related_body(
    boundary: str, file_metadata: dict[str, Any], data: bytes, content_type: str
) -> bytes:
    head = (
        f"--{boundary}\r\n"
        "Content-Type: application/json; charset=UTF-8\r\n\r\n"
        f"{json.dumps(file_metadata)}\r\n"
        f"--{boundary}\r\n"
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode()
    return head + data + f"\r\n--{boundary}--\r\n".encode()
