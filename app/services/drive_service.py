"""Drive service for Microsoft Graph API integration."""

import asyncio
import time
from typing import List, Optional, Dict, Any
from datetime import datetime
from urllib.parse import quote
import httpx
from msal import ConfidentialClientApplication
from app.config import settings
from app.exceptions import FolderAccessError, StorageError
from app.utils.logger import setup_logger
from app.models.copy_models import FileMetadata, FolderMetadata

logger = setup_logger(__name__)

ITEM_SELECT = "id,name,webUrl,size,createdDateTime,parentReference,file,folder"


class DriveService:
    """Service for folders and files in one drive via Microsoft Graph API."""

    def __init__(
        self,
        drive_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the drive service.

        Args:
            drive_id: Graph drive ID (defaults to settings.drive_id)
            transport: Optional httpx transport (used by tests)
        """
        self.graph_endpoint = settings.graph_endpoint
        self.drive_id = drive_id or settings.drive_id
        self.token: Optional[str] = None
        self.token_expires_at: float = 0
        self._transport = transport
        self._client_app: Optional[ConfidentialClientApplication] = None

    @property
    def drive_url(self) -> str:
        return f"{self.graph_endpoint}/drives/{self.drive_id}"

    def _get_client_app(self) -> ConfidentialClientApplication:
        if self._client_app is None:
            self._client_app = ConfidentialClientApplication(
                client_id=settings.azure_client_id,
                client_credential=settings.azure_client_secret,
                authority=f"{settings.authority_host}/{settings.azure_tenant_id}",
            )
        return self._client_app

    async def _get_access_token(self) -> str:
        """Get a valid access token, refreshing if necessary.

        Returns:
            Access token string

        Raises:
            StorageError: If token acquisition fails
        """
        # Check if token is still valid (with 5 minute buffer)
        if self.token and time.time() < self.token_expires_at - 300:
            return self.token

        logger.info("Acquiring new access token")
        result = self._get_client_app().acquire_token_for_client(
            scopes=["https://graph.microsoft.com/.default"]
        )

        if "access_token" not in result:
            error = result.get("error_description", result.get("error", "Unknown error"))
            raise StorageError(f"Failed to acquire token: {error}")

        self.token = result["access_token"]
        expires_in = result.get("expires_in", 3600)
        self.token_expires_at = time.time() + expires_in

        logger.info("Access token acquired successfully")
        return self.token

    async def _send(
        self,
        method: str,
        url: str,
        retries: int = 3,
        timeout: float = 30.0,
        authenticate: bool = True,
        **kwargs,
    ) -> httpx.Response:
        """Send an HTTP request with retry logic and rate limiting.

        Client errors other than 429 are not retried.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Request URL
            retries: Number of retry attempts
            timeout: Request timeout in seconds (default: 30.0)
            authenticate: Whether to send the bearer token
            **kwargs: Additional arguments for httpx request

        Returns:
            The successful response

        Raises:
            StorageError: If request fails after retries or is rejected
        """
        headers = dict(kwargs.pop("headers", {}))
        if authenticate:
            token = await self._get_access_token()
            headers["Authorization"] = f"Bearer {token}"

        last_error: Optional[Exception] = None
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            for attempt in range(retries):
                try:
                    response = await client.request(method, url, headers=headers, **kwargs)
                except httpx.TransportError as e:
                    last_error = e
                    if attempt < retries - 1:
                        wait_time = 2 ** attempt
                        logger.warning(f"Transport error: {e}. Retrying in {wait_time}s... (attempt {attempt + 1}/{retries})")
                        await asyncio.sleep(wait_time)
                        continue
                    logger.error(f"Request failed after {retries} attempts: {e}")
                    break

                # Handle rate limiting (429)
                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", 60))
                    logger.warning(f"Rate limited. Waiting {retry_after} seconds...")
                    last_error = StorageError("Rate limited by Microsoft Graph", 429)
                    await asyncio.sleep(retry_after)
                    continue

                # Handle server errors (503, 502, 500)
                if response.status_code in [503, 502, 500]:
                    last_error = StorageError(
                        f"Server error {response.status_code}", response.status_code
                    )
                    if attempt < retries - 1:
                        wait_time = 2 ** attempt
                        logger.warning(
                            f"Server error {response.status_code}. Retrying in {wait_time}s..."
                        )
                        await asyncio.sleep(wait_time)
                    continue

                if response.status_code >= 400:
                    raise StorageError(
                        f"{method} {url} failed with {response.status_code}: {self._error_message(response)}",
                        response.status_code,
                    )

                return response

        if isinstance(last_error, StorageError):
            raise last_error
        raise StorageError(f"Request failed after all retries: {last_error}")

    async def _make_request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """Make a request and return the JSON body (empty dict when there is none)."""
        response = await self._send(method, url, **kwargs)
        if not response.content:
            return {}
        return response.json()

    async def _paginate_request(
        self, url: str, params: Optional[Dict] = None
    ) -> List[Dict[str, Any]]:
        """Paginate through Graph API results.

        Args:
            url: Initial request URL
            params: Query parameters

        Returns:
            List of all items from all pages
        """
        all_items = []
        page_params: Optional[Dict] = dict(params or {})
        page_params["$top"] = 999  # Maximum items per page

        while url:
            response = await self._make_request("GET", url, params=page_params)
            items = response.get("value", [])
            all_items.extend(items)

            # Check for next page
            url = response.get("@odata.nextLink")
            if url:
                # Next link carries its own query; any params would replace it
                page_params = None

        return all_items

    async def get_folder(self, folder_id: str) -> FolderMetadata:
        """Get a folder by ID.

        Args:
            folder_id: Drive item ID of the folder

        Returns:
            FolderMetadata

        Raises:
            FolderAccessError: If the folder does not exist, is not accessible
                or is not a folder
        """
        url = f"{self.drive_url}/items/{folder_id}"
        try:
            item = await self._make_request("GET", url, params={"$select": ITEM_SELECT})
        except StorageError as e:
            if e.response_status in (400, 403, 404):
                raise FolderAccessError(f"Folder not found or access denied: {folder_id}") from e
            raise

        if "folder" not in item:
            raise FolderAccessError(f"Item is not a folder: {folder_id}")
        return self._to_folder_metadata(item)

    async def list_folders(self, folder_id: str) -> List[FolderMetadata]:
        """List the direct child folders of a folder."""
        items = await self._list_children(folder_id)
        return [self._to_folder_metadata(item) for item in items if "folder" in item]

    async def list_files(self, folder_id: str) -> List[FileMetadata]:
        """List the direct child files of a folder."""
        items = await self._list_children(folder_id)
        return [self._to_file_metadata(item) for item in items if "file" in item]

    async def _list_children(self, folder_id: str) -> List[Dict[str, Any]]:
        url = f"{self.drive_url}/items/{folder_id}/children"
        return await self._paginate_request(url, params={"$select": ITEM_SELECT})

    async def child_exists(self, parent_id: str, name: str) -> bool:
        """Check whether the parent already has a child (file or folder) with this name."""
        url = f"{self.drive_url}/items/{parent_id}:/{quote(name, safe='')}"
        try:
            await self._make_request("GET", url, params={"$select": "id"})
        except StorageError as e:
            if e.response_status == 404:
                return False
            raise
        return True

    async def create_folder(self, parent_id: str, name: str) -> FolderMetadata:
        """Create a child folder. Fails if a child with the same name exists."""
        url = f"{self.drive_url}/items/{parent_id}/children"
        body = {
            "name": name,
            "folder": {},
            "@microsoft.graph.conflictBehavior": "fail",
        }
        item = await self._make_request("POST", url, json=body)
        logger.debug(f"Created folder '{name}' ({item.get('id')}) in {parent_id}")
        return self._to_folder_metadata(item)

    async def get_file(self, file_id: str) -> FileMetadata:
        """Get the current attributes of a file, size included."""
        url = f"{self.drive_url}/items/{file_id}"
        item = await self._make_request("GET", url, params={"$select": ITEM_SELECT})
        return self._to_file_metadata(item)

    async def copy_file(self, file_id: str, destination_folder_id: str, name: str) -> FileMetadata:
        """Copy a file into a folder and wait for the copy to finish.

        Graph copies asynchronously: the copy request returns a monitor URL
        that is polled until the operation completes.

        Args:
            file_id: Source file ID
            destination_folder_id: Target folder ID
            name: Name of the copy

        Returns:
            FileMetadata of the new file

        Raises:
            StorageError: If the copy fails or does not finish in time
        """
        url = f"{self.drive_url}/items/{file_id}/copy"
        body = {
            "parentReference": {"driveId": self.drive_id, "id": destination_folder_id},
            "name": name,
        }
        response = await self._send("POST", url, json=body)
        monitor_url = response.headers.get("Location")
        if not monitor_url:
            raise StorageError(f"Copy of {file_id} returned no monitor URL")

        new_file_id = await self._wait_for_copy(monitor_url, name)
        return await self.get_file(new_file_id)

    async def _wait_for_copy(self, monitor_url: str, name: str) -> str:
        """Poll a copy monitor until it reports the new item ID."""
        deadline = time.monotonic() + settings.copy_poll_timeout_seconds
        while True:
            # The monitor URL is pre-authenticated and rejects bearer tokens
            response = await self._send("GET", monitor_url, authenticate=False)
            # A finished monitor may redirect to the new item instead of reporting it
            if response.status_code in (302, 303) and response.headers.get("Location"):
                return response.headers["Location"].rstrip("/").split("/")[-1]

            status = response.json() if response.content else {}
            state = status.get("status")
            if state == "completed" and status.get("resourceId"):
                return status["resourceId"]
            if state == "failed":
                error = status.get("error", {}).get("message", "unknown error")
                raise StorageError(f"Copy of '{name}' failed: {error}")
            if time.monotonic() >= deadline:
                raise StorageError(f"Copy of '{name}' did not finish in time")
            await asyncio.sleep(settings.copy_poll_interval_seconds)

    async def create_file(
        self, folder_id: str, name: str, content: bytes, mime_type: str
    ) -> FileMetadata:
        """Upload a new small file. An existing file with the same name is kept and the new one renamed."""
        url = f"{self.drive_url}/items/{folder_id}:/{quote(name, safe='')}:/content"
        item = await self._make_request(
            "PUT",
            url,
            params={"@microsoft.graph.conflictBehavior": "rename"},
            content=content,
            headers={"Content-Type": mime_type},
        )
        return self._to_file_metadata(item)

    async def update_file_content(
        self, file_id: str, content: bytes, mime_type: str
    ) -> FileMetadata:
        """Replace the content of an existing file."""
        url = f"{self.drive_url}/items/{file_id}/content"
        item = await self._make_request(
            "PUT", url, content=content, headers={"Content-Type": mime_type}
        )
        return self._to_file_metadata(item)

    def _to_folder_metadata(self, item: Dict[str, Any]) -> FolderMetadata:
        return FolderMetadata(
            id=item["id"],
            name=item.get("name", ""),
            web_url=item.get("webUrl"),
            created_date_time=self._parse_datetime(item.get("createdDateTime")),
            parent_ids=self._parent_ids(item),
            child_count=item.get("folder", {}).get("childCount", 0),
        )

    def _to_file_metadata(self, item: Dict[str, Any]) -> FileMetadata:
        return FileMetadata(
            id=item["id"],
            name=item.get("name", ""),
            web_url=item.get("webUrl"),
            size=item.get("size") or 0,
            mime_type=item.get("file", {}).get("mimeType"),
            created_date_time=self._parse_datetime(item.get("createdDateTime")),
            parent_ids=self._parent_ids(item),
        )

    @staticmethod
    def _parent_ids(item: Dict[str, Any]) -> List[str]:
        parent_id = item.get("parentReference", {}).get("id")
        return [parent_id] if parent_id else []

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            return response.json().get("error", {}).get("message", response.text)
        except ValueError:
            return response.text

    @staticmethod
    def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
        """Parse ISO datetime string.

        Args:
            dt_str: ISO datetime string

        Returns:
            datetime object or None
        """
        if not dt_str:
            return None
        try:
            return datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
        except ValueError:
            return None
