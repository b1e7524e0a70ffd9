"""
Google Drive directory client.

Lists the non-trashed files visible to one account, resolves folder names
and mutates permissions. Acts as whichever account its TokenSource
represents (a user token or delegated service-account credentials).
"""

import logging
from typing import Optional

import httpx

from shareaudit.adapters.base import (
    AclEntry,
    DriveItem,
    FieldProjection,
    ItemPage,
    PermissionRole,
)
from shareaudit.adapters.google_client import (
    GoogleAPIClient,
    RateLimiterConfig,
    TokenSource,
)
from shareaudit.config import DriveSettings, get_settings

logger = logging.getLogger(__name__)

DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"

LIST_QUERY = "trashed = false"

PERMISSION_FIELDS = "id,type,role,emailAddress,domain,displayName"

FILE_FIELDS = (
    "id,name,mimeType,webViewLink,createdTime,modifiedTime,size,"
    "owners(emailAddress,displayName),shared,parents,"
    f"permissions({PERMISSION_FIELDS})"
)

PROJECTION_FIELDS = {
    FieldProjection.IDS: "nextPageToken,files(id)",
    FieldProjection.FULL: f"nextPageToken,files({FILE_FIELDS})",
}


class DriveClient(GoogleAPIClient):
    """
    Drive v3 client satisfying the DirectoryClient protocol.

    Usage:
        async with DriveClient(token_source) as drive:
            page = await drive.list_items(None, 100, FieldProjection.FULL)
    """

    def __init__(
        self,
        token_source: TokenSource,
        base_url: str = DRIVE_API_BASE,
        **kwargs,
    ):
        super().__init__(base_url, token_source, **kwargs)

    @classmethod
    def from_settings(
        cls,
        token_source: TokenSource,
        settings: Optional[DriveSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DriveClient":
        """Build a client configured from the drive settings section."""
        settings = settings or get_settings().drive
        return cls(
            token_source,
            base_url=settings.api_base,
            rate_config=RateLimiterConfig(
                requests_per_second=settings.requests_per_second,
                burst_size=settings.burst_size,
            ),
            pool_size=settings.pool_size,
            timeout=settings.timeout,
            connect_timeout=settings.connect_timeout,
            transport=transport,
        )

    async def list_items(
        self,
        page_token: Optional[str],
        page_size: int,
        projection: FieldProjection,
    ) -> ItemPage:
        params = {
            "q": LIST_QUERY,
            "pageSize": page_size,
            "fields": PROJECTION_FIELDS[projection],
        }
        if page_token:
            params["pageToken"] = page_token

        data = await self.get("/files", params=params)
        items = [DriveItem.from_api(f) for f in data.get("files", [])]
        logger.debug(
            "Listed %d items (projection=%s, more=%s)",
            len(items), projection.value, bool(data.get("nextPageToken")),
        )
        return ItemPage(items=items, next_page_token=data.get("nextPageToken"))

    async def get_item(self, item_id: str) -> DriveItem:
        data = await self.get(f"/files/{item_id}", params={"fields": FILE_FIELDS})
        return DriveItem.from_api(data)

    async def get_folder_name(self, folder_id: str) -> str:
        data = await self.get(f"/files/{folder_id}", params={"fields": "name"})
        return data.get("name", "")

    async def delete_permission(self, item_id: str, permission_id: str) -> None:
        await self.delete(f"/files/{item_id}/permissions/{permission_id}")
        logger.info("Deleted permission %s on %s", permission_id, item_id)

    async def update_permission_role(
        self,
        item_id: str,
        permission_id: str,
        role: PermissionRole,
    ) -> AclEntry:
        data = await self.patch(
            f"/files/{item_id}/permissions/{permission_id}",
            params={"fields": PERMISSION_FIELDS},
            json={"role": role.value},
        )
        logger.info("Changed permission %s on %s to %s", permission_id, item_id, role.value)
        return AclEntry.from_api(data)

    async def get_start_page_token(self) -> str:
        data = await self.get("/changes/startPageToken")
        return data["startPageToken"]
