"""
Directory client protocol and common types.

Provides:
- AclEntry / DriveItem dataclasses for normalized item metadata
- FieldProjection for the two listing shapes (ids only, full)
- DirectoryClient protocol for listing, lookup and permission changes
- iter_item_pages / count_items helpers for lazy page-at-a-time traversal
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import TracebackType
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class PrincipalType(str, Enum):
    """Who an ACL entry grants access to."""

    USER = "user"
    GROUP = "group"
    DOMAIN = "domain"
    ANYONE = "anyone"  # Anyone with the link


class PermissionRole(str, Enum):
    """Access role of an ACL entry."""

    OWNER = "owner"
    ORGANIZER = "organizer"
    FILE_ORGANIZER = "fileOrganizer"
    WRITER = "writer"
    COMMENTER = "commenter"
    READER = "reader"


WRITE_ROLES = frozenset({
    PermissionRole.WRITER,
    PermissionRole.ORGANIZER,
    PermissionRole.FILE_ORGANIZER,
})

# Roles a caller may assign through remediation
ASSIGNABLE_ROLES = frozenset({
    PermissionRole.READER,
    PermissionRole.COMMENTER,
    PermissionRole.WRITER,
})


class FieldProjection(str, Enum):
    """Field set requested from the provider when listing items."""

    IDS = "ids"    # Counting phase: ids only
    FULL = "full"  # Scanning phase: metadata plus expanded ACL


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as returned by the Drive API."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def email_domain(email: str | None) -> str | None:
    """Domain part of an email address, lowercased."""
    if not email or "@" not in email:
        return None
    return email.rsplit("@", 1)[1].lower()


@dataclass(frozen=True)
class AclEntry:
    """One access grant on an item."""

    id: str
    type: PrincipalType
    role: PermissionRole
    email: str | None = None
    domain: str | None = None
    display_name: str | None = None

    @property
    def principal_domain(self) -> str | None:
        """Domain the grantee belongs to, if it can be resolved."""
        if self.type == PrincipalType.DOMAIN:
            return self.domain.lower() if self.domain else None
        if self.type in (PrincipalType.USER, PrincipalType.GROUP):
            return email_domain(self.email)
        return None

    @property
    def can_write(self) -> bool:
        return self.role in WRITE_ROLES

    def is_external(self, organization_domain: str) -> bool:
        """
        Check whether this grant names a party outside the organization.

        Domain grants compare the granted domain; user and group grants
        compare their email domain. Entries without an email or domain
        contribute nothing. Anyone-links are not counted here: they are
        public, which is scored on its own.
        """
        org = organization_domain.lower()
        if self.type == PrincipalType.ANYONE:
            return False
        domain = self.principal_domain
        return domain is not None and domain != org

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AclEntry:
        """Build from a Drive API permission resource."""
        return cls(
            id=data.get("id", ""),
            type=PrincipalType(data.get("type", "user")),
            role=PermissionRole(data.get("role", "reader")),
            email=data.get("emailAddress"),
            domain=data.get("domain"),
            display_name=data.get("displayName"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage (Drive API field names)."""
        return {k: v for k, v in {
            "id": self.id,
            "type": self.type.value,
            "role": self.role.value,
            "emailAddress": self.email,
            "domain": self.domain,
            "displayName": self.display_name,
        }.items() if v is not None}


@dataclass(frozen=True)
class DriveItem:
    """Normalized file metadata with its ordered ACL."""

    id: str
    name: str = ""
    mime_type: str = ""
    size: int | None = None
    created_time: datetime | None = None
    modified_time: datetime | None = None
    owner_email: str | None = None
    owner_name: str | None = None
    shared: bool = False
    parent_id: str | None = None  # First parent only
    web_view_link: str | None = None
    permissions: tuple[AclEntry, ...] = field(default_factory=tuple)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> DriveItem:
        """Build from a Drive API file resource (either projection)."""
        owners = data.get("owners") or []
        owner = owners[0] if owners else {}
        parents = data.get("parents") or []
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            size=int(size) if size is not None else None,
            created_time=parse_timestamp(data.get("createdTime")),
            modified_time=parse_timestamp(data.get("modifiedTime")),
            owner_email=owner.get("emailAddress"),
            owner_name=owner.get("displayName"),
            shared=bool(data.get("shared", False)),
            parent_id=parents[0] if parents else None,
            web_view_link=data.get("webViewLink"),
            permissions=tuple(AclEntry.from_api(p) for p in data.get("permissions") or []),
        )


@dataclass
class ItemPage:
    """One page of a listing."""

    items: list[DriveItem]
    next_page_token: str | None = None


@runtime_checkable
class DirectoryClient(Protocol):
    """Protocol for the storage provider acting as one account.

    Use as an async context manager to manage HTTP resources::

        async with factory.for_subject("user@example.com") as client:
            page = await client.list_items(None, 100, FieldProjection.FULL)
    """

    async def list_items(
        self,
        page_token: str | None,
        page_size: int,
        projection: FieldProjection,
    ) -> ItemPage:
        """List one page of non-trashed items visible to the account."""
        ...

    async def get_item(self, item_id: str) -> DriveItem:
        """Fetch one item with full fields."""
        ...

    async def get_folder_name(self, folder_id: str) -> str:
        """Resolve a folder id to its display name."""
        ...

    async def delete_permission(self, item_id: str, permission_id: str) -> None:
        """Remove one ACL entry from an item."""
        ...

    async def update_permission_role(
        self,
        item_id: str,
        permission_id: str,
        role: PermissionRole,
    ) -> AclEntry:
        """Change the role of one ACL entry."""
        ...

    async def get_start_page_token(self) -> str:
        """Current change-token, reserved for incremental scans."""
        ...

    async def __aenter__(self) -> DirectoryClient:
        ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        ...


async def iter_item_pages(
    client: DirectoryClient,
    projection: FieldProjection,
    page_size: int,
    max_items: int | None = None,
) -> AsyncIterator[list[DriveItem]]:
    """
    Lazily walk the listing one page at a time.

    Each call starts a fresh cursor walk from the first page; the sequence
    is finite and cannot be resumed part way through. When max_items is
    set, the final page is truncated so that exactly min(total, max_items)
    items are yielded.

    Yields:
        Lists of items, one per provider page (empty pages are skipped)
    """
    page_token: str | None = None
    yielded = 0
    while True:
        if max_items is not None and yielded >= max_items:
            return
        page = await client.list_items(page_token, page_size, projection)
        items = page.items
        if max_items is not None:
            items = items[: max_items - yielded]
        if items:
            yielded += len(items)
            yield items
        page_token = page.next_page_token
        if not page_token:
            return


async def count_items(
    client: DirectoryClient,
    page_size: int,
    max_items: int | None = None,
) -> int:
    """Count items with the id-only projection, stopping at max_items."""
    total = 0
    async for items in iter_item_pages(client, FieldProjection.IDS, page_size, max_items):
        total += len(items)
    return total
