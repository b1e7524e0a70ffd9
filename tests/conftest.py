"""
Shared test configuration for ShareAudit.

Fixtures hand out builders rather than instances so each test decides what
its fake provider returns:
- memory_db: async context manager over a fresh in-memory SQLite database
- make_item / make_acl: DriveItem and AclEntry builders
- fake_drive: in-memory DirectoryClient
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from shareaudit.adapters.base import (
    AclEntry,
    DriveItem,
    FieldProjection,
    ItemPage,
    PermissionRole,
    PrincipalType,
)
from shareaudit.config import Settings
from shareaudit.exceptions import DriveAPIError

ORG_DOMAIN = "example.com"

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# SETTINGS & DATABASE
# =============================================================================


@pytest.fixture
def settings(monkeypatch):
    """Default settings, independent of any config.yaml on this machine."""
    monkeypatch.setattr("shareaudit.config.load_yaml_config", lambda path=None: {})
    return Settings()


@pytest.fixture
def memory_db():
    """
    Open a fresh in-memory database with all tables.

    Usage:
        async with memory_db() as session_factory:
            ...
    """
    from shareaudit.db import build_engine, build_session_factory, create_tables

    @asynccontextmanager
    async def _open():
        engine = build_engine("sqlite+aiosqlite://")
        await create_tables(engine)
        try:
            yield build_session_factory(engine)
        finally:
            await engine.dispose()

    return _open


# =============================================================================
# ITEM BUILDERS
# =============================================================================


def _acl(
    type: str = "user",
    role: str = "reader",
    email: Optional[str] = None,
    domain: Optional[str] = None,
    id: Optional[str] = None,
) -> AclEntry:
    return AclEntry(
        id=id or f"perm-{type}-{role}-{email or domain or 'anyone'}",
        type=PrincipalType(type),
        role=PermissionRole(role),
        email=email,
        domain=domain,
    )


def _item(
    id: str = "file-1",
    name: str = "notes.txt",
    mime_type: str = "text/plain",
    owner_email: Optional[str] = f"owner@{ORG_DOMAIN}",
    modified_time: Optional[datetime] = NOW,
    shared: bool = False,
    parent_id: Optional[str] = None,
    permissions: tuple = (),
) -> DriveItem:
    owner = ()
    if owner_email:
        owner = (_acl("user", "owner", email=owner_email, id=f"owner-{id}"),)
    return DriveItem(
        id=id,
        name=name,
        mime_type=mime_type,
        owner_email=owner_email,
        owner_name=owner_email.split("@")[0] if owner_email else None,
        modified_time=modified_time,
        shared=shared,
        parent_id=parent_id,
        permissions=owner + tuple(permissions),
    )


@pytest.fixture
def make_acl():
    """Build an AclEntry: make_acl("user", "writer", email="a@b.com")."""
    return _acl


@pytest.fixture
def make_item():
    """Build a DriveItem owned inside ORG_DOMAIN unless owner_email is given."""
    return _item


# =============================================================================
# FAKE PROVIDER
# =============================================================================


@dataclass
class FakeDriveClient:
    """In-memory DirectoryClient with call recording and failure injection."""

    items: List[DriveItem] = field(default_factory=list)
    folder_names: Dict[str, str] = field(default_factory=dict)
    failing_folders: Set[str] = field(default_factory=set)
    fail_listing: Optional[Exception] = None
    start_page_token: Optional[str] = "token-1"

    list_calls: List[tuple] = field(default_factory=list)
    deleted: List[tuple] = field(default_factory=list)
    role_changes: List[tuple] = field(default_factory=list)
    failing_permissions: Set[str] = field(default_factory=set)
    entered: int = 0

    async def list_items(
        self,
        page_token: Optional[str],
        page_size: int,
        projection: FieldProjection,
    ) -> ItemPage:
        self.list_calls.append((page_token, page_size, projection))
        if self.fail_listing is not None and projection == FieldProjection.FULL:
            raise self.fail_listing
        start = int(page_token or 0)
        page = self.items[start:start + page_size]
        if projection == FieldProjection.IDS:
            page = [DriveItem(id=i.id) for i in page]
        end = start + page_size
        return ItemPage(items=list(page), next_page_token=str(end) if end < len(self.items) else None)

    async def get_item(self, item_id: str) -> DriveItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise DriveAPIError("File not found", status_code=404)

    async def get_folder_name(self, folder_id: str) -> str:
        if folder_id in self.failing_folders:
            raise DriveAPIError("Insufficient permissions", status_code=403)
        return self.folder_names.get(folder_id, f"Folder {folder_id}")

    async def delete_permission(self, item_id: str, permission_id: str) -> None:
        if permission_id in self.failing_permissions:
            raise DriveAPIError("Permission change rejected", status_code=403)
        self.deleted.append((item_id, permission_id))

    async def update_permission_role(
        self,
        item_id: str,
        permission_id: str,
        role: PermissionRole,
    ) -> AclEntry:
        if permission_id in self.failing_permissions:
            raise DriveAPIError("Permission change rejected", status_code=403)
        self.role_changes.append((item_id, permission_id, role))
        return AclEntry(id=permission_id, type=PrincipalType.USER, role=role)

    async def get_start_page_token(self) -> str:
        if self.start_page_token is None:
            raise DriveAPIError("Changes API unavailable", status_code=500)
        return self.start_page_token

    async def __aenter__(self) -> "FakeDriveClient":
        self.entered += 1
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None


@pytest.fixture
def fake_drive():
    """The FakeDriveClient class; call it with items=[...]."""
    return FakeDriveClient


@pytest.fixture
def org_domain() -> str:
    return ORG_DOMAIN


@pytest.fixture
def now() -> datetime:
    return NOW
