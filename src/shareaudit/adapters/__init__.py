"""
Storage provider adapters.

- base: DirectoryClient protocol, item and ACL types, lazy page traversal
- drive: Google Drive v3 client
- delegation: domain-wide delegated credentials and directory listing
"""

from shareaudit.adapters.base import (
    AclEntry,
    DirectoryClient,
    DriveItem,
    FieldProjection,
    ItemPage,
    PermissionRole,
    PrincipalType,
    count_items,
    iter_item_pages,
)
from shareaudit.adapters.drive import DriveClient
from shareaudit.adapters.google_client import StaticTokenSource

__all__ = [
    "AclEntry",
    "DirectoryClient",
    "DriveClient",
    "DriveItem",
    "FieldProjection",
    "ItemPage",
    "PermissionRole",
    "PrincipalType",
    "StaticTokenSource",
    "count_items",
    "iter_item_pages",
]
