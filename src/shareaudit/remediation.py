"""
Permission remediation on scanned files.

Changes go to the provider first. Only after the provider accepts a change
is the stored ACL of the scanned file rewritten, the file re-scored and the
scan's folder summaries rebuilt.

Rules shared by every operation:
- Owner entries are never removed or changed.
- Only files owned inside the organization are touched.
- Bulk operations take at most MAX_BULK_FILES file ids and report per-file
  (per-entry) outcomes instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shareaudit.adapters.base import (
    ASSIGNABLE_ROLES,
    WRITE_ROLES,
    AclEntry,
    DirectoryClient,
    DriveItem,
    PermissionRole,
    PrincipalType,
)
from shareaudit.config import Settings, get_settings
from shareaudit.core.scoring import score_item
from shareaudit.exceptions import NotFoundError, ShareAuditError, ValidationError
from shareaudit.jobs.summaries import recompute_folder_summaries
from shareaudit.models import ScannedFile
from shareaudit.services.folder_service import FolderSummaryService
from shareaudit.services.organization_service import OrganizationService
from shareaudit.services.scan_service import ScanService
from shareaudit.services.scanned_file_service import ScannedFileService

logger = logging.getLogger(__name__)

MAX_BULK_FILES = 100


@dataclass
class PermissionFilter:
    """Selects ACL entries. Unset fields match anything."""

    type: Optional[PrincipalType] = None
    email: Optional[str] = None  # Matches the entry's email or its domain
    role: Optional[PermissionRole] = None

    def is_empty(self) -> bool:
        return self.type is None and not self.email and self.role is None

    def matches(self, entry: AclEntry) -> bool:
        if self.type is not None and entry.type != self.type:
            return False
        if self.email:
            wanted = self.email.lower()
            if (entry.email or "").lower() != wanted and (entry.domain or "").lower() != wanted:
                return False
        if self.role is not None and entry.role != self.role:
            return False
        return True


@dataclass
class RemediationResult:
    """Outcome for one file, or for one entry of a file."""

    file_id: str
    file_name: str
    success: bool
    permission_id: Optional[str] = None
    old_role: Optional[str] = None
    new_role: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BulkRemediationReport:
    results: list[RemediationResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "success": self.succeeded,
            "failed": self.failed,
            "details": [r.to_dict() for r in self.results],
        }


def stored_item(
    scanned: ScannedFile,
    permissions: Optional[list[dict[str, Any]]] = None,
) -> DriveItem:
    """Rebuild provider item metadata from a stored scan row, optionally with a new ACL."""
    if permissions is None:
        permissions = scanned.permissions or []
    return DriveItem(
        id=scanned.file_id,
        name=scanned.name,
        mime_type=scanned.mime_type,
        size=scanned.size,
        created_time=scanned.created_time,
        modified_time=scanned.modified_time,
        owner_email=scanned.owner_email,
        owner_name=scanned.owner_name,
        shared=scanned.shared,
        parent_id=scanned.parent_folder_id,
        web_view_link=scanned.web_view_link,
        permissions=tuple(AclEntry.from_api(p) for p in permissions),
    )


class PermissionRemediator:
    """
    Applies permission fixes to the files of one scan.

    The client must act as an account allowed to change sharing on the
    files, typically the signed-in owner or administrator.

    Usage:
        async with DriveClient.from_settings(StaticTokenSource(token)) as client:
            remediator = PermissionRemediator(client, session_factory)
            report = await remediator.remove_public_access(scan_id, file_ids)
    """

    def __init__(
        self,
        client: DirectoryClient,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.client = client
        self.settings = settings or get_settings()
        self._now = now

        self.files = ScannedFileService(session_factory, self.settings)
        self.folders = FolderSummaryService(session_factory, self.settings)
        self.scans = ScanService(session_factory, self.settings)
        self.organizations = OrganizationService(session_factory, self.settings)
        self._domains: dict[UUID, str] = {}

    # =========================================================================
    # Single entry
    # =========================================================================

    async def remove_permission(
        self,
        scan_id: UUID,
        file_id: str,
        permission_id: str,
    ) -> ScannedFile:
        """
        Remove one ACL entry from a file.

        Raises:
            NotFoundError: File or entry not in the scan
            ValidationError: File owned outside the organization, or the
                entry is the owner
            DriveAPIError: The provider refused the change
        """
        scanned = await self.files.get_file(scan_id, file_id)
        entry = self._find_entry(scanned, permission_id)
        self._check_editable(scanned, entry)

        await self.client.delete_permission(file_id, permission_id)
        logger.info("Removed permission %s from %s", permission_id, file_id)

        remaining = [p for p in scanned.permissions if p.get("id") != permission_id]
        updated = await self._store(scan_id, scanned, remaining)
        await recompute_folder_summaries(scan_id, self.files, self.folders)
        return updated

    async def change_role(
        self,
        scan_id: UUID,
        file_id: str,
        permission_id: str,
        role: PermissionRole | str,
    ) -> ScannedFile:
        """
        Change the role of one ACL entry.

        Raises:
            ValidationError: Role not assignable, file owned outside the
                organization, or the entry is the owner
            NotFoundError: File or entry not in the scan
            DriveAPIError: The provider refused the change
        """
        new_role = self._parse_role(role)
        scanned = await self.files.get_file(scan_id, file_id)
        entry = self._find_entry(scanned, permission_id)
        self._check_editable(scanned, entry)

        updated = await self.client.update_permission_role(file_id, permission_id, new_role)
        logger.info(
            "Changed permission %s on %s from %s to %s",
            permission_id, file_id, entry.role.value, updated.role.value,
        )

        rewritten = [
            {**p, "role": updated.role.value} if p.get("id") == permission_id else p
            for p in scanned.permissions
        ]
        updated = await self._store(scan_id, scanned, rewritten)
        await recompute_folder_summaries(scan_id, self.files, self.folders)
        return updated

    # =========================================================================
    # Bulk
    # =========================================================================

    async def remove_matching(
        self,
        scan_id: UUID,
        file_ids: list[str],
        permission_filter: PermissionFilter,
    ) -> BulkRemediationReport:
        """Remove every non-owner entry matching the filter from each file."""
        if permission_filter.is_empty():
            raise ValidationError("A permission filter is required", field="permission_filter")
        return await self._bulk(
            scan_id,
            file_ids,
            select=permission_filter.matches,
            new_role=None,
            nothing_to_do="No matching permissions",
        )

    async def remove_public_access(self, scan_id: UUID, file_ids: list[str]) -> BulkRemediationReport:
        """Remove anyone-with-the-link entries from each file."""
        return await self.remove_matching(
            scan_id, file_ids, PermissionFilter(type=PrincipalType.ANYONE)
        )

    async def demote_editors(
        self,
        scan_id: UUID,
        file_ids: list[str],
        permission_filter: Optional[PermissionFilter] = None,
    ) -> BulkRemediationReport:
        """Change write-capable entries (optionally filtered) to reader."""
        selector = permission_filter or PermissionFilter()
        return await self._bulk(
            scan_id,
            file_ids,
            select=lambda entry: entry.role in WRITE_ROLES and selector.matches(entry),
            new_role=PermissionRole.READER,
            nothing_to_do="No editor permissions to change",
        )

    async def _bulk(
        self,
        scan_id: UUID,
        file_ids: list[str],
        select: Callable[[AclEntry], bool],
        new_role: Optional[PermissionRole],
        nothing_to_do: str,
    ) -> BulkRemediationReport:
        if not file_ids:
            raise ValidationError("No file ids given", field="file_ids")
        if len(file_ids) > MAX_BULK_FILES:
            raise ValidationError(
                f"At most {MAX_BULK_FILES} files can be changed at once",
                field="file_ids",
            )

        report = BulkRemediationReport()
        any_changed = False
        stored = {f.file_id: f for f in await self.files.get_files(scan_id, file_ids)}

        for file_id in file_ids:
            scanned = stored.get(file_id)
            if scanned is None:
                report.results.append(RemediationResult(file_id, file_id, False, error="File not found"))
                continue
            if not scanned.is_internal_owner:
                report.results.append(RemediationResult(
                    file_id, scanned.name, False, error="Files owned outside the organization cannot be changed",
                ))
                continue

            entries = [AclEntry.from_api(p) for p in scanned.permissions]
            targets = [e for e in entries if e.role != PermissionRole.OWNER and select(e)]
            if not targets:
                report.results.append(RemediationResult(file_id, scanned.name, True, error=nothing_to_do))
                continue

            permissions = list(scanned.permissions)
            changed = False
            for entry in targets:
                result = RemediationResult(file_id, scanned.name, True, permission_id=entry.id)
                try:
                    if new_role is None:
                        await self.client.delete_permission(file_id, entry.id)
                        permissions = [p for p in permissions if p.get("id") != entry.id]
                    else:
                        updated = await self.client.update_permission_role(file_id, entry.id, new_role)
                        result.old_role = entry.role.value
                        result.new_role = updated.role.value
                        permissions = [
                            {**p, "role": updated.role.value} if p.get("id") == entry.id else p
                            for p in permissions
                        ]
                    changed = True
                except ShareAuditError as e:
                    logger.warning("Remediation of %s/%s failed: %s", file_id, entry.id, e.message)
                    result.success = False
                    result.error = e.message
                report.results.append(result)

            if changed:
                scanned = await self._store(scan_id, scanned, permissions)
                stored[file_id] = scanned
                any_changed = True

        if any_changed:
            await recompute_folder_summaries(scan_id, self.files, self.folders)

        logger.info(
            "Bulk remediation on scan %s: %d succeeded, %d failed",
            scan_id, report.succeeded, report.failed,
        )
        return report

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _parse_role(role: PermissionRole | str) -> PermissionRole:
        try:
            parsed = PermissionRole(role)
        except ValueError:
            raise ValidationError(f"Invalid role: {role}", field="role") from None
        if parsed not in ASSIGNABLE_ROLES:
            raise ValidationError(f"Role cannot be assigned: {parsed.value}", field="role")
        return parsed

    @staticmethod
    def _find_entry(scanned: ScannedFile, permission_id: str) -> AclEntry:
        for p in scanned.permissions:
            if p.get("id") == permission_id:
                return AclEntry.from_api(p)
        raise NotFoundError(
            "Permission not found on file",
            resource_type="Permission",
            resource_id=permission_id,
        )

    @staticmethod
    def _check_editable(scanned: ScannedFile, entry: AclEntry) -> None:
        if not scanned.is_internal_owner:
            raise ValidationError(
                "Files owned outside the organization cannot be changed",
                field="file_id",
            )
        if entry.role == PermissionRole.OWNER:
            raise ValidationError("The owner permission cannot be changed", field="permission_id")

    async def _domain_for(self, scan_id: UUID) -> str:
        scan = await self.scans.get(scan_id)
        if scan.organization_id not in self._domains:
            org = await self.organizations.get(scan.organization_id)
            self._domains[scan.organization_id] = org.domain
        return self._domains[scan.organization_id]

    async def _store(
        self,
        scan_id: UUID,
        scanned: ScannedFile,
        permissions: list[dict[str, Any]],
    ) -> ScannedFile:
        """Rewrite the stored ACL and re-score the file against it."""
        domain = await self._domain_for(scan_id)
        item = stored_item(scanned, permissions)
        now = self._now() if self._now else None
        assessment = score_item(item, domain, now=now)
        return await self.files.update_result(scan_id, scanned.file_id, permissions, assessment)
