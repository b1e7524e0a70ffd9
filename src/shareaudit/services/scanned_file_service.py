"""
Per-item scan results.

Rows are keyed by (scan_id, file_id). Writing a batch replaces any rows with
the same keys, so a re-written batch never duplicates items.
"""

from __future__ import annotations

from typing import Any, Literal, Optional
from uuid import UUID

from sqlalchemy import delete, func, select

from shareaudit.adapters.base import DriveItem
from shareaudit.core.scoring import is_internal_owner
from shareaudit.core.types import RiskAssessment, RiskLevel
from shareaudit.exceptions import NotFoundError, ValidationError
from shareaudit.models import ScannedFile
from shareaudit.services.base import BaseService

OwnerType = Literal["all", "internal", "external"]
SortField = Literal["risk_score", "name", "modified_time"]

_SORT_COLUMNS = {
    "risk_score": ScannedFile.risk_score,
    "name": ScannedFile.name,
    "modified_time": ScannedFile.modified_time,
}


def build_file_values(
    item: DriveItem,
    assessment: RiskAssessment,
    organization_domain: str,
    parent_folder_name: Optional[str] = None,
) -> dict[str, Any]:
    """Column values for one scored item (scan_id and organization_id excluded)."""
    return {
        "file_id": item.id,
        "name": item.name,
        "mime_type": item.mime_type,
        "size": item.size,
        "created_time": item.created_time,
        "modified_time": item.modified_time,
        "web_view_link": item.web_view_link,
        "owner_email": item.owner_email,
        "owner_name": item.owner_name,
        "is_internal_owner": is_internal_owner(item, organization_domain),
        "shared": item.shared,
        "parent_folder_id": item.parent_id,
        "parent_folder_name": parent_folder_name if item.parent_id else None,
        "permissions": [p.to_dict() for p in item.permissions],
        "risk_score": assessment.score,
        "risk_level": assessment.level.value,
        "issues": [issue.to_dict() for issue in assessment.issues],
        "risk_factors": [issue.description for issue in assessment.issues],
        "recommendations": list(assessment.recommendations),
    }


def _parse_level(value: str) -> RiskLevel:
    try:
        return RiskLevel(value)
    except ValueError:
        raise ValidationError(f"Invalid risk level: {value}", field="risk_level") from None


class ScannedFileService(BaseService):
    """Batch writes and filtered reads of scanned files."""

    async def save_batch(
        self,
        scan_id: UUID,
        organization_id: UUID,
        records: list[dict[str, Any]],
    ) -> int:
        """Write one batch in a single transaction. Returns rows written."""
        if not records:
            return 0
        file_ids = [r["file_id"] for r in records]
        async with self.session() as session:
            await session.execute(
                delete(ScannedFile).where(
                    ScannedFile.scan_id == scan_id,
                    ScannedFile.file_id.in_(file_ids),
                )
            )
            session.add_all(
                ScannedFile(scan_id=scan_id, organization_id=organization_id, **r)
                for r in records
            )
        self._log_debug(f"Saved batch of {len(records)} files", scan_id=str(scan_id))
        return len(records)

    async def get_file(self, scan_id: UUID, file_id: str) -> ScannedFile:
        async with self.session() as session:
            scanned = await session.get(ScannedFile, (scan_id, file_id))
            if scanned is None:
                raise NotFoundError(
                    "File not found in scan",
                    resource_type="ScannedFile",
                    resource_id=file_id,
                )
            return scanned

    async def get_files(self, scan_id: UUID, file_ids: list[str]) -> list[ScannedFile]:
        async with self.session() as session:
            result = await session.execute(
                select(ScannedFile).where(
                    ScannedFile.scan_id == scan_id,
                    ScannedFile.file_id.in_(file_ids),
                )
            )
            return list(result.scalars().all())

    async def list_all(self, scan_id: UUID) -> list[ScannedFile]:
        async with self.session() as session:
            result = await session.execute(
                select(ScannedFile).where(ScannedFile.scan_id == scan_id)
            )
            return list(result.scalars().all())

    async def list_files(
        self,
        scan_id: UUID,
        limit: int = 50,
        offset: int = 0,
        risk_level: Optional[str] = None,
        owner_type: OwnerType = "all",
        sort_by: SortField = "risk_score",
        sort_order: Literal["asc", "desc"] = "desc",
        folder_id: Optional[str] = None,
    ) -> tuple[list[ScannedFile], int]:
        """List one scan's files with filters, sorting and pagination."""
        if sort_by not in _SORT_COLUMNS:
            raise ValidationError(f"Invalid sort field: {sort_by}", field="sort_by")
        if owner_type not in ("all", "internal", "external"):
            raise ValidationError(f"Invalid owner type: {owner_type}", field="owner_type")

        conditions = [ScannedFile.scan_id == scan_id]
        if risk_level:
            conditions.append(ScannedFile.risk_level == _parse_level(risk_level).value)
        if owner_type == "internal":
            conditions.append(ScannedFile.is_internal_owner.is_(True))
        elif owner_type == "external":
            conditions.append(ScannedFile.is_internal_owner.is_(False))
        if folder_id is not None:
            if folder_id == "root":
                conditions.append(ScannedFile.parent_folder_id.is_(None))
            else:
                conditions.append(ScannedFile.parent_folder_id == folder_id)

        column = _SORT_COLUMNS[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()

        async with self.session() as session:
            count_query = select(func.count()).select_from(ScannedFile).where(*conditions)
            total = (await session.execute(count_query)).scalar() or 0

            query = (
                select(ScannedFile)
                .where(*conditions)
                .order_by(ordering, ScannedFile.file_id)
                .offset(offset)
                .limit(limit)
            )
            files = list((await session.execute(query)).scalars().all())

        return files, total

    async def update_result(
        self,
        scan_id: UUID,
        file_id: str,
        permissions: list[dict[str, Any]],
        assessment: RiskAssessment,
    ) -> ScannedFile:
        """Replace the stored ACL and re-scored risk of one file."""
        async with self.session() as session:
            scanned = await session.get(ScannedFile, (scan_id, file_id))
            if scanned is None:
                raise NotFoundError(
                    "File not found in scan",
                    resource_type="ScannedFile",
                    resource_id=file_id,
                )
            scanned.permissions = permissions
            scanned.risk_score = assessment.score
            scanned.risk_level = assessment.level.value
            scanned.issues = [issue.to_dict() for issue in assessment.issues]
            scanned.risk_factors = [issue.description for issue in assessment.issues]
            scanned.recommendations = list(assessment.recommendations)
            return scanned
