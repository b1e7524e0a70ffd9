"""
Folder summary persistence.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import case, delete, func, select

from shareaudit.core.types import RiskLevel
from shareaudit.exceptions import ValidationError
from shareaudit.models import FolderSummary
from shareaudit.services.base import BaseService

_LEVEL_ORDER = case(
    {level.value: level.rank for level in RiskLevel},
    value=FolderSummary.highest_risk_level,
    else_=0,
)


class FolderSummaryService(BaseService):
    """Replace and list a scan's folder summaries."""

    async def replace_for_scan(self, scan_id: UUID, rows: list[dict[str, Any]]) -> None:
        """Swap every summary of the scan for the given rows in one transaction."""
        batch_size = self.settings.scan.persist_batch_size
        async with self.session() as session:
            await session.execute(delete(FolderSummary).where(FolderSummary.scan_id == scan_id))
            for start in range(0, len(rows), batch_size):
                session.add_all(
                    FolderSummary(scan_id=scan_id, **row)
                    for row in rows[start:start + batch_size]
                )
                await session.flush()

    async def list_folders(
        self,
        scan_id: UUID,
        limit: int = 50,
        offset: int = 0,
        min_risk_level: Optional[str] = None,
    ) -> tuple[list[FolderSummary], int]:
        """List folders riskiest first (highest level, then total score)."""
        conditions = [FolderSummary.scan_id == scan_id]
        if min_risk_level:
            try:
                floor = RiskLevel(min_risk_level)
            except ValueError:
                raise ValidationError(
                    f"Invalid risk level: {min_risk_level}", field="min_risk_level"
                ) from None
            allowed = [level.value for level in RiskLevel if level.rank >= floor.rank]
            conditions.append(FolderSummary.highest_risk_level.in_(allowed))

        async with self.session() as session:
            count_query = select(func.count()).select_from(FolderSummary).where(*conditions)
            total = (await session.execute(count_query)).scalar() or 0

            query = (
                select(FolderSummary)
                .where(*conditions)
                .order_by(
                    _LEVEL_ORDER.desc(),
                    FolderSummary.total_risk_score.desc(),
                    FolderSummary.folder_id,
                )
                .offset(offset)
                .limit(limit)
            )
            folders = list((await session.execute(query)).scalars().all())

        return folders, total
