"""
Folder summaries.

Groups a scan's files by immediate parent folder and counts risk levels,
overall and split by internal/external owner. Summaries are derived data:
recomputing them from the stored files at any time gives the same rows.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol
from uuid import UUID

from shareaudit.core.types import RiskLevel, RiskySummary

logger = logging.getLogger(__name__)

ROOT_FOLDER_ID = "root"
ROOT_FOLDER_NAME = "My Drive"


class ScoredFile(Protocol):
    """Fields of a stored scan result that summaries read."""
    parent_folder_id: Optional[str]
    parent_folder_name: Optional[str]
    risk_level: str
    risk_score: int
    is_internal_owner: bool


@dataclass
class FolderStats:
    file_count: int = 0
    risky_summary: RiskySummary = field(default_factory=RiskySummary)
    total_risk_score: int = 0

    def add(self, level: RiskLevel, score: int) -> None:
        self.file_count += 1
        self.risky_summary.add(level)
        self.total_risk_score += score

    @property
    def highest_risk_level(self) -> RiskLevel:
        return self.risky_summary.highest_level() or RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_count": self.file_count,
            "risky_summary": self.risky_summary.to_dict(),
            "highest_risk_level": self.highest_risk_level.value,
            "total_risk_score": self.total_risk_score,
        }


@dataclass
class FolderAggregate:
    folder_id: str
    name: str = ""
    overall: FolderStats = field(default_factory=FolderStats)
    internal: FolderStats = field(default_factory=FolderStats)
    external: FolderStats = field(default_factory=FolderStats)

    def to_values(self) -> Dict[str, Any]:
        """Column values for a FolderSummary row (scan_id excluded)."""
        return {
            "folder_id": self.folder_id,
            "name": self.name,
            "file_count": self.overall.file_count,
            "risky_summary": self.overall.risky_summary.to_dict(),
            "highest_risk_level": self.overall.highest_risk_level.value,
            "total_risk_score": self.overall.total_risk_score,
            "internal_stats": self.internal.to_dict(),
            "external_stats": self.external.to_dict(),
        }


def compute_folder_summaries(files: Iterable[ScoredFile]) -> List[FolderAggregate]:
    """Aggregate files per parent folder, in first-seen folder order."""
    folders: Dict[str, FolderAggregate] = {}

    for f in files:
        folder_id = f.parent_folder_id or ROOT_FOLDER_ID
        aggregate = folders.get(folder_id)
        if aggregate is None:
            aggregate = folders[folder_id] = FolderAggregate(folder_id=folder_id)
        if not aggregate.name:
            if f.parent_folder_id:
                aggregate.name = f.parent_folder_name or ""
            else:
                aggregate.name = ROOT_FOLDER_NAME

        level = RiskLevel(f.risk_level)
        aggregate.overall.add(level, f.risk_score)
        if f.is_internal_owner:
            aggregate.internal.add(level, f.risk_score)
        else:
            aggregate.external.add(level, f.risk_score)

    return list(folders.values())


async def recompute_folder_summaries(
    scan_id: UUID,
    file_service,
    folder_service,
) -> int:
    """
    Rebuild one scan's folder summaries from its stored files.

    Args:
        scan_id: Scan to rebuild
        file_service: ScannedFileService
        folder_service: FolderSummaryService

    Returns:
        Number of folders written
    """
    files = await file_service.list_all(scan_id)
    aggregates = compute_folder_summaries(files)
    await folder_service.replace_for_scan(scan_id, [a.to_values() for a in aggregates])
    logger.info("Recomputed %d folder summaries for scan %s", len(aggregates), scan_id)
    return len(aggregates)
