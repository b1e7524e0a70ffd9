"""
Single-account scan pipeline.

Two phases over one account's storage:
- Counting: an id-only listing gives the progress denominator cheaply,
  stopping at the plan's file cap.
- Scanning: a full-field listing, scored page by page as it streams, with
  processed_files updated after every page.

Then parent folder names are resolved, results are persisted in batches,
folder summaries are rebuilt and the scan is completed. The traversal is a
single forward pass: any error fails the whole scan, and a retry means a
new scan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shareaudit.adapters.base import (
    DirectoryClient,
    DriveItem,
    FieldProjection,
    count_items,
    iter_item_pages,
)
from shareaudit.config import Settings, get_settings
from shareaudit.core.aggregation import ScanSummary, summarize_assessments
from shareaudit.core.plans import check_scan_quota, max_files_for_plan
from shareaudit.core.scoring import score_item
from shareaudit.core.types import RiskAssessment
from shareaudit.exceptions import ShareAuditError
from shareaudit.jobs.folders import resolve_folder_names
from shareaudit.jobs.summaries import recompute_folder_summaries
from shareaudit.logging_config import log_context
from shareaudit.models import Scan
from shareaudit.services.folder_service import FolderSummaryService
from shareaudit.services.organization_service import OrganizationService
from shareaudit.services.scan_service import ScanService
from shareaudit.services.scanned_file_service import ScannedFileService, build_file_values

logger = logging.getLogger(__name__)


@dataclass
class ScanOptions:
    """What to scan and how."""

    organization_id: UUID
    organization_domain: str
    max_files: Optional[int] = None  # None = unlimited
    update_organization_stats: bool = True


@dataclass
class ScanResult:
    """Outcome of a completed pipeline run."""

    scan_id: UUID
    summary: ScanSummary
    folder_count: int = 0
    stats: dict = field(default_factory=dict)

    @property
    def files_scanned(self) -> int:
        return self.summary.total_files


def error_message(error: BaseException) -> str:
    """Human-readable message recorded on a failed scan or account."""
    if isinstance(error, ShareAuditError):
        return error.message
    return str(error) or type(error).__name__


class ScanPipeline:
    """
    Runs one scan against one account.

    Usage:
        pipeline = ScanPipeline(client, session_factory, options)
        scan = await pipeline.create_scan("alice@example.com")
        result = await pipeline.run(scan.id)
    """

    def __init__(
        self,
        client: DirectoryClient,
        session_factory: async_sessionmaker[AsyncSession],
        options: ScanOptions,
        settings: Optional[Settings] = None,
        now: Optional[datetime] = None,
    ):
        self.client = client
        self.options = options
        self.settings = settings or get_settings()
        # Reference time for the staleness rule; fixed per run
        self._now = now

        self.scans = ScanService(session_factory, self.settings)
        self.files = ScannedFileService(session_factory, self.settings)
        self.folders = FolderSummaryService(session_factory, self.settings)
        self.organizations = OrganizationService(session_factory, self.settings)

    async def create_scan(
        self,
        user_email: str,
        user_name: Optional[str] = None,
        user_id: Optional[str] = None,
        integrated_job_id: Optional[UUID] = None,
    ) -> Scan:
        return await self.scans.create(
            self.options.organization_id,
            user_email=user_email,
            user_name=user_name,
            user_id=user_id,
            integrated_job_id=integrated_job_id,
        )

    async def run(self, scan_id: UUID) -> ScanResult:
        """
        Execute both phases and post-processing for an existing scan.

        Raises:
            Whatever stopped the scan, after recording it on the scan
        """
        with log_context(scan_id=scan_id):
            try:
                return await self._execute(scan_id)
            except Exception as e:  # Intentionally broad: any failure must be recorded on the scan before re-raising
                message = error_message(e)
                logger.error("Scan %s failed: %s", scan_id, message, exc_info=True)
                await self.scans.fail(scan_id, message)
                raise

    async def _execute(self, scan_id: UUID) -> ScanResult:
        scan_settings = self.settings.scan
        now = self._now or datetime.now(timezone.utc)
        stats = {"pages": 0, "files_scanned": 0, "batches_saved": 0}

        await self._capture_change_token(scan_id)

        # Phase 1: counting
        logger.info("Scan %s: counting files (cap=%s)", scan_id, self.options.max_files)
        total = await count_items(
            self.client,
            page_size=scan_settings.count_page_size,
            max_items=self.options.max_files,
        )
        await self.scans.finish_counting(scan_id, total)
        logger.info("Scan %s: found %d files", scan_id, total)

        # Phase 2: scanning
        results: list[tuple[DriveItem, RiskAssessment]] = []
        async for page in iter_item_pages(
            self.client,
            FieldProjection.FULL,
            page_size=scan_settings.scan_page_size,
            max_items=self.options.max_files,
        ):
            for item in page:
                results.append((item, score_item(item, self.options.organization_domain, now=now)))
            stats["pages"] += 1
            stats["files_scanned"] = len(results)
            await self.scans.record_progress(scan_id, len(results))
            logger.debug("Scan %s: processed %d/%d files", scan_id, len(results), total)

        # Post-processing
        folder_names = await resolve_folder_names(
            self.client,
            (item.parent_id for item, _ in results if item.parent_id),
            concurrency=scan_settings.folder_concurrency,
        )
        logger.info("Scan %s: resolved %d folder names", scan_id, len(folder_names))

        summary = summarize_assessments(results)

        batch_size = scan_settings.persist_batch_size
        for start in range(0, len(results), batch_size):
            records = [
                build_file_values(
                    item,
                    assessment,
                    self.options.organization_domain,
                    folder_names.get(item.parent_id or "", ""),
                )
                for item, assessment in results[start:start + batch_size]
            ]
            await self.files.save_batch(scan_id, self.options.organization_id, records)
            stats["batches_saved"] += 1

        folder_count = await recompute_folder_summaries(scan_id, self.files, self.folders)

        await self.scans.complete(scan_id, summary)

        if self.options.update_organization_stats:
            await self.organizations.increment_scan_stats(
                self.options.organization_id, summary.total_files
            )

        logger.info(
            "Scan %s completed: %d files, %s",
            scan_id, summary.total_files, summary.risky_summary.to_dict(),
        )
        return ScanResult(scan_id=scan_id, summary=summary, folder_count=folder_count, stats=stats)

    async def _capture_change_token(self, scan_id: UUID) -> None:
        """Store the provider's change token; optional, never fails the scan."""
        try:
            token = await self.client.get_start_page_token()
        except ShareAuditError as e:
            logger.debug("Scan %s: no change token (%s)", scan_id, e)
            return
        await self.scans.set_change_token(scan_id, token)


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def start_scan(
    client: DirectoryClient,
    session_factory: async_sessionmaker[AsyncSession],
    organization_id: UUID,
    user_email: str,
    user_name: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> ScanResult:
    """
    Start and run a standalone scan of the client's account.

    The organization's plan is checked first: exceeding the monthly scan
    allowance raises PlanLimitError before any scan record exists. The
    plan's file cap becomes the counting cap.
    """
    settings = settings or get_settings()
    organizations = OrganizationService(session_factory, settings)
    scans = ScanService(session_factory, settings)

    org = await organizations.get(organization_id)
    used = await scans.count_scans_since(organization_id, month_start(datetime.now(timezone.utc)))
    check_scan_quota(org.plan, used)

    pipeline = ScanPipeline(
        client,
        session_factory,
        ScanOptions(
            organization_id=org.id,
            organization_domain=org.domain,
            max_files=max_files_for_plan(org.plan),
        ),
        settings=settings,
    )
    scan = await pipeline.create_scan(user_email, user_name=user_name)
    return await pipeline.run(scan.id)
