"""
Scan record persistence.

Only the pipeline that owns a scan id calls the mutating methods, so every
update is a plain read-modify-write without optimistic locking.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select

from shareaudit.core.aggregation import ScanSummary
from shareaudit.core.types import RiskySummary
from shareaudit.jobs.lifecycle import (
    TIMEOUT_MESSAGE,
    ScanPhase,
    ScanStatus,
    check_phase_transition,
    check_running,
    is_timed_out,
    is_timeout_failure,
)
from shareaudit.models import Scan
from shareaudit.services.base import BaseService


class ScanService(BaseService):
    """Create, advance and list scans."""

    async def create(
        self,
        organization_id: UUID,
        user_email: str,
        user_name: Optional[str] = None,
        user_id: Optional[str] = None,
        integrated_job_id: Optional[UUID] = None,
    ) -> Scan:
        async with self.session() as session:
            scan = Scan(
                organization_id=organization_id,
                integrated_job_id=integrated_job_id,
                user_id=user_id,
                user_email=user_email,
                user_name=user_name,
                status=ScanStatus.RUNNING.value,
                phase=ScanPhase.COUNTING.value,
                total_files=0,
                processed_files=0,
                risky_summary=RiskySummary().to_dict(),
                started_at=datetime.now(timezone.utc),
            )
            session.add(scan)
            await session.flush()
            self._log_info("Created scan", scan_id=str(scan.id), user_email=user_email)
            return scan

    async def get(self, scan_id: UUID) -> Scan:
        async with self.session() as session:
            return await self._get_or_404(session, Scan, scan_id, "Scan")

    async def set_change_token(self, scan_id: UUID, token: str) -> None:
        async with self.session() as session:
            scan = await self._get_or_404(session, Scan, scan_id, "Scan")
            scan.change_token = token

    async def finish_counting(self, scan_id: UUID, total_files: int) -> Scan:
        """Record the denominator and move counting -> scanning."""
        async with self.session() as session:
            scan = await self._get_or_404(session, Scan, scan_id, "Scan")
            check_running(str(scan_id), scan.status, scan.error_message)
            check_phase_transition(str(scan_id), scan.phase, ScanPhase.SCANNING)
            scan.total_files = total_files
            scan.processed_files = 0
            scan.phase = ScanPhase.SCANNING.value
            return scan

    async def record_progress(self, scan_id: UUID, processed_files: int) -> Scan:
        """Update processed_files; never moves it backwards."""
        async with self.session() as session:
            scan = await self._get_or_404(session, Scan, scan_id, "Scan")
            check_running(str(scan_id), scan.status, scan.error_message)
            scan.processed_files = max(scan.processed_files, processed_files)
            return scan

    async def complete(self, scan_id: UUID, summary: ScanSummary) -> Scan:
        """Move scanning -> done and store the final totals."""
        async with self.session() as session:
            scan = await self._get_or_404(session, Scan, scan_id, "Scan")
            check_running(str(scan_id), scan.status, scan.error_message)
            check_phase_transition(str(scan_id), scan.phase, ScanPhase.DONE)
            scan.status = ScanStatus.COMPLETED.value
            scan.phase = ScanPhase.DONE.value
            scan.error_message = None
            scan.total_files = summary.total_files
            scan.processed_files = max(scan.processed_files, summary.total_files)
            scan.risky_summary = summary.risky_summary.to_dict()
            scan.average_score = summary.average_score
            scan.top_issues = [issue.to_dict() for issue in summary.top_issues]
            scan.completed_at = datetime.now(timezone.utc)
            return scan

    async def fail(self, scan_id: UUID, error_message: str) -> Scan:
        """
        Mark a running scan failed. A scan swept as timed out takes the
        pipeline's real error; other terminal scans are left untouched.
        """
        async with self.session() as session:
            scan = await self._get_or_404(session, Scan, scan_id, "Scan")
            if scan.status != ScanStatus.RUNNING.value and not is_timeout_failure(
                scan.status, scan.error_message
            ):
                self._log_warning(
                    "Not failing scan in terminal state",
                    scan_id=str(scan_id),
                    status=scan.status,
                )
                return scan
            scan.status = ScanStatus.FAILED.value
            scan.error_message = error_message
            scan.completed_at = datetime.now(timezone.utc)
            return scan

    async def list_scans(
        self,
        organization_id: UUID,
        user_email: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
        now: Optional[datetime] = None,
    ) -> tuple[list[Scan], int]:
        """
        List scans newest first.

        Any returned scan still running after SCAN_TIMEOUT is marked failed
        here, as this listing is the only place timeouts are detected.
        """
        conditions = [Scan.organization_id == organization_id]
        if user_email:
            conditions.append(Scan.user_email == user_email)

        now = now or datetime.now(timezone.utc)
        timeout = self._timeout()

        async with self.session() as session:
            count_query = select(func.count()).select_from(Scan).where(*conditions)
            total = (await session.execute(count_query)).scalar() or 0

            query = (
                select(Scan)
                .where(*conditions)
                .order_by(Scan.started_at.desc())
                .offset(offset)
                .limit(limit)
            )
            scans = list((await session.execute(query)).scalars().all())

            swept = 0
            for scan in scans:
                if is_timed_out(scan.status, scan.started_at, now=now, timeout=timeout):
                    scan.status = ScanStatus.FAILED.value
                    scan.error_message = TIMEOUT_MESSAGE
                    scan.completed_at = now
                    swept += 1

        if swept:
            self._log_warning(
                f"Marked {swept} stale scan(s) as timed out",
                organization_id=str(organization_id),
            )
        self._log_debug(f"Listed {len(scans)} scans (total: {total})", limit=limit, offset=offset)
        return scans, total

    async def count_scans_since(self, organization_id: UUID, since: datetime) -> int:
        """Standalone scans started since the given time (integrated job scans excluded)."""
        async with self.session() as session:
            query = (
                select(func.count())
                .select_from(Scan)
                .where(
                    Scan.organization_id == organization_id,
                    Scan.integrated_job_id.is_(None),
                    Scan.started_at >= since,
                )
            )
            return (await session.execute(query)).scalar() or 0

    def _timeout(self) -> timedelta:
        return timedelta(minutes=self.settings.scan.timeout_minutes)
