"""
Integrated (multi-account) scan job persistence.

user_results is a list parallel to target_users. Each entry:
    {email, name, status, scan_id, files_scanned, risky_summary,
     error_message, started_at, completed_at}

The checkpoint is last_processed_user_index. record_user_result is the only
method that advances it, and it writes the finished user's result, the new
index and processed_users in one transaction, so
last_processed_user_index + 1 == processed_users always holds.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select

from shareaudit.core.types import RiskySummary
from shareaudit.exceptions import ConflictError, JobError, ValidationError
from shareaudit.models import IntegratedScanJob
from shareaudit.services.base import BaseService


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UserResultStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({
    JobStatus.COMPLETED.value,
    JobStatus.FAILED.value,
    JobStatus.CANCELLED.value,
})

ACTIVE_JOB_STATUSES = frozenset({JobStatus.PENDING.value, JobStatus.RUNNING.value})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _initial_user_result(target: dict[str, Any]) -> dict[str, Any]:
    return {
        "email": target["email"],
        "name": target.get("name") or target["email"],
        "status": UserResultStatus.PENDING.value,
        "scan_id": None,
        "files_scanned": 0,
        "risky_summary": RiskySummary().to_dict(),
        "error_message": None,
        "started_at": None,
        "completed_at": None,
    }


class IntegratedJobService(BaseService):
    """Create, checkpoint and finish integrated scan jobs."""

    async def create(
        self,
        organization_id: UUID,
        target_users: list[dict[str, Any]],
        initiated_by: Optional[str] = None,
    ) -> IntegratedScanJob:
        """Create a pending job. target_users entries need at least an email."""
        if not target_users:
            raise ValidationError("No target users to scan", field="target_users")
        targets = [
            {"email": t["email"], "name": t.get("name") or t["email"]}
            for t in target_users
        ]
        async with self.session() as session:
            job = IntegratedScanJob(
                organization_id=organization_id,
                initiated_by=initiated_by,
                status=JobStatus.PENDING.value,
                target_users=targets,
                user_results=[_initial_user_result(t) for t in targets],
                total_users=len(targets),
                processed_users=0,
                last_processed_user_index=-1,
                total_files_scanned=0,
                total_risky_summary=RiskySummary().to_dict(),
            )
            session.add(job)
            await session.flush()
            self._log_info(
                f"Created integrated job for {len(targets)} users",
                job_id=str(job.id),
                organization_id=str(organization_id),
            )
            return job

    async def get(self, job_id: UUID) -> IntegratedScanJob:
        async with self.session() as session:
            return await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")

    async def get_active(self, organization_id: UUID) -> Optional[IntegratedScanJob]:
        """Newest pending or running job of the organization."""
        async with self.session() as session:
            result = await session.execute(
                select(IntegratedScanJob)
                .where(
                    IntegratedScanJob.organization_id == organization_id,
                    IntegratedScanJob.status.in_(ACTIVE_JOB_STATUSES),
                )
                .order_by(IntegratedScanJob.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_latest(self, organization_id: UUID) -> Optional[IntegratedScanJob]:
        async with self.session() as session:
            result = await session.execute(
                select(IntegratedScanJob)
                .where(IntegratedScanJob.organization_id == organization_id)
                .order_by(IntegratedScanJob.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_running(self) -> list[IntegratedScanJob]:
        async with self.session() as session:
            result = await session.execute(
                select(IntegratedScanJob)
                .where(IntegratedScanJob.status == JobStatus.RUNNING.value)
                .order_by(IntegratedScanJob.created_at)
            )
            return list(result.scalars().all())

    async def mark_running(self, job_id: UUID) -> IntegratedScanJob:
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            if job.status == JobStatus.PENDING.value:
                job.status = JobStatus.RUNNING.value
                job.started_at = datetime.now(timezone.utc)
            return job

    async def begin_user(self, job_id: UUID, index: int) -> Optional[IntegratedScanJob]:
        """
        Mark target `index` running. Returns None when the job has become
        terminal and the step should not start.
        """
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            if job.status in TERMINAL_JOB_STATUSES:
                return None
            if not 0 <= index < job.total_users:
                raise JobError(
                    f"User index {index} out of range (total {job.total_users})",
                    job_id=str(job_id),
                )
            results = [dict(r) for r in job.user_results]
            results[index].update(
                status=UserResultStatus.RUNNING.value,
                started_at=_now_iso(),
                error_message=None,
            )
            job.user_results = results
            job.current_user_email = results[index]["email"]
            return job

    async def set_user_scan(self, job_id: UUID, index: int, scan_id: UUID) -> None:
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            results = [dict(r) for r in job.user_results]
            results[index]["scan_id"] = str(scan_id)
            job.user_results = results

    async def record_user_result(
        self,
        job_id: UUID,
        index: int,
        *,
        success: bool,
        scan_id: Optional[UUID] = None,
        files_scanned: int = 0,
        risky_summary: Optional[RiskySummary] = None,
        error_message: Optional[str] = None,
    ) -> Optional[IntegratedScanJob]:
        """
        Write one account's outcome and advance the checkpoint.

        Returns None (and writes nothing) when the job is already terminal or
        the index has already been checkpointed, which is how a late result
        from a cancelled job or a duplicate worker is discarded.
        """
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            if job.status in TERMINAL_JOB_STATUSES:
                self._log_info(
                    "Discarding result for terminal job",
                    job_id=str(job_id),
                    user_index=index,
                    status=job.status,
                )
                return None
            if index != job.last_processed_user_index + 1:
                self._log_warning(
                    "Discarding out-of-order result",
                    job_id=str(job_id),
                    user_index=index,
                    checkpoint=job.last_processed_user_index,
                )
                return None

            results = [dict(r) for r in job.user_results]
            entry = results[index]
            entry["completed_at"] = _now_iso()
            if scan_id is not None:
                entry["scan_id"] = str(scan_id)

            if success:
                summary = risky_summary or RiskySummary()
                entry.update(
                    status=UserResultStatus.COMPLETED.value,
                    files_scanned=files_scanned,
                    risky_summary=summary.to_dict(),
                    error_message=None,
                )
                job.total_files_scanned = job.total_files_scanned + files_scanned
                job.total_risky_summary = (
                    RiskySummary.from_dict(job.total_risky_summary).merge(summary).to_dict()
                )
            else:
                entry.update(
                    status=UserResultStatus.FAILED.value,
                    error_message=error_message or "Unknown error",
                )

            job.user_results = results
            job.last_processed_user_index = index
            job.processed_users = index + 1
            job.current_user_email = None
            return job

    async def complete(self, job_id: UUID) -> Optional[IntegratedScanJob]:
        """
        Mark a running job completed. Returns the job only if this call made
        the transition, so follow-up work happens exactly once.
        """
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            if job.status not in ACTIVE_JOB_STATUSES:
                return None
            job.status = JobStatus.COMPLETED.value
            job.current_user_email = None
            job.completed_at = datetime.now(timezone.utc)
            return job

    async def cancel(self, job_id: UUID) -> IntegratedScanJob:
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            if job.status not in ACTIVE_JOB_STATUSES:
                raise ConflictError(
                    f"Job is already {job.status}",
                    details={"job_id": str(job_id)},
                )
            job.status = JobStatus.CANCELLED.value
            job.completed_at = datetime.now(timezone.utc)
            return job

    async def fail(self, job_id: UUID, error_message: str) -> Optional[IntegratedScanJob]:
        async with self.session() as session:
            job = await self._get_or_404(session, IntegratedScanJob, job_id, "IntegratedScanJob")
            if job.status not in ACTIVE_JOB_STATUSES:
                return None
            job.status = JobStatus.FAILED.value
            job.error_message = error_message
            job.current_user_email = None
            job.completed_at = datetime.now(timezone.utc)
            return job
