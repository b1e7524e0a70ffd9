"""
Integrated (multi-account) scan job orchestrator.

Runs one scan pipeline per target account, strictly in target-list order,
one account per step. After each account the job's checkpoint
(last_processed_user_index) is written together with that account's
result, so a restarted process continues from the next account instead of
starting over.

Steps can be driven by an in-process loop (run / ensure_worker) or one at a
time by an external caller (run_step). Both use the same step logic.

Duplicate driving is prevented by ActiveWorkerRegistry, which only sees
the current process. Two processes that restart at the same time can both
resume one job; the result is at worst a duplicate per-account scan record,
since the checkpoint write discards out-of-order results.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shareaudit.adapters.base import DirectoryClient
from shareaudit.adapters.delegation import DelegatedClientFactory, DomainUser, ServiceAccountConfig
from shareaudit.config import Settings, get_settings
from shareaudit.exceptions import ConfigurationError, ConflictError, ValidationError
from shareaudit.jobs.scan import ScanOptions, ScanPipeline, error_message
from shareaudit.logging_config import log_context
from shareaudit.models import IntegratedScanJob
from shareaudit.services.integrated_job_service import (
    TERMINAL_JOB_STATUSES,
    IntegratedJobService,
    JobStatus,
)
from shareaudit.services.organization_service import OrganizationService

logger = logging.getLogger(__name__)


class ActiveWorkerRegistry:
    """
    Job ids that have a driving loop in this process.

    try_acquire is an atomic test-and-insert. This is a single-process,
    best-effort guard, not a distributed lock: it cannot see workers in
    other processes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[str] = set()

    def try_acquire(self, job_id: UUID | str) -> bool:
        key = str(job_id)
        with self._lock:
            if key in self._active:
                return False
            self._active.add(key)
            return True

    def release(self, job_id: UUID | str) -> None:
        with self._lock:
            self._active.discard(str(job_id))

    def is_active(self, job_id: UUID | str) -> bool:
        with self._lock:
            return str(job_id) in self._active

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)


# Shared by every orchestrator in this process
active_workers = ActiveWorkerRegistry()


class ClientFactory(Protocol):
    """Builds provider clients acting as organization members."""

    def for_subject(self, email: str) -> DirectoryClient:
        ...

    async def list_domain_users(self, admin_email: str, domain: str) -> list[DomainUser]:
        ...


class StepOutcome(str, Enum):
    """What one step did."""

    ADVANCED = "advanced"    # One account processed, checkpoint moved
    COMPLETED = "completed"  # No accounts left, job marked completed
    STOPPED = "stopped"      # Job already terminal, nothing done
    DISCARDED = "discarded"  # Result not recorded (job ended or another worker got there first)
    FAILED = "failed"        # Unrecoverable setup error, job marked failed


_LOOP_EXIT = frozenset({
    StepOutcome.COMPLETED,
    StepOutcome.STOPPED,
    StepOutcome.DISCARDED,
    StepOutcome.FAILED,
})


class IntegratedScanOrchestrator:
    """
    Starts, advances, resumes and cancels integrated jobs.

    Usage:
        orchestrator = IntegratedScanOrchestrator(session_factory)
        job = await orchestrator.start_job(org_id, initiated_by="admin@example.com")
        ...
        job = await orchestrator.get_status(job.id)  # resumes after a restart
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
        client_factory_builder: Optional[Callable[[ServiceAccountConfig], ClientFactory]] = None,
        registry: Optional[ActiveWorkerRegistry] = None,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self._build_client_factory = client_factory_builder or (
            lambda config: DelegatedClientFactory(config, settings=self.settings.drive)
        )
        self.registry = registry if registry is not None else active_workers

        self.jobs = IntegratedJobService(session_factory, self.settings)
        self.organizations = OrganizationService(session_factory, self.settings)

        self._tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Start
    # =========================================================================

    async def start_job(
        self,
        organization_id: UUID,
        initiated_by: Optional[str] = None,
        user_emails: Optional[list[str]] = None,
        run_in_background: bool = True,
    ) -> IntegratedScanJob:
        """
        Create a job over the organization's active accounts and start it.

        Raises:
            ConfigurationError: Delegation missing or unverified, or no
                admin account to list users as
            ConflictError: The organization already has an active job
            ValidationError: No accounts left to scan
        """
        org, config = await self.organizations.get_delegation_config(organization_id)
        if not org.delegation_admin_email:
            raise ConfigurationError(
                "No administrator account configured for directory listing",
                details={"organization_id": str(organization_id)},
            )

        active = await self.jobs.get_active(organization_id)
        if active is not None:
            raise ConflictError(
                "An integrated scan is already in progress",
                details={"job_id": str(active.id), "status": active.status},
            )

        factory = self._build_client_factory(config)
        users = await factory.list_domain_users(org.delegation_admin_email, org.domain)

        if user_emails:
            wanted = {email.lower() for email in user_emails}
            users = [u for u in users if u.email.lower() in wanted]
        if not users:
            raise ValidationError("No target users to scan", field="user_emails")

        job = await self.jobs.create(
            organization_id,
            [{"email": u.email, "name": u.display_name} for u in users],
            initiated_by=initiated_by,
        )
        job = await self.jobs.mark_running(job.id)
        logger.info("Integrated job %s started for %d users", job.id, job.total_users)

        if run_in_background:
            self.ensure_worker(job.id)
        return job

    # =========================================================================
    # Step
    # =========================================================================

    async def step(self, job_id: UUID) -> StepOutcome:
        """
        Process the next account of the job.

        A failed account is recorded on its user result and the checkpoint
        still advances; only a missing delegation setup fails the job.
        """
        job = await self.jobs.get(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            return StepOutcome.STOPPED

        index = job.last_processed_user_index + 1
        if index >= job.total_users:
            return await self._finish(job_id)

        try:
            org, config = await self.organizations.get_delegation_config(
                job.organization_id, require_verified=False
            )
        except ConfigurationError as e:
            logger.error("Integrated job %s cannot continue: %s", job_id, e.message)
            await self.jobs.fail(job_id, e.message)
            return StepOutcome.FAILED

        job = await self.jobs.begin_user(job_id, index)
        if job is None:
            return StepOutcome.STOPPED

        target = job.target_users[index]
        email = target["email"]
        logger.info(
            "Integrated job %s: scanning %s (%d/%d)",
            job_id, email, index + 1, job.total_users,
        )

        with log_context(job_id=job_id, account=email):
            factory = self._build_client_factory(config)
            scan_id: Optional[UUID] = None
            try:
                async with factory.for_subject(email) as client:
                    pipeline = ScanPipeline(
                        client,
                        self.session_factory,
                        ScanOptions(
                            organization_id=org.id,
                            organization_domain=org.domain,
                            max_files=self.settings.scan.max_files_per_user,
                            update_organization_stats=False,
                        ),
                        settings=self.settings,
                    )
                    scan = await pipeline.create_scan(
                        email,
                        user_name=target.get("name"),
                        user_id=job.initiated_by,
                        integrated_job_id=job.id,
                    )
                    scan_id = scan.id
                    await self.jobs.set_user_scan(job_id, index, scan.id)
                    result = await pipeline.run(scan.id)
            except Exception as e:  # Intentionally broad: one account's failure must not stop the job
                logger.warning("Integrated job %s: scan of %s failed: %s", job_id, email, error_message(e))
                recorded = await self.jobs.record_user_result(
                    job_id,
                    index,
                    success=False,
                    scan_id=scan_id,
                    error_message=error_message(e),
                )
            else:
                recorded = await self.jobs.record_user_result(
                    job_id,
                    index,
                    success=True,
                    scan_id=scan_id,
                    files_scanned=result.files_scanned,
                    risky_summary=result.summary.risky_summary,
                )

        return StepOutcome.ADVANCED if recorded is not None else StepOutcome.DISCARDED

    async def _finish(self, job_id: UUID) -> StepOutcome:
        job = await self.jobs.complete(job_id)
        if job is None:
            return StepOutcome.STOPPED
        completed_scans = sum(1 for r in job.user_results if r["status"] == "completed")
        await self.organizations.increment_scan_stats(
            job.organization_id,
            job.total_files_scanned,
            scans=completed_scans,
        )
        logger.info(
            "Integrated job %s completed: %d users, %d files",
            job_id, job.processed_users, job.total_files_scanned,
        )
        return StepOutcome.COMPLETED

    # =========================================================================
    # Driving
    # =========================================================================

    async def run(self, job_id: UUID) -> StepOutcome:
        """Step until the job ends. Caller must hold the registry entry."""
        with log_context(job_id=job_id):
            while True:
                outcome = await self.step(job_id)
                if outcome in _LOOP_EXIT:
                    logger.info("Worker for job %s stopping (%s)", job_id, outcome.value)
                    return outcome

    async def run_step(self, job_id: UUID) -> Optional[StepOutcome]:
        """
        Run exactly one step for an externally driven job.

        Returns None when a driving loop for the job is already active in
        this process.
        """
        if not self.registry.try_acquire(job_id):
            return None
        try:
            return await self.step(job_id)
        finally:
            self.registry.release(job_id)

    def ensure_worker(self, job_id: UUID) -> bool:
        """
        Start a background driving loop unless one is already active here.

        Returns True if a new loop was started.
        """
        if not self.registry.try_acquire(job_id):
            return False
        task = asyncio.create_task(self._drive(job_id), name=f"integrated-job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Started worker for job %s", job_id)
        return True

    async def _drive(self, job_id: UUID) -> None:
        try:
            await self.run(job_id)
        except Exception:  # Intentionally broad: background task; the job stays running and resumes on next read
            logger.exception("Worker for job %s crashed", job_id)
        finally:
            self.registry.release(job_id)

    async def wait(self) -> None:
        """Wait for every background loop started by this orchestrator."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def resume_running_jobs(self) -> int:
        """Start loops for every running job without one. Returns how many started."""
        started = 0
        for job in await self.jobs.list_running():
            if self.ensure_worker(job.id):
                started += 1
        return started

    # =========================================================================
    # Status & cancel
    # =========================================================================

    async def get_status(self, job_id: UUID) -> IntegratedScanJob:
        """
        Read a job. A running job with no local loop gets one started,
        which is how work resumes after a process restart.
        """
        job = await self.jobs.get(job_id)
        if job.status == JobStatus.RUNNING.value and not self.registry.is_active(job.id):
            logger.info("Resuming integrated job %s at index %d", job.id, job.last_processed_user_index + 1)
            self.ensure_worker(job.id)
        return job

    async def get_latest_status(self, organization_id: UUID) -> Optional[IntegratedScanJob]:
        job = await self.jobs.get_latest(organization_id)
        if job is None:
            return None
        return await self.get_status(job.id)

    async def cancel(self, job_id: UUID) -> IntegratedScanJob:
        """
        Cancel a job. An account scan already in flight runs to its end;
        its result is discarded.
        """
        job = await self.jobs.cancel(job_id)
        logger.info("Integrated job %s cancelled at index %d", job_id, job.last_processed_user_index)
        return job

    def describe(self, job: IntegratedScanJob) -> dict[str, Any]:
        """Status document for display."""
        return {
            "id": str(job.id),
            "status": job.status,
            "total_users": job.total_users,
            "processed_users": job.processed_users,
            "current_user_email": job.current_user_email,
            "total_files_scanned": job.total_files_scanned,
            "total_risky_summary": job.total_risky_summary,
            "user_results": job.user_results,
            "worker_active": self.registry.is_active(job.id),
        }
