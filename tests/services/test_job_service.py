"""Tests for integrated job persistence and its checkpoint rules."""

import pytest

from shareaudit.core.types import RiskySummary
from shareaudit.exceptions import ConflictError, JobError, ValidationError
from shareaudit.services.integrated_job_service import IntegratedJobService
from shareaudit.services.organization_service import OrganizationService

TARGETS = [
    {"email": "alice@example.com", "name": "Alice"},
    {"email": "bob@example.com"},
    {"email": "carol@example.com", "name": "Carol"},
]


async def setup(session_factory, settings):
    org = await OrganizationService(session_factory, settings).create("Acme", "example.com")
    jobs = IntegratedJobService(session_factory, settings)
    job = await jobs.create(org.id, TARGETS, initiated_by="admin@example.com")
    return org, jobs, job


def assert_checkpoint(job):
    assert job.last_processed_user_index + 1 == job.processed_users
    assert len(job.user_results) == job.total_users


class TestCreate:

    @pytest.mark.asyncio
    async def test_initial_state(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)

            assert job.status == "pending"
            assert job.total_users == 3
            assert job.processed_users == 0
            assert job.last_processed_user_index == -1
            assert job.target_users[1] == {"email": "bob@example.com", "name": "bob@example.com"}
            assert [r["status"] for r in job.user_results] == ["pending"] * 3
            assert_checkpoint(job)

            job = await jobs.mark_running(job.id)
            assert job.status == "running"
            assert job.started_at is not None

    @pytest.mark.asyncio
    async def test_rejects_empty_targets(self, memory_db, settings):
        async with memory_db() as session_factory:
            org, jobs, _ = await setup(session_factory, settings)

            with pytest.raises(ValidationError):
                await jobs.create(org.id, [])


class TestCheckpoint:

    @pytest.mark.asyncio
    async def test_results_advance_in_order(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)
            await jobs.mark_running(job.id)

            job = await jobs.begin_user(job.id, 0)
            assert job.user_results[0]["status"] == "running"
            assert job.current_user_email == "alice@example.com"

            job = await jobs.record_user_result(
                job.id, 0, success=True, files_scanned=10,
                risky_summary=RiskySummary(high=2, low=8),
            )
            assert_checkpoint(job)
            assert job.processed_users == 1
            assert job.current_user_email is None

            await jobs.begin_user(job.id, 1)
            job = await jobs.record_user_result(job.id, 1, success=False, error_message="boom")
            assert_checkpoint(job)
            assert job.user_results[1]["status"] == "failed"
            assert job.user_results[1]["error_message"] == "boom"
            assert job.total_files_scanned == 10
            assert job.total_risky_summary == {"critical": 0, "high": 2, "medium": 0, "low": 8}

    @pytest.mark.asyncio
    async def test_out_of_order_result_discarded(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)
            await jobs.mark_running(job.id)

            assert await jobs.record_user_result(job.id, 1, success=True) is None

            await jobs.record_user_result(job.id, 0, success=True, files_scanned=1)
            assert await jobs.record_user_result(job.id, 0, success=True, files_scanned=1) is None

            job = await jobs.get(job.id)
            assert job.processed_users == 1
            assert job.total_files_scanned == 1
            assert_checkpoint(job)

    @pytest.mark.asyncio
    async def test_terminal_job_discards_results(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)
            await jobs.mark_running(job.id)
            await jobs.cancel(job.id)

            assert await jobs.begin_user(job.id, 0) is None
            assert await jobs.record_user_result(job.id, 0, success=True) is None
            assert (await jobs.get(job.id)).processed_users == 0

    @pytest.mark.asyncio
    async def test_begin_user_out_of_range(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)

            with pytest.raises(JobError) as exc_info:
                await jobs.begin_user(job.id, 3)

            assert exc_info.value.job_id == str(job.id)


class TestTerminalTransitions:

    @pytest.mark.asyncio
    async def test_complete_only_once(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)
            await jobs.mark_running(job.id)

            assert await jobs.complete(job.id) is not None
            assert await jobs.complete(job.id) is None
            assert await jobs.fail(job.id, "late") is None
            assert (await jobs.get(job.id)).status == "completed"

    @pytest.mark.asyncio
    async def test_cancel_terminal_job_conflicts(self, memory_db, settings):
        async with memory_db() as session_factory:
            _, jobs, job = await setup(session_factory, settings)
            await jobs.fail(job.id, "broken")

            with pytest.raises(ConflictError):
                await jobs.cancel(job.id)

    @pytest.mark.asyncio
    async def test_active_and_latest(self, memory_db, settings):
        async with memory_db() as session_factory:
            org, jobs, job = await setup(session_factory, settings)

            assert (await jobs.get_active(org.id)).id == job.id
            assert await jobs.list_running() == []

            await jobs.mark_running(job.id)
            assert [j.id for j in await jobs.list_running()] == [job.id]

            await jobs.cancel(job.id)
            assert await jobs.get_active(org.id) is None
            assert (await jobs.get_latest(org.id)).id == job.id
