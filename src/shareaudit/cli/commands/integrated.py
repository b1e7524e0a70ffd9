"""Integrated (organization-wide) scan commands."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import click

from shareaudit.cli.base import format_option, parse_uuid, resolve_organization_id, run_with_db
from shareaudit.cli.output import OutputFormatter


@click.group()
def integrated() -> None:
    """Organization-wide scans through domain-wide delegation."""
    pass


@integrated.command("start")
@click.argument("organization")
@click.option("--user", "user_emails", multiple=True, help="Only scan these accounts (repeatable)")
@click.option("--initiated-by", default=None, help="Who started the job")
@click.option("--wait/--no-wait", default=True, help="Drive the job to completion in this process")
def integrated_start(
    organization: str,
    user_emails: tuple[str, ...],
    initiated_by: Optional[str],
    wait: bool,
) -> None:
    """Start scanning every active account of an organization.

    With --no-wait the job is only created; drive it later with
    `shareaudit worker` or `shareaudit integrated step`.
    """
    from shareaudit.jobs.integrated import IntegratedScanOrchestrator

    async def _start(session_factory):
        org_id = await resolve_organization_id(session_factory, organization)
        orchestrator = IntegratedScanOrchestrator(session_factory)
        job = await orchestrator.start_job(
            org_id,
            initiated_by=initiated_by,
            user_emails=list(user_emails) or None,
            run_in_background=wait,
        )
        click.echo(f"Started integrated job {job.id} for {job.total_users} users")
        if wait:
            await orchestrator.wait()
            job = await orchestrator.jobs.get(job.id)
        return orchestrator.describe(job)

    status = run_with_db(_start)
    _print_status(status, "text")


@integrated.command("status")
@click.argument("target")
@click.option("--resume", is_flag=True, help="Resume a running job with no worker and wait for it")
@format_option(choices=["text", "json"])
def integrated_status(target: str, resume: bool, output_format: str) -> None:
    """Show a job by id, or an organization's latest job by domain."""
    from shareaudit.exceptions import NotFoundError
    from shareaudit.jobs.integrated import IntegratedScanOrchestrator

    async def _status(session_factory):
        orchestrator = IntegratedScanOrchestrator(session_factory)
        try:
            job_id = UUID(target)
        except ValueError:
            org_id = await resolve_organization_id(session_factory, target)
            job = await orchestrator.jobs.get_latest(org_id)
            if job is None:
                raise NotFoundError("No integrated job yet", resource_type="IntegratedScanJob")
            job_id = job.id

        if resume:
            await orchestrator.get_status(job_id)
            await orchestrator.wait()
        return orchestrator.describe(await orchestrator.jobs.get(job_id))

    _print_status(run_with_db(_status), output_format)


@integrated.command("step")
@click.argument("job_id", callback=parse_uuid)
def integrated_step(job_id: UUID) -> None:
    """Process exactly one account of a job."""
    from shareaudit.jobs.integrated import IntegratedScanOrchestrator

    async def _step(session_factory):
        orchestrator = IntegratedScanOrchestrator(session_factory)
        outcome = await orchestrator.run_step(job_id)
        return outcome, orchestrator.describe(await orchestrator.jobs.get(job_id))

    outcome, status = run_with_db(_step)
    if outcome is None:
        click.echo("A worker is already driving this job", err=True)
    else:
        click.echo(f"Step {outcome.value}: {status['processed_users']}/{status['total_users']} users")


@integrated.command("cancel")
@click.argument("job_id", callback=parse_uuid)
def integrated_cancel(job_id: UUID) -> None:
    """Cancel an active job."""
    from shareaudit.jobs.integrated import IntegratedScanOrchestrator

    async def _cancel(session_factory):
        return await IntegratedScanOrchestrator(session_factory).cancel(job_id)

    job = run_with_db(_cancel)
    click.echo(f"Cancelled job {job.id} after {job.processed_users}/{job.total_users} users")


def _print_status(status: dict, output_format: str) -> None:
    fmt = OutputFormatter(output_format)
    if output_format == "json":
        fmt.print_single(status)
        return
    fmt.print_single({k: v for k, v in status.items() if k != "user_results"})
    click.echo("")
    fmt.print_table(
        [
            {
                "email": r["email"],
                "status": r["status"],
                "files_scanned": r["files_scanned"],
                "scan_id": r["scan_id"],
                "error_message": r["error_message"],
            }
            for r in status["user_results"]
        ],
        columns=["email", "status", "files_scanned", "scan_id", "error_message"],
    )
