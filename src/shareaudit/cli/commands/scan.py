"""Scan commands: run a standalone scan and browse stored results."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import click

from shareaudit.cli.base import (
    format_option,
    parse_uuid,
    resolve_organization_id,
    run_with_db,
    spinner,
    token_option,
)
from shareaudit.cli.output import OutputFormatter

RISK_LEVELS = ["critical", "high", "medium", "low"]


def scan_row(scan) -> dict:
    return {
        "id": str(scan.id),
        "user_email": scan.user_email,
        "status": scan.status,
        "phase": scan.phase,
        "processed_files": scan.processed_files,
        "total_files": scan.total_files,
        "average_score": scan.average_score,
        "risky_summary": scan.risky_summary,
        "started_at": scan.started_at,
        "completed_at": scan.completed_at,
        "error_message": scan.error_message,
    }


@click.group()
def scan() -> None:
    """Scan management commands."""
    pass


@scan.command("start")
@click.argument("organization")
@click.option("--user-email", required=True, help="Account the token belongs to")
@click.option("--user-name", default=None, help="Display name of the account")
@token_option
def scan_start(organization: str, user_email: str, user_name: Optional[str], token: str) -> None:
    """Scan one account's Drive with its own access token.

    Examples:
        SHAREAUDIT_ACCESS_TOKEN=ya29... shareaudit scan start example.com --user-email alice@example.com
    """
    from shareaudit.adapters.drive import DriveClient
    from shareaudit.adapters.google_client import StaticTokenSource
    from shareaudit.jobs.scan import start_scan

    async def _start(session_factory):
        org_id = await resolve_organization_id(session_factory, organization)
        async with DriveClient.from_settings(StaticTokenSource(token)) as client:
            return await start_scan(client, session_factory, org_id, user_email, user_name=user_name)

    with spinner() as progress:
        progress.add_task(f"Scanning {user_email}...", total=None)
        result = run_with_db(_start)

    summary = result.summary
    click.echo(f"Scan {result.scan_id} completed: {summary.total_files} files")
    for level, count in summary.risky_summary.to_dict().items():
        click.echo(f"  {level}: {count}")
    click.echo(f"  average score: {summary.average_score}")


@scan.command("list")
@click.argument("organization")
@click.option("--user-email", default=None, help="Only scans of this account")
@click.option("--limit", default=20, type=int, help="Page size")
@click.option("--offset", default=0, type=int, help="Rows to skip")
@format_option()
def scan_list(organization: str, user_email: Optional[str], limit: int, offset: int, output_format: str) -> None:
    """List scans, newest first."""
    from shareaudit.services import ScanService

    async def _list(session_factory):
        org_id = await resolve_organization_id(session_factory, organization)
        return await ScanService(session_factory).list_scans(
            org_id, user_email=user_email, limit=limit, offset=offset
        )

    scans, total = run_with_db(_list)
    OutputFormatter(output_format).print_page(
        [scan_row(s) for s in scans],
        columns=["id", "user_email", "status", "phase", "processed_files", "total_files", "started_at"],
        total=total,
        noun="scans",
    )


@scan.command("show")
@click.argument("scan_id", callback=parse_uuid)
@format_option(choices=["text", "json"])
def scan_show(scan_id: UUID, output_format: str) -> None:
    """Show one scan with its summary."""
    from shareaudit.services import ScanService

    async def _show(session_factory):
        return await ScanService(session_factory).get(scan_id)

    found = run_with_db(_show)
    row = scan_row(found)
    row["top_issues"] = found.top_issues
    OutputFormatter(output_format).print_single(row)


@scan.command("files")
@click.argument("scan_id", callback=parse_uuid)
@click.option("--risk-level", type=click.Choice(RISK_LEVELS), default=None)
@click.option("--owner", "owner_type", type=click.Choice(["all", "internal", "external"]), default="all")
@click.option("--folder", "folder_id", default=None, help="Parent folder id ('root' for no parent)")
@click.option("--sort", "sort_by", type=click.Choice(["risk_score", "name", "modified_time"]), default="risk_score")
@click.option("--order", "sort_order", type=click.Choice(["asc", "desc"]), default="desc")
@click.option("--limit", default=50, type=int)
@click.option("--offset", default=0, type=int)
@format_option()
def scan_files(
    scan_id: UUID,
    risk_level: Optional[str],
    owner_type: str,
    folder_id: Optional[str],
    sort_by: str,
    sort_order: str,
    limit: int,
    offset: int,
    output_format: str,
) -> None:
    """List a scan's files with filters."""
    from shareaudit.services import ScannedFileService

    async def _files(session_factory):
        return await ScannedFileService(session_factory).list_files(
            scan_id,
            limit=limit,
            offset=offset,
            risk_level=risk_level,
            owner_type=owner_type,
            sort_by=sort_by,
            sort_order=sort_order,
            folder_id=folder_id,
        )

    files, total = run_with_db(_files)
    rows = [
        {
            "file_id": f.file_id,
            "name": f.name,
            "owner_email": f.owner_email,
            "risk_score": f.risk_score,
            "risk_level": f.risk_level,
            "risk_factors": f.risk_factors or [],
            "folder": f.parent_folder_name,
        }
        for f in files
    ]
    OutputFormatter(output_format).print_page(
        rows,
        columns=["file_id", "name", "risk_level", "risk_score", "owner_email", "risk_factors"],
        total=total,
        noun="files",
    )


@scan.command("folders")
@click.argument("scan_id", callback=parse_uuid)
@click.option("--min-risk", type=click.Choice(RISK_LEVELS), default=None, help="Lowest highest-level to include")
@click.option("--limit", default=50, type=int)
@click.option("--offset", default=0, type=int)
@format_option()
def scan_folders(scan_id: UUID, min_risk: Optional[str], limit: int, offset: int, output_format: str) -> None:
    """List a scan's folder summaries, riskiest first."""
    from shareaudit.services import FolderSummaryService

    async def _folders(session_factory):
        return await FolderSummaryService(session_factory).list_folders(
            scan_id, limit=limit, offset=offset, min_risk_level=min_risk
        )

    folders, total = run_with_db(_folders)
    rows = [
        {
            "folder_id": f.folder_id,
            "name": f.name,
            "file_count": f.file_count,
            "highest_risk_level": f.highest_risk_level,
            "total_risk_score": f.total_risk_score,
            "risky_summary": f.risky_summary,
        }
        for f in folders
    ]
    OutputFormatter(output_format).print_page(
        rows,
        columns=["folder_id", "name", "file_count", "highest_risk_level", "total_risk_score", "risky_summary"],
        total=total,
        noun="folders",
    )
