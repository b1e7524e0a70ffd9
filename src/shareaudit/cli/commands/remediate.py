"""Permission remediation commands."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import click

from shareaudit.cli.base import format_option, parse_uuid, run_with_db, token_option
from shareaudit.cli.output import OutputFormatter

PRINCIPAL_TYPES = ["user", "group", "domain", "anyone"]


def _remediator(session_factory, client):
    from shareaudit.remediation import PermissionRemediator

    return PermissionRemediator(client, session_factory)


def _run(token: str, action):
    from shareaudit.adapters.drive import DriveClient
    from shareaudit.adapters.google_client import StaticTokenSource

    async def _work(session_factory):
        async with DriveClient.from_settings(StaticTokenSource(token)) as client:
            return await action(_remediator(session_factory, client))

    return run_with_db(_work)


def _print_report(report, output_format: str) -> None:
    fmt = OutputFormatter(output_format)
    fmt.print_table(
        [r.to_dict() for r in report.results],
        columns=["file_id", "file_name", "success", "permission_id", "new_role", "error"],
    )
    fmt.print_message(f"\n{report.succeeded} succeeded, {report.failed} failed")


@click.group()
def remediate() -> None:
    """Fix risky sharing on scanned files."""
    pass


@remediate.command("remove-permission")
@click.argument("scan_id", callback=parse_uuid)
@click.argument("file_id")
@click.argument("permission_id")
@token_option
def remove_permission(scan_id: UUID, file_id: str, permission_id: str, token: str) -> None:
    """Remove one permission from a file."""
    updated = _run(token, lambda r: r.remove_permission(scan_id, file_id, permission_id))
    click.echo(f"Removed {permission_id}; {updated.name} is now {updated.risk_level} ({updated.risk_score})")


@remediate.command("change-role")
@click.argument("scan_id", callback=parse_uuid)
@click.argument("file_id")
@click.argument("permission_id")
@click.argument("role", type=click.Choice(["reader", "commenter", "writer"]))
@token_option
def change_role(scan_id: UUID, file_id: str, permission_id: str, role: str, token: str) -> None:
    """Change the role of one permission."""
    updated = _run(token, lambda r: r.change_role(scan_id, file_id, permission_id, role))
    click.echo(f"Set {permission_id} to {role}; {updated.name} is now {updated.risk_level} ({updated.risk_score})")


@remediate.command("remove-public")
@click.argument("scan_id", callback=parse_uuid)
@click.argument("file_ids", nargs=-1, required=True)
@token_option
@format_option()
def remove_public(scan_id: UUID, file_ids: tuple[str, ...], token: str, output_format: str) -> None:
    """Remove anyone-with-the-link access from files."""
    report = _run(token, lambda r: r.remove_public_access(scan_id, list(file_ids)))
    _print_report(report, output_format)


@remediate.command("remove-matching")
@click.argument("scan_id", callback=parse_uuid)
@click.argument("file_ids", nargs=-1, required=True)
@click.option("--type", "principal_type", type=click.Choice(PRINCIPAL_TYPES), default=None)
@click.option("--email", default=None, help="Grantee email or domain")
@click.option("--role", default=None, help="Role of the entries to remove")
@token_option
@format_option()
def remove_matching(
    scan_id: UUID,
    file_ids: tuple[str, ...],
    principal_type: Optional[str],
    email: Optional[str],
    role: Optional[str],
    token: str,
    output_format: str,
) -> None:
    """Remove every permission matching a filter from files."""
    from shareaudit.adapters.base import PermissionRole, PrincipalType
    from shareaudit.remediation import PermissionFilter

    try:
        permission_filter = PermissionFilter(
            type=PrincipalType(principal_type) if principal_type else None,
            email=email,
            role=PermissionRole(role) if role else None,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    report = _run(token, lambda r: r.remove_matching(scan_id, list(file_ids), permission_filter))
    _print_report(report, output_format)


@remediate.command("demote-editors")
@click.argument("scan_id", callback=parse_uuid)
@click.argument("file_ids", nargs=-1, required=True)
@click.option("--type", "principal_type", type=click.Choice(PRINCIPAL_TYPES), default=None)
@click.option("--email", default=None, help="Grantee email or domain")
@token_option
@format_option()
def demote_editors(
    scan_id: UUID,
    file_ids: tuple[str, ...],
    principal_type: Optional[str],
    email: Optional[str],
    token: str,
    output_format: str,
) -> None:
    """Change editors on files to readers."""
    from shareaudit.adapters.base import PrincipalType
    from shareaudit.remediation import PermissionFilter

    permission_filter = PermissionFilter(
        type=PrincipalType(principal_type) if principal_type else None,
        email=email,
    )
    report = _run(token, lambda r: r.demote_editors(scan_id, list(file_ids), permission_filter))
    _print_report(report, output_format)
