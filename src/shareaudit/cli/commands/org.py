"""Organization management commands."""

from __future__ import annotations

import click

from shareaudit.cli.base import format_option, resolve_organization_id, run_with_db
from shareaudit.cli.output import OutputFormatter
from shareaudit.core.plans import PLANS


def _org_row(org) -> dict:
    return {
        "id": str(org.id),
        "name": org.name,
        "domain": org.domain,
        "plan": org.plan,
        "total_scans": org.total_scans,
        "total_files_scanned": org.total_files_scanned,
        "last_scan_at": org.last_scan_at,
        "delegation_status": org.delegation_status or "not configured",
    }


@click.group()
def org() -> None:
    """Organization management commands."""
    pass


@org.command("create")
@click.argument("name")
@click.argument("domain")
@click.option("--plan", type=click.Choice(sorted(PLANS)), default="free", help="Subscription plan")
def org_create(name: str, domain: str, plan: str) -> None:
    """Register an organization by its Workspace domain."""
    from shareaudit.services import OrganizationService

    async def _create(session_factory):
        return await OrganizationService(session_factory).create(name, domain, plan=plan)

    created = run_with_db(_create)
    click.echo(f"Created organization: {created.id} ({created.domain}, plan={created.plan})")


@org.command("list")
@format_option()
def org_list(output_format: str) -> None:
    """List organizations."""
    from shareaudit.services import OrganizationService

    async def _list(session_factory):
        return await OrganizationService(session_factory).list_all()

    rows = [_org_row(o) for o in run_with_db(_list)]
    OutputFormatter(output_format).print_table(
        rows, columns=["id", "domain", "plan", "total_scans", "total_files_scanned"]
    )


@org.command("show")
@click.argument("organization")
@format_option(choices=["text", "json"])
def org_show(organization: str, output_format: str) -> None:
    """Show one organization (by id or domain)."""
    from shareaudit.services import OrganizationService

    async def _show(session_factory):
        org_id = await resolve_organization_id(session_factory, organization)
        return await OrganizationService(session_factory).get(org_id)

    OutputFormatter(output_format).print_single(_org_row(run_with_db(_show)))


@org.command("set-plan")
@click.argument("organization")
@click.argument("plan", type=click.Choice(sorted(PLANS)))
def org_set_plan(organization: str, plan: str) -> None:
    """Change an organization's plan."""
    from shareaudit.services import OrganizationService

    async def _set(session_factory):
        org_id = await resolve_organization_id(session_factory, organization)
        return await OrganizationService(session_factory).set_plan(org_id, plan)

    updated = run_with_db(_set)
    click.echo(f"{updated.domain}: plan set to {updated.plan}")
