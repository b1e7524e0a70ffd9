"""Domain-wide delegation commands."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from shareaudit.cli.base import format_option, resolve_organization_id, run_with_db, spinner
from shareaudit.cli.output import OutputFormatter


@click.group()
def delegation() -> None:
    """Domain-wide delegation setup."""
    pass


@delegation.command("configure")
@click.argument("organization")
@click.argument("key_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--admin-email", required=True, help="Administrator account used for directory listing")
@click.option("--verify/--no-verify", default=True, help="Verify delegation right away")
def delegation_configure(organization: str, key_file: str, admin_email: str, verify: bool) -> None:
    """Store a service-account JSON key for an organization.

    Examples:
        shareaudit delegation configure example.com ./sa-key.json --admin-email admin@example.com
    """
    from shareaudit.adapters.delegation import DelegatedClientFactory, parse_service_account_json
    from shareaudit.services import OrganizationService

    config = parse_service_account_json(Path(key_file).read_text(encoding="utf-8"))
    if config is None:
        click.echo("Error: Not a service account key (need client_email and private_key)", err=True)
        sys.exit(1)

    async def _configure(session_factory):
        service = OrganizationService(session_factory)
        org_id = await resolve_organization_id(session_factory, organization)
        org = await service.save_delegation_config(org_id, config, admin_email)
        if not verify:
            return org, None
        result = await DelegatedClientFactory(config).verify(admin_email)
        org = await service.record_delegation_verification(org_id, result)
        return org, result

    with spinner() as progress:
        progress.add_task("Saving delegation config...", total=None)
        org, result = run_with_db(_configure)

    click.echo(f"Stored service account {config.client_email} for {org.domain}")
    if result is not None:
        _report_verification(result)


@delegation.command("verify")
@click.argument("organization")
def delegation_verify(organization: str) -> None:
    """Check that the stored delegation works."""
    from shareaudit.adapters.delegation import DelegatedClientFactory
    from shareaudit.exceptions import ConfigurationError
    from shareaudit.services import OrganizationService

    async def _verify(session_factory):
        service = OrganizationService(session_factory)
        org_id = await resolve_organization_id(session_factory, organization)
        org, config = await service.get_delegation_config(org_id, require_verified=False)
        if not org.delegation_admin_email:
            raise ConfigurationError("No administrator account configured")
        result = await DelegatedClientFactory(config).verify(org.delegation_admin_email)
        await service.record_delegation_verification(org_id, result)
        return result

    _report_verification(run_with_db(_verify))


@delegation.command("users")
@click.argument("organization")
@format_option()
def delegation_users(organization: str, output_format: str) -> None:
    """List the active accounts an integrated scan would cover."""
    from shareaudit.adapters.delegation import DelegatedClientFactory
    from shareaudit.exceptions import ConfigurationError
    from shareaudit.services import OrganizationService

    async def _users(session_factory):
        org_id = await resolve_organization_id(session_factory, organization)
        org, config = await OrganizationService(session_factory).get_delegation_config(org_id)
        if not org.delegation_admin_email:
            raise ConfigurationError("No administrator account configured")
        return await DelegatedClientFactory(config).list_domain_users(
            org.delegation_admin_email, org.domain
        )

    users = run_with_db(_users)
    OutputFormatter(output_format).print_table(
        [u.to_dict() for u in users], columns=["email", "name", "is_admin"]
    )


def _report_verification(result) -> None:
    if result.success:
        suffix = f" ({result.user_count} users visible)" if result.user_count else ""
        click.echo(f"Delegation verified{suffix}")
    else:
        click.echo(f"Delegation verification failed: {result.error}", err=True)
        sys.exit(1)
