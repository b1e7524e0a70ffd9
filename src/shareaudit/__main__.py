"""
ShareAudit CLI entry point.

Usage:
    shareaudit db init
    shareaudit org create NAME DOMAIN [--plan PLAN]
    shareaudit delegation configure ORG KEY_FILE --admin-email EMAIL
    shareaudit scan start ORG --user-email EMAIL --token TOKEN
    shareaudit integrated start ORG [--user EMAIL ...]
    shareaudit worker
"""

from typing import Optional

import click

from shareaudit import __version__
from shareaudit.cli.commands import db, delegation, integrated, org, remediate, scan, worker


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
              help="Override the configured log level")
def cli(log_level: Optional[str]):
    """ShareAudit - Google Drive sharing risk audit"""
    from shareaudit.config import get_settings
    from shareaudit.logging_config import setup_logging

    settings = get_settings().logging
    setup_logging(
        level=log_level or settings.level,
        json_format=settings.format == "json",
        log_file=settings.file,
    )


cli.add_command(db)
cli.add_command(org)
cli.add_command(delegation)
cli.add_command(scan)
cli.add_command(integrated)
cli.add_command(remediate)
cli.add_command(worker)


def main():
    cli()


if __name__ == "__main__":
    main()
