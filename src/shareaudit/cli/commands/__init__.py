"""
CLI command modules, one per command group.
"""

from shareaudit.cli.commands.db import db
from shareaudit.cli.commands.delegation import delegation
from shareaudit.cli.commands.integrated import integrated
from shareaudit.cli.commands.org import org
from shareaudit.cli.commands.remediate import remediate
from shareaudit.cli.commands.scan import scan
from shareaudit.cli.commands.worker import worker

__all__ = [
    "db",
    "delegation",
    "integrated",
    "org",
    "remediate",
    "scan",
    "worker",
]
