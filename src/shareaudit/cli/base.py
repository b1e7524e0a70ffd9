"""Shared CLI decorators and utilities."""

from __future__ import annotations

import asyncio
import functools
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from uuid import UUID

import click
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shareaudit.exceptions import ShareAuditError

T = TypeVar("T")


def format_option(
    choices: list[str] | None = None,
    default: str | None = None,
) -> Callable[..., Any]:
    """Add ``--format`` / ``-f`` option with configurable choices.

    The Python parameter is named ``output_format`` to avoid shadowing the
    built-in ``format``.
    """
    if choices is None:
        choices = ["table", "json", "csv"]
    if default is None:
        default = choices[0]

    def decorator(f: Callable[..., Any]) -> Callable[..., Any]:
        @click.option(
            "--format", "-f", "output_format",
            type=click.Choice(choices),
            default=default,
            help="Output format",
        )
        @functools.wraps(f)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return f(*args, **kwargs)
        return wrapper
    return decorator


def token_option(f: Callable[..., Any]) -> Callable[..., Any]:
    """Add ``--token`` for commands that call Drive as the signed-in user."""
    @click.option(
        "--token",
        envvar="SHAREAUDIT_ACCESS_TOKEN",
        required=True,
        help="OAuth access token of the acting account",
    )
    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return f(*args, **kwargs)
    return wrapper


def spinner(description: str = "Working...") -> Progress:
    """Create a spinner-style progress indicator for indeterminate operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        transient=True,
    )


def run_with_db(
    work: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]],
) -> T:
    """
    Run one async unit of work against the configured database.

    ShareAudit errors are printed and exit with status 1.
    """
    from shareaudit.db import close_db, init_db

    async def _main() -> T:
        session_factory = await init_db()
        try:
            return await work(session_factory)
        finally:
            await close_db()

    try:
        return asyncio.run(_main())
    except ShareAuditError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)


async def resolve_organization_id(
    session_factory: async_sessionmaker[AsyncSession],
    ref: str,
) -> UUID:
    """Accept an organization id or its domain."""
    from shareaudit.services import OrganizationService

    service = OrganizationService(session_factory)
    try:
        return (await service.get(UUID(ref))).id
    except ValueError:
        return (await service.get_by_domain(ref)).id


def parse_uuid(ctx: click.Context, param: click.Parameter, value: str | None) -> UUID | None:
    """Click callback that validates an id argument."""
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise click.BadParameter(f"Not a valid id: {value}")
