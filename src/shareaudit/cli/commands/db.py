"""
Database management commands.
"""

import asyncio

import click


@click.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
def db_init():
    """Create all tables that do not exist yet."""
    from shareaudit.config import get_settings
    from shareaudit.db import close_db, create_tables, init_db

    async def _init():
        await init_db()
        try:
            await create_tables()
        finally:
            await close_db()

    asyncio.run(_init())
    click.echo(f"Database initialized at {get_settings().database.url}")
