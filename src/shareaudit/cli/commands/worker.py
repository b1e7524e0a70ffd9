"""Background worker command."""

from __future__ import annotations

import asyncio
import logging

import click

from shareaudit.cli.base import run_with_db

logger = logging.getLogger(__name__)


@click.command()
@click.option("--once", is_flag=True, help="Resume running jobs, wait for them, then exit")
@click.option("--poll-interval", default=30.0, type=float, help="Seconds between checks for running jobs")
def worker(once: bool, poll_interval: float) -> None:
    """Resume and drive running integrated jobs.

    Picks up jobs left running by a previous process and continues each at
    the account after its last checkpoint.
    """
    from shareaudit.jobs.integrated import IntegratedScanOrchestrator

    async def _work(session_factory):
        orchestrator = IntegratedScanOrchestrator(session_factory)
        while True:
            started = await orchestrator.resume_running_jobs()
            if started:
                logger.info("Resumed %d integrated job(s)", started)
            if once:
                await orchestrator.wait()
                return
            await asyncio.sleep(poll_interval)

    try:
        run_with_db(_work)
    except KeyboardInterrupt:
        click.echo("Worker stopped")
