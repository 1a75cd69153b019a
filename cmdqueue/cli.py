"""
Command-line interface.

Client commands (submit, status, cancel, stats, history) talk to the shared
store directly through the gateway; ``worker`` and ``api`` run the long-lived
processes.
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from cmdqueue import __version__
from cmdqueue.config import get_settings
from cmdqueue.constants import CancelOutcome, JobStatus
from cmdqueue.errors import JobQueueError, NotFoundError
from cmdqueue.gateway import JobGateway
from cmdqueue.observability.logging import get_logger, setup_logging
from cmdqueue.runtime import open_runtime

T = TypeVar("T")

logger = get_logger(__name__)


def _run_with_gateway(action: Callable[[JobGateway], Awaitable[T]]) -> T:
    """Open a runtime, run one gateway action, and close the runtime."""

    async def runner() -> T:
        async with open_runtime(get_settings()) as runtime:
            return await action(runtime.gateway)

    return asyncio.run(runner())


def _dump(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.version_option(__version__, prog_name="cmdqueue")
@click.option("-v", "--verbose", is_flag=True, help="Log at the configured level instead of warnings only.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """cmdqueue - a distributed queue of shell commands."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


def _setup_client_logging(ctx: click.Context) -> None:
    level = None if ctx.obj.get("verbose") else "WARNING"
    setup_logging(stream=sys.stderr, level=level)


@cli.command()
@click.argument("command", nargs=-1, required=True)
@click.pass_context
def submit(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Submit COMMAND to the queue and print the new job id."""
    _setup_client_logging(ctx)
    command_line = " ".join(command)

    try:
        job = _run_with_gateway(lambda gateway: gateway.submit(command_line))
    except JobQueueError as e:
        raise click.ClickException(e.message) from e

    logger.info("job_submitted", job_id=job.id)
    click.echo(job.id)


@cli.command()
@click.argument("job_id")
@click.pass_context
def status(ctx: click.Context, job_id: str) -> None:
    """Print the current state of a job as JSON."""
    _setup_client_logging(ctx)

    try:
        job = _run_with_gateway(lambda gateway: gateway.get_status(job_id))
    except NotFoundError as e:
        raise click.ClickException(f"Job {job_id} not found") from e
    except JobQueueError as e:
        raise click.ClickException(e.message) from e

    _dump(job.model_dump(mode="json"))


@cli.command()
@click.argument("job_id")
@click.pass_context
def cancel(ctx: click.Context, job_id: str) -> None:
    """Cancel a pending or running job and print the outcome."""
    _setup_client_logging(ctx)

    try:
        outcome = _run_with_gateway(lambda gateway: gateway.cancel(job_id))
    except JobQueueError as e:
        raise click.ClickException(e.message) from e

    click.echo(outcome.value)
    if outcome == CancelOutcome.NOT_FOUND:
        ctx.exit(1)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Print the queue depth and job counts by status."""
    _setup_client_logging(ctx)

    try:
        result = _run_with_gateway(lambda gateway: gateway.stats())
    except JobQueueError as e:
        raise click.ClickException(e.message) from e

    _dump({"queue_depth": result.queue_depth, "stats": result.stats})


@cli.command()
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in JobStatus]),
    default=None,
    help="Only list jobs with this status.",
)
@click.option("--limit", default=20, show_default=True, type=click.IntRange(1, 100))
@click.pass_context
def history(ctx: click.Context, status_filter: str | None, limit: int) -> None:
    """List jobs recorded in the history database, newest first."""
    _setup_client_logging(ctx)
    job_status = JobStatus(status_filter) if status_filter else None

    try:
        jobs, total = _run_with_gateway(
            lambda gateway: gateway.list_history(status=job_status, limit=limit)
        )
    except JobQueueError as e:
        raise click.ClickException(e.message) from e

    if not jobs:
        click.echo("No jobs found.")
        return

    for job in jobs:
        click.echo(f"{job.id}  {job.status.value:<10} {job.created_at.isoformat()}  {job.command}")
    click.echo(f"{len(jobs)} of {total} jobs")


@cli.command()
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Claim loops to run in parallel.")
@click.option("--poll-interval", type=click.FloatRange(min=0.01), default=None, help="Seconds between polls of an empty queue.")
def worker(concurrency: int | None, poll_interval: float | None) -> None:
    """Run a worker until interrupted."""
    from cmdqueue.worker.main import run_async

    asyncio.run(run_async(concurrency=concurrency, poll_interval=poll_interval))


@cli.command()
def api() -> None:
    """Run the HTTP API server."""
    from cmdqueue.api.main import run

    run()


if __name__ == "__main__":
    cli()
