"""Staged OCR pipeline CLI."""

import asyncio
import json
import signal
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ocrstage.bootstrap import build_pipeline
from ocrstage.config import get_settings
from ocrstage.logging_config import setup_logging
from ocrstage.models import FileDescriptor, JobStatus, MessageType
from ocrstage.storage import close_db, create_engine, init_db

app = typer.Typer(
    name="ocrstage",
    help="Staged OCR pipeline: intake, stage workers and job inspection",
    add_completion=False,
)
console = Console()

STAGES = {
    "process": MessageType.PROCESS_DOCUMENT,
    "parse": MessageType.PARSE_DOCUMENT,
    "refine": MessageType.REFINE_DOCUMENT,
}


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override LOG_LEVEL"),
    log_format: Optional[str] = typer.Option(None, help="text or json"),
) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level, log_format or settings.log_format)


@app.command("init-db")
def init_database() -> None:
    """Create the job record table."""

    async def _run() -> None:
        engine = create_engine(get_settings())
        try:
            await init_db(engine)
        finally:
            await close_db(engine)

    asyncio.run(_run())
    console.print("[green]Database initialized[/green]")


@app.command()
def submit(
    file_name: str = typer.Argument(..., help="Object key of the uploaded document"),
    file_id: str = typer.Option(..., help="Caller's file identifier"),
    name: Optional[str] = typer.Option(None, help="Original filename"),
    file_type: Optional[str] = typer.Option(None, help="File type, e.g. pdf"),
    url: Optional[str] = typer.Option(None, help="Public URL of the document"),
) -> None:
    """Submit an uploaded document for recognition."""
    descriptor = FileDescriptor(
        file_name=file_name, file_id=file_id, name=name, file_type=file_type, url=url
    )

    async def _run():
        async with build_pipeline(get_settings()) as pipeline:
            return await pipeline.orchestrator.submit(descriptor)

    result = asyncio.run(_run())
    if not result.success:
        console.print(f"[red]Rejected:[/red] {file_name} ({result.status.value})")
        raise typer.Exit(code=1)
    console.print(f"[bold blue]Submitted:[/bold blue] {file_name}")
    console.print(f"[dim]Job id: {result.external_job_id}[/dim]")


@app.command()
def worker(
    batch_size: Optional[int] = typer.Option(None, help="Messages per receive"),
    wait_seconds: Optional[int] = typer.Option(None, help="Long-poll wait"),
    once: bool = typer.Option(False, help="Process a single batch and exit"),
) -> None:
    """Consume pipeline messages from the queue."""

    async def _run() -> None:
        async with build_pipeline(get_settings()) as pipeline:
            queue_worker = pipeline.worker(batch_size, wait_seconds)
            if once:
                outcomes = await queue_worker.run_once()
                console.print(f"Processed {len(outcomes)} messages")
                return

            stop = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, stop.set)
            await queue_worker.run(stop)

    asyncio.run(_run())


@app.command()
def advance(
    job_id: str = typer.Argument(..., help="External job id"),
    stage: str = typer.Option("parse", help="process, parse or refine"),
) -> None:
    """Run one pipeline stage for a job now."""
    if stage not in STAGES:
        raise typer.BadParameter(f"stage must be one of {', '.join(STAGES)}")

    async def _run():
        async with build_pipeline(get_settings()) as pipeline:
            return await pipeline.orchestrator.advance(job_id, STAGES[stage])

    record = asyncio.run(_run())
    console.print(f"[green]{job_id}[/green] is now {record.current_step.value}")


@app.command()
def show(job_id: str = typer.Argument(..., help="External job id")) -> None:
    """Print a job record as JSON."""

    async def _run():
        async with build_pipeline(get_settings()) as pipeline:
            return await pipeline.orchestrator.find_one(job_id)

    result = asyncio.run(_run())
    if not result.ok:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(result.data.model_dump(mode="json", by_alias=True)))


@app.command()
def jobs(
    status: Optional[JobStatus] = typer.Option(None, help="Only jobs in this status"),
    limit: int = typer.Option(20, help="Page size"),
    cursor: Optional[str] = typer.Option(None, help="Continuation token"),
    desc: bool = typer.Option(False, help="Newest first"),
) -> None:
    """List jobs."""

    async def _run():
        async with build_pipeline(get_settings()) as pipeline:
            return await pipeline.orchestrator.list_jobs(
                status=status, limit=limit, cursor=cursor, descending=desc
            )

    page = asyncio.run(_run())

    table = Table(title=f"Jobs ({page.count})")
    table.add_column("Created")
    table.add_column("Job id")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Confidence", justify="right")
    for record in page.items:
        table.add_row(
            record.sort_key,
            record.external_job_id or "-",
            record.original_filename or record.file_name or "-",
            record.current_step.value,
            f"{record.confidence:.1f}" if record.confidence is not None else "-",
        )
    console.print(table)
    if page.cursor:
        console.print(f"[dim]Next page: --cursor {page.cursor}[/dim]")


@app.command()
def count(
    status: Optional[JobStatus] = typer.Option(None, help="Only jobs in this status"),
) -> None:
    """Count jobs."""

    async def _run() -> int:
        async with build_pipeline(get_settings()) as pipeline:
            return await pipeline.orchestrator.count(status)

    console.print(asyncio.run(_run()))


if __name__ == "__main__":
    app()
