"""
chunksync - CLI Interface.

A command-line interface for replicating very large directory trees by
splitting them into bounded chunks and copying many chunks in parallel.

Usage Examples:
    # Preview how a tree would be split (no copying)
    chunksync plan \\\\server\\share D:\\Backup\\share

    # Replicate with 8 parallel robocopy jobs
    chunksync run \\\\server\\share D:\\Backup\\share --max-jobs 8

    # Smaller chunks, a run log and verbose diagnostics
    chunksync run /data/share /backup/share --max-size-gb 2 --log-file run.log --verbose
"""

import logging
import os
import time
from contextlib import ExitStack
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from chunksync.config import GIB, MIB, PlanThresholds, ReplicationProfile, ReplicationSettings
from chunksync.models import ReplicationSummary, RunOutcome
from chunksync.operations import CopyExecutor, RobocopyExecutor
from chunksync.orchestration import ReplicationLogger, ReplicationRunner
from chunksync.planning import ChunkPlanner
from chunksync.ui import ReplicationTUI

__version__ = "0.1.0"

EXIT_CODES = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.PARTIAL_FAILURE: 1,
    RunOutcome.TOTAL_FAILURE: 2,
}
EXIT_INTERRUPTED = 130

# Initialize Typer app
app = typer.Typer(
    name="chunksync",
    help="Replicate large directory trees as parallel, bounded copy chunks.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for consistent output formatting
console = Console()


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        console.print(f"chunksync v{__version__}")
        raise typer.Exit()


def configure_logging(verbose: bool) -> None:
    """Route diagnostic logging through Rich, at DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def validate_source(source: Path) -> None:
    """
    Validate that the source directory exists and is readable.

    Raises:
        typer.Exit: If validation fails with descriptive error message.
    """
    if not source.exists():
        console.print(f"[red]Error:[/red] Source does not exist: {source}")
        raise typer.Exit(1)

    if not source.is_dir():
        console.print(f"[red]Error:[/red] Source is not a directory: {source}")
        raise typer.Exit(1)

    if not os.access(source, os.R_OK):
        console.print(f"[red]Error:[/red] Permission denied - cannot read: {source}")
        raise typer.Exit(1)


def build_thresholds(
    max_size_gb: float, max_files: int, max_depth: int, min_size_mb: float
) -> PlanThresholds:
    """Build PlanThresholds from CLI units, exiting on invalid values."""
    try:
        return PlanThresholds(
            max_size_bytes=int(max_size_gb * GIB),
            max_files=max_files,
            max_depth=max_depth,
            min_size_bytes=int(min_size_mb * MIB),
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def create_executor(
    robocopy_threads: Optional[int], robocopy_retries: int, robocopy_wait: int
) -> CopyExecutor:
    """Create the copy executor used by ``run``."""
    return RobocopyExecutor(
        retries=robocopy_retries,
        wait_seconds=robocopy_wait,
        threads=robocopy_threads,
    )


def run_with_progress(runner: ReplicationRunner, tui: ReplicationTUI) -> ReplicationSummary:
    """Run in the background while rendering snapshots; Ctrl+C requests a stop."""
    progress, update = tui.create_progress_display()
    runner.start()
    with progress:
        try:
            while runner.is_running:
                update(runner.snapshot)
                time.sleep(0.2)
        except KeyboardInterrupt:
            console.print("\n[yellow]Stopping - active copies will be terminated.[/yellow]")
            runner.stop()
        summary = runner.join()
        update(runner.snapshot)
    return summary


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Replicate large directory trees as parallel, bounded copy chunks."""
    pass


@app.command()
def plan(
    source: Path = typer.Argument(..., help="Source directory to replicate."),
    destination: Path = typer.Argument(..., help="Destination root directory."),
    max_size_gb: float = typer.Option(10.0, "--max-size-gb", help="Maximum chunk size in GiB."),
    max_files: int = typer.Option(50_000, "--max-files", help="Maximum files per chunk."),
    max_depth: int = typer.Option(5, "--max-depth", help="Maximum split depth."),
    min_size_mb: float = typer.Option(
        100.0, "--min-size-mb", help="Directories smaller than this are never split (MiB)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output."),
) -> None:
    """
    Show how SOURCE would be split into chunks, without copying anything.
    """
    configure_logging(verbose)
    validate_source(source)
    thresholds = build_thresholds(max_size_gb, max_files, max_depth, min_size_mb)

    planner = ChunkPlanner(thresholds=thresholds)
    chunks = planner.plan(str(source.resolve()), str(destination.resolve()))

    ReplicationTUI(console=console).display_plan(
        source.resolve().name or str(source), chunks, planner.describe_skipped()
    )


@app.command()
def run(
    source: Path = typer.Argument(..., help="Source directory to replicate."),
    destination: Path = typer.Argument(..., help="Destination root directory."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Profile name for logs."),
    max_size_gb: float = typer.Option(10.0, "--max-size-gb", help="Maximum chunk size in GiB."),
    max_files: int = typer.Option(50_000, "--max-files", help="Maximum files per chunk."),
    max_depth: int = typer.Option(5, "--max-depth", help="Maximum split depth."),
    min_size_mb: float = typer.Option(
        100.0, "--min-size-mb", help="Directories smaller than this are never split (MiB)."
    ),
    max_jobs: int = typer.Option(4, "--max-jobs", "-j", help="Concurrent copy jobs (1-16)."),
    max_retries: int = typer.Option(3, "--max-retries", help="Retries per failing chunk."),
    retry_delay: float = typer.Option(
        0.0, "--retry-delay", help="Seconds before a failed chunk is retried."
    ),
    job_timeout: Optional[float] = typer.Option(
        None, "--job-timeout", help="Kill and retry chunks running longer than this (seconds)."
    ),
    tick_interval: float = typer.Option(
        1.0, "--tick-interval", help="Seconds between scheduling passes."
    ),
    robocopy_threads: Optional[int] = typer.Option(
        None, "--robocopy-threads", help="Pass /MT:N to each robocopy job."
    ),
    robocopy_retries: int = typer.Option(2, "--robocopy-retries", help="robocopy /R value."),
    robocopy_wait: int = typer.Option(5, "--robocopy-wait", help="robocopy /W value."),
    log_file: Optional[Path] = typer.Option(
        None, "--log-file", "-l", help="Path for the replication log file."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-V", help="Enable verbose output."),
) -> None:
    """
    Plan SOURCE and replicate it into DESTINATION.

    Exit codes: 0 success, 1 partial failure, 2 total failure, 130 stopped.
    """
    configure_logging(verbose)
    validate_source(source)
    thresholds = build_thresholds(max_size_gb, max_files, max_depth, min_size_mb)

    if not 1 <= max_jobs <= 16:
        console.print("[red]Error:[/red] --max-jobs must be between 1 and 16")
        raise typer.Exit(1)

    try:
        settings = ReplicationSettings(
            max_concurrent_jobs=max_jobs,
            max_retries=max_retries,
            retry_delay=retry_delay,
            job_timeout=job_timeout,
            tick_interval=tick_interval,
            thresholds=thresholds,
        )
        executor = create_executor(robocopy_threads, robocopy_retries, robocopy_wait)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    resolved_source = source.resolve()
    profile = ReplicationProfile(
        name=name or resolved_source.name or str(resolved_source),
        source=str(resolved_source),
        destination=str(destination.resolve()),
    )
    tui = ReplicationTUI(console=console)

    run_log: Optional[ReplicationLogger] = None
    if log_file:
        try:
            run_log = ReplicationLogger(log_file)
        except OSError as e:
            console.print(f"[red]Error:[/red] Failed to create log file: {e}")
            raise typer.Exit(1)

    with ExitStack() as stack:
        if run_log is not None:
            stack.enter_context(run_log)
            run_log.log_header([profile], settings)

        runner = ReplicationRunner(
            [profile],
            executor,
            settings,
            event_sink=run_log,
            plan_listener=run_log.log_plan if run_log is not None else None,
        )
        summary = run_with_progress(runner, tui)

        if run_log is not None:
            run_log.log_summary(summary)

    tui.display_summary(summary)
    if log_file:
        console.print(f"[dim]Log written to: {log_file}[/dim]")

    if summary.interrupted:
        raise typer.Exit(EXIT_INTERRUPTED)
    exit_code = EXIT_CODES[summary.outcome]
    if exit_code:
        raise typer.Exit(exit_code)


if __name__ == "__main__":
    app()
