"""Terminal display for chunksync plans and replication runs.

This module provides the ReplicationTUI class, a Rich-based status reporter.
It renders chunk plans as tables, shows live progress from runner snapshots,
and prints the final summary.

Example:
    from chunksync.ui import ReplicationTUI

    tui = ReplicationTUI()
    tui.display_plan("share", chunks)
    progress, update = tui.create_progress_display()
    with progress:
        while runner.is_running:
            update(runner.snapshot)
    tui.display_summary(summary)
"""

from typing import Callable, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
)
from rich.table import Table

from chunksync.models import Chunk, Phase, ReplicationSummary, RunOutcome, StatusSnapshot


class ReplicationTUI:
    """Rich-based status reporter for replication runs.

    Args:
        console: Optional Rich Console instance for output. Pass a Console
            writing to a StringIO to capture output in tests.

    Attributes:
        console: The Rich Console instance used for all output.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def display_plan(
        self,
        profile_name: str,
        chunks: List[Chunk],
        skipped: Optional[List[str]] = None,
    ) -> None:
        """Display a chunk plan as a table.

        Args:
            profile_name: Name of the planned profile.
            chunks: Chunks in planner order.
            skipped: Subtrees the planner could not profile.
        """
        total_size = sum(chunk.estimated_size_bytes for chunk in chunks)
        total_files = sum(chunk.estimated_file_count for chunk in chunks)
        header_text = (
            f"Chunks: {len(chunks):,}\n"
            f"Files: {total_files:,}\n"
            f"Estimated size: {self._format_size(total_size)}"
        )
        self.console.print(Panel(header_text, title=f"Plan: {profile_name}", border_style="blue"))

        if not chunks:
            self.console.print("[yellow]Nothing to copy.[/yellow]")
        else:
            table = Table(title="Chunks")
            table.add_column("#", justify="right", style="cyan", no_wrap=True)
            table.add_column("Source", style="white")
            table.add_column("Type", style="magenta")
            table.add_column("Depth", justify="right")
            table.add_column("Files", justify="right")
            table.add_column("Size", justify="right")

            for chunk in chunks:
                table.add_row(
                    str(chunk.chunk_id),
                    self._truncate_name(chunk.source_path, max_length=70),
                    "files only" if chunk.is_files_only else "tree",
                    str(chunk.depth),
                    f"{chunk.estimated_file_count:,}",
                    self._format_size(chunk.estimated_size_bytes),
                )
            self.console.print(table)

        if skipped:
            self._display_errors([f"Skipped (not accessible): {path}" for path in skipped])

    def create_progress_display(self) -> tuple[Progress, Callable[[StatusSnapshot], None]]:
        """Create a progress bar and an update function fed with snapshots.

        The caller must use the returned Progress as a context manager.

        Returns:
            Tuple of (Progress, update) where ``update`` takes a StatusSnapshot.
        """
        progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("{task.fields[detail]}", style="dim"),
            console=self.console,
        )
        overall_task = progress.add_task("Starting...", total=100.0, detail="")

        def update(snapshot: StatusSnapshot) -> None:
            progress.update(
                overall_task,
                completed=snapshot.overall_percent,
                description=self._describe_phase(snapshot),
                detail=self._describe_counts(snapshot),
            )

        return progress, update

    def display_summary(self, summary: ReplicationSummary) -> None:
        """Display final statistics after the run finishes."""
        if summary.interrupted:
            title, style = "Replication Stopped", "yellow"
        elif summary.outcome == RunOutcome.SUCCESS:
            title, style = "Replication Complete", "green"
        elif summary.outcome == RunOutcome.PARTIAL_FAILURE:
            title, style = "Replication Partially Failed", "yellow"
        else:
            title, style = "Replication Failed", "red"
        self.console.print(Panel(title, border_style=style))

        table = Table(show_header=True, header_style="bold")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")

        table.add_row("Profiles processed", f"{summary.profiles_processed:,}")
        table.add_row("Chunks planned", f"{summary.total_chunks:,}")
        table.add_row("Chunks complete", f"{summary.chunks_complete:,}")
        table.add_row("Chunks with warnings", f"{summary.chunks_with_warnings:,}")
        table.add_row("Chunks failed", f"{summary.chunks_failed:,}")
        table.add_row("Chunks cancelled", f"{summary.chunks_cancelled:,}")
        table.add_row("Files copied", f"{summary.files_copied:,}")
        table.add_row("Data copied", self._format_size(summary.bytes_copied))
        table.add_row("Duration", self._format_duration(summary.duration_seconds))

        self.console.print(table)

        if summary.errors:
            self._display_errors(summary.errors)

    def _describe_phase(self, snapshot: StatusSnapshot) -> str:
        name = snapshot.profile_name or "run"
        if snapshot.phase == Phase.SCANNING:
            return f"Scanning {name}"
        if snapshot.phase == Phase.PAUSED:
            reason = "circuit open" if snapshot.circuit_open else "paused"
            return f"[yellow]{name} ({reason})[/yellow]"
        if snapshot.phase == Phase.STOPPED:
            return f"[red]{name} stopped[/red]"
        if snapshot.phase == Phase.COMPLETE:
            return f"[green]{name} complete[/green]"
        return f"Replicating {name}"

    def _describe_counts(self, snapshot: StatusSnapshot) -> str:
        eta = (
            self._format_duration(snapshot.eta_seconds)
            if snapshot.eta_seconds is not None
            else "--"
        )
        return (
            f"chunks {snapshot.chunks_complete}/{snapshot.chunks_total}"
            f" failed {snapshot.chunks_failed}"
            f" active {snapshot.active_jobs} queued {snapshot.queued_jobs}"
            f" | {self._format_size(snapshot.bytes_complete)}"
            f"/{self._format_size(snapshot.bytes_total)}"
            f" | elapsed {self._format_duration(snapshot.elapsed_seconds)} eta {eta}"
        )

    def _display_errors(self, errors: List[str]) -> None:
        """Display error messages in a separate panel, at most ten of them."""
        max_display = 10
        displayed_errors = errors[:max_display]
        remaining = len(errors) - max_display

        error_text = "\n".join(f"- {e}" for e in displayed_errors)
        if remaining > 0:
            error_text += f"\n\n... and {remaining} more errors"

        self.console.print(
            Panel(error_text, title=f"Errors ({len(errors)})", border_style="red")
        )

    def _format_size(self, bytes_size: int) -> str:
        """Convert bytes to human-readable format (e.g. "10.5 MB")."""
        if bytes_size < 1024:
            return f"{bytes_size} B"
        elif bytes_size < 1024 * 1024:
            return f"{bytes_size / 1024:.1f} KB"
        elif bytes_size < 1024 * 1024 * 1024:
            return f"{bytes_size / (1024 * 1024):.1f} MB"
        else:
            return f"{bytes_size / (1024 * 1024 * 1024):.1f} GB"

    def _format_duration(self, seconds: float) -> str:
        if seconds < 0:
            seconds = 0
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = int(seconds % 60)
        if hours:
            return f"{hours}h {minutes}m {secs}s"
        return f"{minutes}m {secs}s"

    def _truncate_name(self, name: str, max_length: int = 60) -> str:
        """Shorten long paths, keeping their tail."""
        if len(name) > max_length:
            return "..." + name[-(max_length - 3):]
        return name
