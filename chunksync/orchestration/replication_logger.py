"""ReplicationLogger for writing a structured replication run log.

This module provides the ReplicationLogger class, a context-managed log file
with sections for the run header, each profile's chunk plan, one line per
chunk event, and the final summary. A ReplicationLogger is callable with a
ChunkEvent, so it can be passed directly as an orchestrator event sink.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from chunksync.config import ReplicationProfile, ReplicationSettings
from chunksync.models import Chunk, ChunkEvent, ReplicationSummary


class ReplicationLogger:
    """Logger for replication runs with a structured output format.

    Usage:
        with ReplicationLogger() as run_log:
            run_log.log_header(profiles, settings)
            runner = ReplicationRunner(
                profiles, executor, settings,
                event_sink=run_log,
                plan_listener=run_log.log_plan,
            )
            summary = runner.run()
            run_log.log_summary(summary)

    Attributes:
        SEPARATOR: The 65-character separator line used between sections.
    """

    SEPARATOR = "=" * 65

    def __init__(self, log_file_path: Optional[Path] = None) -> None:
        """Initialize the ReplicationLogger.

        Args:
            log_file_path: Optional path for the log file. If not provided,
                generates a timestamped filename in the current directory.

        Raises:
            OSError: If the log file path is not writable.
        """
        self._start_timestamp = datetime.now()
        self._file_handle: Optional[TextIO] = None
        self._events_logged = 0

        if log_file_path is None:
            timestamp_str = self._start_timestamp.strftime("%Y-%m-%d_%H-%M-%S")
            self._log_file_path = Path.cwd() / f"replication_log_{timestamp_str}.log"
        else:
            self._log_file_path = Path(log_file_path)

        self._validate_path()

    def _validate_path(self) -> None:
        """Validate that the log file path is writable.

        Raises:
            OSError: If the parent directory doesn't exist or is not writable.
        """
        parent = self._log_file_path.parent
        if not parent.exists():
            raise OSError(f"Parent directory does not exist: {parent}")
        if not parent.is_dir():
            raise OSError(f"Parent path is not a directory: {parent}")
        try:
            test_file = parent / f".chunksync_test_{id(self)}"
            test_file.touch()
            test_file.unlink()
        except PermissionError:
            raise OSError(f"Permission denied: cannot write to {parent}")

    def __enter__(self) -> "ReplicationLogger":
        """Open the log file.

        Raises:
            OSError: If the file cannot be opened for writing.
        """
        try:
            self._file_handle = open(self._log_file_path, "w", encoding="utf-8")
        except OSError as e:
            raise OSError(f"Cannot open log file for writing: {e}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Close the log file, even if an exception occurred."""
        self.close()

    def close(self) -> None:
        if self._file_handle is not None:
            try:
                self._file_handle.close()
            except OSError as e:
                print(f"Warning: Error closing log file: {e}", file=sys.stderr)
            finally:
                self._file_handle = None

    def __call__(self, event: ChunkEvent) -> None:
        self.log_event(event)

    def get_log_path(self) -> Path:
        """Get the path to the log file."""
        return self._log_file_path

    def log_header(
        self,
        profiles: Sequence[ReplicationProfile],
        settings: ReplicationSettings,
    ) -> None:
        """Write the header section: timestamp, profiles and key settings."""
        thresholds = settings.thresholds
        self._write_separator()
        self._write_line("chunksync - Replication Log")
        self._write_separator()
        self._write_line(f"Timestamp: {self._format_timestamp(self._start_timestamp)}")
        self._write_line(f"Profiles: {len(profiles)}")
        for profile in profiles:
            self._write_line(f"- {profile.name}: {profile.source} -> {profile.destination}", indent=2)
        self._write_line(f"Max concurrent jobs: {settings.max_concurrent_jobs}")
        self._write_line(f"Max retries: {settings.max_retries}")
        self._write_line(
            f"Thresholds: {self._format_size(thresholds.max_size_bytes)}, "
            f"{thresholds.max_files:,} files, depth {thresholds.max_depth}"
        )
        self._write_line("")

    def log_plan(
        self,
        profile: ReplicationProfile,
        chunks: List[Chunk],
        skipped: Optional[List[str]] = None,
    ) -> None:
        """Write the plan section for one profile."""
        self._write_separator()
        self._write_line(f"PLAN: {profile.name}")
        self._write_separator()
        self._write_line(f"Source: {profile.source}")
        self._write_line(f"Destination: {profile.destination}")
        self._write_line(f"Chunks: {len(chunks)}")
        self._write_line(
            f"Estimated size: {self._format_size(sum(c.estimated_size_bytes for c in chunks))}"
        )
        self._write_line("")

        for chunk in chunks:
            kind = "files-only" if chunk.is_files_only else "tree"
            self._write_line(
                f"#{chunk.chunk_id} [{kind}, depth {chunk.depth}] {chunk.source_path} "
                f"({chunk.estimated_file_count:,} files, "
                f"{self._format_size(chunk.estimated_size_bytes)})",
                indent=2,
            )

        if skipped:
            self._write_line("Skipped (not accessible):")
            for path in skipped:
                self._write_line(f"- {path}", indent=2)
        self._write_line("")

    def log_event(self, event: ChunkEvent) -> None:
        """Write one line for a chunk or profile event."""
        self._events_logged += 1
        parts = [f"[{self._format_timestamp(event.timestamp)}]", event.kind.value.upper()]
        if event.chunk_id is not None:
            parts.append(f"#{event.chunk_id}")
        if event.severity is not None:
            parts.append(f"severity={event.severity.name.lower()}")
        if event.retry_count:
            parts.append(f"retry={event.retry_count}")
        if event.files_copied or event.bytes_copied:
            parts.append(f"files={event.files_copied:,}")
            parts.append(f"bytes={event.bytes_copied:,}")
        if event.duration_ms:
            parts.append(f"duration={self._format_duration(event.duration_ms / 1000)}")
        if event.source is not None:
            parts.append(f"{event.source} -> {event.destination}")
        if event.detail:
            parts.append(f"({event.detail})")
        self._write_line(" ".join(parts))

    def log_summary(self, summary: ReplicationSummary) -> None:
        """Write the summary section."""
        self._write_line("")
        self._write_separator()
        self._write_line("SUMMARY")
        self._write_separator()
        self._write_line(f"Outcome: {summary.outcome.value.replace('_', ' ').upper()}")
        if summary.interrupted:
            self._write_line("Run was stopped before completion")
        self._write_line(f"Profiles processed: {summary.profiles_processed}")
        self._write_line(f"Chunks planned: {summary.total_chunks:,}")
        self._write_line(f"Chunks complete: {summary.chunks_complete:,}")
        self._write_line(f"Chunks with warnings: {summary.chunks_with_warnings:,}")
        self._write_line(f"Chunks failed: {summary.chunks_failed:,}")
        self._write_line(f"Chunks cancelled: {summary.chunks_cancelled:,}")
        self._write_line(f"Files copied: {summary.files_copied:,}")
        self._write_line(f"Bytes copied: {summary.bytes_copied:,}")

        if summary.errors:
            self._write_line(f"Total errors: {len(summary.errors)}")
            self._write_line("Errors:")
            for error in summary.errors:
                self._write_line(f"  - {error}")

        self._write_line(f"Duration: {self._format_duration(summary.duration_seconds)}")
        self._write_line("")
        self._write_line(f"Log file: {self._log_file_path}")
        self._write_separator()

    def _format_duration(self, seconds: float) -> str:
        """Format a duration like "45s", "5m 23s" or "1h 5m 30s"."""
        total_seconds = int(seconds)

        if total_seconds < 60:
            return f"{total_seconds}s"

        hours = total_seconds // 3600
        minutes = (total_seconds % 3600) // 60
        secs = total_seconds % 60

        if hours > 0:
            return f"{hours}h {minutes}m {secs}s"
        else:
            return f"{minutes}m {secs}s"

    def _format_size(self, bytes_size: int) -> str:
        if bytes_size < 1024 * 1024:
            return f"{bytes_size / 1024:.1f} KB"
        elif bytes_size < 1024 * 1024 * 1024:
            return f"{bytes_size / (1024 * 1024):.1f} MB"
        else:
            return f"{bytes_size / (1024 * 1024 * 1024):.1f} GB"

    def _format_timestamp(self, dt: datetime) -> str:
        return dt.strftime("%Y-%m-%d %H:%M:%S")

    def _write_separator(self) -> None:
        self._write_line(self.SEPARATOR)

    def _write_line(self, text: str, indent: int = 0) -> None:
        """Write a line to the log file with optional indentation.

        Args:
            text: The text to write.
            indent: Number of spaces to indent the line.
        """
        if self._file_handle is None:
            print(
                f"Warning: Attempted to write to closed log file: {text}",
                file=sys.stderr,
            )
            return

        try:
            self._file_handle.write(" " * indent + text + "\n")
            self._file_handle.flush()
        except OSError as e:
            print(f"Warning: Error writing to log file: {e}", file=sys.stderr)
