"""
Core data models for the chunk replication engine.

This module contains the following dataclasses:
- Chunk: One bounded unit of copy work
- DirectoryProfile: Size and count statistics for a directory tree
- CopyProgress: Live, non-blocking view of a running copy job
- CopyResult: Final statistics of a finished copy job
- ExitClassification: Decoded copy executor exit code
- ActiveJob: An in-flight chunk and its executor handle
- OrchestrationState: Mutable state of one replication run
- StatusSnapshot: Immutable copy of run state for status readers
- ChunkEvent: Structured event for logging and audit sinks
- ReplicationSummary: Aggregate result of a replication run
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, FrozenSet, List, Optional, Tuple

from .enums import ChunkStatus, CopyOption, EventKind, ExitSeverity, Phase, RunOutcome


@dataclass
class Chunk:
    """One unit of copy work: a directory or a files-only slice of one."""
    source_path: str                  # Absolute source directory
    destination_path: str             # Absolute destination directory
    estimated_size_bytes: int         # Advisory, from the profiler at planning time
    estimated_file_count: int         # Advisory, from the profiler at planning time
    depth: int                        # Recursion depth the chunk was created at
    is_files_only: bool = False       # Loose files only; subdirectories are other chunks
    copy_options: FrozenSet[CopyOption] = frozenset()
    chunk_id: int = 0                 # Assigned after planning completes
    status: ChunkStatus = ChunkStatus.PENDING
    retry_count: int = 0
    last_error: Optional[str] = None  # Exit detail of the most recent failure


@dataclass(frozen=True)
class DirectoryProfile:
    """Size and count statistics for a directory tree."""
    path: str
    total_size_bytes: int
    file_count: int
    dir_count: int
    last_scanned: Optional[datetime] = None

    @property
    def is_empty(self) -> bool:
        return self.total_size_bytes == 0 and self.file_count == 0


@dataclass(frozen=True)
class CopyProgress:
    """Non-blocking status of a copy job."""
    is_complete: bool
    bytes_copied_so_far: int = 0
    current_item: str = ""


@dataclass(frozen=True)
class CopyResult:
    """Final statistics of a copy job; only available once it is complete."""
    exit_code: int
    files_copied: int = 0
    bytes_copied: int = 0
    duration_ms: int = 0


@dataclass(frozen=True)
class ExitClassification:
    """A copy executor exit code decoded into a severity and named flags."""
    exit_code: int
    severity: ExitSeverity
    copied_files: bool = False        # Bit 1
    extras_present: bool = False      # Bit 2
    mismatches_detected: bool = False # Bit 4
    copy_failures: bool = False       # Bit 8
    fatal_error: bool = False         # Bit 16, or a code outside the known bitmask
    detail: str = ""

    @property
    def is_retryable(self) -> bool:
        return self.severity.is_failure


@dataclass
class ActiveJob:
    """An in-flight chunk tracked by the orchestrator."""
    handle: Any
    chunk: Chunk
    started_at: float
    bytes_copied: int = 0
    current_item: str = ""


@dataclass
class OrchestrationState:
    """Mutable state of one replication run. Written only by JobOrchestrator.tick()."""
    phase: Phase = Phase.IDLE
    profile_name: str = ""
    chunk_queue: Deque[Chunk] = field(default_factory=deque)
    active_jobs: Dict[Any, ActiveJob] = field(default_factory=dict)
    completed_chunks: List[Chunk] = field(default_factory=list)
    failed_chunks: List[Chunk] = field(default_factory=list)
    cancelled_chunks: List[Chunk] = field(default_factory=list)
    total_chunks: int = 0
    bytes_complete: int = 0
    bytes_total: int = 0
    files_copied: int = 0             # Actual, from executor results
    bytes_copied: int = 0             # Actual, from executor results
    consecutive_failure_count: int = 0
    circuit_open_until: Optional[float] = None
    stop_requested: bool = False
    pause_requested: bool = False
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    eta_seconds: Optional[float] = None


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-only view of a run for status reporters."""
    phase: Phase
    profile_name: str = ""
    profile_percent: float = 0.0
    overall_percent: float = 0.0
    chunks_complete: int = 0
    chunks_total: int = 0
    chunks_failed: int = 0
    bytes_complete: int = 0
    bytes_total: int = 0
    elapsed_seconds: float = 0.0
    eta_seconds: Optional[float] = None
    active_jobs: int = 0
    queued_jobs: int = 0
    circuit_open: bool = False
    current_items: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ChunkEvent:
    """Structured event describing a chunk or profile lifecycle transition."""
    kind: EventKind
    profile_name: str
    timestamp: datetime
    chunk_id: Optional[int] = None
    source: Optional[str] = None
    destination: Optional[str] = None
    severity: Optional[ExitSeverity] = None
    files_copied: int = 0
    bytes_copied: int = 0
    duration_ms: int = 0
    retry_count: int = 0
    detail: str = ""


@dataclass
class ReplicationSummary:
    """Summary of a replication run returned by ReplicationRunner."""
    profiles_processed: int = 0       # Profiles that reached Complete or Stopped
    total_chunks: int = 0             # Chunks planned across all profiles
    chunks_complete: int = 0          # Includes chunks completed with warnings
    chunks_with_warnings: int = 0
    chunks_failed: int = 0
    chunks_cancelled: int = 0         # Queued or killed when the run was stopped
    files_copied: int = 0
    bytes_copied: int = 0
    bytes_planned: int = 0
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)
    outcome: RunOutcome = RunOutcome.SUCCESS
    interrupted: bool = False         # Whether the run was stopped by the operator
