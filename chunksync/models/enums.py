"""
Enumerations shared across the chunk replication engine.

- ChunkStatus: lifecycle of a single chunk
- Phase: lifecycle of a replication run
- ExitSeverity: decoded severity of a copy executor exit code
- CopyOption: executor directives attached to a chunk
- EventKind: structured event types emitted during a run
- RunOutcome: three-way classification of a finished run
"""

from enum import Enum


class ChunkStatus(Enum):
    """Lifecycle states of a chunk."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    COMPLETE_WITH_WARNINGS = "complete_with_warnings"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ChunkStatus.COMPLETE,
            ChunkStatus.COMPLETE_WITH_WARNINGS,
            ChunkStatus.FAILED,
        )


class Phase(Enum):
    """Phases of a replication run."""
    IDLE = "idle"
    SCANNING = "scanning"
    REPLICATING = "replicating"
    PAUSED = "paused"
    STOPPING = "stopping"
    COMPLETE = "complete"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.STOPPED)


class ExitSeverity(Enum):
    """Severity of a copy outcome, ordered from least to most severe."""
    SUCCESS = 0
    WARNING = 1
    ERROR = 2
    FATAL = 3

    @property
    def is_failure(self) -> bool:
        return self in (ExitSeverity.ERROR, ExitSeverity.FATAL)


class CopyOption(Enum):
    """Directives passed to the copy executor for a chunk."""
    TOP_LEVEL_ONLY = "top_level_only"                    # Copy files directly inside the source only
    EXCLUDE_SUBDIRECTORIES = "exclude_subdirectories"    # Never descend into child directories
    EXCLUDE_REPARSE_POINTS = "exclude_reparse_points"    # Skip junctions and symlinked directories


class EventKind(Enum):
    """Structured events emitted by the orchestrator."""
    CHUNK_STARTED = "chunk_started"
    CHUNK_COMPLETED = "chunk_completed"
    CHUNK_RETRIED = "chunk_retried"
    CHUNK_FAILED = "chunk_failed"
    CIRCUIT_OPENED = "circuit_opened"
    CIRCUIT_CLOSED = "circuit_closed"
    PROFILE_COMPLETED = "profile_completed"
    RUN_STOPPED = "run_stopped"


class RunOutcome(Enum):
    """User-visible result of a finished run."""
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    TOTAL_FAILURE = "total_failure"
