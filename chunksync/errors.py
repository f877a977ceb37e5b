"""Exception types for the chunk replication engine.

Only PlanningError, its subclass ProfilingError and PlanningCancelled are
raised across module boundaries; the copy-side types describe outcomes that
the orchestrator records on chunks and events instead of raising out of a
tick.
"""

from typing import Optional


class ChunkSyncError(Exception):
    """Base class for all chunksync errors."""


class PlanningError(ChunkSyncError):
    """A subtree could not be profiled or enumerated during planning."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ProfilingError(PlanningError):
    """The directory profiler could not produce a profile for a path."""


class PlanningCancelled(ChunkSyncError):
    """Planning was asked to stop before the tree was fully profiled."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"planning stopped at {path}")


class TransientCopyError(ChunkSyncError):
    """A chunk finished with Error or Fatal severity and may be retried."""

    def __init__(self, chunk_id: int, exit_code: int, detail: str = "") -> None:
        self.chunk_id = chunk_id
        self.exit_code = exit_code
        self.detail = detail
        super().__init__(f"chunk {chunk_id} failed with exit code {exit_code}: {detail}")


class PermanentChunkFailure(TransientCopyError):
    """A chunk exhausted its retries."""


class CircuitOpenCondition(ChunkSyncError):
    """Too many consecutive chunk failures; starting new work is paused."""

    def __init__(self, failures: int, reopen_at: Optional[float] = None) -> None:
        self.failures = failures
        self.reopen_at = reopen_at
        super().__init__(f"circuit opened after {failures} consecutive failures")
