"""
Models package for the chunk replication engine.

This package provides convenient imports for all enums and data models.
"""

from .enums import (
    ChunkStatus,
    CopyOption,
    EventKind,
    ExitSeverity,
    Phase,
    RunOutcome,
)
from .data_models import (
    ActiveJob,
    Chunk,
    ChunkEvent,
    CopyProgress,
    CopyResult,
    DirectoryProfile,
    ExitClassification,
    OrchestrationState,
    ReplicationSummary,
    StatusSnapshot,
)

__all__ = [
    "ChunkStatus",
    "CopyOption",
    "EventKind",
    "ExitSeverity",
    "Phase",
    "RunOutcome",
    "ActiveJob",
    "Chunk",
    "ChunkEvent",
    "CopyProgress",
    "CopyResult",
    "DirectoryProfile",
    "ExitClassification",
    "OrchestrationState",
    "ReplicationSummary",
    "StatusSnapshot",
]
