"""chunksync - Chunked Directory Replication.

A Python application for replicating very large directory trees by splitting
them into bounded chunks and copying many chunks in parallel with retries,
a circuit breaker and live progress.
"""

__version__ = "0.1.0"

from .models import (
    Chunk,
    ChunkStatus,
    CopyOption,
    ExitSeverity,
    Phase,
    ReplicationSummary,
    StatusSnapshot,
)

__all__ = [
    "__version__",
    "Chunk",
    "ChunkStatus",
    "CopyOption",
    "ExitSeverity",
    "Phase",
    "ReplicationSummary",
    "StatusSnapshot",
]


def main() -> None:
    """Entry point for the chunksync CLI application.

    This function is called when the `chunksync` command is invoked after
    package installation via pip. It imports and runs the Typer app
    from the chunksync.cli module.
    """
    from chunksync.cli import app
    app()
