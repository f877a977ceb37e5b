"""Replication orchestration package for chunksync.

This package contains the components that run a replication:
- JobOrchestrator: Tick-driven scheduler for chunk copy jobs.
- ReplicationRunner: Single-threaded owner that plans profiles and ticks
  the orchestrator, controlled through queued commands.
- ReplicationLogger: Structured run log file and chunk event sink.
"""

from chunksync.orchestration.job_orchestrator import (
    EventSink,
    JobOrchestrator,
    classify_outcome,
)
from chunksync.orchestration.replication_logger import ReplicationLogger
from chunksync.orchestration.replication_runner import ReplicationRunner, RunnerCommand

__all__ = [
    "EventSink",
    "JobOrchestrator",
    "ReplicationLogger",
    "ReplicationRunner",
    "RunnerCommand",
    "classify_outcome",
]
