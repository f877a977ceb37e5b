"""Configuration objects for planning and replication runs."""

from dataclasses import dataclass, field
from typing import Optional

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB


@dataclass(frozen=True)
class PlanThresholds:
    """Limits that decide when the planner splits a directory into several chunks."""

    max_size_bytes: int = 10 * GIB
    max_files: int = 50_000
    max_depth: int = 5
    min_size_bytes: int = 100 * MIB

    def __post_init__(self) -> None:
        if self.max_size_bytes <= 0:
            raise ValueError(f"max_size_bytes must be positive, got {self.max_size_bytes}")
        if self.max_files <= 0:
            raise ValueError(f"max_files must be positive, got {self.max_files}")
        if self.max_depth < 0:
            raise ValueError(f"max_depth must not be negative, got {self.max_depth}")
        if self.min_size_bytes < 0:
            raise ValueError(f"min_size_bytes must not be negative, got {self.min_size_bytes}")


@dataclass(frozen=True)
class ReplicationSettings:
    """Runtime configuration for the orchestrator and the runner.

    Circuit breaker and retry timing values are plain inputs with their own
    defaults; tune them per environment. The breaker opens as soon as
    ``circuit_failure_threshold`` failures fall inside ``circuit_window``, so
    a threshold of 5 trips on the fifth failure, not the sixth.
    """

    max_concurrent_jobs: int = 4
    max_retries: int = 3
    fatal_max_retries: int = 1
    retry_delay: float = 0.0              # Seconds before a retried chunk is eligible again
    retry_backoff: float = 1.0            # Multiplier applied per additional retry
    job_timeout: Optional[float] = None   # Seconds; None disables the per-job timeout
    circuit_failure_threshold: int = 5    # Failures within circuit_window that open the breaker
    circuit_window: float = 300.0
    circuit_cooldown: float = 120.0
    eta_window: float = 60.0
    tick_interval: float = 1.0
    thresholds: PlanThresholds = field(default_factory=PlanThresholds)

    def __post_init__(self) -> None:
        if self.max_concurrent_jobs < 1:
            raise ValueError(
                f"max_concurrent_jobs must be at least 1, got {self.max_concurrent_jobs}"
            )
        if self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {self.max_retries}")
        if self.fatal_max_retries < 0:
            raise ValueError(
                f"fatal_max_retries must not be negative, got {self.fatal_max_retries}"
            )
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must not be negative, got {self.retry_delay}")
        if self.retry_backoff < 1.0:
            raise ValueError(f"retry_backoff must be at least 1.0, got {self.retry_backoff}")
        if self.job_timeout is not None and self.job_timeout <= 0:
            raise ValueError(f"job_timeout must be positive, got {self.job_timeout}")
        if self.circuit_failure_threshold < 1:
            raise ValueError(
                "circuit_failure_threshold must be at least 1, "
                f"got {self.circuit_failure_threshold}"
            )
        if self.circuit_window <= 0 or self.circuit_cooldown <= 0:
            raise ValueError("circuit_window and circuit_cooldown must be positive")
        if self.eta_window <= 0:
            raise ValueError(f"eta_window must be positive, got {self.eta_window}")
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")


@dataclass(frozen=True)
class ReplicationProfile:
    """A named source tree and the destination it is replicated to."""

    name: str
    source: str
    destination: str
