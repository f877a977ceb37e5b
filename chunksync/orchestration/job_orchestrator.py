"""JobOrchestrator for scheduling chunk copies against a CopyExecutor.

This module provides the JobOrchestrator class that owns the chunk queue and
the set of in-flight copy jobs for one replication run. All state changes
happen inside ``tick()``, which starts new work up to the concurrency limit,
reaps finished jobs, retries or fails chunks, trips and clears the circuit
breaker, and recomputes progress. ``tick()`` never waits on a copy job.

Example:
    from chunksync.orchestration import JobOrchestrator
    from chunksync.operations import RobocopyExecutor

    orchestrator = JobOrchestrator(RobocopyExecutor())
    orchestrator.load(chunks, profile_name="share")
    while not orchestrator.state.phase.is_terminal:
        orchestrator.tick()
        time.sleep(1)
    print(orchestrator.outcome())
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from chunksync.config import ReplicationSettings
from chunksync.errors import CircuitOpenCondition, PermanentChunkFailure
from chunksync.models import (
    ActiveJob,
    Chunk,
    ChunkEvent,
    ChunkStatus,
    CopyResult,
    EventKind,
    ExitClassification,
    ExitSeverity,
    OrchestrationState,
    Phase,
    ReplicationSummary,
    RunOutcome,
    StatusSnapshot,
)
from chunksync.operations import KILLED_EXIT_CODE, CopyExecutor, classify_exit_code

logger = logging.getLogger("chunksync.orchestrator")

EventSink = Callable[[ChunkEvent], None]


def classify_outcome(completed: int, failed: int) -> RunOutcome:
    """Classify a run from its completed and failed chunk counts."""
    if failed == 0:
        return RunOutcome.SUCCESS
    if completed == 0:
        return RunOutcome.TOTAL_FAILURE
    return RunOutcome.PARTIAL_FAILURE


class JobOrchestrator:
    """Bounded-concurrency scheduler for chunk copy jobs.

    The orchestrator is single-writer: ``tick()`` is the only method that
    mutates run state, and it refuses to run re-entrantly. ``request_stop``,
    ``request_pause`` and ``request_resume`` only set flags that the next
    tick acts on.

    Attributes:
        settings: ReplicationSettings for concurrency, retries, circuit
            breaker, timeout and ETA window.
        state: OrchestrationState of the current run.
    """

    def __init__(
        self,
        executor: CopyExecutor,
        settings: Optional[ReplicationSettings] = None,
        event_sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the JobOrchestrator.

        Args:
            executor: CopyExecutor that runs the chunk copies.
            settings: Run settings. Defaults to ReplicationSettings().
            event_sink: Optional callable receiving every ChunkEvent.
            clock: Monotonic time source in seconds, replaceable for tests.
        """
        self._executor = executor
        self.settings = settings if settings is not None else ReplicationSettings()
        self._event_sink = event_sink
        self._clock = clock
        self._tick_lock = threading.Lock()

        self.state = OrchestrationState()
        self._retry_not_before: Dict[int, float] = {}
        self._failure_times: Deque[float] = deque()
        self._progress_samples: Deque[Tuple[float, int]] = deque()
        self._resume_requested = False

    # ------------------------------------------------------------------
    # Setup and operator requests
    # ------------------------------------------------------------------

    def load(self, chunks: Iterable[Chunk], profile_name: str = "") -> None:
        """Start a new run over an already planned list of chunks.

        Args:
            chunks: Chunks in planner order.
            profile_name: Name reported in snapshots and events.

        Raises:
            RuntimeError: If a run is still in progress.
        """
        if self.state.phase not in (Phase.IDLE, Phase.COMPLETE, Phase.STOPPED):
            raise RuntimeError(f"Cannot load chunks while run is {self.state.phase.value}")

        queue: Deque[Chunk] = deque(chunks)
        self.state = OrchestrationState(
            phase=Phase.REPLICATING,
            profile_name=profile_name,
            chunk_queue=queue,
            total_chunks=len(queue),
            bytes_total=sum(chunk.estimated_size_bytes for chunk in queue),
            started_at=self._clock(),
        )
        self._retry_not_before.clear()
        self._failure_times.clear()
        self._progress_samples.clear()
        self._resume_requested = False

        logger.info(
            "Loaded %d chunk(s) (%d bytes) for profile %r",
            self.state.total_chunks, self.state.bytes_total, profile_name,
        )

    def request_stop(self) -> None:
        """Ask the next tick to kill all active jobs and stop the run."""
        self.state.stop_requested = True

    def request_pause(self) -> None:
        """Ask the next tick to stop starting new jobs. Running jobs continue."""
        self.state.pause_requested = True

    def request_resume(self) -> None:
        """Clear a pause request and force an open circuit breaker closed."""
        self.state.pause_requested = False
        self._resume_requested = True

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """Run one scheduling pass.

        Raises:
            RuntimeError: If called while another tick is running.
        """
        if not self._tick_lock.acquire(blocking=False):
            raise RuntimeError("JobOrchestrator.tick() is not re-entrant")
        try:
            self._tick()
        finally:
            self._tick_lock.release()

    def _tick(self) -> None:
        state = self.state
        if state.phase == Phase.IDLE or state.phase.is_terminal:
            return

        now = self._clock()

        if state.stop_requested:
            self._stop(now)
            return

        for handle, job, forced in self._poll_active_jobs(now):
            self._reap(handle, job, forced, now)

        self._update_circuit(now)

        if not state.pause_requested and not self.circuit_open:
            self._start_jobs(now)

        self._update_phase(now)
        self._update_progress(now)

    def _poll_active_jobs(
        self, now: float
    ) -> List[Tuple[Any, ActiveJob, Optional[ExitClassification]]]:
        """Refresh live progress and collect jobs that finished or timed out."""
        finished: List[Tuple[Any, ActiveJob, Optional[ExitClassification]]] = []
        timeout = self.settings.job_timeout

        for handle, job in self.state.active_jobs.items():
            progress = self._executor.poll(handle)
            job.bytes_copied = progress.bytes_copied_so_far
            job.current_item = progress.current_item

            if progress.is_complete:
                finished.append((handle, job, None))
            elif timeout is not None and now - job.started_at > timeout:
                logger.warning(
                    "Chunk %d timed out after %.0fs; killing it",
                    job.chunk.chunk_id, now - job.started_at,
                )
                self._executor.kill(handle)
                finished.append((
                    handle,
                    job,
                    ExitClassification(
                        exit_code=KILLED_EXIT_CODE,
                        severity=ExitSeverity.ERROR,
                        copy_failures=True,
                        detail=f"timed out after {timeout:g}s",
                    ),
                ))

        return finished

    def _reap(
        self,
        handle: Any,
        job: ActiveJob,
        forced: Optional[ExitClassification],
        now: float,
    ) -> None:
        """Classify a finished job and move its chunk on."""
        del self.state.active_jobs[handle]

        if forced is None:
            result = self._executor.await_result(handle)
            classification = classify_exit_code(result.exit_code)
        else:
            classification = forced
            result = CopyResult(
                exit_code=forced.exit_code,
                duration_ms=int((now - job.started_at) * 1000),
            )
        self._executor.release(handle)

        if classification.is_retryable:
            self._record_failure(job.chunk, classification, result, now)
        else:
            self._record_completion(job.chunk, classification, result)

    def _record_completion(
        self, chunk: Chunk, classification: ExitClassification, result: CopyResult
    ) -> None:
        state = self.state
        if classification.severity == ExitSeverity.WARNING:
            chunk.status = ChunkStatus.COMPLETE_WITH_WARNINGS
            logger.warning(
                "Chunk %d completed with warnings (%s): %s",
                chunk.chunk_id, classification.detail, chunk.source_path,
            )
        else:
            chunk.status = ChunkStatus.COMPLETE
            state.consecutive_failure_count = 0
            self._failure_times.clear()
            logger.info("Chunk %d complete: %s", chunk.chunk_id, chunk.source_path)

        state.completed_chunks.append(chunk)
        state.files_copied += result.files_copied
        state.bytes_copied += result.bytes_copied
        self._emit(EventKind.CHUNK_COMPLETED, chunk, classification, result)

    def _record_failure(
        self,
        chunk: Chunk,
        classification: ExitClassification,
        result: CopyResult,
        now: float,
    ) -> None:
        state = self.state
        state.consecutive_failure_count += 1
        self._failure_times.append(now)
        chunk.last_error = classification.detail

        if classification.severity == ExitSeverity.FATAL:
            limit = min(self.settings.max_retries, self.settings.fatal_max_retries)
        else:
            limit = self.settings.max_retries

        if chunk.retry_count < limit:
            chunk.retry_count += 1
            chunk.status = ChunkStatus.PENDING
            delay = self.settings.retry_delay * (
                self.settings.retry_backoff ** (chunk.retry_count - 1)
            )
            if delay > 0:
                self._retry_not_before[id(chunk)] = now + delay
            state.chunk_queue.append(chunk)
            logger.warning(
                "Chunk %d failed (%s); retry %d/%d queued",
                chunk.chunk_id, classification.detail, chunk.retry_count, limit,
            )
            self._emit(EventKind.CHUNK_RETRIED, chunk, classification, result)
            return

        chunk.status = ChunkStatus.FAILED
        state.failed_chunks.append(chunk)
        logger.error(
            "%s (%s)",
            PermanentChunkFailure(chunk.chunk_id, classification.exit_code, classification.detail),
            chunk.source_path,
        )
        self._emit(EventKind.CHUNK_FAILED, chunk, classification, result)

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    @property
    def circuit_open(self) -> bool:
        return self.state.circuit_open_until is not None

    def _update_circuit(self, now: float) -> None:
        state = self.state
        if self.circuit_open:
            if self._resume_requested or now >= state.circuit_open_until:
                self._close_circuit("operator resume" if self._resume_requested else "cool-down elapsed")
            self._resume_requested = False
            return
        self._resume_requested = False

        window_start = now - self.settings.circuit_window
        while self._failure_times and self._failure_times[0] < window_start:
            self._failure_times.popleft()

        if len(self._failure_times) >= self.settings.circuit_failure_threshold:
            state.circuit_open_until = now + self.settings.circuit_cooldown
            condition = CircuitOpenCondition(state.consecutive_failure_count, state.circuit_open_until)
            logger.warning(
                "%s; not starting new chunks for %.0fs",
                condition, self.settings.circuit_cooldown,
            )
            self._emit(EventKind.CIRCUIT_OPENED, detail=str(condition))

    def _close_circuit(self, reason: str) -> None:
        self.state.circuit_open_until = None
        self.state.consecutive_failure_count = 0
        self._failure_times.clear()
        logger.info("Circuit closed (%s)", reason)
        self._emit(EventKind.CIRCUIT_CLOSED, detail=reason)

    # ------------------------------------------------------------------
    # Starting work
    # ------------------------------------------------------------------

    def _start_jobs(self, now: float) -> None:
        state = self.state
        while len(state.active_jobs) < self.settings.max_concurrent_jobs:
            chunk = self._next_eligible(now)
            if chunk is None:
                return

            options = sorted(chunk.copy_options, key=lambda option: option.value)
            try:
                handle = self._executor.start(chunk.source_path, chunk.destination_path, options)
            except OSError as e:
                logger.error("Could not start chunk %d: %s", chunk.chunk_id, e)
                self._record_failure(
                    chunk,
                    ExitClassification(
                        exit_code=KILLED_EXIT_CODE,
                        severity=ExitSeverity.FATAL,
                        fatal_error=True,
                        detail=f"failed to start: {e}",
                    ),
                    CopyResult(exit_code=KILLED_EXIT_CODE),
                    now,
                )
                self._update_circuit(now)
                if self.circuit_open:
                    return
                continue

            chunk.status = ChunkStatus.RUNNING
            state.active_jobs[handle] = ActiveJob(handle=handle, chunk=chunk, started_at=now)
            logger.info(
                "Started chunk %d: %s -> %s",
                chunk.chunk_id, chunk.source_path, chunk.destination_path,
            )
            self._emit(EventKind.CHUNK_STARTED, chunk)

    def _next_eligible(self, now: float) -> Optional[Chunk]:
        """Dequeue the first chunk whose retry delay has passed."""
        queue = self.state.chunk_queue
        for index, chunk in enumerate(queue):
            not_before = self._retry_not_before.get(id(chunk))
            if not_before is None or not_before <= now:
                del queue[index]
                self._retry_not_before.pop(id(chunk), None)
                return chunk
        return None

    # ------------------------------------------------------------------
    # Phase, stop and progress
    # ------------------------------------------------------------------

    def _update_phase(self, now: float) -> None:
        state = self.state
        if not state.chunk_queue and not state.active_jobs:
            state.phase = Phase.COMPLETE
            state.finished_at = now
            logger.info(
                "Profile %r complete: %d chunk(s) complete, %d failed",
                state.profile_name, len(state.completed_chunks), len(state.failed_chunks),
            )
            self._emit(
                EventKind.PROFILE_COMPLETED,
                files_copied=state.files_copied,
                bytes_copied=state.bytes_copied,
                duration_ms=int((now - (state.started_at or now)) * 1000),
                detail=self.outcome().value,
            )
        elif state.pause_requested or self.circuit_open:
            state.phase = Phase.PAUSED
        else:
            state.phase = Phase.REPLICATING

    def _stop(self, now: float) -> None:
        state = self.state
        state.phase = Phase.STOPPING

        for handle, job in state.active_jobs.items():
            self._executor.kill(handle)
            self._executor.release(handle)
            job.chunk.status = ChunkStatus.PENDING
            state.cancelled_chunks.append(job.chunk)
        state.active_jobs.clear()

        state.cancelled_chunks.extend(state.chunk_queue)
        state.chunk_queue.clear()
        self._retry_not_before.clear()

        state.phase = Phase.STOPPED
        state.finished_at = now
        self._update_progress(now)
        logger.warning(
            "Run stopped: %d chunk(s) cancelled", len(state.cancelled_chunks)
        )
        self._emit(
            EventKind.RUN_STOPPED,
            files_copied=state.files_copied,
            bytes_copied=state.bytes_copied,
            duration_ms=int((now - (state.started_at or now)) * 1000),
            detail=f"{len(state.cancelled_chunks)} chunk(s) cancelled",
        )

    def _update_progress(self, now: float) -> None:
        state = self.state
        completed = sum(chunk.estimated_size_bytes for chunk in state.completed_chunks)
        in_flight = sum(
            min(job.bytes_copied, job.chunk.estimated_size_bytes)
            for job in state.active_jobs.values()
        )
        state.bytes_complete = completed + in_flight

        samples = self._progress_samples
        samples.append((now, state.bytes_complete))
        while len(samples) > 2 and samples[0][0] < now - self.settings.eta_window:
            samples.popleft()

        remaining = max(state.bytes_total - state.bytes_complete, 0)
        if remaining == 0:
            state.eta_seconds = 0.0
            return

        (first_time, first_bytes), (last_time, last_bytes) = samples[0], samples[-1]
        elapsed = last_time - first_time
        rate = (last_bytes - first_bytes) / elapsed if elapsed > 0 else 0.0
        state.eta_seconds = remaining / rate if rate > 0 else None

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def snapshot(self) -> StatusSnapshot:
        """Return an immutable copy of the current run state."""
        state = self.state
        terminal_chunks = len(state.completed_chunks) + len(state.failed_chunks)

        if state.bytes_total > 0:
            percent = 100.0 * state.bytes_complete / state.bytes_total
        elif state.total_chunks > 0:
            percent = 100.0 * terminal_chunks / state.total_chunks
        else:
            percent = 100.0 if state.phase == Phase.COMPLETE else 0.0
        percent = min(percent, 100.0)

        if state.started_at is None:
            elapsed = 0.0
        else:
            end = state.finished_at if state.finished_at is not None else self._clock()
            elapsed = end - state.started_at

        return StatusSnapshot(
            phase=state.phase,
            profile_name=state.profile_name,
            profile_percent=percent,
            overall_percent=percent,
            chunks_complete=len(state.completed_chunks),
            chunks_total=state.total_chunks,
            chunks_failed=len(state.failed_chunks),
            bytes_complete=state.bytes_complete,
            bytes_total=state.bytes_total,
            elapsed_seconds=elapsed,
            eta_seconds=state.eta_seconds,
            active_jobs=len(state.active_jobs),
            queued_jobs=len(state.chunk_queue),
            circuit_open=self.circuit_open,
            current_items=tuple(
                job.current_item for job in state.active_jobs.values() if job.current_item
            ),
        )

    def outcome(self) -> RunOutcome:
        """Classify the run from its completed and failed chunks."""
        return classify_outcome(len(self.state.completed_chunks), len(self.state.failed_chunks))

    def summary(self) -> ReplicationSummary:
        """Build a ReplicationSummary for the current run."""
        state = self.state
        return ReplicationSummary(
            profiles_processed=1 if state.phase.is_terminal else 0,
            total_chunks=state.total_chunks,
            chunks_complete=len(state.completed_chunks),
            chunks_with_warnings=sum(
                1 for chunk in state.completed_chunks
                if chunk.status == ChunkStatus.COMPLETE_WITH_WARNINGS
            ),
            chunks_failed=len(state.failed_chunks),
            chunks_cancelled=len(state.cancelled_chunks),
            files_copied=state.files_copied,
            bytes_copied=state.bytes_copied,
            bytes_planned=state.bytes_total,
            duration_seconds=self.snapshot().elapsed_seconds,
            errors=[
                f"Chunk {chunk.chunk_id} failed ({chunk.source_path}): {chunk.last_error}"
                for chunk in state.failed_chunks
            ],
            outcome=self.outcome(),
            interrupted=state.phase == Phase.STOPPED,
        )

    def _emit(
        self,
        kind: EventKind,
        chunk: Optional[Chunk] = None,
        classification: Optional[ExitClassification] = None,
        result: Optional[CopyResult] = None,
        files_copied: int = 0,
        bytes_copied: int = 0,
        duration_ms: int = 0,
        detail: str = "",
    ) -> None:
        if self._event_sink is None:
            return
        if result is not None:
            files_copied = result.files_copied
            bytes_copied = result.bytes_copied
            duration_ms = result.duration_ms
        if classification is not None and not detail:
            detail = classification.detail

        self._event_sink(
            ChunkEvent(
                kind=kind,
                profile_name=self.state.profile_name,
                timestamp=datetime.now(),
                chunk_id=chunk.chunk_id if chunk is not None else None,
                source=chunk.source_path if chunk is not None else None,
                destination=chunk.destination_path if chunk is not None else None,
                severity=classification.severity if classification is not None else None,
                files_copied=files_copied,
                bytes_copied=bytes_copied,
                duration_ms=duration_ms,
                retry_count=chunk.retry_count if chunk is not None else 0,
                detail=detail,
            )
        )
