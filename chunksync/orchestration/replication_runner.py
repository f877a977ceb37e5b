"""ReplicationRunner: a single-threaded owner for the JobOrchestrator.

The runner plans each profile, loads the chunks into its orchestrator and
ticks it until the profile completes or the run is stopped. Other threads
never touch the orchestrator. They send STOP, PAUSE and RESUME commands
over a queue and read the latest immutable StatusSnapshot.

Example:
    runner = ReplicationRunner(profiles, RobocopyExecutor(), settings)
    runner.start()
    ...
    runner.stop()
    summary = runner.join()
"""

import dataclasses
import logging
import queue
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from chunksync.config import ReplicationProfile, ReplicationSettings
from chunksync.errors import PlanningCancelled
from chunksync.models import Chunk, Phase, ReplicationSummary, StatusSnapshot
from chunksync.operations import CopyExecutor
from chunksync.planning import ChunkPlanner
from chunksync.scanning import DirectoryProfiler

from .job_orchestrator import EventSink, JobOrchestrator, classify_outcome

logger = logging.getLogger("chunksync.runner")

PlanListener = Callable[[ReplicationProfile, List[Chunk], List[str]], None]


class RunnerCommand(Enum):
    """Commands accepted by a running ReplicationRunner."""
    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"


class ReplicationRunner:
    """Replicates a sequence of profiles, one after another.

    Attributes:
        profiles: Profiles in the order they are replicated.
        settings: ReplicationSettings shared by the planner and orchestrator.
    """

    def __init__(
        self,
        profiles: Sequence[ReplicationProfile],
        executor: CopyExecutor,
        settings: Optional[ReplicationSettings] = None,
        planner: Optional[ChunkPlanner] = None,
        event_sink: Optional[EventSink] = None,
        plan_listener: Optional[PlanListener] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the ReplicationRunner.

        Args:
            profiles: Profiles to replicate, in order.
            executor: CopyExecutor handed to the orchestrator.
            settings: Run settings. Defaults to ReplicationSettings().
            planner: ChunkPlanner. One using ``settings.thresholds`` and a
                DirectoryProfiler that honours STOP mid-walk is created when
                omitted.
            event_sink: Optional callable receiving every ChunkEvent.
            plan_listener: Optional callable invoked with each profile, its
                chunks and its skipped subtrees once planning finishes.
            clock: Monotonic time source in seconds.
        """
        self.profiles = list(profiles)
        self.settings = settings if settings is not None else ReplicationSettings()
        self._planning_cancelled = threading.Event()
        if planner is None:
            planner = ChunkPlanner(
                profiler=DirectoryProfiler(should_stop=self._planning_cancelled.is_set),
                thresholds=self.settings.thresholds,
            )
        self._planner = planner
        self._plan_listener = plan_listener
        self._clock = clock
        self._orchestrator = JobOrchestrator(
            executor, self.settings, event_sink=event_sink, clock=clock
        )

        self._commands: "queue.Queue[RunnerCommand]" = queue.Queue()
        self._snapshot = StatusSnapshot(phase=Phase.IDLE)
        self._stop_requested = False
        self._pause_requested = False
        self._thread: Optional[threading.Thread] = None
        self._summary: Optional[ReplicationSummary] = None
        self._error: Optional[BaseException] = None

    # ------------------------------------------------------------------
    # Commands and status, safe from any thread
    # ------------------------------------------------------------------

    def send(self, command: RunnerCommand) -> None:
        """Queue a command for the runner thread."""
        self._commands.put(command)

    def stop(self) -> None:
        self.send(RunnerCommand.STOP)

    def pause(self) -> None:
        self.send(RunnerCommand.PAUSE)

    def resume(self) -> None:
        self.send(RunnerCommand.RESUME)

    @property
    def snapshot(self) -> StatusSnapshot:
        """The most recently published status snapshot."""
        return self._snapshot

    @property
    def summary(self) -> Optional[ReplicationSummary]:
        """The final summary, once the run has finished."""
        return self._summary

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def start(self) -> threading.Thread:
        """Run in a background thread and return it.

        Raises:
            RuntimeError: If the runner was already started.
        """
        if self._thread is not None:
            raise RuntimeError("ReplicationRunner was already started")
        self._thread = threading.Thread(
            target=self._run_in_thread, name="chunksync-runner", daemon=True
        )
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None) -> Optional[ReplicationSummary]:
        """Wait for a background run and return its summary.

        Returns:
            The summary, or None if ``timeout`` expired first.

        Raises:
            Exception: Whatever the background run raised.
        """
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                return None
        if self._error is not None:
            raise self._error
        return self._summary

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> ReplicationSummary:
        """Replicate every profile in the calling thread.

        Returns:
            ReplicationSummary aggregated across all processed profiles.
        """
        started = self._clock()
        summary = ReplicationSummary()
        total_profiles = len(self.profiles)

        for index, profile in enumerate(self.profiles):
            self._drain_commands()
            if self._stop_requested:
                break

            self._publish(StatusSnapshot(
                phase=Phase.SCANNING,
                profile_name=profile.name,
                overall_percent=self._overall_percent(index, 0.0),
            ))
            logger.info("Planning profile %r: %s", profile.name, profile.source)
            chunks = self._plan_profile(profile)
            if chunks is None:
                break
            summary.errors.extend(
                f"Skipped inaccessible subtree: {path}" for path in self._planner.get_skipped()
            )
            summary.errors.extend(
                f"Skipped loose files of {path}"
                for path in self._planner.get_skipped_loose_files()
            )
            if self._plan_listener is not None:
                self._plan_listener(profile, chunks, self._planner.describe_skipped())

            self._orchestrator.load(chunks, profile.name)
            self._drain_commands()
            if self._stop_requested:
                self._orchestrator.request_stop()
            elif self._pause_requested:
                self._orchestrator.request_pause()

            self._drive(index)
            self._accumulate(summary, self._orchestrator.summary())

            if self._orchestrator.state.phase == Phase.STOPPED:
                break

        summary.duration_seconds = self._clock() - started
        summary.outcome = classify_outcome(summary.chunks_complete, summary.chunks_failed)
        summary.interrupted = self._stop_requested

        final_phase = Phase.STOPPED if self._stop_requested else Phase.COMPLETE
        self._publish(dataclasses.replace(
            self._snapshot,
            phase=final_phase,
            overall_percent=100.0 if final_phase == Phase.COMPLETE else self._snapshot.overall_percent,
            active_jobs=0,
        ))
        logger.info(
            "Run finished: %s (%d of %d profile(s))",
            summary.outcome.value, summary.profiles_processed, total_profiles,
        )
        self._summary = summary
        return summary

    def _run_in_thread(self) -> None:
        try:
            self.run()
        except Exception as e:
            logger.exception("Replication run failed")
            self._error = e

    def _plan_profile(self, profile: ReplicationProfile) -> Optional[List[Chunk]]:
        """Plan on a worker thread while this thread keeps handling commands.

        Returns None when a STOP arrives before planning finishes. The worker
        is left to notice the cancellation on its own and is not waited for.
        """
        result: Dict[str, Any] = {}

        def plan() -> None:
            try:
                result["chunks"] = self._planner.plan(
                    profile.source,
                    profile.destination,
                    self.settings.thresholds,
                    should_stop=self._planning_cancelled.is_set,
                )
            except PlanningCancelled as e:
                logger.info("Planning of %r abandoned: %s", profile.name, e)
            except Exception as e:
                result["error"] = e

        worker = threading.Thread(target=plan, name="chunksync-planner", daemon=True)
        worker.start()
        while worker.is_alive():
            if self._stop_requested:
                logger.info("Stop requested while planning %r", profile.name)
                return None
            try:
                command = self._commands.get(timeout=self.settings.tick_interval)
            except queue.Empty:
                continue
            self._apply(command)

        if "error" in result:
            raise result["error"]
        return result.get("chunks")

    def _drive(self, profile_index: int) -> None:
        """Tick the orchestrator until the current profile finishes."""
        orchestrator = self._orchestrator
        while True:
            self._drain_commands()
            orchestrator.tick()

            snapshot = orchestrator.snapshot()
            self._publish(dataclasses.replace(
                snapshot,
                overall_percent=self._overall_percent(profile_index, snapshot.profile_percent),
            ))
            if snapshot.phase.is_terminal:
                return

            try:
                command = self._commands.get(timeout=self.settings.tick_interval)
            except queue.Empty:
                continue
            self._apply(command)

    def _drain_commands(self) -> None:
        while True:
            try:
                command = self._commands.get_nowait()
            except queue.Empty:
                return
            self._apply(command)

    def _apply(self, command: RunnerCommand) -> None:
        logger.info("Runner received %s", command.value)
        if command == RunnerCommand.STOP:
            self._stop_requested = True
            self._planning_cancelled.set()
            self._orchestrator.request_stop()
        elif command == RunnerCommand.PAUSE:
            self._pause_requested = True
            self._orchestrator.request_pause()
        elif command == RunnerCommand.RESUME:
            self._pause_requested = False
            self._orchestrator.request_resume()

    def _publish(self, snapshot: StatusSnapshot) -> None:
        self._snapshot = snapshot

    def _overall_percent(self, profile_index: int, profile_percent: float) -> float:
        if not self.profiles:
            return 100.0
        return 100.0 * (profile_index + profile_percent / 100.0) / len(self.profiles)

    @staticmethod
    def _accumulate(total: ReplicationSummary, part: ReplicationSummary) -> None:
        total.profiles_processed += part.profiles_processed
        total.total_chunks += part.total_chunks
        total.chunks_complete += part.chunks_complete
        total.chunks_with_warnings += part.chunks_with_warnings
        total.chunks_failed += part.chunks_failed
        total.chunks_cancelled += part.chunks_cancelled
        total.files_copied += part.files_copied
        total.bytes_copied += part.bytes_copied
        total.bytes_planned += part.bytes_planned
        total.errors.extend(part.errors)
