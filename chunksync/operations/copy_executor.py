"""
Copy executors for the chunk replication engine.

This module contains the CopyExecutor interface the orchestrator drives and
two implementations:

- ProcessCopyExecutor: runs one external process per chunk and streams its
  output on a reader thread, so polling never touches the process pipe.
- RobocopyExecutor: builds robocopy command lines and parses its output.

All executor calls return immediately. The final result of a job is only
available once ``poll`` reports it complete.
"""

import locale
import logging
import os
import re
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from itertools import count
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence

from chunksync.models import CopyOption, CopyProgress, CopyResult

# Configure module logger
logger = logging.getLogger("chunksync.executor")

# Exit code reported for a job that was killed before it finished
KILLED_EXIT_CODE = -1


class CopyExecutor(ABC):
    """Interface between the orchestrator and whatever performs the byte copy."""

    @abstractmethod
    def start(
        self,
        source_path: str,
        destination_path: str,
        options: Iterable[CopyOption] = (),
    ) -> Any:
        """Start copying a chunk and return an opaque job handle.

        Raises:
            OSError: If the job could not be started at all.
        """

    @abstractmethod
    def poll(self, handle: Any) -> CopyProgress:
        """Return live progress for a job. Safe to call repeatedly."""

    @abstractmethod
    def await_result(self, handle: Any) -> CopyResult:
        """Return the final result of a job that ``poll`` reported complete.

        Raises:
            RuntimeError: If the job is still running.
        """

    @abstractmethod
    def kill(self, handle: Any) -> None:
        """Terminate a job. Idempotent, and a no-op for finished jobs."""

    def release(self, handle: Any) -> None:
        """Forget a finished job. The default implementation keeps nothing."""


class ProcessJob:
    """Book-keeping for one running process, shared with its reader thread."""

    def __init__(self, process: subprocess.Popen, started_at: float) -> None:
        self.process = process
        self.started_at = started_at
        self.finished_at: Optional[float] = None
        self.killed = False
        self.bytes_copied = 0
        self.files_seen = 0
        self.current_item = ""
        self.summary_files: Optional[int] = None
        self.summary_bytes: Optional[int] = None
        self.output_tail: Deque[str] = deque(maxlen=50)
        self.lock = threading.Lock()
        self.reader: Optional[threading.Thread] = None

    def record_file(self, path: str, size: int) -> None:
        with self.lock:
            self.files_seen += 1
            self.bytes_copied += size
            self.current_item = path

    def record_summary(self, files: Optional[int] = None, size: Optional[int] = None) -> None:
        with self.lock:
            if files is not None:
                self.summary_files = files
            if size is not None:
                self.summary_bytes = size

    @property
    def is_complete(self) -> bool:
        reader_done = self.reader is None or not self.reader.is_alive()
        return reader_done and self.process.poll() is not None


class ProcessCopyExecutor(CopyExecutor):
    """Runs each chunk as an external process.

    A daemon thread per job reads the process output line by line and hands
    each line to ``parse_line``; ``poll`` only reads what that thread has
    recorded. Subclasses supply ``build_command`` and ``parse_line``, and
    set ``output_encoding`` when the tool does not write UTF-8.
    """

    output_encoding = "utf-8"

    def __init__(self) -> None:
        self._jobs: Dict[int, ProcessJob] = {}
        self._ids = count(1)
        self._lock = threading.Lock()

    @abstractmethod
    def build_command(
        self,
        source_path: str,
        destination_path: str,
        options: Sequence[CopyOption],
    ) -> List[str]:
        """Return the argument list for copying one chunk."""

    def parse_line(self, line: str, job: ProcessJob) -> None:
        """Interpret one line of process output. The default ignores it."""

    def start(
        self,
        source_path: str,
        destination_path: str,
        options: Iterable[CopyOption] = (),
    ) -> int:
        command = self.build_command(source_path, destination_path, list(options))
        logger.debug("Starting: %s", " ".join(command))

        process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding=self.output_encoding,
            errors="replace",
        )
        job = ProcessJob(process, time.monotonic())
        job.reader = threading.Thread(
            target=self._read_output,
            args=(job,),
            name=f"chunksync-reader-{process.pid}",
            daemon=True,
        )
        job.reader.start()

        with self._lock:
            handle = next(self._ids)
            self._jobs[handle] = job
        return handle

    def poll(self, handle: int) -> CopyProgress:
        job = self._get_job(handle)
        with job.lock:
            return CopyProgress(
                is_complete=job.is_complete,
                bytes_copied_so_far=job.bytes_copied,
                current_item=job.current_item,
            )

    def await_result(self, handle: int) -> CopyResult:
        job = self._get_job(handle)
        if not job.is_complete:
            raise RuntimeError(f"Copy job {handle} is still running")

        with job.lock:
            exit_code = KILLED_EXIT_CODE if job.killed else job.process.returncode
            finished_at = job.finished_at if job.finished_at is not None else time.monotonic()
            return CopyResult(
                exit_code=exit_code,
                files_copied=(
                    job.summary_files if job.summary_files is not None else job.files_seen
                ),
                bytes_copied=(
                    job.summary_bytes if job.summary_bytes is not None else job.bytes_copied
                ),
                duration_ms=int((finished_at - job.started_at) * 1000),
            )

    def kill(self, handle: int) -> None:
        with self._lock:
            job = self._jobs.get(handle)
        if job is None:
            return
        with job.lock:
            if job.process.poll() is None:
                try:
                    job.process.kill()
                except ProcessLookupError:
                    pass
                job.killed = True

    def release(self, handle: int) -> None:
        with self._lock:
            self._jobs.pop(handle, None)

    def output_tail(self, handle: int) -> List[str]:
        """Return the last lines of output captured for a job."""
        job = self._get_job(handle)
        with job.lock:
            return list(job.output_tail)

    def _get_job(self, handle: int) -> ProcessJob:
        with self._lock:
            job = self._jobs.get(handle)
        if job is None:
            raise KeyError(f"Unknown copy job handle: {handle}")
        return job

    def _read_output(self, job: ProcessJob) -> None:
        stream = job.process.stdout
        if stream is not None:
            with stream:
                for raw_line in stream:
                    line = raw_line.rstrip("\r\n")
                    with job.lock:
                        job.output_tail.append(line)
                    self.parse_line(line, job)
        job.process.wait()
        with job.lock:
            job.finished_at = time.monotonic()


class RobocopyExecutor(ProcessCopyExecutor):
    """Copies chunks with robocopy.

    Full chunks are copied with ``/E``; files-only chunks with ``/LEV:1``.
    Junctions are skipped with ``/XJ`` when requested. Output is produced
    in ``/BYTES /NP /FP`` form so file lines and the summary can be parsed.

    Attributes:
        executable: Path or name of the robocopy binary.
        retries: I/O-level retry count passed as ``/R``.
        wait_seconds: Seconds between I/O-level retries, passed as ``/W``.
        threads: Optional ``/MT`` thread count.
        extra_args: Additional switches appended verbatim.
        output_encoding: Codec used to decode robocopy output. Defaults to the
            console OEM code page on Windows and the locale encoding elsewhere.
    """

    COPY_KINDS = ("New File", "Newer", "Older", "Changed", "Modified")

    # Console programs write in the OEM code page on Windows
    output_encoding = "oem" if os.name == "nt" else locale.getpreferredencoding(False)

    _FILE_LINE = re.compile(
        r"^\s*(?P<kind>New File|Newer|Older|Changed|Modified|Tweaked|Same|\*EXTRA File)"
        r"\s+(?P<size>\d+)\s+(?P<path>\S.*?)\s*$"
    )
    _SUMMARY_LINE = re.compile(r"^\s*(?P<label>Files|Bytes)\s*:\s*(?P<total>\d+)\s+(?P<copied>\d+)")
    _ERROR_LINE = re.compile(r"\bERROR\s+\d+\s+\(0x[0-9A-Fa-f]+\)")

    def __init__(
        self,
        executable: str = "robocopy",
        retries: int = 2,
        wait_seconds: int = 5,
        threads: Optional[int] = None,
        extra_args: Sequence[str] = (),
        output_encoding: Optional[str] = None,
    ) -> None:
        super().__init__()
        if output_encoding is not None:
            self.output_encoding = output_encoding
        if threads is not None and not 1 <= threads <= 128:
            raise ValueError(f"threads must be between 1 and 128, got {threads}")
        self.executable = executable
        self.retries = retries
        self.wait_seconds = wait_seconds
        self.threads = threads
        self.extra_args = list(extra_args)

    def build_command(
        self,
        source_path: str,
        destination_path: str,
        options: Sequence[CopyOption],
    ) -> List[str]:
        command = [self.executable, source_path, destination_path]

        if CopyOption.TOP_LEVEL_ONLY in options:
            command.append("/LEV:1")
        if CopyOption.EXCLUDE_SUBDIRECTORIES not in options:
            command.append("/E")
        if CopyOption.EXCLUDE_REPARSE_POINTS in options:
            command.append("/XJ")

        command.extend([
            "/COPY:DAT",
            "/DCOPY:T",
            f"/R:{self.retries}",
            f"/W:{self.wait_seconds}",
            "/BYTES",
            "/NP",
            "/NDL",
            "/FP",
            "/NJH",
        ])
        if self.threads:
            command.append(f"/MT:{self.threads}")
        command.extend(self.extra_args)
        return command

    def parse_line(self, line: str, job: ProcessJob) -> None:
        file_match = self._FILE_LINE.match(line)
        if file_match:
            if file_match.group("kind") in self.COPY_KINDS:
                job.record_file(file_match.group("path"), int(file_match.group("size")))
            return

        summary_match = self._SUMMARY_LINE.match(line)
        if summary_match:
            copied = int(summary_match.group("copied"))
            if summary_match.group("label") == "Files":
                job.record_summary(files=copied)
            else:
                job.record_summary(size=copied)
            return

        if self._ERROR_LINE.search(line):
            logger.warning("robocopy: %s", line.strip())
