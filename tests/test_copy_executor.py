"""Tests for the process-backed copy executors."""

import locale
import os
import sys
import textwrap
import time
from typing import List, Optional, Sequence
from unittest.mock import MagicMock

import pytest

from chunksync.models import CopyOption
from chunksync.operations import KILLED_EXIT_CODE, ProcessJob, RobocopyExecutor
from chunksync.planning import FILES_ONLY_OPTIONS, FULL_TREE_OPTIONS

# Prints robocopy-style output for two copied files, one skipped file and
# the summary block, then exits with "files copied".
ROBOCOPY_OUTPUT_SCRIPT = textwrap.dedent(
    """
    import sys
    print("\\t    New File  \\t\\t     100\\t/src/a.txt")
    print("\\t      Newer   \\t\\t     200\\t/src/b.txt")
    print("\\t        Same  \\t\\t     999\\t/src/c.txt")
    print("               Total    Copied   Skipped  Mismatch    FAILED    Extras")
    print("    Dirs :         1         0         1         0         0         0")
    print("   Files :         3         2         1         0         0         0")
    print("   Bytes :      1299       300       999         0         0         0")
    sys.stdout.flush()
    sys.exit(1)
    """
)

# Writes one copied-file line in the cp850 OEM code page
OEM_OUTPUT_SCRIPT = textwrap.dedent(
    """
    import sys
    line = "\\t    New File  \\t\\t      10\\t/src/caf\\u00e9 \\u00c5r.txt\\n"
    sys.stdout.buffer.write(line.encode("cp850"))
    sys.stdout.flush()
    sys.exit(1)
    """
)

SLOW_SCRIPT = textwrap.dedent(
    """
    import sys, time
    print("\\t    New File  \\t\\t      42\\t/src/first.txt")
    sys.stdout.flush()
    time.sleep(30)
    """
)


class ScriptedExecutor(RobocopyExecutor):
    """Runs a Python script in place of robocopy, keeping robocopy parsing."""

    def __init__(self, script: str, output_encoding: Optional[str] = None) -> None:
        super().__init__(output_encoding=output_encoding)
        self.script = script

    def build_command(
        self, source_path: str, destination_path: str, options: Sequence[CopyOption]
    ) -> List[str]:
        return [sys.executable, "-c", self.script]


def wait_until_complete(executor: RobocopyExecutor, handle: int, timeout: float = 15.0) -> None:
    deadline = time.monotonic() + timeout
    while not executor.poll(handle).is_complete:
        if time.monotonic() > deadline:
            raise AssertionError("copy job did not finish in time")
        time.sleep(0.02)


class TestRobocopyCommand:
    """Tests for RobocopyExecutor.build_command()."""

    def test_full_tree_command(self) -> None:
        command = RobocopyExecutor().build_command(
            r"\\server\share\a", r"D:\Backup\a", sorted(FULL_TREE_OPTIONS, key=lambda o: o.value)
        )

        assert command[:3] == ["robocopy", r"\\server\share\a", r"D:\Backup\a"]
        assert "/E" in command
        assert "/XJ" in command
        assert "/LEV:1" not in command
        assert "/R:2" in command
        assert "/W:5" in command
        assert "/BYTES" in command
        assert not any(arg.startswith("/MT") for arg in command)

    def test_files_only_command(self) -> None:
        command = RobocopyExecutor().build_command(
            r"\\server\share", r"D:\Backup", list(FILES_ONLY_OPTIONS)
        )

        assert "/LEV:1" in command
        assert "/E" not in command
        assert "/XJ" in command

    def test_threads_and_extra_args(self) -> None:
        executor = RobocopyExecutor(
            executable=r"C:\Windows\System32\robocopy.exe",
            retries=0,
            wait_seconds=1,
            threads=8,
            extra_args=["/XF", "*.tmp"],
        )

        command = executor.build_command("src", "dst", [])

        assert command[0] == r"C:\Windows\System32\robocopy.exe"
        assert "/MT:8" in command
        assert "/R:0" in command
        assert "/W:1" in command
        assert command[-2:] == ["/XF", "*.tmp"]

    @pytest.mark.parametrize("threads", [0, 129])
    def test_invalid_thread_count(self, threads: int) -> None:
        with pytest.raises(ValueError):
            RobocopyExecutor(threads=threads)


class TestRobocopyParsing:
    """Tests for RobocopyExecutor.parse_line()."""

    @pytest.fixture
    def job(self) -> ProcessJob:
        return ProcessJob(MagicMock(), started_at=0.0)

    def test_copied_file_lines(self, job: ProcessJob) -> None:
        executor = RobocopyExecutor()

        executor.parse_line("\t    New File  \t\t    1024\t\\\\server\\share\\a b.txt", job)
        executor.parse_line("\t      Newer   \t\t      10\t\\\\server\\share\\c.txt", job)

        assert job.files_seen == 2
        assert job.bytes_copied == 1034
        assert job.current_item == "\\\\server\\share\\c.txt"

    def test_skipped_file_lines_ignored(self, job: ProcessJob) -> None:
        executor = RobocopyExecutor()

        executor.parse_line("\t        Same  \t\t    1024\tC:\\src\\same.txt", job)
        executor.parse_line("\t*EXTRA File  \t\t      10\tD:\\dst\\extra.txt", job)

        assert job.files_seen == 0
        assert job.bytes_copied == 0

    def test_summary_lines(self, job: ProcessJob) -> None:
        executor = RobocopyExecutor()

        executor.parse_line("   Files :        12        10         2         0         0         0", job)
        executor.parse_line("   Bytes :     50000     40000     10000         0         0         0", job)

        assert job.summary_files == 10
        assert job.summary_bytes == 40000

    def test_error_lines_logged(self, job: ProcessJob, caplog) -> None:
        line = "2024/01/01 10:00:00 ERROR 5 (0x00000005) Copying File C:\\src\\locked.txt"

        RobocopyExecutor().parse_line(line, job)

        assert "ERROR 5 (0x00000005)" in caplog.text
        assert job.files_seen == 0


class TestProcessLifecycle:
    """Tests that run a real child process through the executor."""

    def test_streams_progress_and_summary(self) -> None:
        executor = ScriptedExecutor(ROBOCOPY_OUTPUT_SCRIPT)

        handle = executor.start("/src", "/dst", [])
        wait_until_complete(executor, handle)
        progress = executor.poll(handle)
        result = executor.await_result(handle)

        assert progress.bytes_copied_so_far == 300
        assert progress.current_item == "/src/b.txt"
        assert result.exit_code == 1
        assert result.files_copied == 2
        assert result.bytes_copied == 300
        assert result.duration_ms >= 0
        assert any("Files :" in line for line in executor.output_tail(handle))

    def test_await_result_before_completion_raises(self) -> None:
        executor = ScriptedExecutor(SLOW_SCRIPT)
        handle = executor.start("/src", "/dst", [])
        try:
            with pytest.raises(RuntimeError, match="still running"):
                executor.await_result(handle)
        finally:
            executor.kill(handle)

    def test_kill_reports_killed_exit_code(self) -> None:
        executor = ScriptedExecutor(SLOW_SCRIPT)
        handle = executor.start("/src", "/dst", [])

        executor.kill(handle)
        wait_until_complete(executor, handle)

        assert executor.await_result(handle).exit_code == KILLED_EXIT_CODE

        # Idempotent, also for finished and unknown handles
        executor.kill(handle)
        executor.kill(9999)

    def test_release_forgets_job(self) -> None:
        executor = ScriptedExecutor(ROBOCOPY_OUTPUT_SCRIPT)
        handle = executor.start("/src", "/dst", [])
        wait_until_complete(executor, handle)

        executor.release(handle)

        with pytest.raises(KeyError):
            executor.poll(handle)

    def test_handles_are_unique(self) -> None:
        executor = ScriptedExecutor(ROBOCOPY_OUTPUT_SCRIPT)
        first = executor.start("/src", "/dst", [])
        second = executor.start("/src", "/dst", [])

        assert first != second
        wait_until_complete(executor, first)
        wait_until_complete(executor, second)

    def test_missing_executable_raises_oserror(self) -> None:
        executor = RobocopyExecutor(executable="/nonexistent/chunksync-robocopy")

        with pytest.raises(OSError):
            executor.start("/src", "/dst", [])


class TestOutputEncoding:
    """Tests for decoding tool output in the tool's own code page."""

    def test_robocopy_defaults_to_console_code_page(self) -> None:
        expected = "oem" if os.name == "nt" else locale.getpreferredencoding(False)

        assert RobocopyExecutor().output_encoding == expected
        assert RobocopyExecutor(output_encoding="cp437").output_encoding == "cp437"

    def test_non_ascii_names_decoded_with_configured_code_page(self) -> None:
        executor = ScriptedExecutor(OEM_OUTPUT_SCRIPT, output_encoding="cp850")

        handle = executor.start("/src", "/dst", [])
        wait_until_complete(executor, handle)

        assert executor.poll(handle).current_item == "/src/café År.txt"
        assert executor.await_result(handle).files_copied == 1
