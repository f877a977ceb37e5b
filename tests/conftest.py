"""Pytest fixtures for chunksync tests."""

import io
import tempfile
from itertools import count
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional, Sequence, Tuple

import pytest
from rich.console import Console

from chunksync.errors import ProfilingError
from chunksync.models import (
    Chunk,
    CopyOption,
    CopyProgress,
    CopyResult,
    DirectoryProfile,
)
from chunksync.operations import KILLED_EXIT_CODE, CopyExecutor


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: end-to-end tests across components")
    config.addinivalue_line("markers", "unit: fast tests of a single function or model")


# ============================================================================
# Test doubles
# ============================================================================


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeJob:
    """One scripted copy job."""

    def __init__(self, source: str, destination: str, options: List[CopyOption], exit_code: int) -> None:
        self.source = source
        self.destination = destination
        self.options = options
        self.exit_code = exit_code
        self.polls = 0
        self.complete = False
        self.killed = False
        self.bytes_so_far = 0
        self.current_item = ""


class FakeExecutor(CopyExecutor):
    """Scripted CopyExecutor.

    Each start consumes the next exit code scripted for the source path, or
    ``default_exit_code`` when none is left. With ``polls_to_complete=None``
    jobs only finish when a test calls ``finish``.
    """

    def __init__(
        self,
        exit_codes: Optional[Dict[str, Iterable[int]]] = None,
        default_exit_code: int = 1,
        polls_to_complete: Optional[int] = 1,
        start_errors: Iterable[str] = (),
    ) -> None:
        self.exit_codes = {source: list(codes) for source, codes in (exit_codes or {}).items()}
        self.default_exit_code = default_exit_code
        self.polls_to_complete = polls_to_complete
        self.start_errors = set(start_errors)
        self.jobs: Dict[int, FakeJob] = {}
        self.started: List[str] = []
        self.killed: List[int] = []
        self.released: List[int] = []
        self._ids = count(1)

    def start(self, source_path: str, destination_path: str, options: Iterable[CopyOption] = ()) -> int:
        if source_path in self.start_errors:
            raise OSError(f"access denied: {source_path}")
        codes = self.exit_codes.get(source_path)
        exit_code = codes.pop(0) if codes else self.default_exit_code
        handle = next(self._ids)
        self.jobs[handle] = FakeJob(source_path, destination_path, list(options), exit_code)
        self.started.append(source_path)
        return handle

    def poll(self, handle: int) -> CopyProgress:
        job = self.jobs[handle]
        if not job.complete and self.polls_to_complete is not None:
            job.polls += 1
            if job.polls >= self.polls_to_complete:
                job.complete = True
        return CopyProgress(
            is_complete=job.complete,
            bytes_copied_so_far=job.bytes_so_far,
            current_item=job.current_item,
        )

    def await_result(self, handle: int) -> CopyResult:
        job = self.jobs[handle]
        if not job.complete:
            raise RuntimeError(f"job {handle} is still running")
        exit_code = KILLED_EXIT_CODE if job.killed else job.exit_code
        return CopyResult(
            exit_code=exit_code,
            files_copied=1 if exit_code > 0 and exit_code & 1 else 0,
            bytes_copied=job.bytes_so_far,
            duration_ms=10,
        )

    def kill(self, handle: int) -> None:
        job = self.jobs.get(handle)
        if job is None or job.complete:
            return
        job.killed = True
        job.complete = True
        self.killed.append(handle)

    def release(self, handle: int) -> None:
        self.released.append(handle)

    def running(self) -> List[FakeJob]:
        return [job for job in self.jobs.values() if not job.complete]

    def finish(self, source_path: str, exit_code: Optional[int] = None) -> None:
        """Complete the running job for ``source_path``."""
        for job in self.running():
            if job.source == source_path:
                if exit_code is not None:
                    job.exit_code = exit_code
                job.complete = True
                return
        raise AssertionError(f"no running job for {source_path}")

    def set_progress(self, source_path: str, bytes_so_far: int, current_item: str = "") -> None:
        for job in self.running():
            if job.source == source_path:
                job.bytes_so_far = bytes_so_far
                job.current_item = current_item
                return
        raise AssertionError(f"no running job for {source_path}")


class FakeProfiler:
    """In-memory directory profiler.

    A tree node is a dict with optional keys ``files`` (list of sizes),
    ``dirs`` (name -> node), ``links`` (names of reparse points),
    ``denied`` (profiling raises), ``loose_denied`` (listing the node's own
    files raises) and ``size`` (reported total, overriding the sum of the
    node's files).
    """

    def __init__(self, root: str, tree: Dict[str, Any], sep: str = "\\") -> None:
        self.sep = sep
        self.nodes: Dict[str, Dict[str, Any]] = {}
        self.profile_calls: List[str] = []
        self._index(root, tree)

    def _index(self, path: str, node: Dict[str, Any]) -> None:
        self.nodes[path] = node
        for name, child in node.get("dirs", {}).items():
            self._index(path + self.sep + name, child)

    def _node(self, path: str) -> Dict[str, Any]:
        node = self.nodes.get(path)
        if node is None:
            raise ProfilingError(path, "directory not found")
        if node.get("denied"):
            raise ProfilingError(path, "permission denied")
        return node

    def _totals(self, node: Dict[str, Any]) -> Tuple[int, int, int]:
        size = sum(node.get("files", []))
        files = len(node.get("files", []))
        dirs = 0
        for child in node.get("dirs", {}).values():
            if child.get("denied"):
                continue
            child_size, child_files, child_dirs = self._totals(child)
            size += child_size
            files += child_files
            dirs += 1 + child_dirs
        return node.get("size", size), files, dirs

    def profile(self, path: str) -> DirectoryProfile:
        node = self._node(path)
        self.profile_calls.append(path)
        size, files, dirs = self._totals(node)
        return DirectoryProfile(path=path, total_size_bytes=size, file_count=files, dir_count=dirs)

    def list_subdirectories(self, path: str) -> Tuple[List[str], List[str]]:
        node = self._node(path)
        subdirs = [path + self.sep + name for name in sorted(node.get("dirs", {}))]
        links = [path + self.sep + name for name in sorted(node.get("links", []))]
        return subdirs, links

    def loose_files(self, path: str) -> Tuple[int, int]:
        node = self._node(path)
        if node.get("loose_denied"):
            raise ProfilingError(path, "cannot enumerate (permission denied)")
        files = node.get("files", [])
        return len(files), sum(files)


def make_chunks(sources: Sequence[str], size: int = 100) -> List[Chunk]:
    """Build numbered chunks for orchestrator tests."""
    return [
        Chunk(
            source_path=source,
            destination_path=source.replace("/src", "/dst", 1),
            estimated_size_bytes=size,
            estimated_file_count=1,
            depth=1,
            chunk_id=index,
        )
        for index, source in enumerate(sources, start=1)
    ]


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for isolated test environments.

    Yields:
        Path to the temporary directory (symlinks resolved).
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def build_tree():
    """Return a helper that materializes a nested dict as files and folders.

    Dict values are either an int (file of that many bytes) or another dict
    (a subdirectory).
    """

    def _build(base: Path, layout: Dict[str, Any]) -> Path:
        base.mkdir(parents=True, exist_ok=True)
        for name, value in layout.items():
            target = base / name
            if isinstance(value, dict):
                _build(target, value)
            else:
                target.write_bytes(b"x" * value)
        return base

    return _build


@pytest.fixture
def sample_tree(temp_dir: Path, build_tree) -> Path:
    """Create a small source tree.

    Creates:
        source/
        ├── root.txt            (20 bytes)
        ├── alpha/
        │   ├── a1.txt          (10 bytes)
        │   └── nested/
        │       └── n1.txt      (30 bytes)
        ├── beta/
        │   └── b1.txt          (5 bytes)
        └── empty/
    """
    return build_tree(
        temp_dir / "source",
        {
            "root.txt": 20,
            "alpha": {"a1.txt": 10, "nested": {"n1.txt": 30}},
            "beta": {"b1.txt": 5},
            "empty": {},
        },
    )


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """A FakeExecutor whose jobs finish on their first poll with exit code 1."""
    return FakeExecutor()


@pytest.fixture
def executor_factory():
    """Return the FakeExecutor class for tests that need custom scripting."""
    return FakeExecutor


@pytest.fixture
def profiler_factory():
    """Return the FakeProfiler class for in-memory planning trees."""
    return FakeProfiler


@pytest.fixture
def chunk_factory():
    """Return a helper building numbered chunks from source paths."""
    return make_chunks


@pytest.fixture
def captured_console() -> Tuple[Console, io.StringIO]:
    """A Rich console writing to a StringIO buffer."""
    output = io.StringIO()
    return Console(file=output, force_terminal=False, width=200), output
