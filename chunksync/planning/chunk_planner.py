"""ChunkPlanner for splitting a directory tree into bounded units of copy work.

The planner profiles a root directory and, when it is too large or holds too
many files, recurses into its child directories. Files located directly in a
split directory get their own files-only chunk restricted to the top level,
so no file is ever covered by two chunks.

Example:
    from chunksync.config import PlanThresholds
    from chunksync.planning import ChunkPlanner

    planner = ChunkPlanner(thresholds=PlanThresholds(max_depth=3))
    chunks = planner.plan("/data/share", "/backup/share")
    for chunk in chunks:
        print(chunk.chunk_id, chunk.source_path, chunk.is_files_only)
"""

import logging
from typing import Callable, List, Optional

from chunksync.config import PlanThresholds
from chunksync.errors import PlanningCancelled, PlanningError
from chunksync.models import Chunk, CopyOption, DirectoryProfile
from chunksync.scanning import DirectoryProfiler

from .destination import map_destination

logger = logging.getLogger("chunksync.planner")

FULL_TREE_OPTIONS = frozenset({CopyOption.EXCLUDE_REPARSE_POINTS})
FILES_ONLY_OPTIONS = frozenset(
    {
        CopyOption.TOP_LEVEL_ONLY,
        CopyOption.EXCLUDE_SUBDIRECTORIES,
        CopyOption.EXCLUDE_REPARSE_POINTS,
    }
)


class ChunkPlanner:
    """Decomposes a directory tree into an ordered list of chunks.

    The profiler is duck-typed: anything with ``profile(path)``,
    ``list_subdirectories(path)`` and ``loose_files(path)`` behaving like
    DirectoryProfiler can be used.

    Attributes:
        thresholds: Default PlanThresholds used when ``plan`` receives none.
    """

    def __init__(
        self,
        profiler: Optional[DirectoryProfiler] = None,
        thresholds: Optional[PlanThresholds] = None,
    ) -> None:
        """Initialize the ChunkPlanner.

        Args:
            profiler: Directory profiler. A new DirectoryProfiler is created
                when omitted.
            thresholds: Default splitting thresholds.
        """
        self._profiler = profiler if profiler is not None else DirectoryProfiler()
        self.thresholds = thresholds if thresholds is not None else PlanThresholds()
        self._skipped: List[str] = []
        self._skipped_loose_files: List[str] = []
        self._should_stop: Optional[Callable[[], bool]] = None

    def plan(
        self,
        root_path: str,
        dest_root: str,
        thresholds: Optional[PlanThresholds] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> List[Chunk]:
        """Plan the chunks needed to replicate ``root_path`` into ``dest_root``.

        Args:
            root_path: Source directory to replicate.
            dest_root: Destination directory that mirrors ``root_path``.
            thresholds: Overrides the planner's default thresholds for this call.
            should_stop: Checked before each directory is profiled. When it
                returns True planning is abandoned.

        Returns:
            Chunks in traversal order with ``chunk_id`` numbered from 1.
            Subtrees that could not be profiled are left out and listed by
            ``get_skipped()``.

        Raises:
            PlanningCancelled: If ``should_stop`` returned True.
        """
        limits = thresholds if thresholds is not None else self.thresholds
        self._skipped = []
        self._skipped_loose_files = []
        self._should_stop = should_stop
        try:
            chunks = self._plan_directory(root_path, root_path, dest_root, limits, depth=0)
        finally:
            self._should_stop = None

        for chunk_id, chunk in enumerate(chunks, start=1):
            chunk.chunk_id = chunk_id

        logger.info(
            "Planned %d chunk(s) for %s (%d subtree(s) skipped)",
            len(chunks), root_path, len(self._skipped),
        )
        return chunks

    def get_skipped(self) -> List[str]:
        """Get the subtrees skipped by the last ``plan`` call."""
        return self._skipped.copy()

    def get_skipped_loose_files(self) -> List[str]:
        """Get directories whose own files could not be listed by the last ``plan``.

        Their subdirectories were still planned.
        """
        return self._skipped_loose_files.copy()

    def describe_skipped(self) -> List[str]:
        """Everything the last ``plan`` call left out, as display lines."""
        return self._skipped + [f"loose files of {path}" for path in self._skipped_loose_files]

    def _plan_directory(
        self,
        path: str,
        root_path: str,
        dest_root: str,
        limits: PlanThresholds,
        depth: int,
    ) -> List[Chunk]:
        if self._should_stop is not None and self._should_stop():
            raise PlanningCancelled(path)

        try:
            profile = self._profiler.profile(path)
        except PlanningError as e:
            self._skip(path, e)
            return []

        if profile.is_empty:
            logger.debug("Empty directory produces no chunk: %s", path)
            return []

        within_limits = (
            profile.total_size_bytes <= limits.max_size_bytes
            and profile.file_count <= limits.max_files
        )
        if within_limits or profile.total_size_bytes < limits.min_size_bytes:
            return [self._whole_directory_chunk(path, profile, root_path, dest_root, depth)]

        if depth >= limits.max_depth:
            logger.warning(
                "Depth limit %d reached at %s; chunk exceeds thresholds "
                "(%d bytes, %d files)",
                limits.max_depth, path, profile.total_size_bytes, profile.file_count,
            )
            return [self._whole_directory_chunk(path, profile, root_path, dest_root, depth)]

        try:
            subdirs, reparse_points = self._profiler.list_subdirectories(path)
        except PlanningError as e:
            self._skip(path, e)
            return []

        for reparse_point in reparse_points:
            logger.info("Not descending into reparse point %s", reparse_point)

        if not subdirs:
            logger.warning(
                "%s exceeds thresholds but has no subdirectories to split by", path
            )
            return [self._whole_directory_chunk(path, profile, root_path, dest_root, depth)]

        chunks: List[Chunk] = []
        for subdir in subdirs:
            chunks.extend(
                self._plan_directory(subdir, root_path, dest_root, limits, depth + 1)
            )

        try:
            file_count, file_bytes = self._profiler.loose_files(path)
        except PlanningError as e:
            logger.warning("Skipping loose files of %s: %s", path, e.reason)
            self._skipped_loose_files.append(path)
            return chunks

        if file_count > 0:
            chunks.append(
                Chunk(
                    source_path=path,
                    destination_path=map_destination(path, root_path, dest_root),
                    estimated_size_bytes=file_bytes,
                    estimated_file_count=file_count,
                    depth=depth,
                    is_files_only=True,
                    copy_options=FILES_ONLY_OPTIONS,
                )
            )

        return chunks

    def _whole_directory_chunk(
        self,
        path: str,
        profile: DirectoryProfile,
        root_path: str,
        dest_root: str,
        depth: int,
    ) -> Chunk:
        return Chunk(
            source_path=path,
            destination_path=map_destination(path, root_path, dest_root),
            estimated_size_bytes=profile.total_size_bytes,
            estimated_file_count=profile.file_count,
            depth=depth,
            copy_options=FULL_TREE_OPTIONS,
        )

    def _skip(self, path: str, error: PlanningError) -> None:
        logger.warning("Skipping %s: %s", path, error.reason)
        self._skipped.append(path)
