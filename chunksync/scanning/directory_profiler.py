"""Directory profiling for chunk planning.

This module provides the DirectoryProfiler class which measures directory trees
(total bytes, file count, directory count) and caches the result for every
directory visited, so that the planner can profile a root once and then
descend into its children without walking the same files again.

Example:
    >>> from chunksync.scanning import DirectoryProfiler
    >>> profiler = DirectoryProfiler()
    >>> profile = profiler.profile("/data/share")
    >>> print(f"{profile.file_count} files, {profile.total_size_bytes} bytes")
"""

import logging
import os
import stat
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from chunksync.errors import PlanningCancelled, ProfilingError
from chunksync.models import DirectoryProfile

logger = logging.getLogger("chunksync.profiler")

DEFAULT_CACHE_TTL = 4 * 60 * 60


def is_reparse_point(entry: os.DirEntry) -> bool:
    """Return True for symlinked directories, junctions and other reparse points."""
    if entry.is_symlink():
        return entry.is_dir(follow_symlinks=True)
    is_junction = getattr(entry, "is_junction", None)
    if is_junction is not None and is_junction():
        return True
    try:
        attributes = getattr(entry.stat(follow_symlinks=False), "st_file_attributes", 0)
    except OSError:
        return False
    return bool(attributes & stat.FILE_ATTRIBUTE_REPARSE_POINT)


def _cache_key(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


class DirectoryProfiler:
    """Profiles directory trees and caches the results.

    Directory reparse points (symlinked directories and junctions) are never
    followed, matching what the copy executor is told to skip. Symlinked
    files are counted by their target size.

    Unreadable descendants are recorded in the error list and left out of
    the totals. Only a failure on the requested directory itself raises.

    Attributes:
        cache_ttl: Seconds a cached profile stays valid.
    """

    def __init__(
        self,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.time,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Initialize the DirectoryProfiler.

        Args:
            cache_ttl: Seconds a cached profile stays valid. Defaults to four hours.
            clock: Wall-clock source in epoch seconds, replaceable for tests.
            should_stop: Checked before each directory is read during a walk.
                When it returns True the walk raises PlanningCancelled.
        """
        self.cache_ttl = cache_ttl
        self.should_stop = should_stop
        self._clock = clock
        self._cache: Dict[str, DirectoryProfile] = {}
        self._errors: List[str] = []

    def profile(self, path: str) -> DirectoryProfile:
        """Return size and count statistics for the tree rooted at ``path``.

        Args:
            path: Directory to profile.

        Returns:
            DirectoryProfile for the directory, possibly from the cache.

        Raises:
            ProfilingError: If the directory is missing, not a directory,
                or cannot be read.
            PlanningCancelled: If ``should_stop`` fired during the walk.
        """
        cached = self._cached(path)
        if cached is not None:
            return cached

        if not os.path.exists(path):
            raise ProfilingError(path, "directory not found")
        if not os.path.isdir(path):
            raise ProfilingError(path, "not a directory")

        try:
            return self._scan(path, self._clock())
        except PermissionError as e:
            raise ProfilingError(path, f"permission denied ({e})") from e
        except OSError as e:
            raise ProfilingError(path, str(e)) from e

    def list_subdirectories(self, path: str) -> Tuple[List[str], List[str]]:
        """List the immediate child directories of ``path``.

        Args:
            path: Directory to enumerate.

        Returns:
            Tuple of (subdirectories, reparse_points), each sorted by name.
            Reparse points are reported separately and must not be descended.

        Raises:
            ProfilingError: If the directory cannot be enumerated.
        """
        subdirs: List[str] = []
        reparse_points: List[str] = []
        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    try:
                        if is_reparse_point(entry):
                            reparse_points.append(entry.path)
                        elif entry.is_dir(follow_symlinks=False):
                            subdirs.append(entry.path)
                    except OSError as e:
                        self._record_error(f"Error accessing {entry.path}: {e}")
        except OSError as e:
            raise ProfilingError(path, f"cannot enumerate ({e})") from e
        return sorted(subdirs), sorted(reparse_points)

    def loose_files(self, path: str) -> Tuple[int, int]:
        """Count the files located directly inside ``path``.

        Returns:
            Tuple of (file_count, total_bytes).

        Raises:
            ProfilingError: If the directory cannot be enumerated.
        """
        count = 0
        total = 0
        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    try:
                        if entry.is_file():
                            total += entry.stat().st_size
                            count += 1
                    except OSError as e:
                        self._record_error(f"Error accessing {entry.path}: {e}")
        except OSError as e:
            raise ProfilingError(path, f"cannot enumerate ({e})") from e
        return count, total

    def invalidate(self, path: Optional[str] = None) -> None:
        """Drop cached profiles: one path and its descendants, or everything."""
        if path is None:
            self._cache.clear()
            return
        key = _cache_key(path)
        prefix = key.rstrip(os.sep) + os.sep
        for cached_key in [k for k in self._cache if k == key or k.startswith(prefix)]:
            del self._cache[cached_key]

    def get_errors(self) -> List[str]:
        """Get list of errors encountered during profiling.

        Returns:
            List of error message strings.
        """
        return self._errors.copy()

    def clear_errors(self) -> None:
        """Clear the list of accumulated errors."""
        self._errors.clear()

    def _cached(self, path: str) -> Optional[DirectoryProfile]:
        key = _cache_key(path)
        profile = self._cache.get(key)
        if profile is None or profile.last_scanned is None:
            return None
        age = self._clock() - profile.last_scanned.timestamp()
        if age > self.cache_ttl:
            del self._cache[key]
            return None
        return profile

    def _scan(self, path: str, scanned_at: float) -> DirectoryProfile:
        """Walk ``path`` depth-first, caching a profile for every directory seen."""
        if self.should_stop is not None and self.should_stop():
            raise PlanningCancelled(path)

        total_size = 0
        file_count = 0
        dir_count = 0

        with os.scandir(path) as entries:
            for entry in entries:
                try:
                    if is_reparse_point(entry):
                        logger.debug("Not following reparse point %s", entry.path)
                        continue

                    if entry.is_dir(follow_symlinks=False):
                        child = self._scan(entry.path, scanned_at)
                        total_size += child.total_size_bytes
                        file_count += child.file_count
                        dir_count += 1 + child.dir_count
                    elif entry.is_file():
                        total_size += entry.stat().st_size
                        file_count += 1

                except PermissionError:
                    self._record_error(f"Permission denied: {entry.path}")
                except OSError as e:
                    self._record_error(f"Error accessing {entry.path}: {e}")

        profile = DirectoryProfile(
            path=path,
            total_size_bytes=total_size,
            file_count=file_count,
            dir_count=dir_count,
            last_scanned=datetime.fromtimestamp(scanned_at),
        )
        self._cache[_cache_key(path)] = profile
        return profile

    def _record_error(self, message: str) -> None:
        logger.warning(message)
        self._errors.append(message)
