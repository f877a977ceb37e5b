"""Directory profiling package for chunksync.

This package provides the DirectoryProfiler, which measures directory trees
for the chunk planner and caches every directory profile it computes.

Example:
    >>> from chunksync.scanning import DirectoryProfiler
    >>> profiler = DirectoryProfiler(cache_ttl=3600)
    >>> profile = profiler.profile("/data/share")
    >>> subdirs, reparse_points = profiler.list_subdirectories("/data/share")
"""

from .directory_profiler import DirectoryProfiler, is_reparse_point

__all__ = ["DirectoryProfiler", "is_reparse_point"]
