"""Chunk planning package for chunksync.

Example:
    >>> from chunksync.planning import ChunkPlanner, map_destination
    >>> chunks = ChunkPlanner().plan("/data/share", "/backup/share")
    >>> map_destination("/data/share/a", "/data/share", "/backup/share")
    '/backup/share/a'
"""

from .chunk_planner import FILES_ONLY_OPTIONS, FULL_TREE_OPTIONS, ChunkPlanner
from .destination import map_destination

__all__ = [
    "ChunkPlanner",
    "FILES_ONLY_OPTIONS",
    "FULL_TREE_OPTIONS",
    "map_destination",
]
