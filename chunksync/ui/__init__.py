"""Terminal user interface package for chunksync."""

from .replication_tui import ReplicationTUI

__all__ = ["ReplicationTUI"]
