"""Copy execution package for chunksync.

This package provides the CopyExecutor interface used by the orchestrator,
a robocopy-backed implementation, and exit-code decoding.

Example:
    >>> from chunksync.operations import RobocopyExecutor, classify_exit_code
    >>> executor = RobocopyExecutor(threads=8)
    >>> handle = executor.start(r"\\\\server\\share\\a", r"D:\\Backup\\a")
    >>> executor.poll(handle).is_complete
    False
"""

from .copy_executor import (
    KILLED_EXIT_CODE,
    CopyExecutor,
    ProcessCopyExecutor,
    ProcessJob,
    RobocopyExecutor,
)
from .exit_codes import classify_exit_code, describe_exit_code

__all__ = [
    "KILLED_EXIT_CODE",
    "CopyExecutor",
    "ProcessCopyExecutor",
    "ProcessJob",
    "RobocopyExecutor",
    "classify_exit_code",
    "describe_exit_code",
]
