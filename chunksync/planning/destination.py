"""Source-to-destination path mapping."""

import os
import re
from pathlib import PurePath, PurePosixPath, PureWindowsPath
from typing import Type

_WINDOWS_ROOT_RE = re.compile(r"^(?:[A-Za-z]:|\\\\)")


def path_flavour(root: str) -> Type[PurePath]:
    """Pick Windows path rules on Windows or for a drive-letter or UNC root.

    Only the shape of a root is considered. Names below it are never used to
    decide, since a backslash is an ordinary character in a POSIX file name.
    """
    if os.name == "nt" or _WINDOWS_ROOT_RE.match(root):
        return PureWindowsPath
    return PurePosixPath


def map_destination(source_path: str, root_path: str, dest_root: str) -> str:
    """Replace the ``root_path`` prefix of ``source_path`` with ``dest_root``.

    Trailing separators on any argument are ignored, so
    ``\\\\server\\share\\folder\\`` under ``\\\\server\\share\\`` maps to
    ``D:\\Backup\\folder`` for a ``D:\\Backup\\`` destination root.

    Raises:
        ValueError: If ``source_path`` is not inside ``root_path``.
    """
    source_flavour = path_flavour(root_path)
    source = source_flavour(source_path)
    root = source_flavour(root_path)
    try:
        relative = source.relative_to(root)
    except ValueError:
        raise ValueError(f"{source_path} is not inside {root_path}") from None
    return str(path_flavour(dest_root)(dest_root).joinpath(*relative.parts))
