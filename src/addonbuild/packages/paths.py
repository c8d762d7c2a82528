"""Filesystem path helpers.

Package managers link modules into ``node_modules`` with symlinks, so
anything that deduplicates modules must compare canonical paths.
"""

import os
from pathlib import Path
from typing import Union

PathLike = Union[str, "os.PathLike[str]"]


class PathResolver:
    """Canonicalizes paths and answers existence queries."""

    @staticmethod
    def canonical(path: PathLike) -> Path:
        """Resolve symlinks and '..' segments.

        Args:
            path: Path to resolve

        Returns:
            Absolute, symlink-free path (non-existent tails are kept as is)
        """
        return Path(os.path.realpath(path))

    @staticmethod
    def exists(path: PathLike) -> bool:
        """Return True if the path exists, False on any OS error."""
        try:
            return Path(path).exists()
        except OSError:
            return False

    @staticmethod
    def is_dir(path: PathLike) -> bool:
        """Return True if the path is a directory, False on any OS error."""
        try:
            return Path(path).is_dir()
        except OSError:
            return False
