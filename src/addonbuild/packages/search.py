"""Module discovery by walking ancestor directories.

Node-style resolution looks for ``node_modules/<name>`` in the starting
directory and then in every ancestor. These helpers reproduce that walk
and return every match, nearest first.
"""

import os
from pathlib import Path
from typing import Callable, List, Optional

from .manifest import MANIFEST_FILENAME
from .paths import PathLike, PathResolver

LOCKFILE_NAMES = ("yarn.lock", "package-lock.json")


def _should_continue(
    traversed: Path, root_path: Optional[Path], stop_at_manifest: bool
) -> bool:
    if root_path is not None:
        return traversed != root_path.parent
    if stop_at_manifest:
        return PathResolver.exists(traversed / MANIFEST_FILENAME)
    return True


def traverse_ancestor_directories(
    cwd: PathLike,
    path_generator: Callable[[Path], Path],
    root_path: Optional[PathLike] = None,
    max_items: Optional[int] = None,
    stop_at_manifest: bool = False,
) -> List[Path]:
    """Walk from ``cwd`` up to the filesystem root collecting existing paths.

    Args:
        cwd: Directory to start from
        path_generator: Maps a visited directory to the candidate path to test
        root_path: Stop after visiting this directory
        max_items: Stop as soon as this many paths were found
        stop_at_manifest: Without root_path, stop at the first directory
            lacking a package.json

    Returns:
        Existing candidate paths, nearest first
    """
    paths: List[Path] = []
    root = Path(os.path.abspath(root_path)) if root_path is not None else None
    traversed = Path(os.path.abspath(cwd))

    while _should_continue(traversed, root, stop_at_manifest):
        generated = path_generator(traversed)
        if PathResolver.exists(generated):
            paths.append(generated)

        parent = traversed.parent
        if parent == traversed or (max_items and len(paths) >= max_items):
            break
        traversed = parent

    return paths


def search_for_module(
    cwd: PathLike, module_name: str, root_path: Optional[PathLike] = None
) -> List[Path]:
    """Find every ``node_modules/<module_name>`` from cwd upward.

    Scoped names ('@scope/name') work as they map to nested directories.

    Args:
        cwd: Directory to start from
        module_name: Package name
        root_path: Project root; the walk ends there when given
    """
    return traverse_ancestor_directories(
        cwd,
        lambda traversed: traversed / "node_modules" / module_name,
        root_path,
        stop_at_manifest=True,
    )


def search_for_node_modules(
    cwd: PathLike, root_path: Optional[PathLike] = None
) -> List[Path]:
    """Find every ``node_modules`` directory from cwd upward."""
    return traverse_ancestor_directories(
        cwd,
        lambda traversed: traversed / "node_modules",
        root_path,
        stop_at_manifest=True,
    )


def find_project_root(cwd: PathLike) -> Path:
    """Return the nearest directory holding a yarn or npm lockfile.

    Falls back to ``cwd`` when no ancestor has one.
    """
    for lockfile in LOCKFILE_NAMES:
        lock_paths = traverse_ancestor_directories(
            cwd,
            lambda traversed, name=lockfile: traversed / name,
            max_items=1,
        )
        if lock_paths:
            return lock_paths[0].parent
    return Path(os.path.abspath(cwd))
