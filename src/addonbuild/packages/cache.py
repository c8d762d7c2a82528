"""Content-addressed cache of rebuilt modules.

A module's cache key is a SHA256 digest over the cache format version, the
module's directory name, the build target (ABI, arch, debug flag, header
URL, runtime version) and a hash tree of the module's own sources. When a
module is rebuilt, a snapshot of its directory is stored under that key so
a later run with identical inputs can replay it instead of compiling.

Cache Structure:
    ~/.addon-rebuild-cache/
    ├── {cache_key}.tar.gz      # gzip tar snapshot of the module directory
    └── ...

Nested ``node_modules`` are never hashed nor stored. The top-level ``build``
and ``bin`` directories are build output, so they are left out of the hash
tree but are part of the stored snapshot.
"""

import hashlib
import logging
import os
import tarfile
import tempfile
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Union

from ..config.target import BuildTarget

# Bump when the key derivation or snapshot format changes so old entries miss
CACHE_FORMAT_VERSION = 1

OUTPUT_DIRECTORIES = ("build", "bin")
NESTED_MODULES_DIR = "node_modules"

HashTree = Dict[str, Union[str, "HashTree"]]
ReplayFn = Callable[[Path], None]


class CacheError(Exception):
    """Raised when a cache entry cannot be stored or replayed."""

    pass


def _list_children(directory: Path) -> list:
    return os.listdir(directory)


def _hash_file(file_path: Path, chunk_size: int = 65536) -> str:
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def _hash_directory(
    directory: Path, relative_to: Path, executor: Executor, seen: Set[str]
) -> HashTree:
    real_dir = os.path.realpath(directory)
    if real_dir in seen:
        # Symlink back into a directory already being hashed
        return {}
    seen = seen | {real_dir}

    tree: HashTree = {}
    pending: Dict[str, Future] = {}

    for child in _list_children(directory):
        if directory == relative_to and child in OUTPUT_DIRECTORIES:
            continue
        if child == NESTED_MODULES_DIR:
            continue

        child_path = directory / child
        relative = child_path.relative_to(relative_to).as_posix()
        if child_path.is_dir():
            tree[relative] = _hash_directory(child_path, relative_to, executor, seen)
        else:
            pending[relative] = executor.submit(_hash_file, child_path)

    for relative, future in pending.items():
        tree[relative] = future.result()
    return tree


def hash_tree(directory: Path, max_workers: Optional[int] = None) -> HashTree:
    """Hash every source file of a module directory.

    Args:
        directory: Module root
        max_workers: Thread pool size for file hashing

    Returns:
        Mapping of POSIX relative path to hex digest (files) or nested
        mapping (directories)
    """
    directory = Path(directory)
    logging.debug(f"Hashing directory {directory}")
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return _hash_directory(directory, directory, executor, set())


def _fold_tree(tree: HashTree, hasher: Any) -> None:
    for key in sorted(tree):
        hasher.update(key.encode("utf-8") + b"\0")
        value = tree[key]
        if isinstance(value, str):
            hasher.update(value.encode("utf-8") + b"\0")
        else:
            _fold_tree(value, hasher)


def derive_key(tree: HashTree, module_name: str, target: BuildTarget) -> str:
    """Combine a hash tree with the build target into a cache key.

    Tree keys are visited in sorted order at every level, so the key does
    not depend on the order in which the filesystem listed entries.
    """
    hasher = hashlib.sha256()
    for part in (
        str(CACHE_FORMAT_VERSION),
        module_name,
        target.abi,
        target.arch,
        "debug" if target.debug else "not debug",
        target.header_url,
        target.runtime_version,
    ):
        hasher.update(part.encode("utf-8") + b"\0")
    _fold_tree(tree, hasher)
    return hasher.hexdigest()


class ModuleCache:
    """Stores and replays module snapshots keyed by cache key."""

    def __init__(self, cache_root: Path, max_workers: Optional[int] = None):
        """Initialize module cache.

        Args:
            cache_root: Directory holding cache entries
            max_workers: Thread pool size for hashing
        """
        self.cache_root = Path(cache_root)
        self.max_workers = max_workers

    def entry_path(self, key: str) -> Path:
        """Path of the snapshot archive for a key."""
        return self.cache_root / f"{key}.tar.gz"

    def generate_key(self, module_path: Path, target: BuildTarget) -> str:
        """Hash a module directory and derive its key for the target."""
        module_path = Path(module_path)
        tree = hash_tree(module_path, self.max_workers)
        key = derive_key(tree, module_path.name, target)
        logging.debug(f"Calculated hash of {module_path} to be {key}")
        return key

    def lookup(self, key: str) -> Optional[ReplayFn]:
        """Find a cached snapshot.

        Returns:
            None on a miss, otherwise a function that replays the snapshot
            onto a module directory
        """
        archive_path = self.entry_path(key)
        if not archive_path.is_file():
            return None

        def apply_snapshot(module_path: Path) -> None:
            try:
                with tarfile.open(archive_path, "r:gz") as tar:
                    tar.extractall(Path(module_path), filter="data")
            except (OSError, tarfile.TarError) as e:
                raise CacheError(f"Failed to replay cache entry {key} onto {module_path}: {e}")

        return apply_snapshot

    def store(self, module_path: Path, key: str) -> bool:
        """Snapshot a module directory under a key.

        Failures are logged and reported through the return value only;
        a module build never fails because its result could not be cached.

        Returns:
            True if the entry was written
        """
        module_path = Path(module_path)
        archive_path = self.entry_path(key)
        temp_file = None
        try:
            self.cache_root.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{key}.", suffix=".tmp", dir=self.cache_root
            )
            os.close(fd)
            temp_file = Path(temp_name)

            with tarfile.open(temp_file, "w:gz") as tar:
                tar.add(
                    module_path,
                    arcname=".",
                    filter=_exclude_nested_modules,
                )

            temp_file.replace(archive_path)
            temp_file = None
            logging.debug(f"Stored cache entry {archive_path} for {module_path}")
            return True
        except (OSError, tarfile.TarError) as e:
            logging.warning(f"Failed to cache {module_path}: {e}")
            return False
        finally:
            if temp_file is not None and temp_file.exists():
                temp_file.unlink()


def _exclude_nested_modules(info: tarfile.TarInfo) -> Optional[tarfile.TarInfo]:
    if NESTED_MODULES_DIR in Path(info.name).parts:
        return None
    return info
