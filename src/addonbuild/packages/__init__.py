"""Package discovery and caching for addon rebuilds.

This module handles finding installed packages, resolving which of them
are production dependencies, caching rebuilt modules, and fetching the
alternate compiler toolchain.
"""

from .cache import CacheError, ModuleCache, derive_key, hash_tree
from .clang_fetcher import ClangEnvironment, ClangToolchain, ToolchainError
from .downloader import ChecksumError, DownloadError, ExtractionError, PackageDownloader
from .electron_locator import locate_electron_module, read_electron_version
from .manifest import Manifest, ManifestError, ModuleDescriptor, read_manifest
from .paths import PathResolver
from .prod_deps import ProdDependencySet, ProdSetResolver
from .search import find_project_root, search_for_module, search_for_node_modules

__all__ = [
    "CacheError",
    "ModuleCache",
    "derive_key",
    "hash_tree",
    "ClangEnvironment",
    "ClangToolchain",
    "ToolchainError",
    "ChecksumError",
    "DownloadError",
    "ExtractionError",
    "PackageDownloader",
    "locate_electron_module",
    "read_electron_version",
    "Manifest",
    "ManifestError",
    "ModuleDescriptor",
    "read_manifest",
    "PathResolver",
    "ProdDependencySet",
    "ProdSetResolver",
    "find_project_root",
    "search_for_module",
    "search_for_node_modules",
]
