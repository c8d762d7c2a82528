"""Locate the installed runtime package to learn its version."""

from pathlib import Path
from typing import Optional

from .manifest import MANIFEST_FILENAME, ManifestError, read_manifest
from .search import search_for_module

RUNTIME_MODULE_NAMES = ("electron", "electron-prebuilt", "electron-prebuilt-compile")


def locate_electron_module(
    project_root: Optional[Path] = None, start_dir: Optional[Path] = None
) -> Optional[Path]:
    """Find the directory of the installed runtime package.

    Args:
        project_root: Directory where the ancestor search stops
        start_dir: Directory to start from (defaults to the project root,
            then the current directory)

    Returns:
        Path of the first runtime package with a manifest, or None
    """
    start = start_dir or project_root or Path.cwd()
    for module_name in RUNTIME_MODULE_NAMES:
        for candidate in search_for_module(start, module_name, project_root):
            if (candidate / MANIFEST_FILENAME).exists():
                return candidate
    return None


def read_electron_version(module_path: Path) -> str:
    """Read the version of an installed runtime package.

    Raises:
        ManifestError: If the manifest is unreadable or has no version
    """
    version = read_manifest(module_path).version
    if not version:
        raise ManifestError(f"No version in {Path(module_path) / MANIFEST_FILENAME}")
    return version
