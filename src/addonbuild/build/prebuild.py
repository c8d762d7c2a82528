"""Prebuilt binary acquisition through a module's own prebuild-install.

Modules depending on ``prebuild-install`` can often download a binary
published for the target runtime instead of compiling. Any failure here is
recoverable: the caller falls back to a full rebuild.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from ..config.target import BuildTarget
from ..packages.manifest import Manifest
from ..packages.search import traverse_ancestor_directories

PREBUILD_HELPER = "prebuild-install"
PREBUILD_HELPER_BIN = Path("node_modules") / PREBUILD_HELPER / "bin.js"


class PrebuildError(Exception):
    """Raised when a prebuilt binary cannot be acquired."""

    pass


def declares_prebuild_helper(manifest: Manifest) -> bool:
    """True if the module lists prebuild-install among its dependencies."""
    return PREBUILD_HELPER in manifest.dependency_names(["prod"])


def locate_prebuild_helper(module_path: Path) -> Optional[Path]:
    """Find prebuild-install's entry point from the module directory upward."""
    found = traverse_ancestor_directories(
        module_path, lambda traversed: traversed / PREBUILD_HELPER_BIN, max_items=1
    )
    return found[0] if found else None


class PrebuildAcquirer:
    """Runs prebuild-install for a module."""

    def __init__(self, node_command: Optional[Sequence[str]] = None, timeout: float = 300):
        """Initialize acquirer.

        Args:
            node_command: Command used to run JavaScript (default: node)
            timeout: Seconds before the download is abandoned
        """
        self.node_command = list(node_command) if node_command else [shutil.which("node") or "node"]
        self.timeout = timeout

    def build_args(self, helper_path: Path, target: BuildTarget) -> List[str]:
        return [
            str(helper_path),
            f"--arch={target.arch}",
            f"--platform={target.platform}",
            "--runtime=electron",
            f"--target={target.runtime_version}",
            f"--tag-prefix={target.prebuild_tag_prefix}",
        ]

    def acquire(self, helper_path: Path, module_path: Path, target: BuildTarget) -> None:
        """Download the prebuilt binary into the module.

        Raises:
            PrebuildError: If prebuild-install fails or cannot be run
        """
        cmd = self.node_command + self.build_args(helper_path, target)
        logging.debug(f"Triggering prebuild download step for {module_path}")
        try:
            result = subprocess.run(
                cmd,
                cwd=str(module_path),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise PrebuildError(f"Failed to run {PREBUILD_HELPER}: {e}")

        if result.returncode != 0:
            raise PrebuildError(
                f"{PREBUILD_HELPER} exited with code {result.returncode}: {result.stderr.strip()}"
            )
