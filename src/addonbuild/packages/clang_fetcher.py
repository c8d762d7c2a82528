"""Alternate clang toolchain management.

The runtime is built with a specific Chromium clang. Building addons with
the same compiler guarantees compiler compatibility. The clang revision is
found by reading the runtime release's DEPS file for its Chromium revision,
then Chromium's clang update script for that revision.
"""

import base64
import logging
import os
import re
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .downloader import DownloadError, ExtractionError, PackageDownloader

CDS_URL = "https://commondatastorage.googleapis.com/chromium-browser-clang"
DEPS_URL = "https://raw.githubusercontent.com/electron/electron/v{version}/DEPS"
CLANG_UPDATE_URL = (
    "https://chromium.googlesource.com/chromium/src.git/+/{revision}"
    "/tools/clang/scripts/update.py?format=TEXT"
)

PLATFORM_URL_PREFIXES = {
    "linux": "Linux_x64",
    "darwin": "Mac",
    "win32": "Win",
}

_CHROMIUM_REVISION_RE = re.compile(r"'chromium_version':\n\s+'([^']+)")
_CLANG_REVISION_RE = re.compile(r"CLANG_REVISION = '([^']+)'\nCLANG_SUB_REVISION = (\d+)\n")
_CLANG_SVN_RE = re.compile(
    r"CLANG_REVISION = '([^']+)'\nCLANG_SVN_REVISION = '([^']+)'\nCLANG_SUB_REVISION = (\d+)\n"
)


class ToolchainError(Exception):
    """Raised when the clang toolchain cannot be obtained."""

    pass


@dataclass
class ClangEnvironment:
    """Environment overrides and extra builder arguments for clang."""

    env: Dict[str, str] = field(default_factory=dict)
    args: List[str] = field(default_factory=list)


def clang_version_from_revision(update_script: str) -> Optional[str]:
    """Parse '<revision>-<sub>' from a current-style update.py."""
    match = _CLANG_REVISION_RE.search(update_script)
    if not match:
        return None
    clang_version, sub_revision = match.groups()
    return f"{clang_version}-{sub_revision}"


def clang_version_from_svn(update_script: str) -> Optional[str]:
    """Parse '<svn>-<revision[:8]>-<sub>' from an older update.py."""
    match = _CLANG_SVN_RE.search(update_script)
    if not match:
        return None
    clang_version, svn_revision, sub_revision = match.groups()
    return f"{svn_revision}-{clang_version[:8]}-{sub_revision}"


def clang_download_url(package_file: str, package_version: str, host_platform: str) -> str:
    """URL of a clang package for the host platform."""
    if host_platform not in PLATFORM_URL_PREFIXES:
        raise ToolchainError(f"No clang package for platform: {host_platform}")
    return f"{CDS_URL}/{PLATFORM_URL_PREFIXES[host_platform]}/{package_file}-{package_version}.tgz"


class ClangToolchain:
    """Downloads and describes the runtime's clang toolchain."""

    def __init__(
        self,
        gyp_dir: Path,
        host_platform: str,
        downloader: Optional[PackageDownloader] = None,
    ):
        """Initialize toolchain manager.

        Args:
            gyp_dir: Directory where headers and toolchains are kept
            host_platform: Host platform in runtime naming ('linux', 'darwin', 'win32')
            downloader: Downloader to use (created if not given)
        """
        self.gyp_dir = Path(gyp_dir)
        self.host_platform = host_platform
        self.downloader = downloader or PackageDownloader()
        self._install_locks: Dict[str, threading.Lock] = {}
        self._install_locks_guard = threading.Lock()

    def clang_dir(self, runtime_version: str) -> Path:
        return self.gyp_dir / f"{runtime_version}-clang"

    def is_installed(self, runtime_version: str) -> bool:
        return (self.clang_dir(runtime_version) / "bin" / "clang").exists()

    def _install_lock(self, runtime_version: str) -> threading.Lock:
        with self._install_locks_guard:
            return self._install_locks.setdefault(runtime_version, threading.Lock())

    def resolve_clang_version(self, runtime_version: str) -> str:
        """Find the clang package version a runtime release was built with.

        Raises:
            ToolchainError: If either revision cannot be determined
        """
        try:
            deps = self.downloader.fetch_text(DEPS_URL.format(version=runtime_version))
        except DownloadError as e:
            raise ToolchainError(str(e))

        match = _CHROMIUM_REVISION_RE.search(deps)
        if not match:
            raise ToolchainError("Failed to determine Chromium revision for given runtime version")
        chromium_revision = match.group(1)
        logging.debug(f"Fetching clang for Chromium {chromium_revision}")

        try:
            encoded = self.downloader.fetch_text(CLANG_UPDATE_URL.format(revision=chromium_revision))
        except DownloadError as e:
            raise ToolchainError(str(e))
        update_script = base64.b64decode(encoded).decode("utf-8")

        version = clang_version_from_revision(update_script) or clang_version_from_svn(update_script)
        if not version:
            raise ToolchainError("Failed to determine Clang revision from runtime version")
        return version

    def ensure_toolchain(self, runtime_version: str) -> Path:
        """Ensure clang for the runtime version is available locally.

        Returns:
            Path to the extracted toolchain directory

        Raises:
            ToolchainError: If the toolchain cannot be downloaded or extracted
        """
        clang_dir = self.clang_dir(runtime_version)
        if self.is_installed(runtime_version):
            return clang_dir

        # Modules built in parallel share one download per runtime version
        with self._install_lock(runtime_version):
            if self.is_installed(runtime_version):
                return clang_dir
            self._install(runtime_version, clang_dir)
        return clang_dir

    def _install(self, runtime_version: str, clang_dir: Path) -> None:
        logging.info(f"Fetching clang for runtime {runtime_version}")
        self.gyp_dir.mkdir(parents=True, exist_ok=True)

        clang_version = self.resolve_clang_version(runtime_version)
        url = clang_download_url("clang", clang_version, self.host_platform)
        archive_path = self.gyp_dir / f"{runtime_version}-clang.tgz"

        try:
            self.downloader.download(url, archive_path)
            self.downloader.extract_archive(archive_path, clang_dir)
        except (DownloadError, ExtractionError, OSError) as e:
            raise ToolchainError(f"Failed to install clang {clang_version}: {e}")
        finally:
            if archive_path.exists():
                archive_path.unlink()

    def get_environment(self, runtime_version: str) -> ClangEnvironment:
        """Compiler environment variables and builder arguments for clang."""
        clang_bin = self.clang_dir(runtime_version) / "bin"

        clang_args: List[str] = []
        if self.host_platform == "darwin":
            clang_args.extend(["-isysroot", self._sdk_root()])

        gyp_args: List[str] = []
        if self.host_platform == "win32":
            gyp_args.extend(["/p:CLToolExe=clang-cl.exe", f"/p:CLToolPath={clang_bin}"])

        suffix = f" {' '.join(clang_args)}" if clang_args else ""
        return ClangEnvironment(
            env={
                "CC": f'"{clang_bin / "clang"}"{suffix}',
                "CXX": f'"{clang_bin / "clang++"}"{suffix}',
            },
            args=gyp_args,
        )

    @staticmethod
    def _sdk_root() -> str:
        sdk_root = os.environ.get("SDKROOT")
        if sdk_root:
            return sdk_root
        try:
            result = subprocess.run(
                ["xcrun", "--sdk", "macosx", "--show-sdk-path"],
                capture_output=True,
                text=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            raise ToolchainError(f"Unable to locate the macOS SDK: {e}")
        return result.stdout.strip()
