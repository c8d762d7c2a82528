"""Platform Detection Utilities.

This module detects the host platform, architecture and C library family
using the naming conventions of the target runtime (``process.platform`` and
``process.arch`` style names), which is what native addon packages use in
their prebuilt and output paths.

Supported Platforms:
    - Windows: win32
    - Linux: linux
    - macOS: darwin
"""

import platform
import sys
from pathlib import Path


class PlatformError(Exception):
    """Raised when platform detection fails or platform is unsupported."""

    pass


class PlatformDetector:
    """Detects the current platform and architecture for native builds."""

    @staticmethod
    def detect_platform() -> str:
        """Detect the host platform in runtime naming.

        Returns:
            Platform identifier ('win32', 'linux' or 'darwin')

        Raises:
            PlatformError: If platform is unsupported
        """
        system = platform.system().lower()

        if system == "windows":
            return "win32"
        elif system == "linux":
            return "linux"
        elif system == "darwin":
            return "darwin"
        else:
            raise PlatformError(f"Unsupported platform: {system}")

    @staticmethod
    def detect_arch() -> str:
        """Detect the host architecture in runtime naming.

        Returns:
            Architecture identifier ('x64', 'ia32', 'arm64' or 'arm')
        """
        machine = platform.machine().lower()

        if machine in ("x86_64", "amd64"):
            return "x64"
        elif machine in ("i386", "i686", "x86"):
            return "ia32"
        elif machine in ("aarch64", "arm64"):
            return "arm64"
        elif machine.startswith("arm"):
            return "arm"
        else:
            # Default to x64 if unknown
            return "x64" if sys.maxsize > 2**32 else "ia32"

    @staticmethod
    def detect_libc_family() -> str:
        """Detect the C library family on Linux.

        Returns:
            'glibc', 'musl' or 'unknown'
        """
        if platform.system().lower() != "linux":
            return "unknown"

        libc, _version = platform.libc_ver()
        if libc == "glibc":
            return "glibc"
        if list(Path("/lib").glob("ld-musl-*")):
            return "musl"
        return "unknown"
