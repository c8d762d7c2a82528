"""
Configuration for addon rebuilds.

This module provides:
- Runtime version normalization and ABI lookup
- Host platform/architecture detection
- The validated per-run BuildTarget
"""

from .abi import lookup_abi
from .platform_utils import PlatformDetector, PlatformError
from .target import (
    BuildTarget,
    ConfigurationError,
    RebuildOptions,
    default_cache_path,
    default_gyp_dir,
    normalize_version,
)

__all__ = [
    "BuildTarget",
    "ConfigurationError",
    "PlatformDetector",
    "PlatformError",
    "RebuildOptions",
    "default_cache_path",
    "default_gyp_dir",
    "lookup_abi",
    "normalize_version",
]
