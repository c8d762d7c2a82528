"""Build target configuration.

``RebuildOptions`` holds what a caller asked for; ``BuildTarget`` is the
validated, fully derived configuration for a single rebuild run. All
validation happens in ``BuildTarget.from_options`` so that a bad runtime
version or relative project path fails before any module is touched.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .abi import lookup_abi
from .platform_utils import PlatformDetector

DEFAULT_HEADER_URL = "https://www.electronjs.org/headers"
DEFAULT_TYPES: Tuple[str, ...] = ("prod", "optional")
VALID_TYPES = ("prod", "dev", "optional")
VALID_MODES = ("sequential", "parallel")

_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?$")


class ConfigurationError(ValueError):
    """Raised when rebuild options are invalid."""

    pass


def default_cache_path() -> Path:
    """Cache root, overridable through ADDONBUILD_CACHE_DIR."""
    cache_env = os.environ.get("ADDONBUILD_CACHE_DIR")
    if cache_env:
        return Path(cache_env).resolve()
    return Path.home() / ".addon-rebuild-cache"


def default_gyp_dir() -> Path:
    """Header and toolchain directory, overridable through ADDONBUILD_GYP_DIR."""
    gyp_env = os.environ.get("ADDONBUILD_GYP_DIR")
    if gyp_env:
        return Path(gyp_env).resolve()
    return Path.home() / ".electron-gyp"


def normalize_version(version: Union[str, int, float]) -> str:
    """Normalize a runtime version to 'major.minor.patch'.

    Args:
        version: Version as given by the caller ('12', 12, '12.1', 12.1, '12.1.3')

    Returns:
        Three component version string

    Raises:
        ConfigurationError: If the version is malformed
    """
    if isinstance(version, bool) or not isinstance(version, (str, int, float)):
        raise ConfigurationError(
            f'Expected a string version for the runtime version, got a "{type(version).__name__}"'
        )

    text = str(version).strip().lstrip("v")
    core, sep, tag = text.partition("-")
    parts = core.split(".")
    if len(parts) == 1:
        core = f"{core}.0.0"
    elif len(parts) == 2:
        core = f"{core}.0"
    normalized = f"{core}{sep}{tag}"

    if not _VERSION_RE.match(normalized):
        raise ConfigurationError(f"Invalid runtime version: {version!r}")
    return normalized


@dataclass
class RebuildOptions:
    """Options accepted by ``addonbuild.rebuild``."""

    build_path: Path
    runtime_version: Union[str, int, float]
    arch: Optional[str] = None
    extra_modules: Sequence[str] = ()
    only_modules: Optional[Sequence[str]] = None
    force: bool = False
    header_url: Optional[str] = None
    types: Sequence[str] = DEFAULT_TYPES
    mode: str = "sequential"
    debug: bool = False
    use_cache: bool = False
    cache_path: Optional[Path] = None
    prebuild_tag_prefix: str = "v"
    force_abi: Optional[Union[str, int]] = None
    use_electron_clang: bool = False
    project_root_path: Optional[Path] = None
    fail_fast: bool = False
    max_workers: Optional[int] = None


@dataclass
class BuildTarget:
    """Validated configuration for one rebuild invocation."""

    build_path: Path
    runtime_version: str
    arch: str
    abi: str
    platform: str
    header_url: str = DEFAULT_HEADER_URL
    extra_modules: List[str] = field(default_factory=list)
    only_modules: Optional[List[str]] = None
    force: bool = False
    types: Tuple[str, ...] = DEFAULT_TYPES
    mode: str = "sequential"
    debug: bool = False
    use_cache: bool = False
    cache_path: Path = field(default_factory=default_cache_path)
    gyp_dir: Path = field(default_factory=default_gyp_dir)
    prebuild_tag_prefix: str = "v"
    use_electron_clang: bool = False
    project_root_path: Optional[Path] = None
    msvs_version: Optional[str] = None
    fail_fast: bool = False
    max_workers: Optional[int] = None

    @property
    def build_type(self) -> str:
        """'Debug' or 'Release' build output directory name."""
        return "Debug" if self.debug else "Release"

    @property
    def marker_data(self) -> str:
        """Contents of the completion marker for this target."""
        return f"{self.arch}--{self.abi}"

    @property
    def node_abi_tag(self) -> str:
        """Value substituted for {node_abi} in binary path templates."""
        major, minor = self.runtime_version.split(".")[:2]
        return f"electron-v{major}.{minor}"

    @classmethod
    def from_options(cls, options: RebuildOptions) -> "BuildTarget":
        """Validate options and derive the runtime version and ABI.

        Raises:
            ConfigurationError: On a malformed version, relative build path,
                unknown dependency type or mode, or an underivable ABI
        """
        build_path = Path(options.build_path)
        if not build_path.is_absolute():
            raise ConfigurationError("Expected build_path to be an absolute path")

        runtime_version = normalize_version(options.runtime_version)

        types = tuple(options.types)
        for dep_type in types:
            if dep_type not in VALID_TYPES:
                raise ConfigurationError(
                    f"Unknown dependency type '{dep_type}', expected one of {', '.join(VALID_TYPES)}"
                )

        if options.mode not in VALID_MODES:
            raise ConfigurationError(f"Unknown rebuild mode '{options.mode}'")

        if options.force_abi is not None:
            abi = str(options.force_abi)
            if not abi.isdigit():
                raise ConfigurationError("force_abi must be a number")
        else:
            abi = lookup_abi(runtime_version)
            if abi is None:
                raise ConfigurationError(
                    f"Unable to determine the ABI for runtime version {runtime_version}, "
                    + "pass force_abi explicitly"
                )

        use_cache = options.use_cache
        if use_cache and options.force:
            logging.warning(
                "Force is enabled together with the cache; force takes precedence and the cache will not be used."
            )
            use_cache = False

        return cls(
            build_path=build_path,
            runtime_version=runtime_version,
            arch=options.arch or PlatformDetector.detect_arch(),
            abi=abi,
            platform=PlatformDetector.detect_platform(),
            header_url=options.header_url or DEFAULT_HEADER_URL,
            extra_modules=list(options.extra_modules),
            only_modules=list(options.only_modules) if options.only_modules else None,
            force=options.force,
            types=types,
            mode=options.mode,
            debug=options.debug,
            use_cache=use_cache,
            cache_path=Path(options.cache_path) if options.cache_path else default_cache_path(),
            prebuild_tag_prefix=options.prebuild_tag_prefix,
            use_electron_clang=options.use_electron_clang,
            project_root_path=Path(options.project_root_path) if options.project_root_path else None,
            msvs_version=os.environ.get("GYP_MSVS_VERSION"),
            fail_fast=options.fail_fast,
            max_workers=options.max_workers,
        )
