"""
Per-module rebuild decisions.

For one installed module, ``ModuleRebuilder.rebuild`` picks the cheapest
way to end up with a binary matching the build target and reports what it
did as a ``RebuildOutcome``. The checks run strictly in this order:

1. No binding.gyp                 -> NOT_APPLICABLE
2. Completion marker matches      -> ALREADY_BUILT (unless forced)
3. Vendor prebuilt binary present -> PREBUILT_PRESENT
4. Cache entry for the cache key  -> CACHE_HIT
5. prebuild-install succeeds      -> INSTALLED
6. node-gyp rebuild               -> REBUILT, or FAILED on a build error

Cache, prebuild and toolchain problems never fail a module; they are
logged and the next step is tried. Only the final node-gyp build can fail.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..config.platform_utils import PlatformDetector
from ..config.target import BuildTarget
from ..packages.cache import CacheError, ModuleCache
from ..packages.clang_fetcher import ClangToolchain, ToolchainError
from ..packages.manifest import Manifest, module_name_for_path, read_manifest
from .environment import scoped_environment
from .native_builder import NativeBuilder, NativeBuildError
from .prebuild import (
    PrebuildAcquirer,
    PrebuildError,
    declares_prebuild_helper,
    locate_prebuild_helper,
)

BUILD_DESCRIPTOR = "binding.gyp"
MARKER_FILENAME = ".forge-meta"


class RebuildError(Exception):
    """Raised when a module cannot be rebuilt."""

    def __init__(self, module_path: Path, message: str):
        self.module_path = Path(module_path)
        self.message = message
        super().__init__(f"Failed to rebuild '{self.module_path}'.\n{message}")


class OutcomeKind(Enum):
    """How a module's rebuild was resolved."""

    NOT_APPLICABLE = "not-applicable"
    ALREADY_BUILT = "already-built"
    PREBUILT_PRESENT = "prebuilt-present"
    CACHE_HIT = "cache-hit"
    INSTALLED = "installed"
    REBUILT = "rebuilt"
    FAILED = "failed"


@dataclass
class RebuildOutcome:
    """Result of one module's rebuild decision."""

    kind: OutcomeKind
    module_path: Path
    error: Optional[RebuildError] = None

    @property
    def module_name(self) -> str:
        return module_name_for_path(self.module_path)

    @property
    def completed(self) -> bool:
        """True if the module finished with a usable binary via this run's checks."""
        return self.kind in (
            OutcomeKind.ALREADY_BUILT,
            OutcomeKind.CACHE_HIT,
            OutcomeKind.INSTALLED,
            OutcomeKind.REBUILT,
        )


class ModuleRebuilder:
    """Decides and performs the rebuild of a single module."""

    def __init__(
        self,
        target: BuildTarget,
        module_path: Path,
        builder: Optional[NativeBuilder] = None,
        acquirer: Optional[PrebuildAcquirer] = None,
        cache: Optional[ModuleCache] = None,
        toolchain: Optional[ClangToolchain] = None,
    ):
        """
        Initialize module rebuilder.

        Args:
            target: Build target for this run
            module_path: Canonical module directory
            builder: External build tool runner
            acquirer: prebuild-install runner
            cache: Module cache (consulted only when the target enables it)
            toolchain: Alternate clang provider (used only when the target enables it)
        """
        self.target = target
        self.module_path = Path(module_path)
        self.builder = builder or NativeBuilder()
        self.acquirer = acquirer or PrebuildAcquirer()
        self.cache = cache
        self.toolchain = toolchain
        self._manifest: Optional[Manifest] = None

    @property
    def module_name(self) -> str:
        return self.module_path.name

    @property
    def manifest(self) -> Manifest:
        if self._manifest is None:
            self._manifest = read_manifest(self.module_path, safe=True)
        return self._manifest

    @property
    def build_output_dir(self) -> Path:
        return self.module_path / "build" / self.target.build_type

    @property
    def marker_path(self) -> Path:
        return self.build_output_dir / MARKER_FILENAME

    @property
    def prebuilt_binary_path(self) -> Path:
        return (
            self.module_path
            / "prebuilds"
            / f"{self.target.platform}-{self.target.arch}"
            / f"electron-{self.target.abi}.node"
        )

    @property
    def artifact_dir(self) -> Path:
        return self.module_path / "bin" / f"{self.target.platform}-{self.target.arch}-{self.target.abi}"

    def has_build_descriptor(self) -> bool:
        return (self.module_path / BUILD_DESCRIPTOR).exists()

    def already_built(self) -> bool:
        """True if the completion marker records the current arch and ABI."""
        try:
            return self.marker_path.read_text(encoding="utf-8") == self.target.marker_data
        except OSError:
            return False

    def prebuilt_binary_exists(self) -> bool:
        return self.prebuilt_binary_path.exists()

    def write_marker(self) -> None:
        self.marker_path.parent.mkdir(parents=True, exist_ok=True)
        self.marker_path.write_text(self.target.marker_data, encoding="utf-8")

    def rebuild(self) -> RebuildOutcome:
        """Run the decision pipeline for this module."""
        if not self.has_build_descriptor():
            return self._outcome(OutcomeKind.NOT_APPLICABLE)

        if not self.target.force and self.already_built():
            logging.debug(f"Skipping {self.module_name} as it is already built")
            return self._outcome(OutcomeKind.ALREADY_BUILT)

        if self.prebuilt_binary_exists():
            logging.debug(f"Skipping {self.module_name} as it was prebuilt")
            return self._outcome(OutcomeKind.PREBUILT_PRESENT)

        cache_key = self._cache_key()
        if cache_key is not None and self._replay_cache(cache_key):
            return self._outcome(OutcomeKind.CACHE_HIT)

        if self._rebuild_with_prebuild(cache_key):
            return self._outcome(OutcomeKind.INSTALLED)

        try:
            self._rebuild_native(cache_key)
        except RebuildError as e:
            return self._outcome(OutcomeKind.FAILED, error=e)
        return self._outcome(OutcomeKind.REBUILT)

    def _outcome(self, kind: OutcomeKind, error: Optional[RebuildError] = None) -> RebuildOutcome:
        return RebuildOutcome(kind=kind, module_path=self.module_path, error=error)

    # Cache

    def _cache_key(self) -> Optional[str]:
        if not self.target.use_cache or self.cache is None:
            return None
        try:
            return self.cache.generate_key(self.module_path, self.target)
        except OSError as e:
            logging.warning(f"Unable to hash {self.module_path}, not using the cache: {e}")
            return None

    def _replay_cache(self, cache_key: str) -> bool:
        replay = self.cache.lookup(cache_key) if self.cache else None
        if replay is None:
            return False
        try:
            replay(self.module_path)
            self.write_marker()
        except (CacheError, OSError) as e:
            logging.warning(f"Ignoring cache entry for {self.module_name}: {e}")
            return False
        logging.debug(f"Restored {self.module_name} from cache entry {cache_key}")
        return True

    def _store_cache(self, cache_key: Optional[str]) -> None:
        if cache_key is not None and self.cache is not None:
            self.cache.store(self.module_path, cache_key)

    # prebuild-install

    def _rebuild_with_prebuild(self, cache_key: Optional[str]) -> bool:
        if not declares_prebuild_helper(self.manifest):
            return False

        logging.debug(f"Assuming {self.module_name} is prebuild powered")
        helper = locate_prebuild_helper(self.module_path)
        if helper is None:
            logging.debug(f"Could not find prebuild-install relative to {self.module_path}")
            return False

        try:
            self.acquirer.acquire(helper, self.module_path, self.target)
        except PrebuildError as e:
            logging.debug(f"Failed to use prebuild-install for {self.module_name}: {e}")
            return False

        logging.debug(f"Built {self.module_name} from a prebuilt binary")
        self.write_marker()
        self._store_cache(cache_key)
        return True

    # node-gyp

    def build_args(self, prefixed_args: Optional[List[str]] = None) -> List[str]:
        """Arguments passed to node-gyp for a full rebuild."""
        args = [
            "rebuild",
            *(prefixed_args or []),
            "--runtime=electron",
            f"--target={self.target.runtime_version}",
            f"--arch={self.target.arch}",
            f"--dist-url={self.target.header_url}",
            "--build-from-source",
            f"--devdir={self.target.gyp_dir}",
        ]
        if os.environ.get("DEBUG"):
            args.append("--verbose")
        if self.target.debug:
            args.append("--debug")
        args.extend(self.binary_field_args())
        if self.target.msvs_version:
            args.append(f"--msvs_version={self.target.msvs_version}")
        return args

    def binary_field_args(self) -> List[str]:
        """Flags derived from the manifest's ``binary`` templates."""
        binary = self.manifest.get("binary", {})
        if not isinstance(binary, dict):
            return []

        replacements = {
            "{configuration}": self.target.build_type,
            "{node_abi}": self.target.node_abi_tag,
            "{platform}": self.target.platform,
            "{arch}": self.target.arch,
            "{version}": str(self.manifest.version or ""),
            "{libc}": PlatformDetector.detect_libc_family(),
        }

        flags = []
        for key, raw_value in binary.items():
            if key == "napi_versions":
                continue
            value = str(raw_value)
            if key == "module_path":
                value = str((self.module_path / value).resolve())
            for placeholder, replacement in replacements.items():
                value = value.replace(placeholder, replacement)
            for other_key, other_value in binary.items():
                value = value.replace(f"{{{other_key}}}", str(other_value))
            flags.append(f"--{key}={value}")
        return flags

    def _rebuild_native(self, cache_key: Optional[str]) -> None:
        if " " in str(self.module_path):
            logging.warning(
                f"Attempting to build a module with a space in the path: {self.module_path}. "
                + "node-gyp may not support this."
            )

        env_overrides = {}
        extra_args: List[str] = []
        if self.target.use_electron_clang and self.toolchain is not None:
            try:
                self.toolchain.ensure_toolchain(self.target.runtime_version)
                clang = self.toolchain.get_environment(self.target.runtime_version)
                env_overrides.update(clang.env)
                extra_args.extend(clang.args)
            except ToolchainError as e:
                logging.warning(f"Building {self.module_name} without the runtime's clang: {e}")

        args = self.build_args(extra_args)
        logging.debug(f"Rebuilding {self.module_name} with args {args}")

        with scoped_environment(env_overrides) as env:
            try:
                self.builder.build(args, cwd=self.module_path, env=env)
            except NativeBuildError as e:
                raise RebuildError(self.module_path, f"node-gyp failed: {e}")

        logging.debug(f"Built {self.module_name}")
        self.write_marker()
        self.replace_existing_native_module()
        self._store_cache(cache_key)

    def replace_existing_native_module(self) -> Optional[Path]:
        """Copy the built .node file to bin/<platform>-<arch>-<abi>/<name>.node."""
        try:
            candidates = sorted(self.build_output_dir.iterdir())
        except OSError:
            return None

        node_file = next(
            (p for p in candidates if p.name != ".node" and p.name.endswith(".node") and p.is_file()),
            None,
        )
        if node_file is None:
            return None

        self.artifact_dir.mkdir(parents=True, exist_ok=True)
        destination = self.artifact_dir / f"{self.module_name}.node"
        logging.debug(f"Copying {node_file} to {destination}")
        shutil.copy2(node_file, destination)
        return destination
