"""
Command-line interface for addon-rebuild.

This module provides the `addon-rebuild` CLI tool, which rebuilds a
project's native modules against the installed runtime.
"""

import argparse
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from addonbuild import __version__
from addonbuild.build import RebuildError, Rebuilder
from addonbuild.cli_utils import ErrorFormatter, PathValidator, ProgressReporter, setup_logging
from addonbuild.config import BuildTarget, ConfigurationError, RebuildOptions
from addonbuild.lifecycle import Lifecycle
from addonbuild.packages import (
    ManifestError,
    find_project_root,
    locate_electron_module,
    read_electron_version,
)


@dataclass
class RebuildArgs:
    """Arguments for a rebuild run."""

    module_dir: Path
    version: Optional[str] = None
    arch: Optional[str] = None
    force: bool = False
    which_module: List[str] = field(default_factory=list)
    only: Optional[List[str]] = None
    electron_prebuilt_dir: Optional[Path] = None
    dist_url: Optional[str] = None
    types: List[str] = field(default_factory=lambda: ["prod", "optional"])
    parallel: bool = False
    debug: bool = False
    prebuild_tag_prefix: str = "v"
    force_abi: Optional[str] = None
    use_electron_clang: bool = False
    use_cache: bool = False
    cache_path: Optional[Path] = None
    fail_fast: bool = False
    verbose: bool = False


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def resolve_runtime_version(args: RebuildArgs, project_root: Path) -> str:
    """Use the explicit version, or read it from the installed runtime package.

    Raises:
        ConfigurationError: If no version is given and none can be found
    """
    if args.version:
        return args.version

    module_path = args.electron_prebuilt_dir or locate_electron_module(project_root, args.module_dir)
    if module_path is None:
        raise ConfigurationError(
            "Unable to find the runtime's version number, either install it or specify an explicit version"
        )
    try:
        return read_electron_version(module_path)
    except ManifestError as e:
        raise ConfigurationError(f"Unable to read the runtime version: {e}")


def rebuild_command(args: RebuildArgs) -> None:
    """Rebuild native modules.

    Examples:
        addon-rebuild                         # Rebuild for the installed runtime
        addon-rebuild -v 30.0.1               # Rebuild for an explicit version
        addon-rebuild -m . -w sqlite3         # Always treat sqlite3 as production
        addon-rebuild -o sqlite3,bcrypt       # Only rebuild these modules
        addon-rebuild -p --use-cache          # Parallel, reusing cached builds
    """
    setup_logging(args.verbose)

    try:
        project_root = find_project_root(args.module_dir)
        options = RebuildOptions(
            build_path=args.module_dir,
            runtime_version=resolve_runtime_version(args, project_root),
            arch=args.arch,
            extra_modules=args.which_module,
            only_modules=args.only,
            force=args.force,
            header_url=args.dist_url,
            types=args.types,
            mode="parallel" if args.parallel else "sequential",
            debug=args.debug,
            use_cache=args.use_cache,
            cache_path=args.cache_path,
            prebuild_tag_prefix=args.prebuild_tag_prefix,
            force_abi=args.force_abi,
            use_electron_clang=args.use_electron_clang,
            project_root_path=project_root,
            fail_fast=args.fail_fast,
        )
        target = BuildTarget.from_options(options)
    except ConfigurationError as e:
        ErrorFormatter.handle_configuration_error(e)
        return

    lifecycle = Lifecycle()
    progress = ProgressReporter(
        lifecycle, parallel=args.parallel, disable=args.verbose or not sys.stderr.isatty()
    )

    try:
        start_time = time.time()
        Rebuilder(target, lifecycle=lifecycle).rebuild()
        progress.close()

        ErrorFormatter.print_success("Rebuild Complete")
        print(
            f"Modules: {progress.modules_done} built, {progress.modules_skipped} already up to date "
            + f"({time.time() - start_time:.2f}s)"
        )
        sys.exit(0)

    except RebuildError as e:
        progress.close()
        ErrorFormatter.handle_rebuild_error(e)
    except ManifestError as e:
        progress.close()
        ErrorFormatter.print_error("Error: Unreadable project manifest", str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        progress.close()
        ErrorFormatter.handle_keyboard_interrupt()
    except Exception as e:
        progress.close()
        ErrorFormatter.handle_unexpected_error(e, args.verbose)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="addon-rebuild",
        description="Rebuild native addon modules against the target runtime",
    )
    parser.add_argument(
        "-V",
        "--tool-version",
        action="version",
        version=f"addon-rebuild {__version__}",
    )
    parser.add_argument(
        "-v",
        "--version",
        default=None,
        help="The version of the runtime to build against",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Force rebuilding modules, even if we would skip it otherwise",
    )
    parser.add_argument(
        "-a",
        "--arch",
        default=None,
        help="Override the target architecture to something other than your system's",
    )
    parser.add_argument(
        "-m",
        "--module-dir",
        type=Path,
        default=None,
        help="The path to the project whose node_modules should be rebuilt (default: current directory)",
    )
    parser.add_argument(
        "-w",
        "--which-module",
        default=None,
        help="A specific module to build, or comma separated list of modules. Modules will only be "
        + "rebuilt if they also match the types of dependencies being rebuilt (see --types).",
    )
    parser.add_argument(
        "-o",
        "--only",
        default=None,
        help="Only build specified module, or comma separated list of modules. All others are ignored.",
    )
    parser.add_argument(
        "-e",
        "--electron-prebuilt-dir",
        type=Path,
        default=None,
        help="The path to the installed runtime package",
    )
    parser.add_argument(
        "-d",
        "--dist-url",
        default=None,
        help="Custom header tarball URL",
    )
    parser.add_argument(
        "-t",
        "--types",
        default="prod,optional",
        help='The types of dependencies to rebuild. Comma separated list of "prod", "dev" and '
        + '"optional". Default is "prod,optional"',
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-p",
        "--parallel",
        action="store_true",
        help="Rebuild in parallel",
    )
    mode.add_argument(
        "-s",
        "--sequential",
        action="store_true",
        help="Rebuild modules sequentially (default)",
    )
    parser.add_argument(
        "-b",
        "--debug",
        action="store_true",
        help="Build debug version of modules",
    )
    parser.add_argument(
        "--prebuild-tag-prefix",
        default="v",
        help='GitHub tag prefix passed to prebuild-install. Default is "v"',
    )
    parser.add_argument(
        "--force-abi",
        default=None,
        help="Override the ABI version for the runtime you are targeting. Only use when targeting nightly releases.",
    )
    parser.add_argument(
        "--use-electron-clang",
        action="store_true",
        help="Use the clang executable the runtime was built with. This guarantees compiler compatibility",
    )
    parser.add_argument(
        "--use-cache",
        action="store_true",
        help="Reuse previously rebuilt modules with identical sources and target",
    )
    parser.add_argument(
        "--cache-path",
        type=Path,
        default=None,
        help="Directory for cached module builds (default: ~/.addon-rebuild-cache)",
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="In parallel mode, stop at the first failed module instead of letting the others finish",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """addon-rebuild - rebuild native modules for the target runtime."""
    parser = build_parser()
    parsed_args = parser.parse_args(argv)

    module_dir = (parsed_args.module_dir or Path.cwd()).resolve()
    PathValidator.validate_module_dir(module_dir)

    if parsed_args.force_abi is not None and not str(parsed_args.force_abi).isdigit():
        parser.error("--force-abi must be a number")

    rebuild_args = RebuildArgs(
        module_dir=module_dir,
        version=parsed_args.version,
        arch=parsed_args.arch,
        force=parsed_args.force,
        which_module=_split_list(parsed_args.which_module),
        only=_split_list(parsed_args.only) or None,
        electron_prebuilt_dir=(
            parsed_args.electron_prebuilt_dir.resolve() if parsed_args.electron_prebuilt_dir else None
        ),
        dist_url=parsed_args.dist_url,
        types=_split_list(parsed_args.types),
        parallel=parsed_args.parallel,
        debug=parsed_args.debug,
        prebuild_tag_prefix=parsed_args.prebuild_tag_prefix,
        force_abi=parsed_args.force_abi,
        use_electron_clang=parsed_args.use_electron_clang,
        use_cache=parsed_args.use_cache,
        cache_path=parsed_args.cache_path,
        fail_fast=parsed_args.fail_fast,
        verbose=parsed_args.verbose,
    )
    rebuild_command(rebuild_args)


if __name__ == "__main__":
    main()
