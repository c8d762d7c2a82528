"""Rebuild native addon modules against a target runtime ABI.

Example:
    from addonbuild import RebuildOptions, rebuild

    outcomes = rebuild(RebuildOptions(
        build_path=Path("/path/to/app"),
        runtime_version="30.0.1",
        use_cache=True,
    ))
"""

from typing import List, Optional

from .build import RebuildError, RebuildOutcome, Rebuilder
from .config import BuildTarget, ConfigurationError, RebuildOptions
from .lifecycle import Lifecycle
from .packages import ManifestError

__version__ = "1.0.0"


def rebuild(options: RebuildOptions, lifecycle: Optional[Lifecycle] = None) -> List[RebuildOutcome]:
    """Rebuild a project's production native modules.

    Args:
        options: Rebuild options; build_path must be absolute
        lifecycle: Receives progress events

    Returns:
        Outcome of every scheduled task

    Raises:
        ConfigurationError: If the options are invalid
        ManifestError: If the project manifest cannot be read
        RebuildError: If a module fails to build
    """
    target = BuildTarget.from_options(options)
    return Rebuilder(target, lifecycle=lifecycle).rebuild()


__all__ = [
    "BuildTarget",
    "ConfigurationError",
    "Lifecycle",
    "ManifestError",
    "RebuildError",
    "RebuildOptions",
    "RebuildOutcome",
    "Rebuilder",
    "__version__",
    "rebuild",
]
