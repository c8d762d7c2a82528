"""
Build components for addon rebuilds.

This module provides:
- The node-gyp runner (NativeBuilder)
- The prebuild-install runner (PrebuildAcquirer)
- Per-module rebuild decisions (ModuleRebuilder)
- Project-wide scheduling (Rebuilder)
"""

from .environment import merged_environment, scoped_environment
from .module_rebuilder import ModuleRebuilder, OutcomeKind, RebuildError, RebuildOutcome
from .native_builder import NativeBuilder, NativeBuildError
from .orchestrator import Rebuilder
from .prebuild import PrebuildAcquirer, PrebuildError

__all__ = [
    "merged_environment",
    "scoped_environment",
    "ModuleRebuilder",
    "OutcomeKind",
    "RebuildError",
    "RebuildOutcome",
    "NativeBuilder",
    "NativeBuildError",
    "Rebuilder",
    "PrebuildAcquirer",
    "PrebuildError",
]
