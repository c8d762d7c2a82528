"""
Rebuild orchestration for a project's installed native modules.

This module coordinates a whole rebuild run:
1. Read the project manifest
2. Resolve the production dependency set
3. Walk every reachable node_modules directory (symlink-deduplicated)
   and queue each production module, then the project itself
4. Run the queued modules in parallel or one at a time
5. Translate each module's outcome into lifecycle events

Failure policy in parallel mode: by default every task is allowed to
settle and the first failure in task order is raised afterwards; with
``fail_fast`` the first failure to complete is raised immediately and
tasks that have not started are cancelled.
"""

import logging
import os
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import List, Optional, Set

import psutil

from .. import lifecycle as events
from ..config.target import BuildTarget
from ..interrupt_utils import handle_keyboard_interrupt_properly
from ..lifecycle import Lifecycle
from ..packages.cache import ModuleCache
from ..packages.clang_fetcher import ClangToolchain
from ..packages.manifest import module_name_for_path, read_manifest
from ..packages.paths import PathResolver
from ..packages.prod_deps import ProdDependencySet, ProdSetResolver
from ..packages.search import search_for_node_modules
from .module_rebuilder import ModuleRebuilder, OutcomeKind, RebuildOutcome
from .native_builder import NativeBuilder
from .prebuild import PrebuildAcquirer


class Rebuilder:
    """
    Schedules and runs module rebuilds for one project.

    Example usage:
        target = BuildTarget.from_options(RebuildOptions(
            build_path=Path("/path/to/app").resolve(),
            runtime_version="30.0.1",
        ))
        outcomes = Rebuilder(target).rebuild()
    """

    def __init__(
        self,
        target: BuildTarget,
        lifecycle: Optional[Lifecycle] = None,
        builder: Optional[NativeBuilder] = None,
        acquirer: Optional[PrebuildAcquirer] = None,
        cache: Optional[ModuleCache] = None,
        toolchain: Optional[ClangToolchain] = None,
    ):
        """
        Initialize rebuilder.

        Args:
            target: Validated build target
            lifecycle: Event sink for progress (a private one if not given)
            builder: node-gyp runner shared by every module
            acquirer: prebuild-install runner shared by every module
            cache: Module cache (created from the target when caching is on)
            toolchain: clang provider (created from the target when enabled)
        """
        self.target = target
        self.lifecycle = lifecycle or Lifecycle()
        self.builder = builder or NativeBuilder()
        self.acquirer = acquirer or PrebuildAcquirer()
        self.cache = cache
        if self.cache is None and target.use_cache:
            self.cache = ModuleCache(target.cache_path)
        self.toolchain = toolchain
        if self.toolchain is None and target.use_electron_clang:
            self.toolchain = ClangToolchain(target.gyp_dir, target.platform)

        self.project_root = target.project_root_path
        self.prod_deps: Optional[ProdDependencySet] = None
        self._real_module_paths: Set[Path] = set()
        self._real_node_modules_paths: Set[Path] = set()

    def rebuild(self) -> List[RebuildOutcome]:
        """
        Rebuild every production native module and the project itself.

        Returns:
            Outcomes of the tasks that ran, in task order

        Raises:
            ManifestError: If the project's own manifest cannot be read
            RebuildError: If a module fails to build
        """
        build_path = self.target.build_path
        logging.debug(
            f"Rebuilding {build_path} for runtime {self.target.runtime_version} "
            + f"(arch={self.target.arch}, abi={self.target.abi}, types={list(self.target.types)}, "
            + f"mode={self.target.mode}, debug={self.target.debug})"
        )
        self.lifecycle.emit(events.START)

        root_manifest = read_manifest(build_path)
        resolver = ProdSetResolver(
            types=self.target.types,
            only_modules=self.target.only_modules,
            extra_modules=self.target.extra_modules,
            max_workers=self.target.max_workers,
        )
        self.prod_deps = resolver.expand(root_manifest, build_path, self.project_root)

        tasks = self.collect_tasks()
        if self.target.mode == "parallel":
            outcomes = self._run_parallel(tasks)
        else:
            outcomes = self._run_sequential(tasks)

        self.lifecycle.emit(events.FINISH)
        return outcomes

    def collect_tasks(self) -> List[Path]:
        """
        List module directories to rebuild, in discovery order.

        The project directory itself is always the final entry.
        """
        if self.prod_deps is None:
            raise RuntimeError("Production dependencies must be resolved before collecting tasks")

        tasks: List[Path] = []
        for node_modules_path in search_for_node_modules(self.target.build_path, self.project_root):
            self._collect_modules_in(node_modules_path, tasks)
        tasks.append(self.target.build_path)
        return tasks

    @staticmethod
    def _first_visit(seen: Set[Path], real_path: Path) -> bool:
        if real_path in seen:
            return False
        seen.add(real_path)
        return True

    def _collect_modules_in(self, node_modules_path: Path, tasks: List[Path], prefix: str = "") -> None:
        real_node_modules_path = PathResolver.canonical(node_modules_path)
        if not self._first_visit(self._real_node_modules_paths, real_node_modules_path):
            return

        logging.debug(f"Scanning {real_node_modules_path}")
        try:
            children = sorted(os.listdir(real_node_modules_path))
        except OSError as e:
            logging.debug(f"Unable to scan {real_node_modules_path}: {e}")
            return

        for child in children:
            if child == ".bin":
                continue

            # Package managers link modules; never queue the same target twice
            real_path = PathResolver.canonical(Path(node_modules_path) / child)
            if not self._first_visit(self._real_module_paths, real_path):
                continue

            name = f"{prefix}{child}"
            if name in self.prod_deps and self._allowed(name):
                tasks.append(real_path)

            if child.startswith("@"):
                self._collect_modules_in(real_path, tasks, prefix=f"{child}/")

            if PathResolver.is_dir(real_path / "node_modules"):
                self._collect_modules_in(real_path / "node_modules", tasks)

    def _allowed(self, name: str) -> bool:
        only = self.target.only_modules
        if not only:
            return True
        return name in only or name.split("/")[-1] in only

    def rebuild_module_at(self, module_path: Path) -> RebuildOutcome:
        """Run the decision pipeline for one module and emit its events."""
        rebuilder = ModuleRebuilder(
            self.target,
            module_path,
            builder=self.builder,
            acquirer=self.acquirer,
            cache=self.cache,
            toolchain=self.toolchain,
        )
        if not rebuilder.has_build_descriptor():
            return RebuildOutcome(kind=OutcomeKind.NOT_APPLICABLE, module_path=Path(module_path))

        self.lifecycle.emit(events.MODULE_FOUND, module_name_for_path(module_path))
        outcome = rebuilder.rebuild()

        if outcome.kind is OutcomeKind.ALREADY_BUILT:
            self.lifecycle.emit(events.MODULE_DONE)
            self.lifecycle.emit(events.MODULE_SKIP)
        elif outcome.kind in (OutcomeKind.CACHE_HIT, OutcomeKind.INSTALLED, OutcomeKind.REBUILT):
            self.lifecycle.emit(events.MODULE_DONE)
        return outcome

    def _rebuild_in_worker(self, module_path: Path) -> RebuildOutcome:
        try:
            return self.rebuild_module_at(module_path)
        except KeyboardInterrupt as ke:
            handle_keyboard_interrupt_properly(ke)
            raise

    def _run_sequential(self, tasks: List[Path]) -> List[RebuildOutcome]:
        outcomes = []
        for module_path in tasks:
            outcome = self.rebuild_module_at(module_path)
            outcomes.append(outcome)
            if outcome.error is not None:
                raise outcome.error
        return outcomes

    def _worker_count(self, task_count: int) -> int:
        if self.target.max_workers:
            return self.target.max_workers
        return max(1, min(task_count, psutil.cpu_count() or 1))

    def _run_parallel(self, tasks: List[Path]) -> List[RebuildOutcome]:
        executor = ThreadPoolExecutor(max_workers=self._worker_count(len(tasks)))
        futures: List[Future] = [executor.submit(self._rebuild_in_worker, path) for path in tasks]

        if self.target.fail_fast:
            try:
                self._raise_first_completed_failure(futures)
            finally:
                executor.shutdown(wait=False, cancel_futures=True)
        else:
            executor.shutdown(wait=True)

        outcomes = [future.result() for future in futures]
        failures = [outcome.error for outcome in outcomes if outcome.error is not None]
        for error in failures[1:]:
            logging.error(str(error))
        if failures:
            raise failures[0]
        return outcomes

    @staticmethod
    def _raise_first_completed_failure(futures: List[Future]) -> None:
        pending = set(futures)
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                if future.exception() is not None:
                    raise future.exception()
                outcome = future.result()
                if outcome.error is not None:
                    raise outcome.error

