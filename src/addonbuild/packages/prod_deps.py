"""Production dependency set resolution.

Starting from the project's own manifest, the set of package names that
must be rebuilt is grown by following each installed package's prod and
optional dependencies. The package graph may contain cycles and diamonds;
a name is expanded only by whoever adds it to the set first.

Expansion runs breadth-first: every module instance in the current
frontier is read concurrently, and the instances of newly added names form
the next frontier. The result does not depend on scheduling because the
set only ever grows through an atomic add-if-absent.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .manifest import Manifest, ModuleDescriptor
from .paths import PathResolver
from .search import search_for_module


class ProdDependencySet:
    """Grow-only set of package names, safe for concurrent insertion."""

    def __init__(self, names: Iterable[str] = ()):
        self._names: Dict[str, bool] = {}
        self._lock = threading.Lock()
        for name in names:
            self.add(name)

    def add(self, name: str) -> bool:
        """Insert a name.

        Returns:
            True if the name was not already present
        """
        with self._lock:
            if name in self._names:
                return False
            self._names[name] = True
            return True

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def __len__(self) -> int:
        return len(self._names)

    def __repr__(self) -> str:
        return f"ProdDependencySet({sorted(self._names)!r})"


class ProdSetResolver:
    """Expands root dependency names into the transitive production set."""

    def __init__(
        self,
        types: Sequence[str] = ("prod", "optional"),
        only_modules: Optional[Sequence[str]] = None,
        extra_modules: Sequence[str] = (),
        max_workers: Optional[int] = None,
    ):
        """Initialize resolver.

        Args:
            types: Dependency types of the root manifest to seed from
            only_modules: When set, every root dependency type is seeded
            extra_modules: Names always treated as production dependencies
            max_workers: Thread pool size for manifest reads
        """
        self.types = tuple(types)
        self.only_modules = only_modules
        self.extra_modules = list(extra_modules)
        self.max_workers = max_workers
        # canonical module path -> descriptor, each instance read once
        self._arena: Dict[Path, ModuleDescriptor] = {}
        self._arena_lock = threading.Lock()

    def seed_names(self, root_manifest: Manifest) -> List[str]:
        """Names the expansion starts from."""
        if self.only_modules:
            types: Sequence[str] = ("prod", "optional", "dev")
        else:
            types = [t for t in ("prod", "optional", "dev") if t in self.types]
        return self.extra_modules + root_manifest.dependency_names(types)

    def expand(
        self,
        root_manifest: Manifest,
        start_dir: Path,
        project_root: Optional[Path] = None,
    ) -> ProdDependencySet:
        """Compute the production dependency set.

        Args:
            root_manifest: Manifest of the project being rebuilt
            start_dir: Project directory the search starts from
            project_root: Directory where ancestor searches stop

        Returns:
            Fully populated ProdDependencySet
        """
        prod_deps = ProdDependencySet()
        frontier: List[Path] = []

        for name in self.seed_names(root_manifest):
            if prod_deps.add(name):
                frontier.extend(search_for_module(start_dir, name, project_root))

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            while frontier:
                results = executor.map(
                    lambda path: self._visit(path, prod_deps, project_root), frontier
                )
                frontier = [path for found in results for path in found]

        logging.debug(f"Identified production dependencies: {sorted(prod_deps)}")
        return prod_deps

    def _claim(self, module_path: Path) -> Optional[ModuleDescriptor]:
        real_path = PathResolver.canonical(module_path)
        with self._arena_lock:
            if real_path in self._arena:
                return None
            # Placeholder so concurrent visitors of the same instance skip it
            self._arena[real_path] = ModuleDescriptor(path=real_path, name="")
        descriptor = ModuleDescriptor.read(module_path)
        with self._arena_lock:
            self._arena[real_path] = descriptor
        return descriptor

    def _visit(
        self, module_path: Path, prod_deps: ProdDependencySet, project_root: Optional[Path]
    ) -> List[Path]:
        if not PathResolver.exists(module_path):
            return []

        logging.debug(f"Exploring {module_path}")
        descriptor = self._claim(module_path)
        if descriptor is None:
            return []

        found: List[Path] = []
        for name in descriptor.runtime_dependencies:
            if prod_deps.add(name):
                found.extend(search_for_module(module_path, name, project_root))
        return found
