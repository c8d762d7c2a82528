"""Package manifest (package.json) reading.

Only key lookup is needed: dependency names per type and a handful of
metadata fields such as ``version`` and ``binary``.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

MANIFEST_FILENAME = "package.json"

DEPENDENCY_FIELDS = {
    "prod": "dependencies",
    "optional": "optionalDependencies",
    "dev": "devDependencies",
}


class ManifestError(Exception):
    """Raised when a manifest is missing or cannot be parsed."""

    pass


@dataclass
class Manifest:
    """Parsed package manifest."""

    path: Path
    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a top-level manifest field."""
        value = self.data.get(key)
        return default if value is None else value

    def dependency_names(self, types: Sequence[str]) -> List[str]:
        """Return dependency names declared under the given types.

        Args:
            types: Any of 'prod', 'optional', 'dev', in the order to read them

        Returns:
            Names in declaration order, types concatenated in the order given
        """
        names: List[str] = []
        for dep_type in types:
            deps = self.data.get(DEPENDENCY_FIELDS[dep_type]) or {}
            if isinstance(deps, dict):
                names.extend(deps.keys())
        return names

    @property
    def version(self) -> Optional[str]:
        return self.data.get("version")


def read_manifest(directory: Path, safe: bool = False) -> Manifest:
    """Read ``package.json`` from a directory.

    Args:
        directory: Package directory
        safe: Return an empty manifest instead of raising when the file is
            absent or unreadable

    Returns:
        Manifest for the directory

    Raises:
        ManifestError: If the manifest cannot be read and safe is False
    """
    manifest_path = Path(directory) / MANIFEST_FILENAME
    try:
        with open(manifest_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        if safe:
            return Manifest(path=manifest_path)
        raise ManifestError(f"Failed to read {manifest_path}: {e}")

    if not isinstance(data, dict):
        if safe:
            return Manifest(path=manifest_path)
        raise ManifestError(f"Expected a JSON object in {manifest_path}")

    return Manifest(path=manifest_path, data=data)


def module_name_for_path(module_path: Path) -> str:
    """Derive the package name from its install directory.

    ``node_modules/@scope/name`` yields '@scope/name', anything else the
    final path segment.
    """
    module_path = Path(module_path)
    parent = module_path.parent.name
    if parent.startswith("@"):
        return f"{parent}/{module_path.name}"
    return module_path.name


@dataclass(frozen=True)
class ModuleDescriptor:
    """One installed package instance and its declared dependency names."""

    path: Path
    name: str
    prod: Sequence[str] = ()
    optional: Sequence[str] = ()
    dev: Sequence[str] = ()

    @property
    def runtime_dependencies(self) -> List[str]:
        """Names a production install pulls in (prod then optional)."""
        return list(self.prod) + list(self.optional)

    @classmethod
    def read(cls, module_path: Path) -> "ModuleDescriptor":
        """Read a descriptor; a missing manifest yields no dependencies."""
        manifest = read_manifest(module_path, safe=True)
        return cls(
            path=Path(module_path),
            name=module_name_for_path(module_path),
            prod=tuple(manifest.dependency_names(["prod"])),
            optional=tuple(manifest.dependency_names(["optional"])),
            dev=tuple(manifest.dependency_names(["dev"])),
        )
