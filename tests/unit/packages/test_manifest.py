"""Unit tests for package manifest reading."""

import pytest

from addonbuild.packages.manifest import (
    ManifestError,
    ModuleDescriptor,
    module_name_for_path,
    read_manifest,
)


class TestReadManifest:
    def test_reads_dependency_names_in_order(self, tmp_path, make_package):
        make_package(tmp_path, dependencies=["b", "a"], optional=["c"], dev=["d"])
        manifest = read_manifest(tmp_path)

        assert manifest.dependency_names(["prod"]) == ["b", "a"]
        assert manifest.dependency_names(["prod", "optional", "dev"]) == ["b", "a", "c", "d"]
        assert manifest.dependency_names(["dev", "prod"]) == ["d", "b", "a"]
        assert manifest.version == "1.0.0"

    def test_missing_manifest_raises(self, tmp_path):
        with pytest.raises(ManifestError):
            read_manifest(tmp_path)

    def test_missing_manifest_safe(self, tmp_path):
        manifest = read_manifest(tmp_path, safe=True)
        assert manifest.data == {}
        assert manifest.dependency_names(["prod", "optional"]) == []

    def test_invalid_json(self, tmp_path):
        (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(ManifestError):
            read_manifest(tmp_path)
        assert read_manifest(tmp_path, safe=True).data == {}

    def test_non_object_json(self, tmp_path):
        (tmp_path / "package.json").write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ManifestError, match="JSON object"):
            read_manifest(tmp_path)

    def test_get_defaults_for_null(self, tmp_path, make_package):
        make_package(tmp_path, binary=None)
        assert read_manifest(tmp_path).get("binary", {}) == {}


class TestModuleNames:
    def test_plain(self, tmp_path):
        assert module_name_for_path(tmp_path / "node_modules" / "sqlite3") == "sqlite3"

    def test_scoped(self, tmp_path):
        assert module_name_for_path(tmp_path / "node_modules" / "@serialport" / "bindings") == "@serialport/bindings"


def test_module_descriptor_reads_runtime_dependencies(tmp_path, make_package):
    module = make_package(tmp_path / "node_modules" / "native", dependencies=["nan"], optional=["fsevents"], dev=["tap"])
    descriptor = ModuleDescriptor.read(module)

    assert descriptor.name == "native"
    assert descriptor.runtime_dependencies == ["nan", "fsevents"]
    assert list(descriptor.dev) == ["tap"]
