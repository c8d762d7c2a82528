"""Unit tests for the module cache."""

import tarfile

import pytest

from addonbuild.config.target import BuildTarget
from addonbuild.packages import cache as cache_module
from addonbuild.packages.cache import CacheError, ModuleCache, derive_key, hash_tree


@pytest.fixture
def target(tmp_path):
    return BuildTarget(
        build_path=tmp_path,
        runtime_version="30.0.1",
        arch="x64",
        abi="123",
        platform="linux",
    )


@pytest.fixture
def module_dir(tmp_path):
    module = tmp_path / "node_modules" / "native"
    (module / "src").mkdir(parents=True)
    (module / "binding.gyp").write_text("{'targets': []}")
    (module / "src" / "addon.cc").write_text("int main() { return 0; }")
    (module / "src" / "util.h").write_text("#pragma once")
    return module


class TestHashTree:
    """Test cases for hash_tree."""

    def test_keys_are_relative_posix_paths(self, module_dir):
        tree = hash_tree(module_dir)

        assert set(tree) == {"binding.gyp", "src"}
        assert set(tree["src"]) == {"src/addon.cc", "src/util.h"}
        assert all(len(digest) == 64 for digest in tree["src"].values())

    def test_excludes_top_level_build_output(self, module_dir):
        (module_dir / "build" / "Release").mkdir(parents=True)
        (module_dir / "build" / "Release" / "addon.node").write_bytes(b"\x7fELF")
        (module_dir / "bin").mkdir()
        (module_dir / "src" / "build").mkdir()
        (module_dir / "src" / "build" / "gen.h").write_text("")

        tree = hash_tree(module_dir)

        assert "build" not in tree
        assert "bin" not in tree
        # Only the top-level output directories are skipped
        assert "src/build" in tree["src"]

    def test_excludes_nested_node_modules(self, module_dir):
        (module_dir / "node_modules" / "dep").mkdir(parents=True)
        (module_dir / "node_modules" / "dep" / "index.js").write_text("")
        (module_dir / "src" / "node_modules").mkdir()

        tree = hash_tree(module_dir)

        assert "node_modules" not in tree
        assert "src/node_modules" not in tree["src"]

    def test_symlink_loop_terminates(self, module_dir):
        (module_dir / "src" / "loop").symlink_to(module_dir / "src", target_is_directory=True)
        tree = hash_tree(module_dir)
        assert tree["src"]["src/loop"] == {}


class TestCacheKey:
    """Cache key determinism and sensitivity."""

    def test_independent_of_listing_order(self, module_dir, target, monkeypatch):
        cache = ModuleCache(module_dir.parent / "cache")
        forward = cache.generate_key(module_dir, target)

        monkeypatch.setattr(
            cache_module, "_list_children", lambda directory: sorted(cache_module.os.listdir(directory), reverse=True)
        )
        backward = cache.generate_key(module_dir, target)

        assert forward == backward

    def test_repeatable(self, module_dir, target):
        cache = ModuleCache(module_dir.parent / "cache")
        assert cache.generate_key(module_dir, target) == cache.generate_key(module_dir, target)

    def test_changes_with_source_content(self, module_dir, target):
        cache = ModuleCache(module_dir.parent / "cache")
        before = cache.generate_key(module_dir, target)
        (module_dir / "src" / "addon.cc").write_text("int main() { return 1; }")
        assert cache.generate_key(module_dir, target) != before

    def test_unaffected_by_build_output(self, module_dir, target):
        cache = ModuleCache(module_dir.parent / "cache")
        before = cache.generate_key(module_dir, target)
        (module_dir / "build").mkdir()
        (module_dir / "build" / "config.gypi").write_text("{}")
        assert cache.generate_key(module_dir, target) == before

    @pytest.mark.parametrize(
        "field,value",
        [
            ("abi", "125"),
            ("arch", "arm64"),
            ("debug", True),
            ("header_url", "https://example.com/headers"),
            ("runtime_version", "30.0.2"),
        ],
    )
    def test_changes_with_target(self, module_dir, target, field, value):
        tree = hash_tree(module_dir)
        before = derive_key(tree, "native", target)
        setattr(target, field, value)
        assert derive_key(tree, "native", target) != before

    def test_changes_with_module_name(self, module_dir, target):
        tree = hash_tree(module_dir)
        assert derive_key(tree, "native", target) != derive_key(tree, "other", target)

    def test_file_and_directory_boundaries(self, target):
        """Moving content between keys must not produce the same digest."""
        flat = {"a": "x", "b": "y"}
        nested = {"a": {"a/b": "y"}, "x": "y"}
        assert derive_key(flat, "m", target) != derive_key(nested, "m", target)


class TestModuleCacheStorage:
    """Tests for storing and replaying snapshots."""

    def test_lookup_miss(self, tmp_path):
        assert ModuleCache(tmp_path / "cache").lookup("0" * 64) is None

    def test_store_and_replay(self, module_dir, tmp_path):
        (module_dir / "build" / "Release").mkdir(parents=True)
        (module_dir / "build" / "Release" / "addon.node").write_bytes(b"binary")
        (module_dir / "node_modules" / "dep").mkdir(parents=True)
        (module_dir / "node_modules" / "dep" / "index.js").write_text("")

        cache = ModuleCache(tmp_path / "cache")
        assert cache.store(module_dir, "abc123") is True
        assert cache.entry_path("abc123") == tmp_path / "cache" / "abc123.tar.gz"
        assert cache.entry_path("abc123").is_file()
        assert list((tmp_path / "cache").glob("*.tmp")) == []

        with tarfile.open(cache.entry_path("abc123"), "r:gz") as tar:
            assert not any("node_modules" in name for name in tar.getnames())

        restored = tmp_path / "restored" / "native"
        restored.mkdir(parents=True)
        replay = cache.lookup("abc123")
        assert replay is not None
        replay(restored)

        assert (restored / "build" / "Release" / "addon.node").read_bytes() == b"binary"
        assert (restored / "src" / "addon.cc").exists()
        assert not (restored / "node_modules").exists()

    def test_store_failure_is_not_fatal(self, module_dir, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        assert ModuleCache(blocker).store(module_dir, "abc123") is False

    def test_corrupt_entry_raises_cache_error(self, module_dir, tmp_path):
        cache = ModuleCache(tmp_path / "cache")
        cache.cache_root.mkdir()
        cache.entry_path("bad").write_bytes(b"not a tarball")

        replay = cache.lookup("bad")
        with pytest.raises(CacheError):
            replay(module_dir)

    def test_entry_escaping_module_dir_rejected(self, module_dir, tmp_path):
        cache = ModuleCache(tmp_path / "cache")
        cache.cache_root.mkdir()
        payload = tmp_path / "payload.txt"
        payload.write_text("outside")
        with tarfile.open(cache.entry_path("escape"), "w:gz") as tar:
            tar.add(payload, arcname="../escaped.txt")

        replay = cache.lookup("escape")
        with pytest.raises(CacheError):
            replay(module_dir)

        assert not (module_dir.parent / "escaped.txt").exists()
