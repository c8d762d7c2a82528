"""Unit tests for build target configuration."""

import logging
from pathlib import Path

import pytest

from addonbuild.config import (
    BuildTarget,
    ConfigurationError,
    PlatformDetector,
    RebuildOptions,
    default_cache_path,
    default_gyp_dir,
    normalize_version,
)


class TestNormalizeVersion:
    """Tests for runtime version normalization."""

    @pytest.mark.parametrize(
        "given,expected",
        [
            ("12", "12.0.0"),
            (12, "12.0.0"),
            ("12.1", "12.1.0"),
            (12.1, "12.1.0"),
            ("12.1.3", "12.1.3"),
            ("v30.0.1", "30.0.1"),
            ("31.0.0-beta.2", "31.0.0-beta.2"),
        ],
    )
    def test_normalizes(self, given, expected):
        assert normalize_version(given) == expected

    @pytest.mark.parametrize("given", ["abc", "1.2.3.4", "", "12.x"])
    def test_rejects_malformed(self, given):
        with pytest.raises(ConfigurationError):
            normalize_version(given)

    @pytest.mark.parametrize("given", [None, True, ["12"]])
    def test_rejects_non_version_types(self, given):
        """Booleans and containers are not versions even though bool is an int."""
        with pytest.raises(ConfigurationError, match="Expected a string version"):
            normalize_version(given)


class TestBuildTargetFromOptions:
    """Tests for BuildTarget.from_options validation and derivation."""

    def test_derives_abi_and_defaults(self, tmp_path):
        target = BuildTarget.from_options(RebuildOptions(build_path=tmp_path, runtime_version="30"))

        assert target.runtime_version == "30.0.0"
        assert target.abi == "123"
        assert target.arch == PlatformDetector.detect_arch()
        assert target.platform == PlatformDetector.detect_platform()
        assert target.types == ("prod", "optional")
        assert target.mode == "sequential"
        assert target.header_url == "https://www.electronjs.org/headers"
        assert target.use_cache is False

    def test_explicit_arch_and_header_url(self, tmp_path):
        target = BuildTarget.from_options(
            RebuildOptions(
                build_path=tmp_path,
                runtime_version="30.0.1",
                arch="arm64",
                header_url="https://example.com/headers",
            )
        )
        assert target.arch == "arm64"
        assert target.header_url == "https://example.com/headers"

    def test_relative_build_path_rejected(self):
        with pytest.raises(ConfigurationError, match="absolute"):
            BuildTarget.from_options(RebuildOptions(build_path=Path("relative/app"), runtime_version="30"))

    def test_unknown_dependency_type_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Unknown dependency type"):
            BuildTarget.from_options(
                RebuildOptions(build_path=tmp_path, runtime_version="30", types=("prod", "peer"))
            )

    def test_unknown_mode_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="mode"):
            BuildTarget.from_options(RebuildOptions(build_path=tmp_path, runtime_version="30", mode="eager"))

    def test_version_without_abi_rejected(self, tmp_path):
        with pytest.raises(ConfigurationError, match="force_abi"):
            BuildTarget.from_options(RebuildOptions(build_path=tmp_path, runtime_version="0.1.0"))

    def test_force_abi_overrides_table(self, tmp_path):
        target = BuildTarget.from_options(
            RebuildOptions(build_path=tmp_path, runtime_version="99.0.0-nightly.20250101", force_abi=140)
        )
        assert target.abi == "140"

    def test_force_abi_must_be_numeric(self, tmp_path):
        with pytest.raises(ConfigurationError, match="force_abi"):
            BuildTarget.from_options(RebuildOptions(build_path=tmp_path, runtime_version="30", force_abi="abc"))

    def test_force_disables_cache_with_warning(self, tmp_path, caplog):
        with caplog.at_level(logging.WARNING):
            target = BuildTarget.from_options(
                RebuildOptions(build_path=tmp_path, runtime_version="30", force=True, use_cache=True)
            )

        assert target.force is True
        assert target.use_cache is False
        assert "force takes precedence" in caplog.text

    def test_cache_path_from_options(self, tmp_path):
        target = BuildTarget.from_options(
            RebuildOptions(build_path=tmp_path, runtime_version="30", cache_path=tmp_path / "cache")
        )
        assert target.cache_path == tmp_path / "cache"

    def test_msvs_version_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GYP_MSVS_VERSION", "2022")
        target = BuildTarget.from_options(RebuildOptions(build_path=tmp_path, runtime_version="30"))
        assert target.msvs_version == "2022"


class TestBuildTargetProperties:
    """Tests for derived BuildTarget properties."""

    @pytest.fixture
    def target(self, tmp_path):
        return BuildTarget(
            build_path=tmp_path,
            runtime_version="30.1.2",
            arch="x64",
            abi="123",
            platform="linux",
        )

    def test_build_type(self, target):
        assert target.build_type == "Release"
        target.debug = True
        assert target.build_type == "Debug"

    def test_marker_data(self, target):
        assert target.marker_data == "x64--123"

    def test_node_abi_tag(self, target):
        assert target.node_abi_tag == "electron-v30.1"


class TestDefaultPaths:
    """Tests for environment-overridable default directories."""

    def test_cache_path_default(self, monkeypatch):
        monkeypatch.delenv("ADDONBUILD_CACHE_DIR", raising=False)
        assert default_cache_path() == Path.home() / ".addon-rebuild-cache"

    def test_cache_path_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ADDONBUILD_CACHE_DIR", str(tmp_path / "custom"))
        assert default_cache_path() == (tmp_path / "custom").resolve()

    def test_gyp_dir_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ADDONBUILD_GYP_DIR", str(tmp_path / "gyp"))
        assert default_gyp_dir() == (tmp_path / "gyp").resolve()
