"""
Pytest configuration for addon-rebuild test suite.

This configuration enables the --full flag to run integration tests.
"""

import json
from pathlib import Path

import pytest


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--full",
        action="store_true",
        default=False,
        help="Run full test suite including integration tests (slow)",
    )


def pytest_configure(config):
    """Configure pytest based on command-line options."""
    config.addinivalue_line("markers", "integration: runs the installed CLI (use --full)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --full was given."""
    if config.getoption("--full"):
        return
    skip_integration = pytest.mark.skip(reason="integration test, use --full to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def make_package():
    """Factory writing a package.json (and optionally binding.gyp) into a directory."""

    def _make(directory, dependencies=(), optional=(), dev=(), native=False, **fields):
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        manifest = {"name": directory.name, "version": "1.0.0"}
        if dependencies:
            manifest["dependencies"] = {name: "*" for name in dependencies}
        if optional:
            manifest["optionalDependencies"] = {name: "*" for name in optional}
        if dev:
            manifest["devDependencies"] = {name: "*" for name in dev}
        manifest.update(fields)
        (directory / "package.json").write_text(json.dumps(manifest), encoding="utf-8")
        if native:
            (directory / "binding.gyp").write_text("{'targets': []}", encoding="utf-8")
        return directory

    return _make
