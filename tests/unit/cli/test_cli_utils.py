"""Unit tests for CLI utilities."""

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import psutil
import pytest

from addonbuild import lifecycle as events
from addonbuild.build import RebuildError
from addonbuild.cli_utils import (
    ErrorFormatter,
    PathValidator,
    ProcessCleaner,
    ProgressReporter,
    setup_logging,
)
from addonbuild.lifecycle import Lifecycle


class TestProgressReporter:
    """Tests for ProgressReporter."""

    def test_counts_lifecycle_events(self):
        lifecycle = Lifecycle()
        reporter = ProgressReporter(lifecycle, disable=True)

        lifecycle.emit(events.MODULE_FOUND, "sqlite3")
        lifecycle.emit(events.MODULE_DONE)
        lifecycle.emit(events.MODULE_FOUND, "bcrypt")
        lifecycle.emit(events.MODULE_DONE)
        lifecycle.emit(events.MODULE_SKIP)
        reporter.close()

        assert reporter.modules_total == 2
        assert reporter.modules_done == 2
        assert reporter.modules_skipped == 1
        assert reporter.last_module == "bcrypt"

    def test_sequential_description_names_module(self):
        lifecycle = Lifecycle()
        reporter = ProgressReporter(lifecycle, disable=True)

        lifecycle.emit(events.MODULE_FOUND, "@serialport/bindings")

        assert "Building module: @serialport/bindings" in reporter.bar.desc
        reporter.close()

    def test_parallel_description_counts(self):
        lifecycle = Lifecycle()
        reporter = ProgressReporter(lifecycle, parallel=True, disable=True)

        lifecycle.emit(events.MODULE_FOUND, "a")
        lifecycle.emit(events.MODULE_FOUND, "b")
        lifecycle.emit(events.MODULE_DONE)

        assert "1/2" in reporter.bar.desc
        reporter.close()


class TestErrorFormatter:
    def test_rebuild_error_exit_code(self, capsys):
        error = RebuildError(Path("/app/node_modules/sqlite3"), "node-gyp failed")

        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_rebuild_error(error)

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "sqlite3" in err
        assert "node-gyp failed" in err

    def test_configuration_error_exit_code(self):
        with pytest.raises(SystemExit) as exc_info:
            ErrorFormatter.handle_configuration_error(ValueError("bad version"))
        assert exc_info.value.code == 2

    def test_unexpected_error_traceback_when_verbose(self, capsys):
        try:
            raise RuntimeError("kaboom")
        except RuntimeError as e:
            with pytest.raises(SystemExit):
                ErrorFormatter.handle_unexpected_error(e, verbose=True)

        err = capsys.readouterr().err
        assert "RuntimeError: kaboom" in err
        assert "Traceback" in err


class TestPathValidator:
    def test_accepts_project(self, tmp_path, make_package):
        PathValidator.validate_module_dir(make_package(tmp_path / "app"))

    def test_rejects_file(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("")
        with pytest.raises(SystemExit) as exc_info:
            PathValidator.validate_module_dir(target)
        assert exc_info.value.code == 2

    def test_rejects_directory_without_manifest(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            PathValidator.validate_module_dir(tmp_path)
        assert exc_info.value.code == 2


class TestProcessCleaner:
    def test_terminates_and_kills_stragglers(self):
        polite = MagicMock(pid=101)
        stubborn = MagicMock(pid=102)
        process = MagicMock()
        process.children.return_value = [polite, stubborn]

        with (
            patch("addonbuild.cli_utils.psutil.Process", return_value=process),
            patch("addonbuild.cli_utils.psutil.wait_procs", return_value=([polite], [stubborn])),
        ):
            assert ProcessCleaner.terminate_children(timeout=0) == 2

        polite.terminate.assert_called_once()
        stubborn.terminate.assert_called_once()
        stubborn.kill.assert_called_once()
        polite.kill.assert_not_called()

    def test_vanished_process_ignored(self):
        gone = MagicMock(pid=103)
        gone.terminate.side_effect = psutil.NoSuchProcess(103)
        process = MagicMock()
        process.children.return_value = [gone]

        with (
            patch("addonbuild.cli_utils.psutil.Process", return_value=process),
            patch("addonbuild.cli_utils.psutil.wait_procs", return_value=([gone], [])),
        ):
            assert ProcessCleaner.terminate_children(timeout=0) == 1


def test_setup_logging_replaces_console_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging(verbose=True)
        setup_logging(verbose=False)

        added = [handler for handler in root.handlers if handler not in before]
        assert len(added) == 1
        assert added[0].level == logging.WARNING
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)
