"""CLI utility functions for addon-rebuild.

This module provides common utilities used by the command line including:
- Logging setup
- Error handling and formatting
- Progress display driven by lifecycle events
- Cleanup of builder subprocesses on interrupt
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import psutil
from tqdm import tqdm

from addonbuild import lifecycle as events
from addonbuild.build import RebuildError
from addonbuild.lifecycle import Lifecycle

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_console_handler: Optional[logging.Handler] = None


def setup_logging(verbose: bool = False) -> None:
    """Configure the root logger for CLI use."""
    global _console_handler

    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if _console_handler is not None:
        logger.removeHandler(_console_handler)

    _console_handler = logging.StreamHandler(sys.stderr)
    _console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    _console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(_console_handler)


class ProgressReporter:
    """Renders module progress with a tqdm bar."""

    def __init__(self, lifecycle: Lifecycle, parallel: bool = False, disable: bool = False):
        """Initialize reporter and subscribe to lifecycle events.

        Args:
            lifecycle: Lifecycle to listen on
            parallel: Parallel runs show counts only, sequential the current module
            disable: Suppress the bar (e.g. when output is not a terminal)
        """
        self.parallel = parallel
        self.modules_total = 0
        self.modules_done = 0
        self.modules_skipped = 0
        self.last_module: Optional[str] = None
        self.bar = tqdm(total=0, desc="Searching dependency tree", unit="module", disable=disable)

        lifecycle.on(events.MODULE_FOUND, self._on_found)
        lifecycle.on(events.MODULE_DONE, self._on_done)
        lifecycle.on(events.MODULE_SKIP, self._on_skip)

    def _on_found(self, module_name: str) -> None:
        self.modules_total += 1
        self.last_module = module_name
        self.bar.total = self.modules_total
        self._redraw()

    def _on_done(self) -> None:
        self.modules_done += 1
        self.bar.update(1)
        self._redraw()

    def _on_skip(self) -> None:
        self.modules_skipped += 1

    def _redraw(self) -> None:
        if self.parallel:
            self.bar.set_description(f"Building modules: {self.modules_done}/{self.modules_total}")
        else:
            self.bar.set_description(
                f"Building module: {self.last_module}, Completed: {self.modules_done}"
            )
        self.bar.refresh()

    def close(self) -> None:
        self.bar.close()


class ErrorFormatter:
    """Formats and displays error messages with ANSI color codes."""

    # ANSI color codes
    RED = "\033[1;31m"
    GREEN = "\033[1;32m"
    YELLOW = "\033[1;33m"
    RESET = "\033[0m"

    @staticmethod
    def print_error(title: str, message: str) -> None:
        """Print formatted error message.

        Args:
            title: Error title (e.g., "Rebuild failed")
            message: Error message details
        """
        print(file=sys.stderr)
        print(f"{ErrorFormatter.RED}✗ {title}{ErrorFormatter.RESET}", file=sys.stderr)
        print(file=sys.stderr)
        print(message, file=sys.stderr)
        print(file=sys.stderr)

    @staticmethod
    def print_success(message: str) -> None:
        print()
        print(f"{ErrorFormatter.GREEN}✓ {message}{ErrorFormatter.RESET}")

    @staticmethod
    def print_warning(message: str) -> None:
        print(file=sys.stderr)
        print(f"{ErrorFormatter.YELLOW}✗ {message}{ErrorFormatter.RESET}", file=sys.stderr)

    @staticmethod
    def handle_rebuild_error(error: RebuildError) -> None:
        """Report the failing module and the builder's message, then exit 1."""
        ErrorFormatter.print_error(
            f"Rebuild failed: {error.module_path.name}",
            f"Module: {error.module_path}\n\n{error.message}",
        )
        sys.exit(1)

    @staticmethod
    def handle_configuration_error(error: Exception) -> None:
        ErrorFormatter.print_error("Error: Invalid configuration", str(error))
        sys.exit(2)

    @staticmethod
    def handle_keyboard_interrupt() -> None:
        """Handle KeyboardInterrupt with standard formatting."""
        ProcessCleaner.terminate_children()
        ErrorFormatter.print_warning("Rebuild interrupted")
        sys.exit(130)  # Standard exit code for SIGINT

    @staticmethod
    def handle_unexpected_error(error: Exception, verbose: bool = False) -> None:
        """Handle unexpected errors with standard formatting.

        Args:
            error: The exception to handle
            verbose: Whether to print traceback
        """
        message = f"{type(error).__name__}: {error}"
        ErrorFormatter.print_error("An unhandled error occurred inside addon-rebuild", message)

        if verbose:
            import traceback

            print("Traceback:", file=sys.stderr)
            print(traceback.format_exc(), file=sys.stderr)

        sys.exit(1)


class ProcessCleaner:
    """Terminates builder subprocesses left behind by an interrupted run."""

    @staticmethod
    def terminate_children(timeout: float = 3) -> int:
        """Terminate every descendant process, force killing stragglers.

        Returns:
            Number of processes signalled
        """
        try:
            children = psutil.Process().children(recursive=True)
        except psutil.Error as e:
            logging.warning(f"Failed to list child processes: {e}")
            return 0

        for proc in children:
            try:
                proc.terminate()
                logging.debug(f"Terminated process {proc.pid}")
            except psutil.NoSuchProcess:
                pass

        _gone, alive = psutil.wait_procs(children, timeout=timeout)
        for proc in alive:
            try:
                proc.kill()
                logging.warning(f"Force killed stubborn process {proc.pid}")
            except psutil.NoSuchProcess:
                pass
        return len(children)


class PathValidator:
    """Validates the module directory given on the command line."""

    @staticmethod
    def validate_module_dir(module_dir: Path) -> None:
        """Exit with status 2 unless the directory holds a package.json."""
        if not module_dir.is_dir():
            print(
                f"{ErrorFormatter.RED}✗ Error: Path is not a directory: {module_dir}{ErrorFormatter.RESET}",
                file=sys.stderr,
            )
            sys.exit(2)
        if not (module_dir / "package.json").exists():
            print(
                f"{ErrorFormatter.RED}✗ Error: No package.json in {module_dir}. "
                + f'Specify the project via --module-dir, e.g. "--module-dir ."{ErrorFormatter.RESET}',
                file=sys.stderr,
            )
            sys.exit(2)
