"""Native Builder.

This module runs the external addon build tool (node-gyp) for one module
directory.

Design:
    - Wraps subprocess.run; the caller supplies the full argument list
    - Runs with the module directory as working directory
    - Takes an explicit environment rather than reading os.environ at call time
    - Surfaces the tool's own output in the raised error
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import List, Mapping, Optional, Sequence


class NativeBuildError(Exception):
    """Raised when the external build tool fails."""

    pass


def default_builder_command() -> List[str]:
    """Command prefix used to invoke node-gyp."""
    node_gyp = shutil.which("node-gyp")
    if node_gyp:
        return [node_gyp]
    return ["npx", "--yes", "node-gyp"]


class NativeBuilder:
    """Invokes node-gyp with prepared arguments."""

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize native builder.

        Args:
            command: Executable and leading arguments (default: node-gyp)
            timeout: Seconds before a build is abandoned (default: none)
        """
        self.command = list(command) if command else default_builder_command()
        self.timeout = timeout

    def build(
        self,
        args: Sequence[str],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        """Run one build.

        Args:
            args: Builder arguments ('rebuild', '--target=...', ...)
            cwd: Module directory
            env: Complete environment for the child process

        Returns:
            The completed process

        Raises:
            NativeBuildError: If the tool cannot be started or exits non-zero
        """
        cmd = self.command + list(args)
        logging.debug(f"Running {' '.join(cmd)} in {cwd}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                env=dict(env) if env is not None else None,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise NativeBuildError(f"Build timed out after {self.timeout}s in {cwd}")
        except OSError as e:
            raise NativeBuildError(f"Failed to start {self.command[0]}: {e}")

        if result.returncode != 0:
            error_msg = f"{self.command[-1]} exited with code {result.returncode}\n"
            error_msg += f"stderr: {result.stderr}\n"
            error_msg += f"stdout: {result.stdout}"
            raise NativeBuildError(error_msg)

        return result
