"""
Integration test for CLI command invocation.

This test validates that the installed CLI can be invoked and responds correctly.
"""

import os
import unittest

import pytest

COMMAND = "addon-rebuild"


@pytest.mark.integration
class TestCLIIntegration(unittest.TestCase):
    """CLI integration test class."""

    def test_cli_help_invocation(self) -> None:
        """Test command line interface help flag."""
        rtn = os.system(f"{COMMAND} --help")
        self.assertEqual(0, rtn)

    def test_cli_tool_version(self) -> None:
        rtn = os.system(f"{COMMAND} --tool-version")
        self.assertEqual(0, rtn)


if __name__ == "__main__":
    unittest.main()
