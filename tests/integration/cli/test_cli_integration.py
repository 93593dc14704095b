"""
Integration test for CLI command invocation.

This test validates that the installed `kikai` command can be invoked.
"""

import os
import unittest

import pytest

COMMAND = "kikai"


@pytest.mark.integration
class TestCLIIntegration(unittest.TestCase):
    """CLI integration test class."""

    def test_cli_help_invocation(self) -> None:
        """Test command line interface help flag."""
        rtn = os.system(f"{COMMAND} --help")
        self.assertEqual(0, rtn)

    def test_cli_version_invocation(self) -> None:
        rtn = os.system(f"{COMMAND} --version")
        self.assertEqual(0, rtn)


if __name__ == "__main__":
    unittest.main()
