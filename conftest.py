"""
Pytest configuration for kikai test suite.

Tests marked ``integration`` drive real autotools and pkgconf and are only
run with --full.
"""

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
    config.addinivalue_line(
        "markers", "integration: needs real autotools/pkgconf (enable with --full)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --full is given."""
    if config.getoption("--full"):
        return

    skip_integration = pytest.mark.skip(reason="needs --full to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)
