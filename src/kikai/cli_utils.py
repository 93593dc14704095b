"""CLI utility functions for Kikai.

This module provides the terminal output shared by the CLI and the build
stages:
- Logging setup
- ``[stage] message`` status lines
- Result and error reporting with exit codes
"""

import logging
import sys
import traceback
from pathlib import Path
from typing import NoReturn, Optional, TextIO

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130  # 128 + SIGINT


def setup_logging(verbose: bool = False, stream: Optional[TextIO] = None) -> None:
    """Setup logging for a CLI run.

    Args:
        verbose: Log at DEBUG instead of INFO
        stream: Stream for log records (default: stderr)
    """
    logger = logging.getLogger("kikai")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)


def colorize(text: str, code: str, enabled: bool) -> str:
    if not enabled:
        return text
    return f"\033[{code}m{text}\033[0m"


class StatusPrinter:
    """Prints ``[stage] message`` status lines."""

    STAGE_COLOR = "36"

    def __init__(self, enabled: bool = True, color: Optional[bool] = None):
        """Initialize status printer.

        Args:
            enabled: Whether to print anything at all
            color: Force color on or off (default: only on a terminal)
        """
        self.enabled = enabled
        self.color = sys.stdout.isatty() if color is None else color

    def format(self, stage: str, message: str) -> str:
        return f"[{colorize(stage, self.STAGE_COLOR, self.color)}] {message}"

    def print(self, stage: str, message: str) -> None:
        if self.enabled:
            print(self.format(stage, message), flush=True)


class Reporter:
    """Reports the outcome of a CLI run and picks its exit code.

    Failures go to stderr as a red ``✗`` headline followed by the message;
    the success headline is a green ``✓`` on stdout.
    """

    FAILURE_COLOR = "1;31"
    SUCCESS_COLOR = "1;32"
    WARNING_COLOR = "1;33"

    def __init__(self, color: Optional[bool] = None):
        self.color = sys.stderr.isatty() if color is None else color

    def failure(self, headline: str, message: str) -> None:
        print(file=sys.stderr)
        print(colorize(f"✗ {headline}", self.FAILURE_COLOR, self.color), file=sys.stderr)
        print(message, file=sys.stderr)

    def success(self, headline: str) -> None:
        print()
        print(colorize(f"✓ {headline}", self.SUCCESS_COLOR, self.color))

    def fail(self, headline: str, message: str) -> NoReturn:
        self.failure(headline, message)
        sys.exit(EXIT_FAILURE)

    def interrupted(self) -> NoReturn:
        print(file=sys.stderr)
        print(colorize("✗ Build interrupted", self.WARNING_COLOR, self.color), file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)

    def crashed(self, error: BaseException, verbose: bool = False) -> NoReturn:
        """Report an exception no component turned into a KikaiError.

        Args:
            error: The exception
            verbose: Also print the traceback
        """
        self.failure("Unexpected error", f"{type(error).__name__}: {error}")
        if verbose:
            traceback.print_exception(type(error), error, error.__traceback__, file=sys.stderr)
        sys.exit(EXIT_FAILURE)

    def require_directory(self, path: Path) -> None:
        """Exit with the usage error code unless ``path`` is an existing directory."""
        if not path.exists():
            problem = "Path does not exist"
        elif not path.is_dir():
            problem = "Path is not a directory"
        else:
            return

        self.failure("Invalid project directory", f"{problem}: {path}")
        sys.exit(EXIT_USAGE)
