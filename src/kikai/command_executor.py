"""Command Executor.

This module runs the external processes of a build: shell scripts from the
manifest, ./configure, make and the toolchain generator.

Design:
    - Wraps subprocess.run; every call blocks until the process exits
    - Output is streamed to the terminal, not captured
    - A spawn failure or non-zero exit raises CommandError; callers never
      record a step as done unless run returned normally
"""

import logging
import os
import shlex
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .errors import KikaiError

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"


class CommandError(KikaiError):
    """Raised when a process cannot be spawned or exits non-zero."""

    stage = "build"

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class CommandExecutor:
    """Executes external commands synchronously."""

    def __init__(self, verbose: bool = False):
        """Initialize command executor.

        Args:
            verbose: Log every command before it runs
        """
        self.verbose = verbose

    @staticmethod
    def format_command(command: Sequence[str]) -> str:
        return " ".join(shlex.quote(str(part)) for part in command)

    def run(
        self,
        command: Sequence[str],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        description: Optional[str] = None,
    ) -> None:
        """Run a command and wait for it to finish.

        Args:
            command: Program and arguments
            cwd: Working directory
            env: Extra environment variables layered over os.environ
            description: Human-readable name used in error messages

        Raises:
            CommandError: If the process cannot be spawned or exits non-zero
        """
        description = description or Path(str(command[0])).name
        merged_env = os.environ.copy()
        if env:
            merged_env.update(env)

        if self.verbose:
            logger.info(f"Running in {cwd}: {self.format_command(command)}")
        else:
            logger.debug(f"Running in {cwd}: {self.format_command(command)}")

        try:
            result = subprocess.run(
                [str(part) for part in command],
                cwd=str(cwd),
                env=merged_env,
            )
        except OSError as e:
            raise CommandError(f"Failed to spawn {description}: {e}")

        if result.returncode != 0:
            raise CommandError(
                f"{description} failed with exit code {result.returncode}",
                returncode=result.returncode,
            )

    def run_script(
        self,
        script: str,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
        description: Optional[str] = None,
    ) -> None:
        """Run a shell script with ``/bin/sh -e -c``.

        Args:
            script: Script body
            cwd: Working directory
            env: Extra environment variables layered over os.environ
            description: Human-readable name used in error messages

        Raises:
            CommandError: If the shell cannot be spawned or exits non-zero
        """
        self.run([SHELL, "-e", "-c", script], cwd=cwd, env=env, description=description or "script")
