"""
Command-line interface for Kikai.

This module provides the `kikai` CLI tool for building cross-compiled
modules described by a kikai.yml manifest.
"""

import argparse
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from kikai import __version__
from kikai.build import BuildOrchestrator
from kikai.cli_utils import EXIT_OK, Reporter, StatusPrinter, setup_logging
from kikai.config import DEFAULT_MANIFEST, ManifestError, load_manifest


@dataclass
class BuildArgs:
    """Arguments for the build command."""

    project_dir: Path
    modules: List[str] = field(default_factory=list)
    manifest: Optional[Path] = None
    show_progress: bool = True
    verbose: bool = False

    @property
    def manifest_path(self) -> Path:
        if self.manifest is None:
            return self.project_dir / DEFAULT_MANIFEST
        return self.manifest


def build_command(args: BuildArgs) -> None:
    """Build the requested modules (all modules when none are named).

    Examples:
        kikai                          # Build every module
        kikai zlib libpng              # Build zlib, libpng and their dependencies
        kikai --manifest other.yml     # Use another manifest
        kikai --no-progress            # No progress bars
        kikai --verbose                # Log every command
    """
    setup_logging(args.verbose)
    reporter = Reporter()
    reporter.require_directory(args.project_dir)

    try:
        try:
            manifest = load_manifest(args.manifest_path)
        except ManifestError as e:
            reporter.fail(f"{e.stage} failed", str(e))

        orchestrator = BuildOrchestrator(
            manifest,
            project_dir=args.project_dir,
            status=StatusPrinter(),
            show_progress=args.show_progress,
            verbose=args.verbose,
        )
        result = orchestrator.build(args.modules)

        if not result.success:
            reporter.fail(f"{result.stage} failed", result.message)

        reporter.success("Build successful!")
        print(f"Modules: {', '.join(result.modules) or '(none)'}")
        print(f"Build time: {result.build_time:.2f}s")
        sys.exit(EXIT_OK)

    except KeyboardInterrupt:
        reporter.interrupted()
    except Exception as e:
        reporter.crashed(e, args.verbose)


def parse_args(argv: Optional[Sequence[str]] = None) -> BuildArgs:
    parser = argparse.ArgumentParser(
        prog="kikai",
        description="Kikai - incremental cross-compilation build orchestrator",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"kikai {__version__}",
    )
    parser.add_argument(
        "modules",
        nargs="*",
        help="Modules to build (default: every module in the manifest)",
    )
    parser.add_argument(
        "-m",
        "--manifest",
        type=Path,
        default=None,
        help=f"Manifest file (default: <project-dir>/{DEFAULT_MANIFEST})",
    )
    parser.add_argument(
        "-C",
        "--project-dir",
        type=Path,
        default=Path.cwd(),
        help="Project directory holding .kikai/ (default: current directory)",
    )
    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Do not show download and extraction progress bars",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show verbose build output",
    )

    parsed = parser.parse_args(argv)
    return BuildArgs(
        project_dir=parsed.project_dir,
        modules=list(parsed.modules),
        manifest=parsed.manifest,
        show_progress=not parsed.no_progress,
        verbose=parsed.verbose,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Kikai - incremental cross-compilation build orchestrator."""
    build_command(parse_args(argv))


if __name__ == "__main__":
    main()
