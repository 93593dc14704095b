"""
Build system components for Kikai.

This module provides the build system implementation including:
- Dependency resolution
- Per-module recipe execution (simple and autotools)
- Build orchestration
"""

from .build_executor import (
    AUTOTOOLS_SCOPE,
    SIMPLE_SCOPE,
    AutotoolsBuilder,
    BuildContext,
    BuildError,
    BuildExecutor,
    BuildReport,
    ModuleBuilder,
    SimpleBuilder,
)
from .orchestrator import BuildOrchestrator, BuildResult
from .resolver import CycleError, DependencyError, DependencyResolver, resolve_modules

__all__ = [
    "AUTOTOOLS_SCOPE",
    "SIMPLE_SCOPE",
    "AutotoolsBuilder",
    "BuildContext",
    "BuildError",
    "BuildExecutor",
    "BuildReport",
    "ModuleBuilder",
    "SimpleBuilder",
    "BuildOrchestrator",
    "BuildResult",
    "CycleError",
    "DependencyError",
    "DependencyResolver",
    "resolve_modules",
]
