"""Dependency resolution for module builds.

Expands a requested set of modules into an execution order in which every
module appears after all of its transitive dependencies, exactly once.
Cycles are reported as errors instead of recursing forever.
"""

import logging
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from ..config.manifest import ModuleSpec
from ..errors import KikaiError

logger = logging.getLogger(__name__)


class DependencyError(KikaiError):
    """Raised when a requested or depended-upon module does not exist."""

    stage = "resolve"


class CycleError(DependencyError):
    """Raised when module dependencies form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle detected: {' -> '.join(self.cycle)}")


class _Mark(Enum):
    VISITING = 1
    DONE = 2


class DependencyResolver:
    """Orders modules so dependencies are processed first."""

    def __init__(self, modules: Mapping[str, ModuleSpec]):
        """Initialize resolver.

        Args:
            modules: Every module in the manifest, keyed by name
        """
        self.modules = modules

    def resolve(self, requested: Optional[Sequence[str]] = None) -> List[ModuleSpec]:
        """Compute the execution order for the requested modules.

        Args:
            requested: Module names to build; all modules if None or empty

        Returns:
            Modules in dependency-respecting order, each exactly once

        Raises:
            DependencyError: If a requested or referenced module is unknown
            CycleError: If the dependency graph has a cycle
        """
        if not requested:
            requested = list(self.modules)

        marks: Dict[str, _Mark] = {}
        order: List[ModuleSpec] = []
        for name in requested:
            self._visit(name, marks, order, [], referrer=None)

        logger.debug(f"Resolved module order: {[m.name for m in order]}")
        return order

    def _visit(
        self,
        name: str,
        marks: Dict[str, _Mark],
        order: List[ModuleSpec],
        path: List[str],
        referrer: Optional[str],
    ) -> None:
        mark = marks.get(name)
        if mark is _Mark.DONE:
            return
        if mark is _Mark.VISITING:
            raise CycleError(path[path.index(name):] + [name])

        module = self.modules.get(name)
        if module is None:
            if referrer is None:
                raise DependencyError(f"Non-existent module: {name}")
            raise DependencyError(f"Non-existent module: {name} (required by {referrer})")

        marks[name] = _Mark.VISITING
        path.append(name)
        for dependency in module.dependencies:
            self._visit(dependency, marks, order, path, referrer=name)
        path.pop()

        marks[name] = _Mark.DONE
        order.append(module)


def resolve_modules(
    modules: Mapping[str, ModuleSpec], requested: Optional[Sequence[str]] = None
) -> List[ModuleSpec]:
    """Convenience wrapper around DependencyResolver.resolve."""
    return DependencyResolver(modules).resolve(requested)
