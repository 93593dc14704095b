"""Validated in-memory form of a kikai.yml manifest.

All types are immutable once loaded. Build recipes form a sum type:
``SimpleBuild`` (scripted steps) or ``AutotoolsBuild`` (configure/make).
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

# Platform name -> target triple
PLATFORM_TRIPLES: Dict[str, str] = {
    "armv7a": "armv7a-linux-androideabi",
    "arm64": "aarch64-linux-android",
    "x86": "i686-linux-android",
    "x86_64": "x86_64-linux-android",
}

PLATFORM_ALIASES: Dict[str, str] = {
    "arm": "armv7a",
}


@dataclass(frozen=True)
class SourceSpec:
    """One source archive of a module."""

    url: str
    after: Optional[str] = None
    strip_parents: int = -1


@dataclass(frozen=True)
class BuildStep:
    """A named shell script run by a simple build."""

    name: str
    run: str


@dataclass(frozen=True)
class SimpleBuild:
    """Build recipe made of ordered shell steps."""

    steps: Tuple[BuildStep, ...] = ()


@dataclass(frozen=True)
class AutotoolsBuild:
    """Build recipe driven by ./configure and make."""

    configure_options: Optional[str] = None
    make_options: Optional[str] = None
    cflags: Optional[str] = None
    cppflags: Optional[str] = None
    ldflags: Optional[str] = None


BuildSpec = Union[SimpleBuild, AutotoolsBuild]


@dataclass(frozen=True)
class ModuleSpec:
    """A named unit with source archives, dependencies and a build recipe."""

    name: str
    sources: Tuple[SourceSpec, ...]
    build: BuildSpec
    dependencies: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolchainSpec:
    """Toolchain request shared by every platform."""

    api: str
    stl: str
    platforms: Tuple[str, ...]
    standalone: bool = False
    after: Optional[str] = None


@dataclass(frozen=True)
class Manifest:
    """A fully validated manifest."""

    install_root: Path
    toolchain: ToolchainSpec
    modules: Dict[str, ModuleSpec] = field(default_factory=dict)
