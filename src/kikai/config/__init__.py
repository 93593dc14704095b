"""Manifest configuration for Kikai.

This module parses kikai.yml into immutable module and toolchain
specifications.
"""

from .manifest import (
    PLATFORM_TRIPLES,
    AutotoolsBuild,
    BuildSpec,
    BuildStep,
    Manifest,
    ModuleSpec,
    SimpleBuild,
    SourceSpec,
    ToolchainSpec,
)
from .manifest_loader import DEFAULT_MANIFEST, ManifestError, load_manifest, parse_manifest

__all__ = [
    "PLATFORM_TRIPLES",
    "AutotoolsBuild",
    "BuildSpec",
    "BuildStep",
    "Manifest",
    "ModuleSpec",
    "SimpleBuild",
    "SourceSpec",
    "ToolchainSpec",
    "DEFAULT_MANIFEST",
    "ManifestError",
    "load_manifest",
    "parse_manifest",
]
