"""Kikai - incremental cross-compilation build orchestrator.

Kikai reads a ``kikai.yml`` manifest describing modules (source archives plus
a build recipe), provisions Android NDK toolchains, fetches and unpacks
sources and runs each module's build steps, skipping any step whose inputs
have not changed since the last successful run.
"""

__version__ = "0.1.0"
