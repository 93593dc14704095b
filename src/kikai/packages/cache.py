"""Storage layout for Kikai state.

This module provides the directory structure used for downloaded archives,
extracted source trees, generated toolchains and the persistent state store,
together with the hashing helpers that name entries inside it.

Storage Structure:
    .kikai/
    ├── kikai.json                  # Persistent key/value state
    ├── downloads/
    │   └── {module_id}/            # SHA256 of the module name
    │       └── {download_id}       # SHA256 of (url, after, strip-parents)
    ├── extracted/
    │   └── {module_id}/            # All sources of a module, overlaid
    ├── toolchains/
    │   └── {platform}/             # Standalone toolchains
    └── wrappers/
        └── pkg-config              # pkgconf wrapper used by autotools builds

Every entry is addressed by a content-independent ID, so re-running with an
unchanged manifest touches no new paths.
"""

import hashlib
import os
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

HashPart = Union[str, bytes, int, None]


def hash_parts(parts: Iterable[HashPart]) -> str:
    """Hash an ordered sequence of inputs into a single SHA256 hex digest.

    Each part is length-delimited, so ``("ab", "c")`` and ``("a", "bc")``
    produce different digests. ``None`` hashes differently from ``""``.

    Args:
        parts: Strings, bytes, integers or None

    Returns:
        Lowercase hex digest
    """
    sha256 = hashlib.sha256()
    for part in parts:
        if part is None:
            sha256.update(b"\x00N")
            continue

        if isinstance(part, bytes):
            data = part
        else:
            data = str(part).encode("utf-8")

        sha256.update(b"\x01" + str(len(data)).encode("ascii") + b":")
        sha256.update(data)

    return sha256.hexdigest()


def join_path(base: Path, segments: Sequence[str]) -> Path:
    """Join several path segments onto a base path.

    Args:
        base: Base directory
        segments: Child names, outermost first

    Returns:
        The joined path
    """
    path = Path(base)
    for segment in segments:
        path = path / segment
    return path


class Cache:
    """Manages the Kikai storage directory structure.

    The storage can be located in the project directory (.kikai/) or in a
    location specified by the KIKAI_STORAGE_DIR environment variable.
    """

    STATE_FILE = "kikai.json"

    def __init__(self, project_dir: Optional[Path] = None):
        """Initialize storage manager.

        Args:
            project_dir: Project directory. If None, uses current directory.
        """
        if project_dir is None:
            project_dir = Path.cwd()

        self.project_dir = Path(project_dir).resolve()

        storage_env = os.environ.get("KIKAI_STORAGE_DIR")
        if storage_env:
            self.storage_root = Path(storage_env).resolve()
        else:
            self.storage_root = self.project_dir / ".kikai"

    @staticmethod
    def module_id(name: str) -> str:
        """Content hash used in place of a module's human name."""
        return hash_parts([name])

    @property
    def state_file(self) -> Path:
        """File backing the persistent key/value state."""
        return self.storage_root / self.STATE_FILE

    @property
    def downloads_dir(self) -> Path:
        """Directory for downloaded source archives."""
        return self.storage_root / "downloads"

    @property
    def extracted_dir(self) -> Path:
        """Directory for extracted source trees."""
        return self.storage_root / "extracted"

    @property
    def toolchains_dir(self) -> Path:
        """Directory for generated standalone toolchains."""
        return self.storage_root / "toolchains"

    @property
    def wrappers_dir(self) -> Path:
        """Directory for generated helper scripts."""
        return self.storage_root / "wrappers"

    def get_download_path(self, module_id: str, download_id: str) -> Path:
        """Get path where a source archive is stored.

        Args:
            module_id: Hashed module name
            download_id: Hashed source definition

        Returns:
            Path to the archive file
        """
        return join_path(self.downloads_dir, [module_id, download_id])

    def get_extracted_dir(self, module_id: str) -> Path:
        """Get the directory holding a module's extracted sources."""
        return join_path(self.extracted_dir, [module_id])

    def get_toolchain_path(self, platform_name: str) -> Path:
        """Get the install directory of a standalone toolchain."""
        return join_path(self.toolchains_dir, [platform_name])

    def ensure_directories(self) -> None:
        """Create all storage directories if they don't exist."""
        for directory in [
            self.storage_root,
            self.downloads_dir,
            self.extracted_dir,
            self.toolchains_dir,
            self.wrappers_dir,
        ]:
            directory.mkdir(parents=True, exist_ok=True)
