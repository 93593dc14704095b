"""Package management for Kikai.

This module handles the persistent state, downloading and extracting source
archives, and provisioning compiler toolchains.
"""

from .archive_utils import ArchiveExtractor, ExtractionError, strip_entry_path
from .cache import Cache, hash_parts, join_path
from .downloader import ArchiveFetcher, DownloadError, DownloadResult
from .platform_utils import PlatformDetector, PlatformError
from .sources import SourceError, SourcePipeline, SourceResult
from .state_store import (
    MISSING,
    CacheStoreError,
    DownloadRecord,
    Found,
    JsonStateStore,
    MemoryStateStore,
    Missing,
    StateCache,
    StateStore,
)
from .toolchain import Toolchain, ToolchainError, ToolchainProvisioner

__all__ = [
    "ArchiveExtractor",
    "ExtractionError",
    "strip_entry_path",
    "Cache",
    "hash_parts",
    "join_path",
    "ArchiveFetcher",
    "DownloadError",
    "DownloadResult",
    "PlatformDetector",
    "PlatformError",
    "SourceError",
    "SourcePipeline",
    "SourceResult",
    "MISSING",
    "CacheStoreError",
    "DownloadRecord",
    "Found",
    "JsonStateStore",
    "MemoryStateStore",
    "Missing",
    "StateCache",
    "StateStore",
    "Toolchain",
    "ToolchainError",
    "ToolchainProvisioner",
]
