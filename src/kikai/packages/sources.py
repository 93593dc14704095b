"""Source acquisition pipeline: download, extract, post-extract hook.

Each source of a module is tracked by two state entries keyed by its
download ID (a hash of url, after-hook and strip-parents, independent of the
archive content):

    download::{module_id}::{download_id}   = "{checksum}::{size}"
    extracted::{module_id}::{download_id}  = "{checksum}::{size}"

A fresh download always forces a fresh extraction. The extracted entry must
match the download entry, so an extraction that failed after a successful
download is retried on the next run. All sources of a module are extracted
into the same directory, in manifest order, and that directory is always
rebuilt as a whole so it matches what a clean run would produce.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..cli_utils import StatusPrinter
from ..command_executor import CommandError, CommandExecutor
from ..config.manifest import ModuleSpec, SourceSpec
from ..errors import KikaiError
from .archive_utils import ArchiveExtractor
from .cache import Cache, hash_parts
from .downloader import ArchiveFetcher
from .state_store import DownloadRecord, Missing, StateCache

logger = logging.getLogger(__name__)

DOWNLOAD_SCOPE = "download"
EXTRACTED_SCOPE = "extracted"


class SourceError(KikaiError):
    """Raised when a source cannot be prepared."""

    stage = "source"


@dataclass
class SourceResult:
    """Outcome of preparing every source of a module."""

    module_id: str
    extracted_dir: Path
    updated: bool


@dataclass
class FetchedSource:
    """A source whose archive is present in the downloads directory."""

    source: SourceSpec
    download_id: str
    path: Path
    record: DownloadRecord
    downloaded: bool


class SourcePipeline:
    """Keeps each module's extracted source tree up to date."""

    def __init__(
        self,
        cache: Cache,
        state: StateCache,
        fetcher: Optional[ArchiveFetcher] = None,
        extractor: Optional[ArchiveExtractor] = None,
        executor: Optional[CommandExecutor] = None,
        status: Optional[StatusPrinter] = None,
    ):
        """Initialize source pipeline.

        Args:
            cache: Storage layout
            state: Persistent step state
            fetcher: Downloader (default: ArchiveFetcher())
            extractor: Extractor (default: ArchiveExtractor())
            executor: Runner for post-extract hooks
            status: Status line printer
        """
        self.cache = cache
        self.state = state
        self.fetcher = fetcher or ArchiveFetcher()
        self.extractor = extractor or ArchiveExtractor()
        self.executor = executor or CommandExecutor()
        self.status = status or StatusPrinter(enabled=False)

    @staticmethod
    def download_id(source: SourceSpec) -> str:
        """Identify a source's state entries independently of its content."""
        return hash_parts([source.url, source.after, source.strip_parents])

    def ensure_sources(self, module: ModuleSpec) -> SourceResult:
        """Prepare every source of a module, in manifest order.

        Downloads are checked per source. The extracted tree is shared by all
        sources of the module, so if any source needs extracting (or the tree
        is gone) the whole tree is rebuilt from every archive in order.

        Args:
            module: Module whose sources to prepare

        Returns:
            SourceResult; ``updated`` is True if the tree was rebuilt

        Raises:
            DownloadError, ExtractionError, SourceError, CacheStoreError
        """
        module_id = Cache.module_id(module.name)
        extracted_dir = self.cache.get_extracted_dir(module_id)

        fetched = [self.fetch_source(module_id, source) for source in module.sources]
        stale = [
            item.source.url
            for item in fetched
            if item.downloaded
            or self.state.needs_update(
                EXTRACTED_SCOPE, module_id, item.download_id, item.record.encode()
            )
        ]

        updated = bool(fetched) and (bool(stale) or not extracted_dir.is_dir())
        if updated:
            logger.debug(f"Rebuilding source tree of {module.name} (stale: {stale})")
            self.rebuild_tree(module_id, extracted_dir, fetched)
        elif not extracted_dir.is_dir():
            # Modules without sources still get a build root
            try:
                extracted_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise SourceError(f"Failed to create {extracted_dir}: {e}")
        else:
            logger.debug(f"Sources up to date: {module.name}")

        return SourceResult(module_id=module_id, extracted_dir=extracted_dir, updated=updated)

    def fetch_source(self, module_id: str, source: SourceSpec) -> FetchedSource:
        """Download a source unless its archive and download entry are present.

        Args:
            module_id: Hashed module name
            source: Source definition

        Returns:
            FetchedSource describing the archive on disk
        """
        download_id = self.download_id(source)
        download_path = self.cache.get_download_path(module_id, download_id)

        if download_path.exists():
            record = self.state.get_download(DOWNLOAD_SCOPE, module_id, download_id)
            if record is not None:
                return FetchedSource(source, download_id, download_path, record, downloaded=False)

        self.status.print("source", f"Processing: {source.url}")
        result = self.fetcher.download(source.url, download_path)
        record = DownloadRecord(checksum=result.checksum, size=result.size)
        self.state.record_download(DOWNLOAD_SCOPE, module_id, download_id, record)
        return FetchedSource(source, download_id, download_path, record, downloaded=True)

    def rebuild_tree(self, module_id: str, extracted_dir: Path, fetched: List[FetchedSource]) -> None:
        """Recreate a module's extracted tree from all of its archives.

        Existing extracted entries are invalidated before the tree is
        cleared, and only recorded again once every archive is extracted and
        every post-extract hook has succeeded. An interrupted rebuild is
        therefore redone in full on the next run.

        Args:
            module_id: Hashed module name
            extracted_dir: Directory the module's sources are extracted into
            fetched: Every source of the module, in manifest order
        """
        for item in fetched:
            lookup = self.state.lookup(EXTRACTED_SCOPE, module_id, item.download_id)
            if not isinstance(lookup, Missing):
                self.state.record(EXTRACTED_SCOPE, module_id, item.download_id, "")

        try:
            if extracted_dir.exists():
                shutil.rmtree(extracted_dir)
            extracted_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SourceError(f"Failed to reset {extracted_dir}: {e}")

        for item in fetched:
            if not item.downloaded:
                self.status.print("source", f"Processing: {item.source.url}")

            self.extractor.extract(item.path, extracted_dir, item.source.strip_parents)

            if item.source.after is not None:
                try:
                    self.executor.run_script(
                        item.source.after, cwd=extracted_dir, description="source after hook"
                    )
                except CommandError as e:
                    raise SourceError(f"Post-extract hook for {item.source.url} failed: {e}")

        for item in fetched:
            self.state.record_download(EXTRACTED_SCOPE, module_id, item.download_id, item.record)
