"""
Build orchestration for Kikai projects.

This module drives a full invocation:
1. Resolve the requested modules into dependency order
2. Open the persistent state store
3. Provision a toolchain for every platform
4. For each module, in order:
   a. Bring its sources up to date (may mark the module updated)
   b. Build it for every toolchain, in platform order

Every failure stops the whole run. Steps completed before the failure keep
their state entries, so the next run resumes where this one stopped.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from ..cli_utils import StatusPrinter
from ..command_executor import CommandExecutor
from ..config.manifest import Manifest
from ..errors import KikaiError
from ..packages.archive_utils import ArchiveExtractor
from ..packages.cache import Cache
from ..packages.downloader import ArchiveFetcher
from ..packages.sources import SourcePipeline
from ..packages.state_store import CacheStoreError, JsonStateStore, StateCache, StateStore
from ..packages.toolchain import ToolchainProvisioner
from .build_executor import BuildError, BuildExecutor
from .resolver import DependencyResolver

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a complete build invocation."""

    success: bool
    modules: List[str]
    build_time: float
    message: str
    stage: Optional[str] = None
    updated_modules: List[str] = field(default_factory=list)
    steps_run: int = 0


class BuildOrchestrator:
    """
    Orchestrates the complete build for a manifest.

    Example usage:
        manifest = load_manifest(Path("kikai.yml"))
        orchestrator = BuildOrchestrator(manifest, project_dir=Path("."))
        result = orchestrator.build(["zlib"])
        if not result.success:
            print(f"{result.stage} failed: {result.message}")
    """

    def __init__(
        self,
        manifest: Manifest,
        project_dir: Optional[Path] = None,
        cache: Optional[Cache] = None,
        store: Optional[StateStore] = None,
        fetcher: Optional[ArchiveFetcher] = None,
        extractor: Optional[ArchiveExtractor] = None,
        executor: Optional[CommandExecutor] = None,
        status: Optional[StatusPrinter] = None,
        ndk_path: Optional[Path] = None,
        show_progress: bool = True,
        verbose: bool = False,
    ):
        """
        Initialize build orchestrator.

        Args:
            manifest: Validated manifest
            project_dir: Project directory holding .kikai/ (default: cwd)
            cache: Storage layout (default: Cache(project_dir))
            store: State store; if None a JsonStateStore is opened for each
                build and closed afterwards
            fetcher: Downloader
            extractor: Archive extractor
            executor: Process runner
            status: Status line printer
            ndk_path: Android NDK root (default: from the environment)
            show_progress: Show download/extraction progress bars
            verbose: Log every command
        """
        self.manifest = manifest
        self.cache = cache or Cache(project_dir)
        self.store = store
        self.fetcher = fetcher or ArchiveFetcher(show_progress=show_progress)
        self.extractor = extractor or ArchiveExtractor(show_progress=show_progress)
        self.executor = executor or CommandExecutor(verbose=verbose)
        self.status = status or StatusPrinter()
        self.ndk_path = ndk_path
        self.verbose = verbose

    def build(self, requested: Optional[Sequence[str]] = None) -> BuildResult:
        """
        Execute the complete build.

        Args:
            requested: Module names to build (default: every module)

        Returns:
            BuildResult; on failure ``stage`` names the failing stage
        """
        start_time = time.time()
        modules: List[str] = []
        result = BuildResult(success=False, modules=modules, build_time=0.0, message="")

        try:
            order = DependencyResolver(self.manifest.modules).resolve(requested)
            modules.extend(module.name for module in order)

            try:
                self.cache.ensure_directories()
            except OSError as e:
                raise CacheStoreError(f"Failed to create {self.cache.storage_root}: {e}")

            owns_store = self.store is None
            store = self.store if self.store is not None else JsonStateStore(self.cache.state_file)
            try:
                self._run(order, StateCache(store), result)
            finally:
                if owns_store:
                    store.close()

        except KikaiError as e:
            logger.debug(f"{e.stage} stage failed: {e}")
            result.stage = e.stage
            result.message = str(e)
            result.build_time = time.time() - start_time
            return result

        result.success = True
        result.build_time = time.time() - start_time
        result.message = f"Built {len(modules)} module(s)"
        return result

    def _run(self, order, state: StateCache, result: BuildResult) -> None:
        provisioner = ToolchainProvisioner(
            self.cache, state, executor=self.executor, status=self.status, ndk_path=self.ndk_path
        )
        toolchains = provisioner.provision(self.manifest.toolchain)

        install_root = self.manifest.install_root
        try:
            install_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(f"Failed to create install root {install_root}: {e}")

        sources = SourcePipeline(
            self.cache,
            state,
            fetcher=self.fetcher,
            extractor=self.extractor,
            executor=self.executor,
            status=self.status,
        )
        builder = BuildExecutor(self.cache, state, executor=self.executor, status=self.status)

        for module in order:
            self.status.print("build", f"Building: {module.name}")
            source_result = sources.ensure_sources(module)
            if source_result.updated:
                result.updated_modules.append(module.name)

            for toolchain in toolchains:
                self.status.print("build", f"- {toolchain.platform}")
                report = builder.build(
                    module,
                    toolchain,
                    source_result.extracted_dir,
                    install_root,
                    source_result.updated,
                )
                result.steps_run += len(report.ran)
