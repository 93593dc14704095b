"""Toolchain provisioning for Android NDK targets.

Two modes are supported:

- Non-standalone: compilers are used straight from the NDK's prebuilt LLVM
  toolchain, with the API level baked into the compiler name
  (e.g. ``aarch64-linux-android21-clang``). Nothing is generated.
- Standalone: ``make_standalone_toolchain.py`` generates a self-contained
  toolchain per platform under ``.kikai/toolchains/``. Generation is gated by
  the state entry ``toolchain::{platform}::standalone``, which holds the hash
  of (api, stl, after) and is only written once the generator and the
  ``after`` hook have both succeeded.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..cli_utils import StatusPrinter
from ..command_executor import CommandError, CommandExecutor
from ..config.manifest import PLATFORM_TRIPLES, ToolchainSpec
from ..errors import KikaiError
from .cache import Cache, hash_parts, join_path
from .platform_utils import PlatformDetector
from .state_store import StateCache

logger = logging.getLogger(__name__)

TOOLCHAIN_SCOPE = "toolchain"
STANDALONE_STEP = "standalone"

NDK_ENV_VARS = ("ANDROID_NDK", "ANDROID_NDK_ROOT")

# make_standalone_toolchain.py names 32-bit ARM "arm"
GENERATOR_ARCHES = {"armv7a": "arm"}


class ToolchainError(KikaiError):
    """Raised when toolchain operations fail."""

    stage = "toolchain"


@dataclass(frozen=True)
class Toolchain:
    """Compilers targeting one platform."""

    platform: str
    path: Path
    cc: Path
    cxx: Path
    triple: str
    standalone: bool

    @property
    def bin_dir(self) -> Path:
        return self.path / "bin"


class ToolchainProvisioner:
    """Produces one Toolchain per requested platform."""

    GENERATOR = ("build", "tools", "make_standalone_toolchain.py")

    def __init__(
        self,
        cache: Cache,
        state: StateCache,
        executor: Optional[CommandExecutor] = None,
        status: Optional[StatusPrinter] = None,
        ndk_path: Optional[Path] = None,
    ):
        """Initialize toolchain provisioner.

        Args:
            cache: Storage layout
            state: Persistent step state
            executor: Runner for the generator and the after hook
            status: Status line printer
            ndk_path: NDK root (default: from ANDROID_NDK / ANDROID_NDK_ROOT)
        """
        self.cache = cache
        self.state = state
        self.executor = executor or CommandExecutor()
        self.status = status or StatusPrinter(enabled=False)
        self.ndk_path = ndk_path

    @staticmethod
    def find_ndk() -> Path:
        """Locate the Android NDK from the environment.

        Raises:
            ToolchainError: If neither ANDROID_NDK nor ANDROID_NDK_ROOT is set
        """
        for var in NDK_ENV_VARS:
            value = os.environ.get(var)
            if value:
                return Path(value)

        raise ToolchainError(
            "Failed to locate Android NDK. Try setting ANDROID_NDK_ROOT or ANDROID_NDK"
            " to the NDK root directory."
        )

    @staticmethod
    def spec_hash(spec: ToolchainSpec) -> str:
        return hash_parts([spec.api, spec.stl, spec.after])

    def describe(self, spec: ToolchainSpec, platform_name: str, ndk: Path) -> Toolchain:
        """Compute the paths of a platform's toolchain without creating it."""
        triple = PLATFORM_TRIPLES.get(platform_name)
        if triple is None:
            raise ToolchainError(f"Invalid toolchain platform: {platform_name}")

        if spec.standalone:
            path = self.cache.get_toolchain_path(platform_name)
            prefix = triple
        else:
            host_tag = PlatformDetector.detect_ndk_host_tag()
            path = join_path(ndk, ["toolchains", "llvm", "prebuilt", host_tag])
            prefix = f"{triple}{spec.api}"

        return Toolchain(
            platform=platform_name,
            path=path,
            cc=path / "bin" / f"{prefix}-clang",
            cxx=path / "bin" / f"{prefix}-clang++",
            triple=triple,
            standalone=spec.standalone,
        )

    def provision(self, spec: ToolchainSpec) -> List[Toolchain]:
        """Ensure a toolchain exists for every requested platform.

        Args:
            spec: Toolchain request from the manifest

        Returns:
            One Toolchain per platform, in manifest order, whether or not it
            needed to be (re)generated

        Raises:
            ToolchainError: If the NDK is missing or generation fails
        """
        ndk = self.ndk_path or self.find_ndk()
        generator = join_path(ndk, self.GENERATOR)

        if spec.standalone and not generator.exists():
            raise ToolchainError(f"{generator} does not exist.")

        toolchains = []
        for platform_name in spec.platforms:
            toolchain = self.describe(spec, platform_name, ndk)
            toolchains.append(toolchain)

            if not spec.standalone:
                if not toolchain.path.is_dir():
                    raise ToolchainError(
                        f"NDK prebuilt toolchain not found: {toolchain.path}"
                    )
                continue

            self._ensure_standalone(spec, toolchain, generator)

        return toolchains

    def _ensure_standalone(self, spec: ToolchainSpec, toolchain: Toolchain, generator: Path) -> None:
        current_hash = self.spec_hash(spec)
        if not self.state.needs_update(
            TOOLCHAIN_SCOPE, toolchain.platform, STANDALONE_STEP, current_hash
        ):
            logger.debug(f"Toolchain up to date: {toolchain.platform}")
            return

        self.status.print(
            "toolchain",
            f"Creating {toolchain.platform} toolchain (this may take a while)...",
        )

        try:
            self.executor.run(
                [
                    generator,
                    "--arch",
                    GENERATOR_ARCHES.get(toolchain.platform, toolchain.platform),
                    "--api",
                    spec.api,
                    "--stl",
                    spec.stl,
                    "--force",
                    "--install-dir",
                    toolchain.path,
                ],
                cwd=self.cache.storage_root,
                description="make_standalone_toolchain",
            )

            if spec.after is not None:
                self.executor.run_script(
                    spec.after, cwd=toolchain.path, description="toolchain.after"
                )
        except CommandError as e:
            raise ToolchainError(str(e))

        self.state.record(TOOLCHAIN_SCOPE, toolchain.platform, STANDALONE_STEP, current_hash)
