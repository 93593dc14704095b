"""Build Executor.

This module runs a module's build recipe against one toolchain and the
module's extracted source tree. Two recipe types are supported:

- SimpleBuild: ordered shell steps, gated in scope ``build-simple``
- AutotoolsBuild: ``configure`` then ``make install``, gated in scope
  ``build-autotools``

Every step is gated the same way:

    run  iff  updated  or  state[scope::module_id::step_id] != hash(step inputs)

where ``updated`` is set when the source pipeline re-extracted any of the
module's sources on this run. The state entry is written only after the
step's process exits zero, so a failed step is retried on the next run while
earlier successful steps keep their entries.

Step IDs hash the platform together with the step name, so building one
module for several platforms never shares an entry.
"""

import logging
import os
import shlex
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Type

from ..cli_utils import StatusPrinter
from ..command_executor import SHELL, CommandExecutor
from ..config.manifest import AutotoolsBuild, BuildSpec, ModuleSpec, SimpleBuild
from ..errors import KikaiError
from ..packages.cache import Cache, hash_parts
from ..packages.state_store import StateCache
from ..packages.toolchain import Toolchain

logger = logging.getLogger(__name__)

SIMPLE_SCOPE = "build-simple"
AUTOTOOLS_SCOPE = "build-autotools"


class BuildError(KikaiError):
    """Raised when a build recipe cannot run."""

    stage = "build"


@dataclass
class BuildContext:
    """Everything a recipe needs to build one module for one toolchain."""

    module: ModuleSpec
    module_id: str
    source_dir: Path
    install_dir: Path
    toolchain: Toolchain
    updated: bool = False

    def environment(self) -> Dict[str, str]:
        """Environment exposed to build processes."""
        pkg_config_path = os.pathsep.join(
            [
                str(self.install_dir / "lib" / "pkgconfig"),
                str(self.install_dir / "share" / "pkgconfig"),
            ]
        )
        return {
            "KIKAI_SOURCE": str(self.source_dir),
            "KIKAI_PREFIX": str(self.install_dir),
            "KIKAI_TOOLCHAIN": str(self.toolchain.path),
            "KIKAI_CC": str(self.toolchain.cc),
            "KIKAI_CXX": str(self.toolchain.cxx),
            "KIKAI_TRIPLE": self.toolchain.triple,
            "KIKAI_PLATFORM": self.toolchain.platform,
            "CC": str(self.toolchain.cc),
            "CXX": str(self.toolchain.cxx),
            "PREFIX": str(self.install_dir),
            "PKG_CONFIG_PATH": pkg_config_path,
        }


@dataclass
class BuildReport:
    """Steps run and skipped while building one module for one toolchain."""

    ran: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class ModuleBuilder(ABC):
    """Base class for recipe implementations sharing one caching discipline."""

    scope = ""

    def __init__(
        self,
        cache: Cache,
        state: StateCache,
        executor: CommandExecutor,
        status: StatusPrinter,
    ):
        self.cache = cache
        self.state = state
        self.executor = executor
        self.status = status

    @staticmethod
    def step_id(ctx: BuildContext, step_name: str) -> str:
        return hash_parts([ctx.toolchain.platform, step_name])

    def should_run(self, ctx: BuildContext, step_name: str, step_hash: str, force: bool = False) -> bool:
        """Check whether a step must run.

        Args:
            ctx: Build context
            step_name: Human step name
            step_hash: Hash of the step's own declared inputs
            force: Extra force-run condition from an earlier step

        Returns:
            True if the sources were updated, ``force`` is set, or the stored
            hash is missing or different
        """
        if ctx.updated or force:
            return True
        return self.state.needs_update(
            self.scope, ctx.module_id, self.step_id(ctx, step_name), step_hash
        )

    def mark_done(self, ctx: BuildContext, step_name: str, step_hash: str) -> None:
        self.state.record(self.scope, ctx.module_id, self.step_id(ctx, step_name), step_hash)

    @abstractmethod
    def build(self, ctx: BuildContext, spec: BuildSpec) -> BuildReport:
        """Run the recipe.

        Raises:
            BuildError, CommandError, CacheStoreError
        """
        pass


class SimpleBuilder(ModuleBuilder):
    """Runs each scripted step through /bin/sh in manifest order."""

    scope = SIMPLE_SCOPE

    def build(self, ctx: BuildContext, spec: BuildSpec) -> BuildReport:
        if not isinstance(spec, SimpleBuild):
            raise BuildError(f"{type(self).__name__} cannot run a {type(spec).__name__} recipe")
        report = BuildReport()
        env = ctx.environment()

        for step in spec.steps:
            step_hash = hash_parts([step.run])
            if not self.should_run(ctx, step.name, step_hash):
                logger.debug(f"Skipping up-to-date step {ctx.module.name}/{step.name}")
                report.skipped.append(step.name)
                continue

            self.status.print("build", f"  {step.name}")
            self.executor.run_script(
                step.run,
                cwd=ctx.source_dir,
                env=env,
                description=f"step {step.name} of {ctx.module.name}",
            )
            self.mark_done(ctx, step.name, step_hash)
            report.ran.append(step.name)

        return report


class AutotoolsBuilder(ModuleBuilder):
    """Runs ./configure and make install.

    ``make`` is also forced whenever ``configure`` ran on this invocation,
    since a reconfigure invalidates the previous build.
    """

    scope = AUTOTOOLS_SCOPE

    CONFIGURE = "configure"
    MAKE = "make"

    def build(self, ctx: BuildContext, spec: BuildSpec) -> BuildReport:
        if not isinstance(spec, AutotoolsBuild):
            raise BuildError(f"{type(self).__name__} cannot run a {type(spec).__name__} recipe")
        report = BuildReport()
        env = ctx.environment()

        configure_hash = hash_parts(
            [spec.configure_options, spec.cflags, spec.cppflags, spec.ldflags]
        )
        configured = False
        if self.should_run(ctx, self.CONFIGURE, configure_hash):
            self.status.print("build", f"  {self.CONFIGURE}")
            self.configure(ctx, spec, env)
            self.mark_done(ctx, self.CONFIGURE, configure_hash)
            report.ran.append(self.CONFIGURE)
            configured = True
        else:
            report.skipped.append(self.CONFIGURE)

        make_hash = hash_parts([spec.make_options])
        if self.should_run(ctx, self.MAKE, make_hash, force=configured):
            self.status.print("build", f"  {self.MAKE}")
            self.make(ctx, spec, env)
            self.mark_done(ctx, self.MAKE, make_hash)
            report.ran.append(self.MAKE)
        else:
            report.skipped.append(self.MAKE)

        return report

    def _write_pkg_config_wrapper(self, pkgconf: str) -> Path:
        """Write a pkg-config wrapper that only searches PKG_CONFIG_PATH."""
        wrapper = self.cache.wrappers_dir / "pkg-config"
        content = f'#!/bin/sh\nexec {shlex.quote(pkgconf)} --env-only "$@"\n'
        try:
            wrapper.parent.mkdir(parents=True, exist_ok=True)
            if not wrapper.exists() or wrapper.read_text() != content:
                wrapper.write_text(content)
            wrapper.chmod(0o755)
        except OSError as e:
            raise BuildError(f"Failed to write pkg-config wrapper {wrapper}: {e}")
        return wrapper

    def _ensure_configure_script(self, ctx: BuildContext, env: Dict[str, str]) -> Path:
        configure = ctx.source_dir / "configure"
        if configure.exists():
            return configure

        autogen = ctx.source_dir / "autogen.sh"
        if autogen.exists():
            self.status.print("build", "  autogen.sh")
            if os.access(autogen, os.X_OK):
                command = [str(autogen)]
            else:
                command = [SHELL, str(autogen)]
            self.executor.run(command, cwd=ctx.source_dir, env=env, description="autogen.sh")
        elif shutil.which("autoreconf"):
            self.status.print("build", "  autoreconf")
            self.executor.run(
                ["autoreconf", "-si"], cwd=ctx.source_dir, env=env, description="autoreconf"
            )
        else:
            raise BuildError("autogen.sh does not exist, and autoreconf is not available")

        if not configure.exists():
            raise BuildError(f"No configure script was generated in {ctx.source_dir}")
        return configure

    def configure_arguments(self, ctx: BuildContext, spec: AutotoolsBuild, wrapper: Path) -> List[str]:
        """Build the ./configure argument list."""
        include = f"-I{ctx.install_dir / 'include'}"
        lib = f"-L{ctx.install_dir / 'lib'}"

        def flags(*parts: Optional[str]) -> str:
            return " ".join(part for part in parts if part)

        return [
            f"CC={ctx.toolchain.cc}",
            f"CXX={ctx.toolchain.cxx}",
            f"CFLAGS={flags(include, '-fPIC -fPIE', spec.cflags)}",
            f"CPPFLAGS={flags(include, spec.cppflags)}",
            f"LDFLAGS={flags(lib, '-pie', spec.ldflags)}",
            f"PKG_CONFIG={wrapper}",
            "PKG_CONFIG_PATH="
            + os.pathsep.join(
                [
                    str(ctx.install_dir / "lib" / "pkgconfig"),
                    str(ctx.install_dir / "share" / "pkgconfig"),
                ]
            ),
            f"--prefix={ctx.install_dir}",
            f"--host={ctx.toolchain.triple}",
            *shlex.split(spec.configure_options or ""),
        ]

    def configure(self, ctx: BuildContext, spec: AutotoolsBuild, env: Dict[str, str]) -> None:
        pkgconf = shutil.which("pkgconf")
        if pkgconf is None:
            raise BuildError("pkgconf is not available; it is required for autotools builds")
        wrapper = self._write_pkg_config_wrapper(pkgconf)

        configure = self._ensure_configure_script(ctx, env)
        self.executor.run(
            [str(configure), *self.configure_arguments(ctx, spec, wrapper)],
            cwd=ctx.source_dir,
            env=env,
            description=f"configure of {ctx.module.name}",
        )

    def make_program(self, toolchain: Toolchain) -> str:
        if toolchain.standalone:
            return str(toolchain.bin_dir / "make")

        make = shutil.which("make")
        if make is None:
            raise BuildError("make is not available")
        return make

    def make(self, ctx: BuildContext, spec: AutotoolsBuild, env: Dict[str, str]) -> None:
        if not (ctx.source_dir / "Makefile").exists():
            raise BuildError(f"Makefile does not exist in {ctx.source_dir}")

        self.executor.run(
            [self.make_program(ctx.toolchain), "install", *shlex.split(spec.make_options or "")],
            cwd=ctx.source_dir,
            env=env,
            description=f"make of {ctx.module.name}",
        )


class BuildExecutor:
    """Dispatches a module's recipe to the matching builder."""

    BUILDERS: Dict[type, Type[ModuleBuilder]] = {
        SimpleBuild: SimpleBuilder,
        AutotoolsBuild: AutotoolsBuilder,
    }

    def __init__(
        self,
        cache: Cache,
        state: StateCache,
        executor: Optional[CommandExecutor] = None,
        status: Optional[StatusPrinter] = None,
    ):
        """Initialize build executor.

        Args:
            cache: Storage layout
            state: Persistent step state
            executor: Process runner
            status: Status line printer
        """
        self.cache = cache
        self.state = state
        self.executor = executor or CommandExecutor()
        self.status = status or StatusPrinter(enabled=False)

    def build(
        self,
        module: ModuleSpec,
        toolchain: Toolchain,
        source_dir: Path,
        install_root: Path,
        updated: bool,
    ) -> BuildReport:
        """Build a module for one toolchain.

        Args:
            module: Module to build
            toolchain: Target toolchain
            source_dir: Extracted source tree (also the build root)
            install_root: Root of the install trees; the prefix is
                ``install_root / toolchain.platform``
            updated: Whether the module's sources changed on this run

        Returns:
            BuildReport listing steps run and skipped

        Raises:
            BuildError, CommandError, CacheStoreError
        """
        builder_class = self.BUILDERS.get(type(module.build))
        if builder_class is None:
            raise BuildError(f"Unsupported build type for {module.name}: {type(module.build).__name__}")

        install_dir = Path(install_root) / toolchain.platform
        try:
            install_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BuildError(f"Failed to create {install_dir}: {e}")

        if not source_dir.is_dir():
            raise BuildError(f"Source directory does not exist: {source_dir}")

        ctx = BuildContext(
            module=module,
            module_id=Cache.module_id(module.name),
            source_dir=source_dir,
            install_dir=install_dir,
            toolchain=toolchain,
            updated=updated,
        )
        builder = builder_class(self.cache, self.state, self.executor, self.status)
        return builder.build(ctx, module.build)
