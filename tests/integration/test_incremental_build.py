"""
End-to-end tests of incremental builds.

Build steps run for real through /bin/sh against archives served from memory
and a fake NDK, with state persisted in .kikai/kikai.json between runs.
"""

import json

import pytest

from kikai.build import BuildOrchestrator
from kikai.cli_utils import StatusPrinter
from kikai.config import load_manifest
from kikai.packages import Cache, SourcePipeline

ZLIB_URL = "https://zlib.net/zlib-1.3.1.tar.gz"

CONFIGURE = b"""#!/bin/sh
set -e
mkdir -p "$PREFIX/include"
cp zlib.h "$PREFIX/include/zlib.h"
echo "$KIKAI_PLATFORM $CC" > "$PREFIX/built-with"
"""

MANIFEST = """\
install-root: out
toolchain:
  api: 21
  stl: libc++
  platforms: [{platforms}]
modules:
  zlib:
    sources:
      - url: {url}
        strip-parents: 1
    build:
      type: simple
      steps:
        - name: build
          run: {run}
"""


@pytest.fixture
def project(cache, server, tarball, fake_ndk):
    server.files[ZLIB_URL] = tarball(
        {"zlib-1.3.1/configure": CONFIGURE, "zlib-1.3.1/zlib.h": b"#define ZLIB_VERSION \"1.3.1\"\n"}
    )
    return cache.project_dir


def write_manifest(project_dir, platforms="arm64", run="./configure"):
    path = project_dir / "kikai.yml"
    path.write_text(MANIFEST.format(platforms=platforms, url=ZLIB_URL, run=run))
    return path


def run_build(project_dir, server, executor, requested=("zlib",)):
    orchestrator = BuildOrchestrator(
        load_manifest(project_dir / "kikai.yml"),
        project_dir=project_dir,
        fetcher=server.fetcher(),
        executor=executor,
        status=StatusPrinter(enabled=False),
        show_progress=False,
    )
    return orchestrator.build(list(requested))


def state_entries(project_dir):
    return json.loads((Cache(project_dir).state_file).read_text())


class TestIncrementalBuild:
    """Test cases for repeated builds of the zlib scenario."""

    def test_first_run_then_noop(self, project, server, recorder, counting_executor):
        write_manifest(project)

        result = run_build(project, server, counting_executor)

        assert result.success, result.message
        assert result.modules == ["zlib"]
        assert counting_executor.spawns == 1
        assert server.requests == [ZLIB_URL]
        assert (project / "out" / "arm64" / "include" / "zlib.h").exists()
        built_with = (project / "out" / "arm64" / "built-with").read_text()
        assert built_with.startswith("arm64 ")
        assert "aarch64-linux-android21-clang" in built_with

        entries = state_entries(project)
        assert len(entries) == 3
        assert sorted(key.split("::")[0] for key in entries) == ["build-simple", "download", "extracted"]

        second = recorder()
        result = run_build(project, server, second)

        assert result.success
        assert second.calls == []
        assert server.requests == [ZLIB_URL]
        assert state_entries(project) == entries

    def test_refetch_forces_every_step(self, project, server, counting_executor):
        write_manifest(project)
        run_build(project, server, counting_executor)

        module_id = Cache.module_id("zlib")
        manifest = load_manifest(project / "kikai.yml")
        download_id = SourcePipeline.download_id(manifest.modules["zlib"].sources[0])
        Cache(project).get_download_path(module_id, download_id).unlink()

        result = run_build(project, server, counting_executor)

        assert result.success
        assert result.updated_modules == ["zlib"]
        assert server.requests == [ZLIB_URL, ZLIB_URL]
        assert counting_executor.spawns == 2

    def test_changed_step_reruns_without_network(self, project, server, counting_executor):
        write_manifest(project)
        run_build(project, server, counting_executor)

        write_manifest(project, run="./configure && touch \"$PREFIX/again\"")
        result = run_build(project, server, counting_executor)

        assert result.success
        assert counting_executor.spawns == 2
        assert server.requests == [ZLIB_URL]
        assert (project / "out" / "arm64" / "again").exists()

    def test_new_platform_builds_only_that_platform(self, project, server, counting_executor):
        write_manifest(project)
        run_build(project, server, counting_executor)

        write_manifest(project, platforms="arm64, x86_64")
        result = run_build(project, server, counting_executor)

        assert result.success
        assert counting_executor.spawns == 2
        assert (project / "out" / "x86_64" / "include" / "zlib.h").exists()

    def test_failed_step_retries(self, project, server, counting_executor):
        flag = project / "allow"
        write_manifest(project, run=f"test -f {flag} && ./configure")

        failed = run_build(project, server, counting_executor)

        assert not failed.success
        assert failed.stage == "build"
        keys = [key.split("::")[0] for key in state_entries(project)]
        assert "build-simple" not in keys
        assert "download" in keys

        flag.write_text("")
        result = run_build(project, server, counting_executor)

        assert result.success
        assert counting_executor.spawns == 2
        assert server.requests == [ZLIB_URL]

    def test_storage_dir_override(self, project, server, counting_executor, tmp_path, monkeypatch):
        storage = tmp_path / "elsewhere"
        monkeypatch.setenv("KIKAI_STORAGE_DIR", str(storage))
        write_manifest(project)

        result = run_build(project, server, counting_executor)

        assert result.success
        assert (storage / "kikai.json").exists()
        assert not (project / ".kikai").exists()
