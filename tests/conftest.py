"""Shared fixtures for the kikai test suite.

Nothing here touches the network or a real NDK: archives are served from
memory by FakeServer, and processes are either recorded (RecordingExecutor)
or run for real through /bin/sh and counted (CountingExecutor).
"""

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import requests

from kikai.command_executor import CommandError, CommandExecutor
from kikai.packages import ArchiveExtractor, ArchiveFetcher, Cache, MemoryStateStore, StateCache
from kikai.packages.platform_utils import PlatformDetector

HOST_TAG = "linux-x86_64"


class FakeResponse:
    """Minimal stand-in for a streamed requests.Response."""

    def __init__(self, data: bytes, status_code: int = 200):
        self.data = data
        self.status_code = status_code
        self.headers = {"content-length": str(len(data))}
        self.closed = False

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc) -> None:
        self.closed = True

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size: int = 1024):
        for i in range(0, len(self.data), chunk_size):
            yield self.data[i:i + chunk_size]


class FakeServer:
    """Serves in-memory files; usable as an ArchiveFetcher session."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.requests: List[str] = []

    def get(self, url: str, stream: bool = False, timeout: Optional[float] = None) -> FakeResponse:
        self.requests.append(url)
        if url not in self.files:
            return FakeResponse(b"not found", status_code=404)
        return FakeResponse(self.files[url])

    def fetcher(self) -> ArchiveFetcher:
        return ArchiveFetcher(chunk_size=7, show_progress=False, session=self)


class RecordingExecutor(CommandExecutor):
    """Records commands instead of spawning them."""

    def __init__(self, fail_on: Optional[Callable[[List[str]], bool]] = None):
        super().__init__()
        self.calls: List[dict] = []
        self.fail_on = fail_on

    def run(self, command, cwd, env=None, description=None) -> None:
        command = [str(part) for part in command]
        self.calls.append({"command": command, "cwd": Path(cwd), "env": dict(env or {})})
        if self.fail_on is not None and self.fail_on(command):
            raise CommandError(f"{description} failed with exit code 1", returncode=1)

    @property
    def commands(self) -> List[List[str]]:
        return [call["command"] for call in self.calls]

    @property
    def scripts(self) -> List[str]:
        return [call["command"][3] for call in self.calls if call["command"][1:3] == ["-e", "-c"]]


class CountingExecutor(CommandExecutor):
    """Runs commands for real and counts the spawns."""

    def __init__(self):
        super().__init__()
        self.spawns = 0

    def run(self, command, cwd, env=None, description=None) -> None:
        self.spawns += 1
        super().run(command, cwd, env=env, description=description)


def make_tarball(files: Dict[str, bytes], mode: str = "w:gz") -> bytes:
    """Build a tar archive in memory from {entry name: content}."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode=mode) as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o755 if name.endswith(".sh") or name.endswith("configure") else 0o644
            tar.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def make_zip(files: Dict[str, bytes]) -> bytes:
    """Build a zip archive in memory from {entry name: content}."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def cache(tmp_path, monkeypatch):
    monkeypatch.delenv("KIKAI_STORAGE_DIR", raising=False)
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    return Cache(project_dir)


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def state(store):
    return StateCache(store)


@pytest.fixture
def extractor():
    return ArchiveExtractor(show_progress=False)


@pytest.fixture
def fake_ndk(tmp_path, monkeypatch):
    """An NDK root with a prebuilt LLVM toolchain directory for the host."""
    monkeypatch.setattr(PlatformDetector, "detect_ndk_host_tag", staticmethod(lambda: HOST_TAG))
    ndk = tmp_path / "ndk"
    (ndk / "toolchains" / "llvm" / "prebuilt" / HOST_TAG / "bin").mkdir(parents=True)
    generator = ndk / "build" / "tools" / "make_standalone_toolchain.py"
    generator.parent.mkdir(parents=True)
    generator.write_text("#!/bin/sh\nexit 0\n")
    generator.chmod(0o755)
    monkeypatch.setenv("ANDROID_NDK", str(ndk))
    monkeypatch.delenv("ANDROID_NDK_ROOT", raising=False)
    return ndk


@pytest.fixture
def tarball():
    """Factory building gzipped tarballs in memory."""
    return make_tarball


@pytest.fixture
def zip_archive():
    """Factory building zip archives in memory."""
    return make_zip


@pytest.fixture
def recorder():
    """Factory for RecordingExecutor, optionally failing on matching commands."""
    return RecordingExecutor


@pytest.fixture
def counting_executor():
    return CountingExecutor()
