"""Platform Detection Utilities.

This module detects the host platform for locating the Android NDK's
prebuilt LLVM toolchain.

Supported Hosts:
    - Linux: linux-x86_64, linux-aarch64
    - macOS: darwin-x86_64 (the NDK ships one universal darwin build)
"""

import platform

from ..errors import KikaiError


class PlatformError(KikaiError):
    """Raised when the host platform is unsupported."""

    stage = "toolchain"


class PlatformDetector:
    """Detects the host platform and architecture."""

    @staticmethod
    def detect_ndk_host_tag() -> str:
        """Detect the NDK prebuilt host directory name.

        Returns:
            Host tag such as "linux-x86_64"

        Raises:
            PlatformError: If the host is unsupported
        """
        system = platform.system().lower()
        machine = platform.machine().lower()

        if system == "linux":
            if machine in ("x86_64", "amd64"):
                return "linux-x86_64"
            if machine in ("aarch64", "arm64"):
                return "linux-aarch64"
            if machine in ("i686", "i386"):
                return "linux-i686"
        elif system == "darwin":
            return "darwin-x86_64"

        raise PlatformError(f"Unsupported platform: {system} {machine}")
