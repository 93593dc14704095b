"""Source archive downloader with progress tracking and streaming checksums.

The SHA256 checksum and byte size of every download are computed while the
data streams to disk. They are recorded, not verified against an expected
value.
"""

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import urlparse

import requests
from tqdm import tqdm

from ..errors import KikaiError, propagate_interrupt

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]


class DownloadError(KikaiError):
    """Raised when download fails."""

    stage = "source"


@dataclass(frozen=True)
class DownloadResult:
    """Checksum and size of a completed download."""

    path: Path
    checksum: str
    size: int


class ArchiveFetcher:
    """Downloads URLs to local files, hashing the content as it arrives."""

    def __init__(
        self,
        chunk_size: int = 64 * 1024,
        timeout: float = 60,
        show_progress: bool = True,
        session: Optional[requests.Session] = None,
    ):
        """Initialize fetcher.

        Args:
            chunk_size: Size of chunks for downloading and hashing
            timeout: Connect/read timeout in seconds for each network wait
            show_progress: Whether to show a progress bar
            session: Optional requests session to reuse connections
        """
        self.chunk_size = chunk_size
        self.timeout = timeout
        self.show_progress = show_progress
        self.session = session

    def _get(self, url: str) -> requests.Response:
        if self.session is not None:
            return self.session.get(url, stream=True, timeout=self.timeout)
        return requests.get(url, stream=True, timeout=self.timeout)

    def download(
        self,
        url: str,
        dest_path: Path,
        progress: Optional[ProgressCallback] = None,
    ) -> DownloadResult:
        """Download a file from a URL.

        The previous file at ``dest_path`` is removed before the transfer
        starts. Data is written to a temporary file that only replaces
        ``dest_path`` once the transfer has completed, so a failed download
        never leaves a file behind.

        Args:
            url: URL to download from (redirects are followed)
            dest_path: Destination file path
            progress: Optional callback receiving (bytes_done, bytes_total)

        Returns:
            DownloadResult with the SHA256 checksum and byte size

        Raises:
            DownloadError: If the transfer or the local write fails
        """
        dest_path = Path(dest_path)
        temp_file = dest_path.with_name(dest_path.name + ".tmp")

        progress_bar = None
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            if dest_path.exists():
                dest_path.unlink()

            logger.debug(f"Downloading {url} -> {dest_path}")
            with self._get(url) as response:
                response.raise_for_status()

                total_size = int(response.headers.get("content-length", 0)) or None

                if self.show_progress:
                    filename = Path(urlparse(url).path).name or url
                    progress_bar = tqdm(
                        total=total_size,
                        unit="B",
                        unit_scale=True,
                        unit_divisor=1024,
                        desc=f"Downloading {filename}",
                    )

                sha256 = hashlib.sha256()
                size = 0

                with open(temp_file, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if not chunk:
                            continue
                        f.write(chunk)
                        sha256.update(chunk)
                        size += len(chunk)
                        if progress_bar is not None:
                            progress_bar.update(len(chunk))
                        if progress is not None:
                            progress(size, total_size)

            temp_file.replace(dest_path)
            logger.debug(f"Downloaded {size} bytes from {url}")

            return DownloadResult(path=dest_path, checksum=sha256.hexdigest(), size=size)

        except requests.RequestException as e:
            self._discard(temp_file)
            raise DownloadError(f"Failed to download {url}: {e}")
        except OSError as e:
            self._discard(temp_file)
            raise DownloadError(f"Failed to write download target {dest_path}: {e}")
        except KeyboardInterrupt as ke:
            self._discard(temp_file)
            propagate_interrupt(ke)
        finally:
            if progress_bar is not None:
                progress_bar.close()

    @staticmethod
    def _discard(temp_file: Path) -> None:
        if temp_file.exists():
            temp_file.unlink()
