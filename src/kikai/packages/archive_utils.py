"""Archive extraction with path-prefix stripping.

Archives are streamed entry by entry into the target directory. The format
is detected from the archive content (downloads are stored without
extensions): any tar compression understood by ``tarfile`` or a zip file.

Entry names are rewritten by ``strip_entry_path``:
    strip_parents = -1   flatten every entry to its basename
    strip_parents = 0    keep full paths
    strip_parents = N    drop the first N components; entries with N or fewer
                         components are skipped
"""

import logging
import os
import posixpath
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Callable, Optional

from tqdm import tqdm

from ..errors import KikaiError, propagate_interrupt

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]


class ExtractionError(KikaiError):
    """Raised when archive extraction fails."""

    stage = "source"


def strip_entry_path(path: str, strip_parents: int) -> Optional[str]:
    """Rewrite an archive entry name according to a strip-parents policy.

    Args:
        path: Entry name as stored in the archive ("/" separated)
        strip_parents: -1 to flatten, 0 to keep, N to drop N leading components

    Returns:
        The new entry name, or None if the entry should be skipped

    Examples:
        >>> strip_entry_path("a/b/c/file.txt", -1)
        'file.txt'
        >>> strip_entry_path("a/b/c/file.txt", 1)
        'b/c/file.txt'
        >>> strip_entry_path("a/b/c/file.txt", 4) is None
        True
    """
    if not path:
        return None

    if strip_parents == 0:
        return path

    if strip_parents < 0:
        basename = posixpath.basename(path.rstrip("/"))
        return basename or None

    parts = path.split("/")
    count = len(parts)
    # A trailing separator marks a directory entry, not an extra component
    if parts[-1] == "":
        count -= 1

    if count > strip_parents:
        return "/".join(parts[strip_parents:count])
    return None


class ArchiveExtractor:
    """Streams compressed archives into a directory."""

    def __init__(self, show_progress: bool = True):
        """Initialize archive extractor.

        Args:
            show_progress: Whether to show extraction progress
        """
        self.show_progress = show_progress

    def extract(
        self,
        archive_path: Path,
        dest_dir: Path,
        strip_parents: int = 0,
        progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Extract an archive into ``dest_dir``.

        Existing files in ``dest_dir`` are overwritten by archive entries of
        the same name; other files are left alone, so several archives can be
        layered into one tree.

        Args:
            archive_path: Path to the archive file
            dest_dir: Destination directory (created if missing)
            strip_parents: Entry name rewriting policy (see strip_entry_path)
            progress: Optional callback receiving (bytes_read, bytes_total)

        Returns:
            Number of entries written

        Raises:
            ExtractionError: If the archive is unreadable or an entry cannot be written
        """
        archive_path = Path(archive_path)
        dest_dir = Path(dest_dir)

        if not archive_path.exists():
            raise ExtractionError(f"Archive not found: {archive_path}")

        total = archive_path.stat().st_size
        progress_bar = None
        if self.show_progress:
            progress_bar = tqdm(
                total=total,
                unit="B",
                unit_scale=True,
                unit_divisor=1024,
                desc="Extracting",
            )

        def advance(done: int) -> None:
            if progress_bar is not None:
                progress_bar.update(done - progress_bar.n)
            if progress is not None:
                progress(done, total)

        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            if zipfile.is_zipfile(archive_path):
                count = self._extract_zip(archive_path, dest_dir, strip_parents, advance)
            else:
                count = self._extract_tar(archive_path, dest_dir, strip_parents, advance)
        except ExtractionError:
            raise
        except KeyboardInterrupt as ke:
            propagate_interrupt(ke)
        except (tarfile.TarError, zipfile.BadZipFile, OSError, EOFError) as e:
            raise ExtractionError(f"Failed to extract {archive_path}: {e}")
        finally:
            if progress_bar is not None:
                progress_bar.close()

        logger.debug(f"Extracted {count} entries from {archive_path} into {dest_dir}")
        return count

    def _extract_tar(
        self,
        archive_path: Path,
        dest_dir: Path,
        strip_parents: int,
        advance: Callable[[int], None],
    ) -> int:
        count = 0
        with open(archive_path, "rb") as raw:
            with tarfile.open(fileobj=raw, mode="r|*") as tar:
                for member in tar:
                    name = strip_entry_path(member.name, strip_parents)
                    if name is None:
                        logger.debug(f"Skipping archive entry {member.name!r}")
                        continue

                    if member.islnk():
                        linkname = strip_entry_path(member.linkname, strip_parents)
                        if linkname is None:
                            logger.debug(f"Skipping hard link {member.name!r}")
                            continue
                        member.linkname = linkname

                    member.name = name
                    try:
                        tar.extract(member, dest_dir, filter="tar")
                    except tarfile.FilterError as e:
                        raise ExtractionError(f"Refusing unsafe archive entry {name!r}: {e}")

                    count += 1
                    advance(raw.tell())
        return count

    def _extract_zip(
        self,
        archive_path: Path,
        dest_dir: Path,
        strip_parents: int,
        advance: Callable[[int], None],
    ) -> int:
        count = 0
        done = 0
        root = dest_dir.resolve()
        with zipfile.ZipFile(archive_path, "r") as zf:
            for info in zf.infolist():
                done += info.compress_size
                name = strip_entry_path(info.filename, strip_parents)
                if name is None:
                    logger.debug(f"Skipping archive entry {info.filename!r}")
                    continue

                target = (root / name).resolve()
                if target != root and root not in target.parents:
                    raise ExtractionError(f"Refusing unsafe archive entry {name!r}")

                if info.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                else:
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    mode = (info.external_attr >> 16) & 0o777
                    if mode:
                        os.chmod(target, mode)

                count += 1
                advance(done)
        return count
