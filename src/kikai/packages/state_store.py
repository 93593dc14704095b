"""Persistent key/value state that drives every skip/rebuild decision.

A key is present iff the step it names completed successfully at least once.
Lookups distinguish "never seen" (``MISSING``, meaning the step needs to run)
from a failing backing store (``CacheStoreError``, which aborts the run).

Callers own the key format and value encoding. ``StateCache`` holds the
conventions used by the pipeline:

    key   = "{scope}::{module_id}::{step_id}"
    value = step input hash, or "{checksum}::{size}" for downloads
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

from ..errors import KikaiError

logger = logging.getLogger(__name__)

KEY_SEPARATOR = "::"


class CacheStoreError(KikaiError):
    """Raised when the backing store cannot be read or written."""

    stage = "cache"


@dataclass(frozen=True)
class Found:
    """A lookup that found a stored value."""

    value: str


class Missing:
    """A lookup for a key that was never stored."""

    _instance: Optional["Missing"] = None

    def __new__(cls) -> "Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"


MISSING = Missing()

Lookup = Union[Found, Missing]


class StateStore(ABC):
    """Interface for durable key/value stores."""

    @abstractmethod
    def get(self, key: str) -> Lookup:
        """Look up a key.

        Returns:
            Found(value) or MISSING

        Raises:
            CacheStoreError: If the backing store fails
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a value durably.

        Raises:
            CacheStoreError: If the backing store fails
        """
        pass

    def close(self) -> None:
        """Release the store."""
        pass

    def __enter__(self) -> "StateStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class MemoryStateStore(StateStore):
    """In-memory store with the same contract, for tests and dry runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Lookup:
        if key in self.data:
            return Found(self.data[key])
        return MISSING

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonStateStore(StateStore):
    """Durable store backed by a single JSON file.

    The file is loaded once when the store is opened and rewritten atomically
    on every ``set`` (write to a temporary file, then replace), so an
    interrupted run never leaves a half-written store behind.
    """

    def __init__(self, path: Path):
        """Open the store, creating it on first use.

        Args:
            path: JSON file holding the state

        Raises:
            CacheStoreError: If the file exists but cannot be read or decoded
        """
        self.path = Path(path)
        self.lock = threading.Lock()
        self._data: Dict[str, str] = {}
        self._closed = False
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug(f"No state file at {self.path}, starting empty")
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheStoreError(f"Failed to load state from {self.path}: {e}")

        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise CacheStoreError(f"State file {self.path} is not a string mapping")

        self._data = data
        logger.debug(f"Loaded {len(self._data)} state entries from {self.path}")

    def _save(self) -> None:
        temp_file = self.path.with_suffix(".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            temp_file.replace(self.path)
        except OSError as e:
            raise CacheStoreError(f"Failed to write state to {self.path}: {e}")

    def get(self, key: str) -> Lookup:
        if self._closed:
            raise CacheStoreError("State store is closed")
        with self.lock:
            if key in self._data:
                return Found(self._data[key])
            return MISSING

    def set(self, key: str, value: str) -> None:
        if self._closed:
            raise CacheStoreError("State store is closed")
        with self.lock:
            previous = self._data.get(key)
            self._data[key] = value
            try:
                self._save()
            except CacheStoreError:
                if previous is None:
                    del self._data[key]
                else:
                    self._data[key] = previous
                raise

    def close(self) -> None:
        self._closed = True


@dataclass(frozen=True)
class DownloadRecord:
    """Stored result of a download: content checksum and byte size."""

    checksum: str
    size: int

    def encode(self) -> str:
        return f"{self.checksum}{KEY_SEPARATOR}{self.size}"

    @classmethod
    def decode(cls, value: str) -> Optional["DownloadRecord"]:
        """Parse a stored value, returning None if it is malformed."""
        parts = value.split(KEY_SEPARATOR)
        if len(parts) != 2 or not parts[1].isdigit():
            return None
        return cls(checksum=parts[0], size=int(parts[1]))


class StateCache:
    """Pipeline conventions layered over a StateStore."""

    def __init__(self, store: StateStore):
        self.store = store

    @staticmethod
    def make_key(scope: str, module_id: str, step_id: str) -> str:
        return KEY_SEPARATOR.join([scope, module_id, step_id])

    def lookup(self, scope: str, module_id: str, step_id: str) -> Lookup:
        return self.store.get(self.make_key(scope, module_id, step_id))

    def needs_update(
        self, scope: str, module_id: str, step_id: str, current: Optional[str] = None
    ) -> bool:
        """Check whether a step must run.

        Args:
            scope: Pipeline stage namespace (e.g. "download", "build-simple")
            module_id: Hashed module name
            step_id: Hashed step identity
            current: Hash of the step's current inputs. If None, only the
                presence of the key matters.

        Returns:
            True if the key is missing or its value differs from ``current``
        """
        result = self.lookup(scope, module_id, step_id)
        if isinstance(result, Missing):
            return True
        if current is None:
            return False
        return result.value != current

    def record(self, scope: str, module_id: str, step_id: str, value: str) -> None:
        """Mark a step as successfully completed with the given value."""
        self.store.set(self.make_key(scope, module_id, step_id), value)

    def get_download(
        self, scope: str, module_id: str, download_id: str
    ) -> Optional[DownloadRecord]:
        """Return the stored download record, or None if missing or malformed."""
        result = self.lookup(scope, module_id, download_id)
        if isinstance(result, Missing):
            return None

        record = DownloadRecord.decode(result.value)
        if record is None:
            logger.warning(
                f"Ignoring malformed {scope} record for {module_id}/{download_id}"
            )
        return record

    def record_download(
        self, scope: str, module_id: str, download_id: str, record: DownloadRecord
    ) -> None:
        self.record(scope, module_id, download_id, record.encode())
