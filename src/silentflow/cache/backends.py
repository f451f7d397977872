"""Raw key/value storage backends for the credential store.

The credential store only ever hands backends JSON strings.  Backends are
responsible for two guarantees:

* :meth:`StorageBackend.set_many` is atomic: a concurrent reader observes
  either none or all of the written keys.
* :meth:`StorageBackend.snapshot` returns a consistent read-only view that
  later writes do not change.

Two implementations ship with the package:

* :class:`MemoryBackend` -- a copy-on-write dict for tests and short-lived
  processes.  Readers never lock.
* :class:`DiskBackend` -- a :class:`diskcache.Cache` directory, used by the
  CLI.  Group writes and snapshots run inside ``transact()``.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

import diskcache


class StorageBackend(ABC):
    """Contract for the persistent key/value storage behind the store."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value stored under *key*, or ``None``."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return every stored key."""

    @abstractmethod
    def set_many(self, items: Mapping[str, str]) -> None:
        """Store every item of *items* in one atomic step."""

    @abstractmethod
    def snapshot(self) -> Mapping[str, str]:
        """Return a read-only, point-in-time view of all entries."""

    def close(self) -> None:
        """Release resources held by the backend."""


class MemoryBackend(StorageBackend):
    """In-process backend with copy-on-write writes.

    Every write builds a new dict and swaps it in under a lock, so readers
    simply grab the current mapping and are never blocked or exposed to a
    half-applied group write.

    Args:
        initial: Optional entries to start with.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._write_lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def keys(self) -> list[str]:
        return list(self._data)

    def set_many(self, items: Mapping[str, str]) -> None:
        with self._write_lock:
            updated = dict(self._data)
            updated.update(items)
            self._data = updated

    def snapshot(self) -> Mapping[str, str]:
        # The current dict is never mutated in place once published.
        return MappingProxyType(self._data)


class DiskBackend(StorageBackend):
    """Backend persisting entries in a :class:`diskcache.Cache` directory.

    Args:
        directory: Root cache directory.  A ``credentials/`` subdirectory is
            created inside it.

    Example::

        backend = DiskBackend("/tmp/silentflow-cache")
        backend.set_many({"k1": "{}", "k2": "{}"})
        backend.close()
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory) / "credentials"
        self._cache = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        """The filesystem path of the underlying cache."""
        return self._directory

    def get(self, key: str) -> Optional[str]:
        return self._cache.get(key)

    def set(self, key: str, value: str) -> None:
        self._cache.set(key, value)

    def keys(self) -> list[str]:
        return [str(key) for key in self._cache.iterkeys()]

    def set_many(self, items: Mapping[str, str]) -> None:
        with self._cache.transact():
            for key, value in items.items():
                self._cache.set(key, value)

    def snapshot(self) -> Mapping[str, str]:
        entries: dict[str, str] = {}
        with self._cache.transact():
            for key in self._cache.iterkeys():
                value = self._cache.get(key)
                if value is not None:
                    entries[str(key)] = value
        return MappingProxyType(entries)

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()


class SnapshotBackend(StorageBackend):
    """Read-only backend over a mapping returned by :meth:`StorageBackend.snapshot`."""

    def __init__(self, entries: Mapping[str, str]) -> None:
        self._entries = entries

    def get(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def set(self, key: str, value: str) -> None:
        raise TypeError("Cache snapshots are read-only")

    def keys(self) -> list[str]:
        return list(self._entries)

    def set_many(self, items: Mapping[str, str]) -> None:
        raise TypeError("Cache snapshots are read-only")

    def snapshot(self) -> Mapping[str, str]:
        return self._entries
