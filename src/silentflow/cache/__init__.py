"""Credential cache for silentflow.

This package stores cache entities (accounts, id tokens, access tokens and
refresh tokens) as JSON strings in a pluggable storage backend and finds
the ones that can serve a silent request.

Classes:
    :class:`CredentialStore` -- typed reads and atomic group writes.
    :class:`MemoryBackend` -- copy-on-write in-process backend.
    :class:`DiskBackend` -- :mod:`diskcache` backend used by the CLI.
    :class:`CacheMatcher` -- resolves the entities for a :class:`CacheQuery`.
"""

from silentflow.cache.backends import DiskBackend, MemoryBackend, StorageBackend
from silentflow.cache.matcher import CacheMatcher, CacheQuery, MatchResult
from silentflow.cache.store import CredentialStore

__all__ = [
    "CacheMatcher",
    "CacheQuery",
    "CredentialStore",
    "DiskBackend",
    "MatchResult",
    "MemoryBackend",
    "StorageBackend",
]
