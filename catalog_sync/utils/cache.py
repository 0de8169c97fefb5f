"""Basic LRU cache utility.

This module provides a thin, typed wrapper over :class:`cachetools.LRUCache`
with a minimal API for `get`/`set`/`invalidate`. The wrapper isolates the
dependency so the session read cache does not touch cachetools directly.
"""

from __future__ import annotations

from collections.abc import Hashable
from typing import Generic, Optional, TypeVar

from cachetools import LRUCache  # type: ignore[import-untyped]

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class Cache(Generic[K, V]):
    """Simple LRU cache.

    Parameters
    ----------
    maxsize: int
        Maximum number of entries to retain.
        When the cache is full, the least-recently-used entry is discarded.
    """

    def __init__(self, maxsize: int = 1024) -> None:
        self._cache: LRUCache[K, V] = LRUCache(maxsize=maxsize)

    def get(self, key: K) -> Optional[V]:
        """Return value for `key` or None if missing."""
        return self._cache.get(key)

    def set(self, key: K, value: V) -> None:
        """Insert or update `key` with `value`."""
        self._cache[key] = value

    def invalidate(self, key: K) -> bool:
        """Drop `key`; return True when an entry was removed."""
        return self._cache.pop(key, None) is not None

    def __contains__(self, key: object) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)
