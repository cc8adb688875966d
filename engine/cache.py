# engine/cache.py
from __future__ import annotations
import logging
from typing import Any, Callable, Dict

from core.ports import CacheKey

logger = logging.getLogger(__name__)

_MISSING = object()


def is_prefix(prefix: CacheKey, key: CacheKey) -> bool:
    return len(prefix) <= len(key) and tuple(key[: len(prefix)]) == tuple(prefix)


class QueryCache:
    """
    In-memory read cache keyed by token tuples.

    Implements the CacheCoordinator port: `invalidate(prefix)` drops every
    entry whose key starts with `prefix`.
    """

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, Any] = {}

    def __contains__(self, key: CacheKey) -> bool:
        return tuple(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey, default: Any = None) -> Any:
        return self._entries.get(tuple(key), default)

    def set(self, key: CacheKey, value: Any) -> None:
        self._entries[tuple(key)] = value

    def fetch(self, key: CacheKey, loader: Callable[[], Any]) -> Any:
        """Return the cached value for `key`, loading and storing it on a miss."""
        value = self._entries.get(tuple(key), _MISSING)
        if value is _MISSING:
            value = loader()
            self._entries[tuple(key)] = value
        return value

    def invalidate(self, key: CacheKey) -> None:
        prefix = tuple(key)
        stale = [k for k in self._entries if is_prefix(prefix, k)]
        for k in stale:
            del self._entries[k]
        logger.debug("Invalidated %s (%d entries)", prefix, len(stale))

    def clear(self) -> None:
        self._entries.clear()


class NullCache:
    """CacheCoordinator that ignores invalidations."""

    def invalidate(self, key: CacheKey) -> None:
        return None
