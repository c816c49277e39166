"""
Cache store collaborator.

Keys are tuples; invalidating a key marks every cached entry under that
prefix stale, so invalidating ("school", "students") also covers
("school", "students", "detail", 42).
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from typing_extensions import Protocol

from .rules import RegionKey

logger = logging.getLogger(__name__)

Loader = Callable[[RegionKey], Awaitable[Any]]


class CacheStore(Protocol):
    def invalidate(self, key: RegionKey) -> None:
        ...

    async def refetch(self, key: RegionKey) -> None:
        ...


def _under(key: RegionKey, prefix: RegionKey) -> bool:
    return key[: len(prefix)] == prefix


class InMemoryCacheStore:
    def __init__(self) -> None:
        self._entries: Dict[RegionKey, Any] = {}
        self._stale: Set[RegionKey] = set()
        self._loaders: Dict[RegionKey, Loader] = {}
        self.invalidated: List[RegionKey] = []

    def register_loader(self, prefix: RegionKey, loader: Loader) -> None:
        """Loader used to refetch any region under prefix; the longest matching prefix wins."""
        self._loaders[tuple(prefix)] = loader

    def set(self, key: RegionKey, value: Any) -> None:
        key = tuple(key)
        self._entries[key] = value
        self._stale.discard(key)

    def get(self, key: RegionKey, default: Any = None) -> Any:
        return self._entries.get(tuple(key), default)

    def is_stale(self, key: RegionKey) -> bool:
        return tuple(key) in self._stale

    def invalidate(self, key: RegionKey) -> None:
        key = tuple(key)
        self.invalidated.append(key)
        matched = [k for k in self._entries if _under(k, key)]
        self._stale.update(matched)
        logger.debug("Invalidated %s (%s cached entries)", key, len(matched))

    async def refetch(self, key: RegionKey) -> None:
        key = tuple(key)
        for stale_key in [k for k in self._stale if _under(k, key)]:
            loader = self._loader_for(stale_key)
            if loader is None:
                continue
            self._entries[stale_key] = await loader(stale_key)
            self._stale.discard(stale_key)

    def _loader_for(self, key: RegionKey) -> Optional[Loader]:
        matches = [p for p in self._loaders if _under(key, p)]
        if not matches:
            return None
        return self._loaders[max(matches, key=len)]
