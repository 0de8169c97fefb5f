"""Session-scoped read cache for full-collection reads.

A :class:`ReadCache` memoizes ``get_all(kind)`` for the lifetime of one
reconciliation session. It is not time-based: entries stay until the
orchestrator invalidates them after a mutation. A fresh cache is created for
every engine call unless the caller passes one in explicitly, so state never
leaks between concurrent operations.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from ..domain.models import Resource, ResourceKind
from ..utils.cache import Cache

logger = logging.getLogger(__name__)

Loader = Callable[[ResourceKind], Awaitable[List[Resource]]]


class ReadCache:
    """Lazy per-kind memo of full-collection reads.

    Parameters
    ----------
    loader: Loader
        Coroutine function fetching every resource of a kind from the catalog.
    cascade: Mapping[ResourceKind, Sequence[ResourceKind]]
        Kinds whose cached records embed references to the key kind; they are
        invalidated together with it.
    """

    def __init__(
        self,
        loader: Loader,
        cascade: Optional[Mapping[ResourceKind, Sequence[ResourceKind]]] = None,
    ) -> None:
        self._loader = loader
        self._cascade = {k: tuple(v) for k, v in (cascade or {}).items()}
        self._entries: Cache[ResourceKind, List[Resource]] = Cache(
            maxsize=len(ResourceKind)
        )
        self.loads: Counter[ResourceKind] = Counter()

    async def get_all(self, kind: ResourceKind) -> List[Resource]:
        """Return every resource of ``kind``, loading it on first access."""
        cached = self._entries.get(kind)
        if cached is not None:
            return list(cached)
        resources = await self._loader(kind)
        self.loads[kind] += 1
        self._entries.set(kind, list(resources))
        logger.debug(
            "read_cache.loaded",
            extra={"kind": kind.value, "count": len(resources)},
        )
        return list(resources)

    def invalidate(self, kind: ResourceKind) -> None:
        """Drop ``kind`` and every kind that embeds references to it."""
        dropped: Dict[str, bool] = {}
        for target in (kind, *self._cascade.get(kind, ())):
            dropped[target.value] = self._entries.invalidate(target)
        logger.debug("read_cache.invalidated", extra={"kinds": dropped})

    def is_cached(self, kind: ResourceKind) -> bool:
        return kind in self._entries
