"""Identity resolution for catalog resources."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from ..domain.models import Resource, ResourceKind
from ..errors import NotFound
from .cache import ReadCache
from .descriptors import KindDescriptor

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Map a name or remote ID to the current resource of a kind.

    Name lookups always scan the session's cached full-collection read. ID
    lookups use the kind's point lookup when it has one and fall back to the
    same scan otherwise. Fetch failures propagate unchanged, so a caller can
    tell "does not exist" (:class:`NotFound`) from "could not ask".
    """

    def __init__(
        self, descriptors: Mapping[ResourceKind, KindDescriptor], cache: ReadCache
    ) -> None:
        self._descriptors = descriptors
        self._cache = cache

    async def find_by_name(self, kind: ResourceKind, name: str) -> Optional[Resource]:
        for resource in await self._cache.get_all(kind):
            if resource.name == name:
                return resource
        return None

    async def by_name(self, kind: ResourceKind, name: str) -> Resource:
        found = await self.find_by_name(kind, name)
        if found is None:
            raise NotFound(f'{kind.value} with name "{name}" not found')
        return found

    async def find_by_id(self, kind: ResourceKind, resource_id: str) -> Optional[Resource]:
        operations = self._descriptors[kind].operations
        if operations.supports_point_lookup:
            return await operations.fetch_one(resource_id)
        for resource in await self._cache.get_all(kind):
            if resource.id == resource_id:
                return resource
        return None

    async def by_id(self, kind: ResourceKind, resource_id: str) -> Resource:
        found = await self.find_by_id(kind, resource_id)
        if found is None:
            raise NotFound(f'{kind.value} with id "{resource_id}" not found')
        return found

    async def index(self, kind: ResourceKind) -> Dict[str, Resource]:
        """Return ``{name: resource}`` for every resource of ``kind``.

        The first occurrence wins when the catalog holds duplicate names.
        """
        by_name: Dict[str, Resource] = {}
        for resource in await self._cache.get_all(kind):
            if resource.name in by_name:
                logger.warning(
                    "resolver.duplicate_name",
                    extra={
                        "kind": kind.value,
                        "resource_name": resource.name,
                        "ids": [by_name[resource.name].id, resource.id],
                    },
                )
                continue
            by_name[resource.name] = resource
        return by_name
