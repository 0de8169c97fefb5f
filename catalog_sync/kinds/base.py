"""Shared plumbing for GraphQL-backed kinds."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import Resource, ResourceKind
from ..errors import Dependent, RemoteUnavailable
from ..reconcile.cache import ReadCache
from ..reconcile.descriptors import CollectionField, References
from ..reconcile.differ import CollectionDiff
from ..reconcile.remote import RemoteCatalog, ensure_success, extract
from ..utils.partial_results import PartialResult

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

PAGE_INFO = "pageInfo { hasNextPage endCursor }"
MUTATION_ERRORS = "errors { message extensions { errorType statusCode } }"


def parse_node(model: Type[M], data: Mapping[str, Any], what: str) -> M:
    """Validate a remote record, reporting shape problems as unavailability."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        logger.error(
            "kinds.parse.failed",
            extra={"what": what, "errors": exc.error_count()},
        )
        raise RemoteUnavailable(f"Malformed {what} record from catalog: {exc}") from exc


def fmt_number(value: Optional[float]) -> Optional[str]:
    """Render a number the way the catalog expects it in string inputs."""
    if value is None:
        return None
    return f"{value:g}"


def compact(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ``None`` entries from a mutation input."""
    return {k: v for k, v in values.items() if v is not None}


class GraphQLKind:
    """Base strategy for a kind stored under the ``compass`` root."""

    kind: ResourceKind
    supports_point_lookup = False

    def __init__(self, remote: RemoteCatalog) -> None:
        self.remote = remote

    async def fetch_all(self) -> List[Resource]:
        raise NotImplementedError

    async def fetch_one(self, resource_id: str) -> Optional[Resource]:
        for resource in await self.fetch_all():
            if resource.id == resource_id:
                return resource
        return None

    async def find_dependents(self, current: Resource, cache: ReadCache) -> List[Dependent]:
        return []

    async def apply_relationships(
        self,
        current: Resource,
        collection: CollectionField,
        change: CollectionDiff[Any],
        refs: References,
    ) -> PartialResult:
        return PartialResult()

    async def _mutation(
        self,
        document: str,
        variables: Dict[str, Any],
        field: str,
        action: str,
        *,
        referential_fallback: bool = False,
    ) -> Mapping[str, Any]:
        data = await self.remote.mutate(document, variables)
        payload = extract(data, "compass", field)
        if not isinstance(payload, Mapping):
            raise RemoteUnavailable(
                f"Malformed catalog response: 'compass.{field}' is not an object"
            )
        return ensure_success(action, payload, referential_fallback=referential_fallback)
