"""Reconciliation orchestrator.

Sequences validation, identity and conflict checks, diffing, remote mutation,
cache invalidation and change-log production for every resource kind. The
orchestrator is written once; everything kind-specific lives in the
:class:`~catalog_sync.reconcile.descriptors.KindDescriptor` passed in.

Each public call gets its own :class:`ReadCache` unless one is passed
explicitly, so several calls can share reads deliberately (``apply`` over a
batch of manifests) but never by accident.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel

from ..adapters import CatalogClient
from ..domain.models import (
    ApplyResult,
    DeleteConfirmation,
    Resource,
    ResourceKind,
    UpdateResult,
)
from ..errors import Conflict, FieldViolation, NotFound, ValidationError
from ..utils.correlation import get_request_id
from ..utils.partial_results import PartialResult, format_failure_summary
from .cache import ReadCache
from .changelog import build_change_log, collections_equal
from .descriptors import KindDescriptor, References
from .differ import CollectionDiff, diff
from .remote import RemoteCatalog
from .resolver import IdentityResolver
from .validation import is_blank, validate_payload

logger = logging.getLogger(__name__)

Payload = Union[Mapping[str, Any], BaseModel]


def _as_payload(spec: Payload) -> Dict[str, Any]:
    if isinstance(spec, BaseModel):
        return spec.model_dump(by_alias=True, exclude_unset=True)
    return dict(spec)


class CatalogEngine:
    """Generic reconciliation engine over every registered kind.

    Parameters
    ----------
    client: CatalogClient
        Transport to the remote catalog.
    cloud_id: str
        Catalog tenant identifier.
    timeout_seconds: float
        Upper bound for each remote call.
    page_size: int
        Records requested per collection page.
    descriptors: Optional[Mapping[ResourceKind, KindDescriptor]]
        Kind descriptors; defaults to the built-in Component, Metric and
        Scorecard kinds bound to this engine's remote gateway.
    """

    def __init__(
        self,
        client: CatalogClient,
        *,
        cloud_id: str = "",
        timeout_seconds: float = 30.0,
        page_size: int = 100,
        descriptors: Optional[Mapping[ResourceKind, KindDescriptor]] = None,
    ) -> None:
        self.remote = RemoteCatalog(
            client,
            timeout_seconds=timeout_seconds,
            cloud_id=cloud_id,
            page_size=page_size,
        )
        if descriptors is None:
            from ..kinds import build_descriptors

            descriptors = build_descriptors(self.remote)
        self.descriptors: Dict[ResourceKind, KindDescriptor] = dict(descriptors)
        self._cascade = {k: d.invalidates for k, d in self.descriptors.items()}

        self.components = ResourceService(self, ResourceKind.COMPONENT)
        self.metrics = ResourceService(self, ResourceKind.METRIC)
        self.scorecards = ResourceService(self, ResourceKind.SCORECARD)

    def session(self) -> ReadCache:
        """Return a fresh read cache to share across several calls."""
        return ReadCache(self._load, self._cascade)

    async def _load(self, kind: ResourceKind) -> List[Resource]:
        return await self.descriptors[kind].operations.fetch_all()

    def _context(
        self, cache: Optional[ReadCache]
    ) -> Tuple[ReadCache, IdentityResolver]:
        cache = cache if cache is not None else self.session()
        return cache, IdentityResolver(self.descriptors, cache)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(
        self, kind: ResourceKind, *, cache: Optional[ReadCache] = None
    ) -> List[Resource]:
        cache, _ = self._context(cache)
        return await cache.get_all(kind)

    async def get_by_id(
        self, kind: ResourceKind, resource_id: str, *, cache: Optional[ReadCache] = None
    ) -> Resource:
        _, resolver = self._context(cache)
        return await resolver.by_id(kind, resource_id)

    async def get_by_name(
        self, kind: ResourceKind, name: str, *, cache: Optional[ReadCache] = None
    ) -> Resource:
        _, resolver = self._context(cache)
        return await resolver.by_name(kind, name)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(
        self, kind: ResourceKind, spec: Payload, *, cache: Optional[ReadCache] = None
    ) -> Resource:
        """Create a resource after validation and a name-conflict check.

        Raises
        ------
        ValidationError
            Invalid payload or unresolved cross-kind references.
        Conflict
            A resource of the kind already uses the name.
        RemoteRejected, RemoteUnavailable
            The catalog refused the mutation or could not be reached.
        """
        descriptor = self.descriptors[kind]
        cache, resolver = self._context(cache)
        raw = _as_payload(spec)
        logger.info(
            "engine.create.start",
            extra={
                "req_id": get_request_id(),
                "kind": kind.value,
                "resource_name": raw.get("name"),
            },
        )

        desired = validate_payload(descriptor, raw)
        name = getattr(desired, "name")
        existing = await resolver.find_by_name(kind, name)
        if existing is not None:
            raise Conflict(
                f'{kind.value} with name "{name}" already exists',
                existing_id=existing.id,
            )

        refs = await self._resolve_references(descriptor, desired, resolver, name)
        children = {
            c.attr: [c.build(item, refs) for item in getattr(desired, c.attr, None) or []]
            for c in descriptor.collections
            if not c.relationship
        }
        created = await descriptor.operations.create(desired, children, refs)
        cache.invalidate(kind)

        await self._reconcile_relationships(descriptor, created, desired, None, refs, cache)

        result = await self._reread(kind, created.id, resolver, fallback=created)
        logger.info(
            "engine.create.complete",
            extra={"req_id": get_request_id(), "kind": kind.value, "id": result.id},
        )
        return result

    async def update(
        self,
        kind: ResourceKind,
        resource_id: str,
        spec: Payload,
        *,
        cache: Optional[ReadCache] = None,
    ) -> UpdateResult:
        """Move the resource towards ``spec``; only present fields are touched.

        The mutation is skipped when neither scalars nor child collections
        differ. The returned change-log compares the state read before the
        update with a fresh read taken after it.
        """
        descriptor = self.descriptors[kind]
        cache, resolver = self._context(cache)
        raw = _as_payload(spec)
        logger.info(
            "engine.update.start",
            extra={"req_id": get_request_id(), "kind": kind.value, "id": resource_id},
        )

        current = await resolver.by_id(kind, resource_id)
        desired = validate_payload(descriptor, raw, partial=True)
        provided = desired.model_fields_set

        target_name = current.name
        if "name" in provided and getattr(desired, "name") != current.name:
            target_name = getattr(desired, "name")
            clash = await resolver.find_by_name(kind, target_name)
            if clash is not None and clash.id != current.id:
                raise Conflict(
                    f'{kind.value} with name "{target_name}" already exists',
                    existing_id=clash.id,
                )

        refs = await self._resolve_references(descriptor, desired, resolver, target_name)
        changes, child_diffs = self._plan_update(descriptor, current, desired, refs)

        if changes or child_diffs:
            logger.info(
                "engine.update.mutate",
                extra={
                    "kind": kind.value,
                    "id": current.id,
                    "fields": sorted(changes),
                    "collections": sorted(child_diffs),
                },
            )
            await descriptor.operations.update(current, changes, child_diffs, refs)
            cache.invalidate(kind)
        else:
            logger.info(
                "engine.update.noop", extra={"kind": kind.value, "id": current.id}
            )

        await self._reconcile_relationships(
            descriptor, current, desired, current, refs, cache
        )

        after = await resolver.by_id(kind, current.id)
        change_log = build_change_log(descriptor, current, after)
        logger.info(
            "engine.update.complete",
            extra={
                "req_id": get_request_id(),
                "kind": kind.value,
                "id": current.id,
                "changes": len(change_log),
            },
        )
        return UpdateResult(resource=after, changes=change_log)

    async def delete(
        self, kind: ResourceKind, resource_id: str, *, cache: Optional[ReadCache] = None
    ) -> DeleteConfirmation:
        """Delete a resource nothing else references.

        Raises
        ------
        Conflict
            Dependents exist, or the catalog reports a referential conflict.
        """
        descriptor = self.descriptors[kind]
        cache, resolver = self._context(cache)
        logger.info(
            "engine.delete.start",
            extra={"req_id": get_request_id(), "kind": kind.value, "id": resource_id},
        )

        current = await resolver.by_id(kind, resource_id)
        dependents = await descriptor.operations.find_dependents(current, cache)
        if dependents:
            raise Conflict(
                f'Cannot delete {kind.value} "{current.name}": '
                f"it is referenced by {len(dependents)} resource(s)",
                dependents=dependents,
            )

        await descriptor.operations.delete(current)
        cache.invalidate(kind)
        logger.info(
            "engine.delete.complete",
            extra={"req_id": get_request_id(), "kind": kind.value, "id": current.id},
        )
        return DeleteConfirmation(
            id=current.id,
            message=f'{kind.value} "{current.name}" deleted successfully',
        )

    async def apply(
        self, kind: ResourceKind, spec: Payload, *, cache: Optional[ReadCache] = None
    ) -> ApplyResult:
        """Create the resource when its name is free, update it otherwise."""
        cache, resolver = self._context(cache)
        raw = _as_payload(spec)
        name = raw.get("name")
        existing = None
        if isinstance(name, str) and not is_blank(name):
            existing = await resolver.find_by_name(kind, name)

        if existing is None:
            created = await self.create(kind, raw, cache=cache)
            return ApplyResult(action="created", resource=created)

        updated = await self.update(kind, existing.id, raw, cache=cache)
        return ApplyResult(
            action="updated" if updated.changes else "unchanged",
            resource=updated.resource,
            changes=updated.changes,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_references(
        self,
        descriptor: KindDescriptor,
        desired: BaseModel,
        resolver: IdentityResolver,
        self_name: str,
    ) -> References:
        refs: References = {}
        violations: List[FieldViolation] = []
        for collection in descriptor.collections:
            if collection.reference is None or collection.reference_name is None:
                continue
            items = getattr(desired, collection.attr, None)
            if not items:
                continue
            index = await resolver.index(collection.reference)
            resolved = refs.setdefault(collection.reference, {})
            for i, item in enumerate(items):
                ref_name = collection.reference_name(item)
                path = f"{collection.path}[{i}]{collection.reference_suffix}"
                if collection.reference is descriptor.kind and ref_name == self_name:
                    violations.append(
                        FieldViolation(path, "a resource cannot reference itself")
                    )
                    continue
                target = index.get(ref_name)
                if target is None:
                    violations.append(
                        FieldViolation(
                            path, f'{collection.reference.value} "{ref_name}" not found'
                        )
                    )
                else:
                    resolved[ref_name] = target
        if violations:
            raise ValidationError(
                f"Unresolved references in {descriptor.label} spec", violations
            )
        return refs

    def _plan_update(
        self,
        descriptor: KindDescriptor,
        current: Resource,
        desired: BaseModel,
        refs: References,
    ) -> Tuple[Dict[str, Any], Dict[str, CollectionDiff[Any]]]:
        provided = desired.model_fields_set
        changes: Dict[str, Any] = {}
        for scalar in descriptor.scalars:
            if scalar.presence_field not in provided:
                continue
            new = getattr(desired, scalar.attr)
            # explicit null leaves the remote value untouched
            if new is None:
                continue
            if new != getattr(current, scalar.attr, None):
                changes[scalar.attr] = new

        child_diffs: Dict[str, CollectionDiff[Any]] = {}
        for collection in descriptor.collections:
            if collection.relationship or collection.attr not in provided:
                continue
            wanted = [
                collection.build(item, refs)
                for item in getattr(desired, collection.attr, None) or []
            ]
            existing = list(getattr(current, collection.attr, None) or [])
            if collection.key is None:
                if not collections_equal(collection, existing, wanted):
                    changes[collection.attr] = wanted
                continue
            change = diff(existing, wanted, collection.key)
            if change.has_mutations or not collections_equal(collection, existing, wanted):
                child_diffs[collection.attr] = change
        return changes, child_diffs

    async def _reconcile_relationships(
        self,
        descriptor: KindDescriptor,
        resource: Resource,
        desired: BaseModel,
        current: Optional[Resource],
        refs: References,
        cache: ReadCache,
    ) -> List[PartialResult]:
        results: List[PartialResult] = []
        for collection in descriptor.relationship_collections():
            if current is not None and collection.attr not in desired.model_fields_set:
                continue
            wanted = list(getattr(desired, collection.attr, None) or [])
            existing = list(getattr(current, collection.attr, None) or []) if current else []
            key = collection.key or (lambda item: item)
            change = diff(existing, wanted, key)
            if not change.has_mutations:
                continue
            outcome = await descriptor.operations.apply_relationships(
                resource, collection, change, refs
            )
            results.append(outcome)
            cache.invalidate(descriptor.kind)
            if outcome.has_failures:
                logger.warning(
                    "engine.relationships.partial",
                    extra={
                        "kind": descriptor.label,
                        "id": resource.id,
                        "field": collection.path,
                        "summary": format_failure_summary(outcome),
                    },
                )
        return results

    async def _reread(
        self,
        kind: ResourceKind,
        resource_id: str,
        resolver: IdentityResolver,
        *,
        fallback: Resource,
    ) -> Resource:
        try:
            return await resolver.by_id(kind, resource_id)
        except NotFound:
            # the catalog may not list a fresh record yet
            logger.warning(
                "engine.reread.missing", extra={"kind": kind.value, "id": resource_id}
            )
            return fallback


class ResourceService:
    """Per-kind facade over :class:`CatalogEngine` (``engine.components``)."""

    def __init__(self, engine: CatalogEngine, kind: ResourceKind) -> None:
        self._engine = engine
        self.kind = kind

    async def get_all(self, *, cache: Optional[ReadCache] = None) -> List[Resource]:
        return await self._engine.get_all(self.kind, cache=cache)

    async def get_by_id(
        self, resource_id: str, *, cache: Optional[ReadCache] = None
    ) -> Resource:
        return await self._engine.get_by_id(self.kind, resource_id, cache=cache)

    async def get_by_name(
        self, name: str, *, cache: Optional[ReadCache] = None
    ) -> Resource:
        return await self._engine.get_by_name(self.kind, name, cache=cache)

    async def create(
        self, spec: Payload, *, cache: Optional[ReadCache] = None
    ) -> Resource:
        return await self._engine.create(self.kind, spec, cache=cache)

    async def update(
        self, resource_id: str, spec: Payload, *, cache: Optional[ReadCache] = None
    ) -> UpdateResult:
        return await self._engine.update(self.kind, resource_id, spec, cache=cache)

    async def delete(
        self, resource_id: str, *, cache: Optional[ReadCache] = None
    ) -> DeleteConfirmation:
        return await self._engine.delete(self.kind, resource_id, cache=cache)

    async def apply(
        self, spec: Payload, *, cache: Optional[ReadCache] = None
    ) -> ApplyResult:
        return await self._engine.apply(self.kind, spec, cache=cache)
