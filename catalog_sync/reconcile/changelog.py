"""Field-level change-log between two states of a resource."""

from __future__ import annotations

import json
from typing import Any, List, Sequence

from pydantic import BaseModel

from ..domain.models import ChangeRecord, Resource
from .descriptors import ChangeMode, CollectionField, KindDescriptor


def _dump(item: Any, exclude: frozenset = frozenset()) -> Any:
    if isinstance(item, BaseModel):
        return item.model_dump(by_alias=True, exclude=set(exclude) or None, exclude_none=True)
    return item


def _canonical(items: Sequence[Any], exclude: frozenset) -> List[str]:
    return sorted(
        json.dumps(_dump(item, exclude), sort_keys=True, default=str) for item in items
    )


def collections_equal(collection: CollectionField, old: Sequence[Any], new: Sequence[Any]) -> bool:
    """Order-insensitive deep equality ignoring remote identifiers."""
    return _canonical(old, collection.compare_exclude) == _canonical(
        new, collection.compare_exclude
    )


def _collection_record(
    collection: CollectionField, old: Sequence[Any], new: Sequence[Any]
) -> ChangeRecord:
    if collection.mode is ChangeMode.COUNT:
        label = collection.label or collection.attr
        if len(old) != len(new):
            return ChangeRecord(
                field=collection.path,
                old_value=f"{len(old)} {label}",
                new_value=f"{len(new)} {label}",
            )
        return ChangeRecord(
            field=collection.path,
            old_value=f"{len(old)} {label}",
            new_value=f"{label} changed",
        )
    return ChangeRecord(
        field=collection.path,
        old_value=[_dump(item) for item in old],
        new_value=[_dump(item) for item in new],
    )


def build_change_log(
    descriptor: KindDescriptor, before: Resource, after: Resource
) -> List[ChangeRecord]:
    """Return records for every tracked field that differs.

    Scalars come first in descriptor order, then collections. Identical
    inputs produce an empty list.
    """
    changes: List[ChangeRecord] = []
    for scalar in descriptor.scalars:
        old = getattr(before, scalar.attr, None)
        new = getattr(after, scalar.attr, None)
        if old != new:
            changes.append(ChangeRecord(field=scalar.path, old_value=old, new_value=new))

    for collection in descriptor.collections:
        old_items = list(getattr(before, collection.attr, None) or [])
        new_items = list(getattr(after, collection.attr, None) or [])
        if not collections_equal(collection, old_items, new_items):
            changes.append(_collection_record(collection, old_items, new_items))
    return changes
