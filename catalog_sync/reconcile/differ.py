"""Collection differ for keyed child items.

Partitions the desired and existing children of a resource (criteria,
facts, dependency names) into the mutation operations needed to move
one to the other. Items are correlated by a natural key, never by remote
identifiers, because desired specs do not know those.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Hashable, List, Sequence, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")

KeyFunc = Callable[[Any], Hashable]


@dataclass
class CollectionDiff(Generic[T]):
    """Create/update/delete partition of a child collection.

    Attributes
    ----------
    create: List[T]
        Desired items whose key is absent remotely, in desired order.
    update: List[T]
        Desired items whose key exists remotely, carrying the existing item's
        identity fields. Identical values still land here.
    delete: List[Hashable]
        Keys present remotely but absent from the desired list.
    removed: List[T]
        Existing items for ``delete``, in the same order, followed by any
        further remote items repeating a key already seen.
    """

    create: List[T] = field(default_factory=list)
    update: List[T] = field(default_factory=list)
    delete: List[Hashable] = field(default_factory=list)
    removed: List[T] = field(default_factory=list)

    @property
    def has_mutations(self) -> bool:
        """True when something would be created or deleted."""
        return bool(self.create or self.delete or self.removed)


def _carry_identity(existing: Any, desired: Any, identity_fields: Sequence[str]) -> Any:
    if not isinstance(desired, BaseModel):
        return desired
    carried = {
        name: getattr(existing, name)
        for name in identity_fields
        if getattr(existing, name, None) is not None and name in type(desired).model_fields
    }
    return desired.model_copy(update=carried) if carried else desired


def diff(
    existing: Sequence[T],
    desired: Sequence[T],
    key: KeyFunc,
    *,
    identity_fields: Sequence[str] = ("id",),
) -> CollectionDiff[T]:
    """Compute the partition of ``desired`` against ``existing``.

    Parameters
    ----------
    existing: Sequence[T]
        Children currently stored remotely.
    desired: Sequence[T]
        Children requested by the client.
    key: KeyFunc
        Natural-key extractor applied to both sides.
    identity_fields: Sequence[str]
        Attributes copied from the existing item onto updated desired items.

    Returns
    -------
    CollectionDiff[T]
        ``keys(create) = keys(desired) - keys(existing)``,
        ``keys(update) = keys(desired) & keys(existing)``,
        ``delete = keys(existing) - keys(desired)``.
    """
    existing_by_key: Dict[Hashable, T] = {}
    duplicates: List[T] = []
    for item in existing:
        item_key = key(item)
        if item_key in existing_by_key:
            duplicates.append(item)
            continue
        existing_by_key[item_key] = item
    if duplicates:
        # the first copy is reconciled, the others are removed
        logger.warning(
            "differ.duplicate_key",
            extra={"keys": sorted({str(key(item)) for item in duplicates})},
        )
    desired_keys = {key(item) for item in desired}

    result: CollectionDiff[T] = CollectionDiff()
    seen: set = set()
    for item in desired:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        current = existing_by_key.get(item_key)
        if current is None:
            result.create.append(item)
        else:
            result.update.append(_carry_identity(current, item, identity_fields))

    for item_key, current in existing_by_key.items():
        if item_key not in desired_keys:
            result.delete.append(item_key)
            result.removed.append(current)
    result.removed.extend(duplicates)
    return result
