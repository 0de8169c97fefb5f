"""Per-kind descriptors driving the generic reconciliation engine.

A :class:`KindDescriptor` is data (tracked fields, constraints, nested
collections) plus a strategy object (:class:`KindOperations`) that knows the
remote documents for the kind. The engine never branches on the kind itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Type,
)

from pydantic import BaseModel

from ..domain.models import Resource, ResourceKind
from ..errors import Dependent, FieldViolation
from ..utils.partial_results import PartialResult
from .cache import ReadCache
from .differ import CollectionDiff

References = Dict[ResourceKind, Dict[str, Resource]]
Check = Callable[[Mapping[str, Any]], List[FieldViolation]]


class ChangeMode(str, Enum):
    """How a collection is reported in the change-log."""

    SUMMARY = "summary"
    COUNT = "count"


@dataclass(frozen=True)
class ScalarField:
    """Scalar tracked for diffing and change-logs.

    ``attr`` is read from both the spec and the resource; ``spec_field`` is
    the spec model field whose presence marks the value as provided.
    """

    attr: str
    path: str
    spec_field: Optional[str] = None

    @property
    def presence_field(self) -> str:
        return self.spec_field or self.attr


@dataclass(frozen=True)
class EnumConstraint:
    """Allowed values for a raw payload path (``[]`` walks list items)."""

    path: str
    allowed: Tuple[str, ...]


def _identity(item: Any, _refs: References) -> Any:
    return item


@dataclass(frozen=True)
class CollectionField:
    """Nested collection of a resource.

    Attributes
    ----------
    attr: str
        Attribute holding the items on both the spec and the resource.
    path: str
        Change-log and validation path (``spec.criteria``).
    mode: ChangeMode
        Summary record or cardinality record in the change-log.
    label: str
        Noun used by cardinality records (``"criteria"``).
    key: Optional[Callable]
        Natural-key extractor; collections without one are replaced wholesale.
    key_suffix: str
        Path suffix of the key field inside a raw item (``.id``).
    build: Callable
        Turns a desired spec item into a resource-shaped child, given the
        resolved references.
    reference: Optional[ResourceKind]
        Kind that items refer to by name; every name must resolve first.
    reference_name: Optional[Callable]
        Extracts the referenced name from a desired spec item.
    reference_suffix: str
        Path suffix of the referencing field inside an item.
    relationship: bool
        Items are separate relationship edges written after the primary
        mutation rather than inside it.
    compare_exclude: frozenset
        Item fields ignored by change-log equality (remote identifiers).
    """

    attr: str
    path: str
    mode: ChangeMode = ChangeMode.SUMMARY
    label: str = ""
    key: Optional[Callable[[Any], Hashable]] = None
    key_suffix: str = ""
    build: Callable[[Any, References], Any] = _identity
    reference: Optional[ResourceKind] = None
    reference_name: Optional[Callable[[Any], str]] = None
    reference_suffix: str = ""
    relationship: bool = False
    compare_exclude: frozenset = frozenset({"id"})


class KindOperations(Protocol):
    """Remote strategy for one resource kind."""

    supports_point_lookup: bool

    async def fetch_all(self) -> List[Resource]:
        """Return every resource of the kind."""
        ...

    async def fetch_one(self, resource_id: str) -> Optional[Resource]:
        """Point lookup; ``None`` when the catalog has no such resource."""
        ...

    async def create(
        self, spec: Any, children: Dict[str, List[Any]], refs: References
    ) -> Resource:
        """Submit the create mutation and return the created resource."""
        ...

    async def update(
        self,
        current: Resource,
        changes: Dict[str, Any],
        child_diffs: Dict[str, CollectionDiff[Any]],
        refs: References,
    ) -> None:
        """Submit the update mutation with changed scalars and child sets."""
        ...

    async def delete(self, current: Resource) -> None:
        """Submit the delete mutation."""
        ...

    async def find_dependents(
        self, current: Resource, cache: ReadCache
    ) -> List[Dependent]:
        """Return resources referencing ``current``."""
        ...

    async def apply_relationships(
        self,
        current: Resource,
        collection: CollectionField,
        change: CollectionDiff[Any],
        refs: References,
    ) -> PartialResult:
        """Write relationship edges for ``change``; failures are recorded."""
        ...


@dataclass(frozen=True)
class KindDescriptor:
    """Everything the engine needs to reconcile one kind."""

    kind: ResourceKind
    spec_model: Type[BaseModel]
    operations: KindOperations
    required: Tuple[str, ...] = ()
    enums: Tuple[EnumConstraint, ...] = ()
    checks: Tuple[Check, ...] = ()
    scalars: Tuple[ScalarField, ...] = ()
    collections: Tuple[CollectionField, ...] = ()
    invalidates: Tuple[ResourceKind, ...] = field(default_factory=tuple)

    @property
    def label(self) -> str:
        return self.kind.value

    def relationship_collections(self) -> Sequence[CollectionField]:
        return [c for c in self.collections if c.relationship]
