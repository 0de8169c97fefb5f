"""Canonical resource models returned by the reconciliation engine.

These Pydantic models represent the authoritative, remote-backed state of
catalog resources after mapping from GraphQL records. Attribute names are
snake_case; serialized names (``by_alias=True``) follow the camelCase shape of
the manifests clients submit, so a read resource can be diffed against a
desired spec field by field.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

DEPENDS_ON = "DEPENDS_ON"


class ResourceKind(str, Enum):
    """Resource kinds managed by the engine."""

    COMPONENT = "Component"
    METRIC = "Metric"
    SCORECARD = "Scorecard"


class ComponentTypeId(str, Enum):
    """Allowed component type identifiers."""

    SERVICE = "SERVICE"
    LIBRARY = "LIBRARY"
    WEBSITE = "WEBSITE"
    APPLICATION = "APPLICATION"
    TEMPLATE = "TEMPLATE"
    RUNTIME = "RUNTIME"


class GradingSystem(str, Enum):
    """Grading categories a metric can belong to."""

    RESILIENCY = "resiliency"
    OBSERVABILITY = "observability"
    PRODUCTION_READINESS = "production-readiness"
    SECURITY = "security"
    COST_OPTIMIZATION = "cost-optimization"


class ScorecardState(str, Enum):
    PUBLISHED = "PUBLISHED"
    DRAFT = "DRAFT"


class Importance(str, Enum):
    REQUIRED = "REQUIRED"
    OPTIONAL = "OPTIONAL"
    RECOMMENDED = "RECOMMENDED"


class ScoringStrategyType(str, Enum):
    WEIGHT_BASED = "WEIGHT_BASED"


class Comparator(str, Enum):
    EQUALS = "EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"


def allowed_values(enum_cls: type[Enum]) -> tuple[str, ...]:
    """Return the string values of an enum, in declaration order."""
    return tuple(str(member.value) for member in enum_cls)


class CatalogModel(BaseModel):
    """Base for models that accept both field names and aliases."""

    model_config = ConfigDict(populate_by_name=True)


class Link(CatalogModel):
    """External link attached to a component (repository, dashboard, ...)."""

    name: str
    type: str
    url: str


class DependencyEdge(CatalogModel):
    """Directed relationship edge; identified only by its triple."""

    source_id: str = Field(alias="sourceId")
    target_id: str = Field(alias="targetId")
    type: str = DEPENDS_ON
    target_name: Optional[str] = Field(None, alias="targetName")


class Resource(CatalogModel):
    """Common identity of every catalog resource.

    Attributes
    ----------
    id: str
        Opaque identifier assigned by the remote catalog; never changes.
    name: str
        Human name, unique within the kind.
    """

    id: str
    name: str


class Component(Resource):
    """Software component with dependency edges to other components."""

    type_id: str = Field("", alias="typeId")
    component_type: str = Field("", alias="componentType")
    description: str = ""
    tribe: str = ""
    squad: str = ""
    links: List[Link] = Field(default_factory=list)
    labels: List[str] = Field(default_factory=list)
    depends_on: List[str] = Field(default_factory=list, alias="dependsOn")
    relationships: List[DependencyEdge] = Field(default_factory=list)
    created_at: Optional[str] = Field(None, alias="createdAt")
    updated_at: Optional[str] = Field(None, alias="updatedAt")


class MetricFact(CatalogModel):
    """Fact feeding a metric; keyed by its declared ``id``.

    Fields the catalog adds beyond these are ignored when reading.
    """

    id: str
    name: str
    type: str
    source: Optional[str] = None
    rule: Optional[str] = None
    repo: Optional[str] = None
    file_path: Optional[str] = Field(None, alias="filePath")
    json_path: Optional[str] = Field(None, alias="jsonPath")
    method: Optional[str] = None
    depends_on: Optional[List[str]] = Field(None, alias="dependsOn")


class Metric(Resource):
    """Metric definition."""

    description: str = ""
    unit: str = ""
    type: str = ""
    component_types: List[str] = Field(default_factory=list, alias="componentType")
    grading_system: Optional[str] = Field(None, alias="grading-system")
    cron_schedule: Optional[str] = Field(None, alias="cronSchedule")
    facts: List[MetricFact] = Field(default_factory=list)


class Criterion(CatalogModel):
    """Scorecard criterion measuring one metric; keyed by its metric name."""

    id: Optional[str] = None
    name: str
    metric_definition_id: str = Field("", alias="metricDefinitionId")
    weight: float = 1.0
    comparator: Optional[str] = None
    comparator_value: Optional[float] = Field(None, alias="comparatorValue")


class Scorecard(Resource):
    """Scorecard grading components against metric criteria."""

    description: str = ""
    state: Optional[str] = None
    importance: Optional[str] = None
    scoring_strategy_type: Optional[str] = Field(None, alias="scoringStrategyType")
    component_type_ids: List[str] = Field(
        default_factory=list, alias="componentTypeIds"
    )
    owner_id: Optional[str] = Field(None, alias="ownerId")
    owner_name: Optional[str] = Field(None, alias="ownerName")
    type: str = ""
    verified: bool = True
    criteria: List[Criterion] = Field(default_factory=list)


AnyResource = Union[Component, Metric, Scorecard]


class ChangeRecord(CatalogModel):
    """Field-level before/after record produced after an update."""

    field: str
    old_value: Any = Field(None, alias="oldValue")
    new_value: Any = Field(None, alias="newValue")


class UpdateResult(CatalogModel):
    """Authoritative post-update resource plus its change-log."""

    resource: AnyResource
    changes: List[ChangeRecord] = Field(default_factory=list)


class DeleteConfirmation(CatalogModel):
    """Confirmation returned after a successful delete."""

    id: str
    message: str


class ApplyResult(CatalogModel):
    """Outcome of an idempotent apply: ``created``, ``updated`` or ``unchanged``."""

    action: str
    resource: AnyResource
    changes: List[ChangeRecord] = Field(default_factory=list)
