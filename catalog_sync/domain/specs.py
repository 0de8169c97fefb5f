"""Desired-state specifications submitted by clients.

Every field is optional at the model level so the same model serves both the
create path and partial updates; presence requirements and enum constraints
are enforced by :mod:`catalog_sync.reconcile.validation` against the raw
payload, which lets all violations be reported in a single pass.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import Link, MetricFact


class SpecModel(BaseModel):
    """Base for desired specs: aliases accepted, unknown keys rejected."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class ComponentSpec(SpecModel):
    """Desired state of a component."""

    name: Optional[str] = None
    type_id: Optional[str] = Field(None, alias="typeId")
    component_type: Optional[str] = Field(None, alias="componentType")
    description: Optional[str] = None
    tribe: Optional[str] = None
    squad: Optional[str] = None
    links: Optional[List[Link]] = None
    labels: Optional[List[str]] = None
    depends_on: Optional[List[str]] = Field(None, alias="dependsOn")


class FactSpec(MetricFact):
    """Desired fact; unlike a remote fact, unknown keys are rejected."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class MetricFormat(SpecModel):
    unit: Optional[str] = None


class MetricSpec(SpecModel):
    """Desired state of a metric definition."""

    name: Optional[str] = None
    description: Optional[str] = None
    format: Optional[MetricFormat] = None
    facts: Optional[List[FactSpec]] = None
    component_types: Optional[List[str]] = Field(None, alias="componentType")
    grading_system: Optional[str] = Field(None, alias="grading-system")
    cron_schedule: Optional[str] = Field(None, alias="cronSchedule")

    @property
    def unit(self) -> Optional[str]:
        return self.format.unit if self.format is not None else None


class MetricValueCriterion(SpecModel):
    """Criterion body: compare the named metric's value to a threshold."""

    id: Optional[str] = None
    name: str
    metric_name: Optional[str] = Field(None, alias="metricName")
    weight: float = 1.0
    comparator: str
    comparator_value: float = Field(alias="comparatorValue")
    metric_definition_id: Optional[str] = Field(None, alias="metricDefinitionId")


class CriterionSpec(SpecModel):
    has_metric_value: MetricValueCriterion = Field(alias="hasMetricValue")

    @property
    def name(self) -> str:
        return self.has_metric_value.name


class ScorecardSpec(SpecModel):
    """Desired state of a scorecard."""

    name: Optional[str] = None
    description: Optional[str] = None
    component_type_ids: Optional[List[str]] = Field(None, alias="componentTypeIds")
    criteria: Optional[List[CriterionSpec]] = None
    importance: Optional[str] = None
    owner_id: Optional[str] = Field(None, alias="ownerId")
    scoring_strategy_type: Optional[str] = Field(None, alias="scoringStrategyType")
    state: Optional[str] = None
