"""Metric kind: metric definitions and their facts."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from ..domain.models import (
    ComponentTypeId,
    GradingSystem,
    Metric,
    Resource,
    ResourceKind,
    Scorecard,
    allowed_values,
)
from ..domain.specs import MetricSpec
from ..errors import Dependent, FieldViolation
from ..reconcile.cache import ReadCache
from ..reconcile.descriptors import (
    ChangeMode,
    CollectionField,
    EnumConstraint,
    KindDescriptor,
    References,
    ScalarField,
)
from ..reconcile.differ import CollectionDiff
from ..reconcile.remote import RemoteCatalog, extract
from .base import MUTATION_ERRORS, PAGE_INFO, GraphQLKind, compact, parse_node

CRON_RE = re.compile(
    r"^(?:"
    r"@(?:annually|yearly|monthly|weekly|daily|hourly|reboot)"
    r"|@every (?:\d+(?:ns|us|µs|ms|s|m|h))+"
    r"|(?:(?:(?:\d+,)+\d+|\d+[/-]\d+|\*/\d+|\d+|\*) ?){5,7}"
    r")$"
)

FACT_FIELDS = "id name type source rule repo filePath jsonPath method dependsOn"

METRIC_FIELDS = f"""
  id
  name
  type
  description
  format {{ suffix }}
  componentTypes
  gradingSystem
  cronSchedule
  facts {{ {FACT_FIELDS} }}
"""

SEARCH_METRICS = f"""
query searchMetricDefinitions($cloudId: ID!, $first: Int, $after: String) {{
  compass {{
    metricDefinitions(query: {{cloudId: $cloudId, first: $first, after: $after}}) {{
      ... on CompassMetricDefinitionsConnection {{
        nodes {{ {METRIC_FIELDS} }}
        {PAGE_INFO}
      }}
    }}
  }}
}}
"""

CREATE_METRIC = f"""
mutation createMetricDefinition($input: CompassCreateMetricDefinitionInput!) {{
  compass {{
    createMetricDefinition(input: $input) {{
      success
      createdMetricDefinition {{ {METRIC_FIELDS} }}
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

UPDATE_METRIC = f"""
mutation updateMetricDefinition($input: CompassUpdateMetricDefinitionInput!) {{
  compass {{
    updateMetricDefinition(input: $input) {{
      success
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

DELETE_METRIC = f"""
mutation deleteMetricDefinition($input: CompassDeleteMetricDefinitionInput!) {{
  compass {{
    deleteMetricDefinition(input: $input) {{
      success
      deletedMetricDefinitionId
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

# resource attribute -> remote input key
SCALAR_INPUTS = (
    ("name", "name"),
    ("description", "description"),
    ("component_types", "componentTypes"),
    ("grading_system", "gradingSystem"),
    ("cron_schedule", "cronSchedule"),
)


def metric_from_node(node: Mapping[str, Any]) -> Metric:
    """Map a remote metric definition onto :class:`Metric`."""
    record = {
        "id": extract(node, "id"),
        "name": node.get("name") or "",
        "type": node.get("type") or "",
        "description": node.get("description") or "",
        "unit": (node.get("format") or {}).get("suffix") or "",
        "componentType": node.get("componentTypes") or [],
        "grading-system": node.get("gradingSystem"),
        "cronSchedule": node.get("cronSchedule"),
        "facts": [
            {k: v for k, v in fact.items() if v is not None}
            for fact in node.get("facts") or []
            if isinstance(fact, Mapping)
        ],
    }
    return parse_node(Metric, record, "metric")


def _fact_input(fact: Any) -> Dict[str, Any]:
    return fact.model_dump(by_alias=True, exclude_none=True)


def check_cron_schedule(raw: Mapping[str, Any]) -> List[FieldViolation]:
    value = raw.get("cronSchedule")
    if isinstance(value, str) and value and not CRON_RE.match(value):
        return [FieldViolation("spec.cronSchedule", "Invalid cron schedule format")]
    return []


def check_fact_dependencies(raw: Mapping[str, Any]) -> List[FieldViolation]:
    """Every ``dependsOn`` entry must name another fact of the same metric."""
    facts = raw.get("facts")
    if not isinstance(facts, list):
        return []
    known = {f.get("id") for f in facts if isinstance(f, Mapping)}
    violations: List[FieldViolation] = []
    for i, fact in enumerate(facts):
        if not isinstance(fact, Mapping):
            continue
        depends = fact.get("dependsOn")
        if not isinstance(depends, list):
            continue
        for j, dep in enumerate(depends):
            path = f"spec.facts[{i}].dependsOn[{j}]"
            if dep == fact.get("id"):
                violations.append(FieldViolation(path, "a fact cannot depend on itself"))
            elif dep not in known:
                violations.append(FieldViolation(path, f"unknown fact '{dep}'"))
    return violations


class MetricOperations(GraphQLKind):
    """Remote strategy for metric definitions (no point lookup)."""

    kind = ResourceKind.METRIC

    async def fetch_all(self) -> List[Resource]:
        nodes = await self.remote.collect_pages(
            SEARCH_METRICS,
            {"cloudId": self.remote.cloud_id},
            ("compass", "metricDefinitions"),
        )
        return [metric_from_node(n) for n in nodes]

    async def create(
        self, spec: Any, children: Dict[str, List[Any]], refs: References
    ) -> Resource:
        desired: MetricSpec = spec
        metric_input = compact(
            {
                "cloudId": self.remote.cloud_id,
                "name": desired.name,
                "description": desired.description or "",
                "format": {"suffix": {"suffix": desired.unit or ""}},
                "componentTypes": desired.component_types,
                "gradingSystem": desired.grading_system,
                "cronSchedule": desired.cron_schedule,
                "facts": [_fact_input(f) for f in children.get("facts", [])],
            }
        )
        payload = await self._mutation(
            CREATE_METRIC,
            {"input": metric_input},
            "createMetricDefinition",
            "create metric definition",
        )
        return metric_from_node(extract(payload, "createdMetricDefinition"))

    async def update(
        self,
        current: Resource,
        changes: Dict[str, Any],
        child_diffs: Dict[str, CollectionDiff[Any]],
        refs: References,
    ) -> None:
        metric_input: Dict[str, Any] = {"id": current.id, "cloudId": self.remote.cloud_id}
        for attr, key in SCALAR_INPUTS:
            if attr in changes:
                metric_input[key] = changes[attr]
        if "unit" in changes:
            metric_input["format"] = {"suffix": {"suffix": changes["unit"]}}
        facts = child_diffs.get("facts")
        if facts is not None:
            metric_input["createFacts"] = [_fact_input(f) for f in facts.create]
            metric_input["updateFacts"] = [_fact_input(f) for f in facts.update]
            metric_input["deleteFacts"] = [{"id": key} for key in facts.delete]
        await self._mutation(
            UPDATE_METRIC,
            {"input": metric_input},
            "updateMetricDefinition",
            "update metric definition",
        )

    async def delete(self, current: Resource) -> None:
        await self._mutation(
            DELETE_METRIC,
            {"input": {"id": current.id}},
            "deleteMetricDefinition",
            "delete metric definition",
            referential_fallback=True,
        )

    async def find_dependents(self, current: Resource, cache: ReadCache) -> List[Dependent]:
        dependents: List[Dependent] = []
        for scorecard in await cache.get_all(ResourceKind.SCORECARD):
            if not isinstance(scorecard, Scorecard):
                continue
            if any(
                c.metric_definition_id == current.id
                or (not c.metric_definition_id and c.name == current.name)
                for c in scorecard.criteria
            ):
                dependents.append(
                    Dependent(
                        type=ResourceKind.SCORECARD.value,
                        id=scorecard.id,
                        name=scorecard.name,
                    )
                )
        return dependents


def metric_descriptor(remote: RemoteCatalog) -> KindDescriptor:
    return KindDescriptor(
        kind=ResourceKind.METRIC,
        spec_model=MetricSpec,
        operations=MetricOperations(remote),
        required=("name", "format"),
        enums=(
            EnumConstraint("grading-system", allowed_values(GradingSystem)),
            EnumConstraint("componentType[]", allowed_values(ComponentTypeId)),
        ),
        checks=(check_cron_schedule, check_fact_dependencies),
        scalars=(
            ScalarField("name", "metadata.name"),
            ScalarField("description", "spec.description"),
            ScalarField("unit", "spec.format.unit", spec_field="format"),
            ScalarField("grading_system", "spec.grading-system"),
            ScalarField("cron_schedule", "spec.cronSchedule"),
        ),
        collections=(
            CollectionField(
                "facts",
                "spec.facts",
                mode=ChangeMode.COUNT,
                label="facts",
                key=lambda fact: fact.id,
                key_suffix=".id",
                compare_exclude=frozenset(),
            ),
            CollectionField("component_types", "spec.componentType"),
        ),
        invalidates=(ResourceKind.SCORECARD,),
    )
