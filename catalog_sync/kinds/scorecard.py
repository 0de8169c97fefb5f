"""Scorecard kind: scorecards and their metric-value criteria."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from ..domain.models import (
    Comparator,
    ComponentTypeId,
    Criterion,
    Importance,
    Resource,
    ResourceKind,
    Scorecard,
    ScorecardState,
    ScoringStrategyType,
    allowed_values,
)
from ..domain.specs import CriterionSpec, ScorecardSpec
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
from .base import MUTATION_ERRORS, PAGE_INFO, GraphQLKind, compact, fmt_number, parse_node

SCORECARD_FIELDS = """
  id
  name
  description
  state
  importance
  scoringStrategyType
  componentTypeIds
  type
  verified
  owner { id name }
  criterias { id name weight metricDefinitionId comparator comparatorValue }
"""

SEARCH_SCORECARDS = f"""
query searchScorecards($cloudId: ID!, $first: Int, $after: String) {{
  compass {{
    scorecards(cloudId: $cloudId, query: {{first: $first, after: $after}}) {{
      ... on CompassScorecardConnection {{
        nodes {{ {SCORECARD_FIELDS} }}
        {PAGE_INFO}
      }}
    }}
  }}
}}
"""

CREATE_SCORECARD = f"""
mutation createScorecard($cloudId: ID!, $input: CreateCompassScorecardInput!) {{
  compass {{
    createScorecard(cloudId: $cloudId, input: $input) {{
      success
      scorecardDetails {{ {SCORECARD_FIELDS} }}
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

UPDATE_SCORECARD = f"""
mutation updateScorecard($scorecardId: ID!, $input: UpdateCompassScorecardInput!) {{
  compass {{
    updateScorecard(scorecardId: $scorecardId, input: $input) {{
      success
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

DELETE_SCORECARD = f"""
mutation deleteScorecard($scorecardId: ID!) {{
  compass {{
    deleteScorecard(scorecardId: $scorecardId) {{
      success
      scorecardId
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

SCALAR_INPUTS = (
    ("name", "name"),
    ("description", "description"),
    ("state", "state"),
    ("importance", "importance"),
    ("scoring_strategy_type", "scoringStrategyType"),
    ("owner_id", "ownerId"),
    ("component_type_ids", "componentTypeIds"),
)


def scorecard_from_node(node: Mapping[str, Any]) -> Scorecard:
    """Map a remote scorecard onto :class:`Scorecard`."""
    owner = node.get("owner") or {}
    verified = node.get("verified")
    record = {
        "id": extract(node, "id"),
        "name": node.get("name") or "",
        "description": node.get("description") or "",
        "state": node.get("state"),
        "importance": node.get("importance"),
        "scoringStrategyType": node.get("scoringStrategyType"),
        "componentTypeIds": node.get("componentTypeIds") or [],
        "ownerId": owner.get("id"),
        "ownerName": owner.get("name"),
        "type": node.get("type") or "",
        "verified": True if verified is None else bool(verified),
        "criteria": [
            {
                "id": c.get("id"),
                "name": c.get("name") or "",
                "metricDefinitionId": c.get("metricDefinitionId") or "",
                "weight": c.get("weight") if c.get("weight") is not None else 1.0,
                "comparator": c.get("comparator"),
                "comparatorValue": c.get("comparatorValue"),
            }
            for c in node.get("criterias") or []
            if isinstance(c, Mapping)
        ],
    }
    return parse_node(Scorecard, record, "scorecard")


def criterion_metric_name(item: CriterionSpec) -> str:
    value = item.has_metric_value
    return value.metric_name or value.name


def build_criterion(item: CriterionSpec, refs: References) -> Criterion:
    """Turn a desired criterion into resource shape, resolving its metric."""
    value = item.has_metric_value
    metric = refs.get(ResourceKind.METRIC, {}).get(criterion_metric_name(item))
    return Criterion(
        name=value.name,
        metric_definition_id=value.metric_definition_id or (metric.id if metric else ""),
        weight=value.weight,
        comparator=value.comparator,
        comparator_value=value.comparator_value,
    )


def _criterion_input(criterion: Criterion, *, with_id: bool = False) -> Dict[str, Any]:
    body = compact(
        {
            "id": criterion.id if with_id else None,
            "weight": fmt_number(criterion.weight),
            "name": criterion.name,
            "metricDefinitionId": criterion.metric_definition_id,
            "comparatorValue": fmt_number(criterion.comparator_value),
            "comparator": criterion.comparator,
        }
    )
    return {"hasMetricValue": body}


class ScorecardOperations(GraphQLKind):
    """Remote strategy for scorecards (no point lookup, no dependents)."""

    kind = ResourceKind.SCORECARD

    async def fetch_all(self) -> List[Resource]:
        nodes = await self.remote.collect_pages(
            SEARCH_SCORECARDS,
            {"cloudId": self.remote.cloud_id},
            ("compass", "scorecards"),
        )
        return [scorecard_from_node(n) for n in nodes]

    async def create(
        self, spec: Any, children: Dict[str, List[Any]], refs: References
    ) -> Resource:
        desired: ScorecardSpec = spec
        scorecard_input = compact(
            {
                "name": desired.name,
                "description": desired.description or "",
                "componentTypeIds": desired.component_type_ids,
                "state": desired.state,
                "importance": desired.importance,
                "scoringStrategyType": desired.scoring_strategy_type,
                "ownerId": desired.owner_id,
                "criterias": [_criterion_input(c) for c in children.get("criteria", [])],
            }
        )
        payload = await self._mutation(
            CREATE_SCORECARD,
            {"cloudId": self.remote.cloud_id, "input": scorecard_input},
            "createScorecard",
            "create scorecard",
        )
        return scorecard_from_node(extract(payload, "scorecardDetails"))

    async def update(
        self,
        current: Resource,
        changes: Dict[str, Any],
        child_diffs: Dict[str, CollectionDiff[Any]],
        refs: References,
    ) -> None:
        scorecard_input: Dict[str, Any] = {}
        for attr, key in SCALAR_INPUTS:
            if attr in changes:
                scorecard_input[key] = changes[attr]
        criteria = child_diffs.get("criteria")
        if criteria is not None:
            scorecard_input["createCriteria"] = [
                _criterion_input(c) for c in criteria.create
            ]
            scorecard_input["updateCriteria"] = [
                _criterion_input(c, with_id=True) for c in criteria.update
            ]
            scorecard_input["deleteCriteria"] = [
                {"id": c.id} for c in criteria.removed if c.id
            ]
        await self._mutation(
            UPDATE_SCORECARD,
            {"scorecardId": current.id, "input": scorecard_input},
            "updateScorecard",
            "update scorecard",
        )

    async def delete(self, current: Resource) -> None:
        await self._mutation(
            DELETE_SCORECARD,
            {"scorecardId": current.id},
            "deleteScorecard",
            "delete scorecard",
            referential_fallback=True,
        )


def scorecard_descriptor(remote: RemoteCatalog) -> KindDescriptor:
    return KindDescriptor(
        kind=ResourceKind.SCORECARD,
        spec_model=ScorecardSpec,
        operations=ScorecardOperations(remote),
        required=(
            "name",
            "componentTypeIds",
            "criteria",
            "importance",
            "scoringStrategyType",
            "state",
        ),
        enums=(
            EnumConstraint("state", allowed_values(ScorecardState)),
            EnumConstraint("importance", allowed_values(Importance)),
            EnumConstraint("scoringStrategyType", allowed_values(ScoringStrategyType)),
            EnumConstraint("componentTypeIds[]", allowed_values(ComponentTypeId)),
            EnumConstraint(
                "criteria[].hasMetricValue.comparator", allowed_values(Comparator)
            ),
        ),
        scalars=(
            ScalarField("name", "metadata.name"),
            ScalarField("description", "spec.description"),
            ScalarField("state", "spec.state"),
            ScalarField("importance", "spec.importance"),
            ScalarField("scoring_strategy_type", "spec.scoringStrategyType"),
            ScalarField("owner_id", "spec.ownerId"),
        ),
        collections=(
            CollectionField(
                "criteria",
                "spec.criteria",
                mode=ChangeMode.COUNT,
                label="criteria",
                key=lambda criterion: criterion.name,
                key_suffix=".hasMetricValue.name",
                build=build_criterion,
                reference=ResourceKind.METRIC,
                reference_name=criterion_metric_name,
                reference_suffix=".hasMetricValue.name",
            ),
            CollectionField("component_type_ids", "spec.componentTypeIds"),
        ),
    )
