"""Component kind: catalog components and their DEPENDS_ON edges."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..domain.models import (
    DEPENDS_ON,
    Component,
    ComponentTypeId,
    DependencyEdge,
    Resource,
    ResourceKind,
    allowed_values,
)
from ..domain.specs import ComponentSpec
from ..errors import Dependent
from ..reconcile.cache import ReadCache
from ..reconcile.descriptors import (
    CollectionField,
    EnumConstraint,
    KindDescriptor,
    References,
    ScalarField,
)
from ..reconcile.differ import CollectionDiff
from ..reconcile.remote import RemoteCatalog, extract
from ..utils.partial_results import PartialResult, run_partial
from .base import MUTATION_ERRORS, PAGE_INFO, GraphQLKind, parse_node

logger = logging.getLogger(__name__)

COMPONENT_FIELDS = """
  id
  name
  description
  labels
  createdAt
  updatedAt
  type { id name }
  links { name type url }
  customFields { key value }
  relationships { nodes { type sourceId targetId target { id name } } }
"""

SEARCH_COMPONENTS = f"""
query searchComponents($cloudId: String!, $first: Int, $after: String) {{
  compass {{
    searchComponents(cloudId: $cloudId, query: {{first: $first, after: $after}}) {{
      ... on CompassSearchComponentConnection {{
        nodes {{ component {{ {COMPONENT_FIELDS} }} }}
        {PAGE_INFO}
      }}
    }}
  }}
}}
"""

GET_COMPONENT = f"""
query getComponent($id: ID!) {{
  compass {{
    component(id: $id) {{
      ... on CompassComponent {{ {COMPONENT_FIELDS} }}
    }}
  }}
}}
"""

COMPONENT_DEPENDENTS = """
query componentDependents($id: ID!) {
  compass {
    component(id: $id) {
      ... on CompassComponent {
        id
        inboundRelationships: relationships(direction: INWARD) {
          nodes { type sourceId targetId source { id name } }
        }
      }
    }
  }
}
"""

CREATE_COMPONENT = f"""
mutation createComponent($cloudId: ID!, $input: CreateCompassComponentInput!) {{
  compass {{
    createComponent(cloudId: $cloudId, input: $input) {{
      success
      component {{ {COMPONENT_FIELDS} }}
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

UPDATE_COMPONENT = f"""
mutation updateComponent($input: UpdateCompassComponentInput!) {{
  compass {{
    updateComponent(input: $input) {{
      success
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

DELETE_COMPONENT = f"""
mutation deleteComponent($input: DeleteCompassComponentInput!) {{
  compass {{
    deleteComponent(input: $input) {{
      success
      deletedComponentId
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

CREATE_RELATIONSHIP = f"""
mutation createRelationship($input: CreateCompassRelationshipInput!) {{
  compass {{
    createRelationship(input: $input) {{
      success
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

DELETE_RELATIONSHIP = f"""
mutation deleteRelationship($input: DeleteCompassRelationshipInput!) {{
  compass {{
    deleteRelationship(input: $input) {{
      success
      {MUTATION_ERRORS}
    }}
  }}
}}
"""

CUSTOM_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("tribe", "tribe"),
    ("squad", "squad"),
    ("component_type", "componentType"),
)
DIRECT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("name", "name"),
    ("description", "description"),
    ("type_id", "typeId"),
    ("labels", "labels"),
)


def component_from_node(node: Mapping[str, Any]) -> Component:
    """Map a remote component record onto :class:`Component`."""
    component_id = extract(node, "id")
    custom = {
        f.get("key"): f.get("value")
        for f in node.get("customFields") or []
        if isinstance(f, Mapping)
    }
    edges: List[Dict[str, Any]] = []
    for rel in (node.get("relationships") or {}).get("nodes") or []:
        if not isinstance(rel, Mapping):
            continue
        if rel.get("type") != DEPENDS_ON or rel.get("sourceId") != component_id:
            continue
        edges.append(
            {
                "sourceId": rel.get("sourceId"),
                "targetId": rel.get("targetId"),
                "type": DEPENDS_ON,
                "targetName": (rel.get("target") or {}).get("name"),
            }
        )
    record = {
        "id": component_id,
        "name": node.get("name") or "",
        "typeId": (node.get("type") or {}).get("id") or "",
        "componentType": custom.get("componentType") or "",
        "description": node.get("description") or "",
        "tribe": custom.get("tribe") or "",
        "squad": custom.get("squad") or "",
        "links": node.get("links") or [],
        "labels": node.get("labels") or [],
        "dependsOn": [e["targetName"] for e in edges if e["targetName"]],
        "relationships": edges,
        "createdAt": node.get("createdAt"),
        "updatedAt": node.get("updatedAt"),
    }
    return parse_node(Component, record, "component")


class ComponentOperations(GraphQLKind):
    """Remote strategy for components."""

    kind = ResourceKind.COMPONENT
    supports_point_lookup = True

    async def fetch_all(self) -> List[Resource]:
        nodes = await self.remote.collect_pages(
            SEARCH_COMPONENTS,
            {"cloudId": self.remote.cloud_id},
            ("compass", "searchComponents"),
        )
        return [
            component_from_node(n["component"])
            for n in nodes
            if isinstance(n.get("component"), Mapping)
        ]

    async def fetch_one(self, resource_id: str) -> Optional[Resource]:
        data = await self.remote.query(GET_COMPONENT, {"id": resource_id})
        node = extract(data, "compass").get("component")
        if not isinstance(node, Mapping) or not node.get("id"):
            return None
        return component_from_node(node)

    async def create(
        self, spec: Any, children: Dict[str, List[Any]], refs: References
    ) -> Resource:
        desired: ComponentSpec = spec
        component_input = {
            "name": desired.name,
            "description": desired.description or "",
            "typeId": desired.type_id,
            "links": [link.model_dump() for link in children.get("links", [])],
            "labels": list(children.get("labels", [])),
            "customFields": [
                {"key": key, "value": getattr(desired, attr) or ""}
                for attr, key in CUSTOM_FIELDS
            ],
        }
        payload = await self._mutation(
            CREATE_COMPONENT,
            {"cloudId": self.remote.cloud_id, "input": component_input},
            "createComponent",
            "create component",
        )
        return component_from_node(extract(payload, "component"))

    async def update(
        self,
        current: Resource,
        changes: Dict[str, Any],
        child_diffs: Dict[str, CollectionDiff[Any]],
        refs: References,
    ) -> None:
        component_input: Dict[str, Any] = {"id": current.id}
        for attr, key in DIRECT_FIELDS:
            if attr in changes:
                component_input[key] = changes[attr]
        if "links" in changes:
            component_input["links"] = [link.model_dump() for link in changes["links"]]
        custom = [
            {"key": key, "value": changes[attr]}
            for attr, key in CUSTOM_FIELDS
            if attr in changes
        ]
        if custom:
            component_input["customFields"] = custom
        await self._mutation(
            UPDATE_COMPONENT,
            {"input": component_input},
            "updateComponent",
            "update component",
        )

    async def delete(self, current: Resource) -> None:
        await self._mutation(
            DELETE_COMPONENT,
            {"input": {"id": current.id}},
            "deleteComponent",
            "delete component",
            referential_fallback=True,
        )

    async def find_dependents(self, current: Resource, cache: ReadCache) -> List[Dependent]:
        data = await self.remote.query(COMPONENT_DEPENDENTS, {"id": current.id})
        node = extract(data, "compass").get("component")
        if not isinstance(node, Mapping):
            return []
        dependents: List[Dependent] = []
        for rel in (node.get("inboundRelationships") or {}).get("nodes") or []:
            if not isinstance(rel, Mapping):
                continue
            if rel.get("type") != DEPENDS_ON or rel.get("targetId") != current.id:
                continue
            source = rel.get("source") or {}
            dependents.append(
                Dependent(
                    type=ResourceKind.COMPONENT.value,
                    id=source.get("id") or rel.get("sourceId") or "",
                    name=source.get("name") or "",
                )
            )
        return dependents

    async def apply_relationships(
        self,
        current: Resource,
        collection: CollectionField,
        change: CollectionDiff[Any],
        refs: References,
    ) -> PartialResult:
        targets = refs.get(ResourceKind.COMPONENT, {})
        existing = {
            edge.target_name: edge
            for edge in getattr(current, "relationships", [])
            if edge.target_name
        }
        steps = []
        for name in change.create:
            edge = DependencyEdge(
                source_id=current.id, target_id=targets[name].id, target_name=name
            )
            steps.append((f"create:{name}", lambda e=edge: self._create_edge(e)))
        for name in change.delete:
            edge = existing.get(name)
            if edge is None:
                logger.warning(
                    "component.relationship.unknown_edge",
                    extra={"component": current.id, "target": name},
                )
                continue
            steps.append((f"delete:{name}", lambda e=edge: self._delete_edge(e)))
        return await run_partial(steps, "relationships")

    async def _create_edge(self, edge: DependencyEdge) -> DependencyEdge:
        await self._mutation(
            CREATE_RELATIONSHIP,
            {"input": {"sourceId": edge.source_id, "targetId": edge.target_id, "type": edge.type}},
            "createRelationship",
            "create relationship",
        )
        return edge

    async def _delete_edge(self, edge: DependencyEdge) -> DependencyEdge:
        await self._mutation(
            DELETE_RELATIONSHIP,
            {"input": {"sourceId": edge.source_id, "targetId": edge.target_id, "type": edge.type}},
            "deleteRelationship",
            "delete relationship",
        )
        return edge


def _same(item: Any) -> Any:
    return item


def component_descriptor(remote: RemoteCatalog) -> KindDescriptor:
    return KindDescriptor(
        kind=ResourceKind.COMPONENT,
        spec_model=ComponentSpec,
        operations=ComponentOperations(remote),
        required=("name", "typeId"),
        enums=(EnumConstraint("typeId", allowed_values(ComponentTypeId)),),
        scalars=(
            ScalarField("name", "metadata.name"),
            ScalarField("type_id", "spec.typeId"),
            ScalarField("component_type", "spec.componentType"),
            ScalarField("description", "spec.description"),
            ScalarField("tribe", "spec.tribe"),
            ScalarField("squad", "spec.squad"),
        ),
        collections=(
            CollectionField("links", "spec.links"),
            CollectionField("labels", "spec.labels"),
            CollectionField(
                "depends_on",
                "spec.dependsOn",
                key=_same,
                reference=ResourceKind.COMPONENT,
                reference_name=_same,
                relationship=True,
            ),
        ),
        invalidates=(ResourceKind.COMPONENT,),
    )
