"""Pytest configuration for test suite.

Ensures the project root is on ``sys.path`` so imports like
``import catalog_sync`` resolve correctly regardless of the working directory
pytest chooses, and provides an in-memory catalog that answers the GraphQL
operations the resource kinds send.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _ensure_project_root_on_syspath() -> None:
    project_root = Path(__file__).resolve().parents[1]
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        # Prepend to prefer local sources over site-packages
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_syspath()

from catalog_sync.adapters import reset_clients  # noqa: E402
from catalog_sync.reconcile.engine import CatalogEngine  # noqa: E402
from catalog_sync.reconcile.remote import operation_name  # noqa: E402

TIMESTAMP = "2026-01-01T00:00:00Z"


class FakeCatalogClient:
    """In-memory catalog speaking the operations of the built-in kinds.

    Records every call as ``(operation, variables)``. Failures can be queued
    per operation: ``fail_next`` makes the next mutation report
    ``success: false``; ``raise_on`` raises from the transport; ``delay``
    slows an operation down to exercise timeouts.
    """

    def __init__(self) -> None:
        self.components: Dict[str, Dict[str, Any]] = {}
        self.metrics: Dict[str, Dict[str, Any]] = {}
        self.scorecards: Dict[str, Dict[str, Any]] = {}
        self.relationships: List[Dict[str, str]] = []
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[str, List[List[Dict[str, Any]]]] = {}
        self._raises: Dict[str, BaseException] = {}
        self._delays: Dict[str, float] = {}
        self._seq = itertools.count(1)
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True

    # -- test hooks -------------------------------------------------------

    def fail_next(
        self,
        operation: str,
        message: str = "rejected by catalog",
        *,
        error_type: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        extensions: Dict[str, Any] = {}
        if error_type is not None:
            extensions["errorType"] = error_type
        if status_code is not None:
            extensions["statusCode"] = status_code
        error: Dict[str, Any] = {"message": message}
        if extensions:
            error["extensions"] = extensions
        self._failures.setdefault(operation, []).append([error])

    def raise_on(self, operation: str, exc: BaseException) -> None:
        self._raises[operation] = exc

    def delay(self, operation: str, seconds: float) -> None:
        self._delays[operation] = seconds

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [variables for op, variables in self.calls if op == operation]

    def operations(self) -> List[str]:
        return [op for op, _ in self.calls]

    # -- seeding ----------------------------------------------------------

    def add_component(self, name: str, type_id: str = "SERVICE", **fields: Any) -> str:
        component_id = self._new_id("component")
        self.components[component_id] = {
            "id": component_id,
            "name": name,
            "description": fields.get("description", ""),
            "typeId": type_id,
            "labels": list(fields.get("labels", [])),
            "links": list(fields.get("links", [])),
            "customFields": dict(fields.get("custom", {})),
            "createdAt": TIMESTAMP,
            "updatedAt": TIMESTAMP,
        }
        return component_id

    def add_relationship(self, source_id: str, target_id: str) -> None:
        self.relationships.append(
            {"sourceId": source_id, "targetId": target_id, "type": "DEPENDS_ON"}
        )

    def add_metric(self, name: str, **fields: Any) -> str:
        metric_id = self._new_id("metric")
        self.metrics[metric_id] = {
            "id": metric_id,
            "name": name,
            "type": "USER_DEFINED",
            "description": fields.get("description", ""),
            "format": {"suffix": fields.get("unit", "")},
            "componentTypes": list(fields.get("component_types", [])),
            "gradingSystem": fields.get("grading_system"),
            "cronSchedule": fields.get("cron_schedule"),
            "facts": list(fields.get("facts", [])),
        }
        return metric_id

    def add_scorecard(self, name: str, criteria: List[Tuple[str, str]], **fields: Any) -> str:
        scorecard_id = self._new_id("scorecard")
        self.scorecards[scorecard_id] = {
            "id": scorecard_id,
            "name": name,
            "description": fields.get("description", ""),
            "state": fields.get("state", "PUBLISHED"),
            "importance": fields.get("importance", "REQUIRED"),
            "scoringStrategyType": "WEIGHT_BASED",
            "componentTypeIds": list(fields.get("component_type_ids", ["SERVICE"])),
            "type": "CUSTOM",
            "verified": True,
            "owner": None,
            "criterias": [
                {
                    "id": self._new_id("criterion"),
                    "name": criterion_name,
                    "weight": 1.0,
                    "metricDefinitionId": metric_id,
                    "comparator": "GREATER_THAN_OR_EQUALS",
                    "comparatorValue": 1.0,
                }
                for criterion_name, metric_id in criteria
            ],
        }
        return scorecard_id

    # -- transport --------------------------------------------------------

    async def query(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self._dispatch(document, variables or {})

    async def mutate(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self._dispatch(document, variables or {})

    async def _dispatch(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        op = operation_name(document)
        self.calls.append((op, copy.deepcopy(variables)))
        if op in self._delays:
            await asyncio.sleep(self._delays[op])
        if op in self._raises:
            raise self._raises[op]
        queued = self._failures.get(op)
        if queued:
            errors = queued.pop(0)
            return {"compass": {op: {"success": False, "errors": errors}}}
        handler = getattr(self, f"_op_{op}", None)
        if handler is None:
            raise AssertionError(f"unexpected operation {op!r}")
        return copy.deepcopy(handler(variables))

    # -- helpers ----------------------------------------------------------

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._seq)}"

    @staticmethod
    def _ok(op: str, **fields: Any) -> Dict[str, Any]:
        return {"compass": {op: {"success": True, "errors": [], **fields}}}

    @staticmethod
    def _page(items: List[Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        first = variables.get("first") or max(len(items), 1)
        start = int(variables.get("after") or 0)
        chunk = items[start : start + first]
        end = start + len(chunk)
        return {
            "nodes": chunk,
            "pageInfo": {
                "hasNextPage": end < len(items),
                "endCursor": str(end) if chunk else None,
            },
        }

    def _component_node(self, record: Dict[str, Any]) -> Dict[str, Any]:
        outbound = [
            {
                "type": rel["type"],
                "sourceId": rel["sourceId"],
                "targetId": rel["targetId"],
                "target": {
                    "id": rel["targetId"],
                    "name": self.components.get(rel["targetId"], {}).get("name"),
                },
            }
            for rel in self.relationships
            if rel["sourceId"] == record["id"]
        ]
        return {
            "id": record["id"],
            "name": record["name"],
            "description": record["description"],
            "labels": record["labels"],
            "createdAt": record["createdAt"],
            "updatedAt": record["updatedAt"],
            "type": {"id": record["typeId"], "name": record["typeId"].title()},
            "links": record["links"],
            "customFields": [
                {"key": k, "value": v} for k, v in record["customFields"].items()
            ],
            "relationships": {"nodes": outbound},
        }

    @staticmethod
    def _criterion(body: Dict[str, Any], criterion_id: str) -> Dict[str, Any]:
        return {
            "id": criterion_id,
            "name": body["name"],
            "weight": float(body.get("weight", 1)),
            "metricDefinitionId": body.get("metricDefinitionId"),
            "comparator": body.get("comparator"),
            "comparatorValue": float(body["comparatorValue"]),
        }

    # -- components -------------------------------------------------------

    def _op_searchComponents(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        nodes = [{"component": self._component_node(r)} for r in self.components.values()]
        return {"compass": {"searchComponents": self._page(nodes, variables)}}

    def _op_getComponent(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        record = self.components.get(variables["id"])
        return {"compass": {"component": self._component_node(record) if record else None}}

    def _op_componentDependents(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        target_id = variables["id"]
        if target_id not in self.components:
            return {"compass": {"component": None}}
        inbound = [
            {
                "type": rel["type"],
                "sourceId": rel["sourceId"],
                "targetId": rel["targetId"],
                "source": {
                    "id": rel["sourceId"],
                    "name": self.components.get(rel["sourceId"], {}).get("name"),
                },
            }
            for rel in self.relationships
            if rel["targetId"] == target_id
        ]
        return {
            "compass": {
                "component": {"id": target_id, "inboundRelationships": {"nodes": inbound}}
            }
        }

    def _op_createComponent(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        data = variables["input"]
        component_id = self.add_component(
            data["name"],
            data["typeId"],
            description=data.get("description", ""),
            labels=data.get("labels", []),
            links=data.get("links", []),
            custom={f["key"]: f["value"] for f in data.get("customFields", [])},
        )
        node = self._component_node(self.components[component_id])
        return self._ok("createComponent", component=node)

    def _op_updateComponent(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        data = variables["input"]
        record = self.components[data["id"]]
        for key in ("name", "description", "typeId", "labels", "links"):
            if key in data:
                record[key] = data[key]
        for field in data.get("customFields", []):
            record["customFields"][field["key"]] = field["value"]
        record["updatedAt"] = "2026-01-02T00:00:00Z"
        return self._ok("updateComponent")

    def _op_deleteComponent(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        component_id = variables["input"]["id"]
        self.components.pop(component_id)
        self.relationships = [
            r
            for r in self.relationships
            if component_id not in (r["sourceId"], r["targetId"])
        ]
        return self._ok("deleteComponent", deletedComponentId=component_id)

    def _op_createRelationship(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        self.relationships.append(dict(variables["input"]))
        return self._ok("createRelationship")

    def _op_deleteRelationship(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        edge = variables["input"]
        self.relationships = [r for r in self.relationships if r != edge]
        return self._ok("deleteRelationship")

    # -- metrics ----------------------------------------------------------

    def _op_searchMetricDefinitions(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        nodes = list(self.metrics.values())
        return {"compass": {"metricDefinitions": self._page(nodes, variables)}}

    def _op_createMetricDefinition(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        data = variables["input"]
        metric_id = self.add_metric(
            data["name"],
            description=data.get("description", ""),
            unit=data["format"]["suffix"]["suffix"],
            component_types=data.get("componentTypes", []),
            grading_system=data.get("gradingSystem"),
            cron_schedule=data.get("cronSchedule"),
            facts=data.get("facts", []),
        )
        return self._ok(
            "createMetricDefinition", createdMetricDefinition=self.metrics[metric_id]
        )

    def _op_updateMetricDefinition(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        data = variables["input"]
        record = self.metrics[data["id"]]
        for key in ("name", "description", "componentTypes", "gradingSystem", "cronSchedule"):
            if key in data:
                record[key] = data[key]
        if "format" in data:
            record["format"] = {"suffix": data["format"]["suffix"]["suffix"]}
        facts = {f["id"]: f for f in record["facts"]}
        for fact in data.get("updateFacts", []):
            facts[fact["id"]] = fact
        for fact in data.get("deleteFacts", []):
            facts.pop(fact["id"], None)
        for fact in data.get("createFacts", []):
            facts[fact["id"]] = fact
        record["facts"] = list(facts.values())
        return self._ok("updateMetricDefinition")

    def _op_deleteMetricDefinition(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        metric_id = variables["input"]["id"]
        self.metrics.pop(metric_id)
        return self._ok("deleteMetricDefinition", deletedMetricDefinitionId=metric_id)

    # -- scorecards -------------------------------------------------------

    def _op_searchScorecards(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        nodes = list(self.scorecards.values())
        return {"compass": {"scorecards": self._page(nodes, variables)}}

    def _op_createScorecard(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        data = variables["input"]
        scorecard_id = self._new_id("scorecard")
        owner_id = data.get("ownerId")
        self.scorecards[scorecard_id] = {
            "id": scorecard_id,
            "name": data["name"],
            "description": data.get("description", ""),
            "state": data.get("state"),
            "importance": data.get("importance"),
            "scoringStrategyType": data.get("scoringStrategyType"),
            "componentTypeIds": list(data.get("componentTypeIds", [])),
            "type": "CUSTOM",
            "verified": True,
            "owner": {"id": owner_id, "name": "Owner"} if owner_id else None,
            "criterias": [
                self._criterion(c["hasMetricValue"], self._new_id("criterion"))
                for c in data.get("criterias", [])
            ],
        }
        return self._ok("createScorecard", scorecardDetails=self.scorecards[scorecard_id])

    def _op_updateScorecard(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        data = variables["input"]
        record = self.scorecards[variables["scorecardId"]]
        for key in (
            "name",
            "description",
            "state",
            "importance",
            "scoringStrategyType",
            "componentTypeIds",
        ):
            if key in data:
                record[key] = data[key]
        if "ownerId" in data:
            record["owner"] = {"id": data["ownerId"], "name": "Owner"}
        criteria = {c["id"]: c for c in record["criterias"]}
        for item in data.get("updateCriteria", []):
            body = item["hasMetricValue"]
            criteria[body["id"]] = self._criterion(body, body["id"])
        for item in data.get("deleteCriteria", []):
            criteria.pop(item["id"], None)
        for item in data.get("createCriteria", []):
            new_id = self._new_id("criterion")
            criteria[new_id] = self._criterion(item["hasMetricValue"], new_id)
        record["criterias"] = list(criteria.values())
        return self._ok("updateScorecard")

    def _op_deleteScorecard(self, variables: Dict[str, Any]) -> Dict[str, Any]:
        scorecard_id = variables["scorecardId"]
        self.scorecards.pop(scorecard_id)
        return self._ok("deleteScorecard", scorecardId=scorecard_id)


@pytest.fixture(autouse=True)
def reset_client_registry():
    """Reset the client registry before each test to avoid cross-test contamination."""
    reset_clients()
    yield
    reset_clients()


@pytest.fixture
def fake_catalog() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def engine(fake_catalog: FakeCatalogClient) -> CatalogEngine:
    """Engine bound to the in-memory catalog; small pages exercise pagination."""
    return CatalogEngine(
        fake_catalog, cloud_id="cloud-1", timeout_seconds=1.0, page_size=2
    )
