"""Tests for the remote gateway: timeouts, malformed data, pagination and
mutation failure classification."""

from __future__ import annotations

import logging

import httpx
import pytest

from catalog_sync.errors import Conflict, RemoteRejected, RemoteTimeout, RemoteUnavailable
from catalog_sync.kinds.component import SEARCH_COMPONENTS
from catalog_sync.reconcile.remote import (
    RemoteCatalog,
    classify_failure,
    ensure_success,
    extract,
    operation_name,
)


def _failure(message: str, **extensions):
    error = {"message": message}
    if extensions:
        error["extensions"] = extensions
    return {"success": False, "errors": [error]}


def test_operation_name_is_parsed():
    assert operation_name("query searchScorecards($cloudId: ID!) { x }") == "searchScorecards"
    assert operation_name("mutation deleteScorecard { x }") == "deleteScorecard"
    assert operation_name("{ compass { x } }") == "anonymous"


def test_extract_reports_missing_branch():
    assert extract({"a": {"b": 1}}, "a", "b") == 1
    with pytest.raises(RemoteUnavailable) as exc:
        extract({"a": {"c": 1}}, "a", "b")
    assert "missing 'a.b'" in str(exc.value)


@pytest.mark.parametrize(
    "extensions",
    [{"errorType": "ALREADY_EXISTS"}, {"errorType": "resource_in_use"}, {"statusCode": 409}],
)
def test_structured_codes_classify_as_conflict(extensions):
    error = classify_failure("create scorecard", _failure("nope", **extensions))

    assert isinstance(error, Conflict)
    assert error.details["remote_message"] == "nope"


def test_text_fallback_only_on_delete_path():
    payload = _failure("Metric is still referenced by 2 scorecards")

    assert isinstance(
        classify_failure("delete metric", payload, referential_fallback=True), Conflict
    )
    assert isinstance(classify_failure("update metric", payload), RemoteRejected)


def test_structured_code_wins_over_text():
    payload = _failure("resource in use", errorType="BAD_REQUEST")

    error = classify_failure("delete component", payload, referential_fallback=True)

    assert isinstance(error, RemoteRejected)
    assert error.error_types == ["BAD_REQUEST"]
    assert error.remote_messages == ["resource in use"]


def test_failure_without_messages():
    error = classify_failure("update component", {"success": False})

    assert isinstance(error, RemoteRejected)
    assert str(error) == "Failed to update component: Unknown error during update component"


def test_ensure_success_passes_payload_through(caplog):
    payload = {"success": True, "errors": [{"message": "deprecated field"}]}

    with caplog.at_level(logging.WARNING):
        assert ensure_success("update component", payload) is payload

    assert any(r.message == "remote.mutation.success_with_errors" for r in caplog.records)


@pytest.mark.parametrize("payload", [{"unexpected": 1}, {"success": "yes"}, {"success": None}])
def test_ensure_success_without_flag_is_malformed(payload):
    with pytest.raises(RemoteUnavailable) as exc:
        ensure_success("update metric", payload)

    assert not isinstance(exc.value, RemoteRejected)
    assert exc.value.kind == "remote_unavailable"
    assert "update metric" in str(exc.value)


@pytest.mark.asyncio
async def test_slow_call_raises_remote_timeout(fake_catalog):
    fake_catalog.delay("searchComponents", 0.5)
    remote = RemoteCatalog(fake_catalog, timeout_seconds=0.05)

    with pytest.raises(RemoteTimeout) as exc:
        await remote.query(SEARCH_COMPONENTS, {"cloudId": "c"})

    assert isinstance(exc.value, RemoteUnavailable)
    assert exc.value.kind == "remote_timeout"


@pytest.mark.asyncio
async def test_transport_error_maps_to_unavailable(fake_catalog):
    fake_catalog.raise_on("searchComponents", httpx.ConnectError("refused"))
    remote = RemoteCatalog(fake_catalog)

    with pytest.raises(RemoteUnavailable) as exc:
        await remote.query(SEARCH_COMPONENTS, {})

    assert "searchComponents" in str(exc.value)


@pytest.mark.asyncio
async def test_non_object_result_is_malformed():
    class _ListClient:
        async def query(self, document, variables=None):
            return ["not", "an", "object"]

        async def mutate(self, document, variables=None):
            return None

    remote = RemoteCatalog(_ListClient())

    with pytest.raises(RemoteUnavailable):
        await remote.query(SEARCH_COMPONENTS, {})


@pytest.mark.asyncio
async def test_collect_pages_walks_every_page(fake_catalog):
    for i in range(5):
        fake_catalog.add_component(f"svc-{i}")
    remote = RemoteCatalog(fake_catalog, page_size=2)

    nodes = await remote.collect_pages(
        SEARCH_COMPONENTS, {"cloudId": "c"}, ("compass", "searchComponents")
    )

    assert [n["component"]["name"] for n in nodes] == [f"svc-{i}" for i in range(5)]
    cursors = [v["after"] for v in fake_catalog.calls_to("searchComponents")]
    assert cursors == [None, "2", "4"]


@pytest.mark.asyncio
async def test_collect_pages_stops_on_repeated_cursor():
    class _StuckClient:
        def __init__(self):
            self.calls = 0

        async def query(self, document, variables=None):
            self.calls += 1
            return {
                "compass": {
                    "searchComponents": {
                        "nodes": [{"component": {"id": "x"}}],
                        "pageInfo": {"hasNextPage": True, "endCursor": "same"},
                    }
                }
            }

        async def mutate(self, document, variables=None):
            raise AssertionError("unused")

    client = _StuckClient()
    remote = RemoteCatalog(client)

    nodes = await remote.collect_pages(SEARCH_COMPONENTS, {}, ("compass", "searchComponents"))

    assert client.calls == 2
    assert len(nodes) == 2


@pytest.mark.asyncio
async def test_collect_pages_requires_nodes():
    class _NoNodes:
        async def query(self, document, variables=None):
            return {"compass": {"searchComponents": {"pageInfo": {}}}}

        async def mutate(self, document, variables=None):
            raise AssertionError("unused")

    with pytest.raises(RemoteUnavailable):
        await RemoteCatalog(_NoNodes()).collect_pages(
            SEARCH_COMPONENTS, {}, ("compass", "searchComponents")
        )
