"""GraphQL adapter tests with mocked HTTP.

These tests validate that the GraphQLCatalogAdapter serializes requests and
maps responses and transport failures without requiring a live catalog.
"""

from __future__ import annotations

from typing import Any, Dict, List

import httpx
import pytest

from catalog_sync.adapters.graphql import GraphQLCatalogAdapter
from catalog_sync.errors import RemoteTimeout, RemoteUnavailable

DOCUMENT = "query searchScorecards($cloudId: ID!) { compass { scorecards { nodes { id } } } }"
URL = "https://catalog.example/gateway/api/graphql"


def _response(status: int = 200, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("POST", URL), **kwargs)


class _MockClient:
    """Tiny mock of httpx.AsyncClient replaying queued outcomes."""

    def __init__(self, outcomes: List[Any]) -> None:
        self._outcomes = list(outcomes)
        self.posts: List[Dict[str, Any]] = []

    async def post(self, path: str, json: Dict[str, Any]) -> httpx.Response:
        self.posts.append({"path": path, "json": json})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        """No-op async close for API parity with httpx.AsyncClient."""
        return None


def _adapter(outcomes: List[Any], **kwargs: Any):
    adapter = GraphQLCatalogAdapter(
        "https://catalog.example", "dXNlcjp0b2tlbg==", backoff_initial_ms=0, **kwargs
    )
    mock = _MockClient(outcomes)
    adapter.inject_http_client_for_testing(mock)
    return adapter, mock


def test_headers_carry_basic_credentials():
    headers = GraphQLCatalogAdapter._headers("abc")

    assert headers["Authorization"] == "Basic abc"
    assert "Authorization" not in GraphQLCatalogAdapter._headers(None)


@pytest.mark.asyncio
async def test_query_posts_document_and_returns_data():
    data = {"compass": {"scorecards": {"nodes": []}}}
    adapter, mock = _adapter([_response(json={"data": data})])

    result = await adapter.query(DOCUMENT, {"cloudId": "c-1"})

    assert result == data
    assert mock.posts == [
        {
            "path": "/gateway/api/graphql",
            "json": {"query": DOCUMENT, "variables": {"cloudId": "c-1"}},
        }
    ]


@pytest.mark.asyncio
async def test_custom_graphql_path():
    adapter, mock = _adapter([_response(json={"data": {}})], graphql_path="/graphql")

    await adapter.mutate(DOCUMENT)

    assert mock.posts[0]["path"] == "/graphql"
    assert mock.posts[0]["json"]["variables"] == {}


@pytest.mark.asyncio
async def test_http_status_error_is_unavailable():
    adapter, _ = _adapter([_response(503, text="maintenance")])

    with pytest.raises(RemoteUnavailable) as exc:
        await adapter.query(DOCUMENT)

    assert "HTTP 503" in str(exc.value)
    assert "searchScorecards" in str(exc.value)


@pytest.mark.asyncio
async def test_read_timeouts_are_retried_then_reported():
    adapter, mock = _adapter(
        [httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow")], max_retries=1
    )

    with pytest.raises(RemoteTimeout):
        await adapter.query(DOCUMENT)

    assert len(mock.posts) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "timeout_exc",
    [
        httpx.ConnectTimeout("slow connect"),
        httpx.WriteTimeout("slow write"),
        httpx.PoolTimeout("pool"),
    ],
)
async def test_other_timeouts_are_retried(timeout_exc):
    adapter, mock = _adapter(
        [timeout_exc, _response(json={"data": {"ok": True}})], max_retries=1
    )

    assert await adapter.query(DOCUMENT) == {"ok": True}
    assert len(mock.posts) == 2


@pytest.mark.asyncio
async def test_exhausted_connect_timeouts_are_reported_as_timeout():
    adapter, mock = _adapter(
        [httpx.ConnectTimeout("slow connect"), httpx.ConnectTimeout("slow connect")],
        max_retries=1,
    )

    with pytest.raises(RemoteTimeout) as exc:
        await adapter.query(DOCUMENT)

    assert exc.value.kind == "remote_timeout"
    assert len(mock.posts) == 2


@pytest.mark.asyncio
async def test_connect_error_then_success():
    adapter, mock = _adapter(
        [httpx.ConnectError("refused"), _response(json={"data": {"ok": True}})],
        max_retries=2,
    )

    assert await adapter.query(DOCUMENT) == {"ok": True}
    assert len(mock.posts) == 2


@pytest.mark.asyncio
async def test_exhausted_connect_errors_are_unavailable():
    adapter, _ = _adapter([httpx.ConnectError("refused")], max_retries=0)

    with pytest.raises(RemoteUnavailable) as exc:
        await adapter.query(DOCUMENT)

    assert not isinstance(exc.value, RemoteTimeout)


@pytest.mark.asyncio
async def test_top_level_errors_without_data():
    body = {"errors": [{"message": "Cannot query field 'scorecardz'"}]}
    adapter, _ = _adapter([_response(json=body)])

    with pytest.raises(RemoteUnavailable) as exc:
        await adapter.query(DOCUMENT)

    assert "Cannot query field 'scorecardz'" in str(exc.value)


@pytest.mark.asyncio
async def test_errors_alongside_data_are_tolerated():
    body = {"data": {"compass": {}}, "errors": [{"message": "partial"}]}
    adapter, _ = _adapter([_response(json=body)])

    assert await adapter.query(DOCUMENT) == {"compass": {}}


@pytest.mark.asyncio
async def test_invalid_json_is_unavailable():
    adapter, _ = _adapter([_response(content=b"<html>oops</html>")])

    with pytest.raises(RemoteUnavailable) as exc:
        await adapter.query(DOCUMENT)

    assert "invalid JSON" in str(exc.value)
