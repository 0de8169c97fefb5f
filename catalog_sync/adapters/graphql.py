"""GraphQL catalog client.

Posts GraphQL documents to the remote catalog's gateway endpoint over
``httpx`` and returns the ``data`` object. Connect and read timeouts are
retried with exponential backoff; everything else fails fast.

Notes
-----
- Mutation-level failures (``{success: false, errors: [...]}``) are part of
  ``data`` and are classified by the engine, not here.
- Top-level GraphQL ``errors`` without any ``data`` mean the request itself
  was not executed and surface as :class:`RemoteUnavailable`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..errors import RemoteTimeout, RemoteUnavailable
from ..utils.correlation import get_request_id
from ..reconcile.remote import operation_name

logger = logging.getLogger(__name__)

GRAPHQL_PATH = "/gateway/api/graphql"


class GraphQLCatalogAdapter:
    """HTTP client for a Compass-style GraphQL catalog.

    Parameters
    ----------
    endpoint: str
        Base URL of the catalog host (e.g., "https://example.atlassian.net").
    api_token: Optional[str]
        Pre-encoded Basic credentials sent in the Authorization header.
    timeout: float
        Request timeout in seconds for all HTTP operations.
    graphql_path: str
        Path of the GraphQL gateway relative to ``endpoint``.

    Attributes
    ----------
    _client: httpx.AsyncClient
        Shared async client configured with base URL, timeout, and headers.
    """

    def __init__(
        self,
        endpoint: str,
        api_token: Optional[str] = None,
        timeout: float = 30,
        *,
        graphql_path: str = GRAPHQL_PATH,
        max_retries: int = 1,
        backoff_initial_ms: int = 200,
        backoff_multiplier: float = 2.0,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=endpoint, timeout=timeout, headers=self._headers(api_token)
        )
        self._path = graphql_path
        self._max_retries = max(0, int(max_retries))
        self._backoff_initial_ms = max(0, int(backoff_initial_ms))
        self._backoff_multiplier = max(1.0, float(backoff_multiplier))
        self._timeout_seconds = timeout
        logger.info(
            "graphql.adapter.init",
            extra={"endpoint": endpoint, "timeout_seconds": timeout},
        )

    def inject_http_client_for_testing(self, client: Any) -> None:
        """Replace underlying HTTP client (testing only).

        This allows unit tests to provide a mock compatible with ``post()``.
        """
        self._client = client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def query(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self._execute(document, variables or {})

    async def mutate(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await self._execute(document, variables or {})

    def _delay(self, attempt: int) -> float:
        return (self._backoff_initial_ms / 1000.0) * (self._backoff_multiplier**attempt)

    async def _execute(self, document: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """POST a GraphQL document and return its ``data`` object.

        Raises
        ------
        RemoteTimeout
            When every attempt timed out.
        RemoteUnavailable
            On connection failures, non-2xx responses, invalid JSON, or a
            response carrying only top-level errors.
        """
        op = operation_name(document)
        payload = {"query": document, "variables": variables}
        logger.debug(
            "graphql.http.post",
            extra={
                "req_id": get_request_id(),
                "operation": op,
                "variable_keys": list(variables.keys()),
            },
        )
        attempt = 0
        last_exc: Optional[Exception] = None
        while attempt <= self._max_retries:
            try:
                resp = await self._client.post(self._path, json=payload)
                resp.raise_for_status()
                break
            except httpx.TimeoutException as exc:
                last_exc = exc
                logger.warning(
                    "graphql.http.timeout",
                    extra={
                        "operation": op,
                        "attempt": attempt + 1,
                        "max_retries": self._max_retries,
                        "timeout_seconds": self._timeout_seconds,
                    },
                )
                await asyncio.sleep(self._delay(attempt))
                attempt += 1
                continue
            except httpx.ConnectError as exc:
                last_exc = exc
                await asyncio.sleep(self._delay(attempt))
                attempt += 1
                continue
            except httpx.HTTPStatusError as exc:
                body_preview = exc.response.text[:500] if exc.response.text else ""
                logger.error(
                    "graphql.http.status_error",
                    extra={
                        "req_id": get_request_id(),
                        "operation": op,
                        "status": exc.response.status_code,
                        "body_preview": body_preview,
                    },
                )
                raise RemoteUnavailable(
                    f"Catalog returned HTTP {exc.response.status_code} for '{op}'"
                ) from exc
            except httpx.HTTPError as exc:
                raise RemoteUnavailable(f"Catalog request '{op}' failed: {exc}") from exc
        else:
            if isinstance(last_exc, httpx.TimeoutException):
                raise RemoteTimeout(
                    f"Catalog request '{op}' timed out after "
                    f"{self._max_retries + 1} attempt(s)"
                ) from last_exc
            raise RemoteUnavailable(
                f"Catalog unreachable for '{op}': {last_exc}"
            ) from last_exc

        try:
            body = resp.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"Catalog returned invalid JSON for '{op}'") from exc
        logger.debug(
            "graphql.http.response",
            extra={
                "req_id": get_request_id(),
                "operation": op,
                "status_code": resp.status_code,
            },
        )
        return self._unwrap(op, body)

    @staticmethod
    def _unwrap(op: str, body: Any) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise RemoteUnavailable(f"Catalog returned a non-object body for '{op}'")
        errors: List[Dict[str, Any]] = [
            e for e in body.get("errors") or [] if isinstance(e, dict)
        ]
        data = body.get("data")
        if not isinstance(data, dict):
            messages = "; ".join(str(e.get("message", "")) for e in errors)
            raise RemoteUnavailable(
                f"Catalog returned no data for '{op}'"
                + (f": {messages}" if messages else "")
            )
        if errors:
            logger.warning(
                "graphql.response.partial_errors",
                extra={"operation": op, "errors": [e.get("message") for e in errors]},
            )
        return data

    @staticmethod
    def _headers(api_token: Optional[str]) -> dict:
        """Build default headers.

        Parameters
        ----------
        api_token: Optional[str]
            Basic credentials to attach as an Authorization header.

        Returns
        -------
        dict
            A dictionary of HTTP headers suitable for JSON requests.
        """
        headers = {"Content-Type": "application/json"}
        if api_token:
            headers["Authorization"] = f"Basic {api_token}"
        return headers
