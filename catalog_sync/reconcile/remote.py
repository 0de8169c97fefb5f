"""Gateway between the engine and a :class:`CatalogClient`.

Responsibilities:

- bound every remote call with an explicit timeout and surface expiry as
  :class:`RemoteTimeout`;
- turn transport failures and malformed responses into
  :class:`RemoteUnavailable`;
- walk cursor-paginated collection reads;
- classify failed mutation payloads into :class:`RemoteRejected` or
  :class:`Conflict`.

Failure classification prefers structured error codes reported by the
catalog (``extensions.errorType`` / ``extensions.statusCode``). Only on the
delete path, and only when no structured code is present, the error text is
matched against a small list of referential-integrity phrases. That fallback
is best-effort and may misclassify unusual messages.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from ..adapters import CatalogClient
from ..errors import CatalogError, Conflict, RemoteRejected, RemoteTimeout, RemoteUnavailable
from ..utils.correlation import get_request_id

logger = logging.getLogger(__name__)

CONFLICT_ERROR_TYPES = frozenset(
    {
        "ALREADY_EXISTS",
        "CONFLICT",
        "REFERENTIAL_INTEGRITY_VIOLATION",
        "RESOURCE_IN_USE",
    }
)
IN_USE_MARKERS = (
    "in use",
    "referenced by",
    "still referenced",
    "foreign key constraint",
)
MAX_PAGES = 1000

_OPERATION_RE = re.compile(r"(?:query|mutation)\s+([A-Za-z0-9_]+)")


def operation_name(document: str) -> str:
    """Return the GraphQL operation name of ``document`` or ``"anonymous"``."""
    match = _OPERATION_RE.search(document)
    return match.group(1) if match else "anonymous"


def extract(data: Any, *path: str) -> Any:
    """Walk ``path`` through nested mappings.

    Raises
    ------
    RemoteUnavailable
        If any step is missing or not a mapping; a missing branch means the
        catalog answered with a shape the engine cannot interpret.
    """
    node = data
    walked: List[str] = []
    for step in path:
        walked.append(step)
        if not isinstance(node, Mapping) or node.get(step) is None:
            raise RemoteUnavailable(
                f"Malformed catalog response: missing '{'.'.join(walked)}'"
            )
        node = node[step]
    return node


def remote_errors(payload: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Return the ``errors`` list of a mutation payload as dictionaries."""
    errors = payload.get("errors") or []
    return [e for e in errors if isinstance(e, Mapping)]


def classify_failure(
    action: str,
    payload: Mapping[str, Any],
    *,
    referential_fallback: bool = False,
) -> CatalogError:
    """Build the error for a mutation payload that reported ``success: false``.

    Parameters
    ----------
    action: str
        Human description used in the message (e.g., ``"delete metric"``).
    payload: Mapping[str, Any]
        The mutation payload (``{success, errors: [...]}``).
    referential_fallback: bool
        Enable the text heuristic when no structured code is present.
    """
    errors = remote_errors(payload)
    messages = [str(e.get("message") or "") for e in errors if e.get("message")]
    message = messages[0] if messages else f"Unknown error during {action}"
    error_types: List[str] = []
    structured_conflict = False
    for err in errors:
        ext = err.get("extensions") or {}
        if not isinstance(ext, Mapping):
            continue
        error_type = ext.get("errorType")
        if error_type:
            error_types.append(str(error_type))
            if str(error_type).upper() in CONFLICT_ERROR_TYPES:
                structured_conflict = True
        if ext.get("statusCode") == 409:
            structured_conflict = True

    if structured_conflict:
        return Conflict(f"Failed to {action}: {message}", remote_message=message)
    if referential_fallback and not error_types:
        lowered = " ".join(messages).lower()
        if any(marker in lowered for marker in IN_USE_MARKERS):
            logger.info(
                "remote.failure.heuristic_conflict",
                extra={"action": action, "remote_message": message},
            )
            return Conflict(
                f"Failed to {action}: {message}. It may be in use.",
                remote_message=message,
            )
    return RemoteRejected(
        f"Failed to {action}: {message}",
        remote_messages=messages,
        error_types=error_types,
    )


def ensure_success(
    action: str,
    payload: Mapping[str, Any],
    *,
    referential_fallback: bool = False,
) -> Mapping[str, Any]:
    """Return ``payload`` when it reports success, raise otherwise.

    A payload without a boolean ``success`` flag is malformed and raises
    :class:`RemoteUnavailable`; only ``success: false`` is classified.
    """
    success = payload.get("success")
    if not isinstance(success, bool):
        raise RemoteUnavailable(
            f"Malformed catalog response during {action}: missing 'success' flag"
        )
    if success:
        errors = remote_errors(payload)
        if errors:
            # the catalog applied the change but attached warnings
            logger.warning(
                "remote.mutation.success_with_errors",
                extra={"action": action, "errors": errors},
            )
        return payload
    raise classify_failure(action, payload, referential_fallback=referential_fallback)


class RemoteCatalog:
    """Timeout-bounded access to a catalog client.

    Parameters
    ----------
    client: CatalogClient
        Transport used for queries and mutations.
    timeout_seconds: float
        Upper bound for every single remote call.
    cloud_id: str
        Catalog tenant identifier passed to collection reads and creates.
    page_size: int
        Number of records requested per collection page.
    """

    def __init__(
        self,
        client: CatalogClient,
        *,
        timeout_seconds: float = 30.0,
        cloud_id: str = "",
        page_size: int = 100,
    ) -> None:
        self._client = client
        self._timeout = float(timeout_seconds)
        self.cloud_id = cloud_id
        self.page_size = max(1, int(page_size))

    async def query(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a read operation."""
        return await self._call("query", document, variables or {})

    async def mutate(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a write operation."""
        return await self._call("mutate", document, variables or {})

    async def collect_pages(
        self,
        document: str,
        variables: Dict[str, Any],
        path: Sequence[str],
    ) -> List[Dict[str, Any]]:
        """Read every page of a connection and return the concatenated nodes.

        ``document`` must declare ``$first`` and ``$after`` variables and the
        connection at ``path`` must expose ``nodes`` and, optionally,
        ``pageInfo { hasNextPage endCursor }``.
        """
        nodes: List[Dict[str, Any]] = []
        after: Optional[str] = None
        for _ in range(MAX_PAGES):
            page_vars = dict(variables, first=self.page_size, after=after)
            data = await self.query(document, page_vars)
            connection = extract(data, *path)
            page_nodes = connection.get("nodes")
            if not isinstance(page_nodes, list):
                raise RemoteUnavailable(
                    f"Malformed catalog response: missing '{'.'.join(path)}.nodes'"
                )
            nodes.extend(n for n in page_nodes if isinstance(n, Mapping))
            page_info = connection.get("pageInfo") or {}
            cursor = page_info.get("endCursor")
            if not page_info.get("hasNextPage") or not cursor or cursor == after:
                break
            after = cursor
        else:
            logger.warning(
                "remote.pagination.truncated",
                extra={"operation": operation_name(document), "pages": MAX_PAGES},
            )
        return nodes

    async def _call(
        self, method: str, document: str, variables: Dict[str, Any]
    ) -> Dict[str, Any]:
        op = operation_name(document)
        call = getattr(self._client, method)
        logger.debug(
            "remote.call.start",
            extra={
                "req_id": get_request_id(),
                "method": method,
                "operation": op,
                "variable_keys": list(variables.keys()),
            },
        )
        try:
            result = await asyncio.wait_for(
                call(document, variables), timeout=self._timeout
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "remote.call.timeout",
                extra={"operation": op, "timeout_seconds": self._timeout},
            )
            raise RemoteTimeout(
                f"Catalog {method} '{op}' timed out after {self._timeout:g}s"
            ) from exc
        except CatalogError:
            raise
        except httpx.HTTPError as exc:
            logger.error(
                "remote.call.failed",
                extra={"operation": op, "error": str(exc)},
            )
            raise RemoteUnavailable(f"Catalog {method} '{op}' failed: {exc}") from exc
        if not isinstance(result, dict):
            raise RemoteUnavailable(
                f"Malformed catalog response for '{op}': expected an object"
            )
        logger.debug("remote.call.done", extra={"operation": op})
        return result
