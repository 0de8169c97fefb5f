"""Catalog client interface and registry."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol


class CatalogClient(Protocol):
    """Protocol for remote catalog clients.

    Implementations execute GraphQL documents against the remote catalog and
    return the ``data`` object of the response. Transport failures surface as
    :class:`~catalog_sync.errors.RemoteUnavailable` (or ``httpx`` errors,
    which the engine maps to it).
    """

    async def query(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a read operation and return its ``data`` object."""
        raise NotImplementedError

    async def mutate(
        self, document: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a write operation and return its ``data`` object."""
        raise NotImplementedError


_clients: Dict[str, CatalogClient] = {}


def register_client(client_id: str, client: CatalogClient) -> None:
    """Register a client instance under a logical `client_id`."""
    _clients[client_id] = client


def get_client(client_id: str) -> CatalogClient:
    """Retrieve a registered client by `client_id`."""
    return _clients[client_id]


def get_available_client_ids() -> list[str]:
    """Get list of registered client ids."""
    return list(_clients.keys())


def log_client_status() -> None:
    """Log which catalog clients are configured."""
    logger = logging.getLogger(__name__)

    if not _clients:
        logger.warning(
            "No catalog client configured. Every resource operation will fail "
            "with remote_unavailable.\n"
            "  - Set CATALOG_SYNC_HOST, CATALOG_SYNC_API_TOKEN and "
            "CATALOG_SYNC_CLOUD_ID\n"
            "  - or point CATALOG_SYNC_CONFIG at a JSON config file"
        )
    else:
        logger.info(
            "Catalog clients configured: %s",
            ", ".join(
                f"'{client_id}' ({type(client).__name__})"
                for client_id, client in _clients.items()
            ),
        )


async def close_client(client: CatalogClient) -> None:
    """Release the transport of `client` when it owns one."""
    closer = getattr(client, "aclose", None)
    if closer is not None:
        await closer()


async def close_clients() -> None:
    """Close every registered client (server shutdown)."""
    for client in list(_clients.values()):
        await close_client(client)


def reset_clients() -> None:
    """Test-only helper to clear registered clients."""
    _clients.clear()
