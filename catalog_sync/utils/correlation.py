"""Lightweight correlation ID utilities for structured logging.

Provides a per-request correlation identifier via a ContextVar so that every
remote catalog call made while reconciling one request can include the same
``req_id`` in its log records.
"""

from __future__ import annotations

import uuid
from contextvars import ContextVar

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def set_request_id(request_id: str) -> None:
    """Set the current request correlation id in a context variable."""

    _request_id_var.set(request_id)


def get_request_id() -> str:
    """Return the current request correlation id, or empty string."""

    return _request_id_var.get()


def ensure_request_id() -> str:
    """Return the current correlation id, generating one when unset.

    Used by entrypoints that are not driven by an HTTP request (the CLI
    ``apply`` command) so their log records still correlate.
    """

    current = _request_id_var.get()
    if not current:
        current = uuid.uuid4().hex
        _request_id_var.set(current)
    return current
