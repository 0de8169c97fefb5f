"""Error taxonomy for catalog reconciliation.

Every failure that leaves the engine is a :class:`CatalogError` subclass with
a machine-readable ``kind``, a human-readable message and optional structured
``details``. Mapping kinds to transport status codes is the caller's job (see
``catalog_sync.server.http``).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class FieldViolation:
    """Single field-level validation failure.

    Attributes
    ----------
    field: str
        Dotted path of the offending field (e.g., ``spec.typeId``).
    error: str
        Explanation of what is wrong with the value.
    """

    field: str
    error: str


@dataclass(frozen=True)
class Dependent:
    """Resource that references another one and blocks its deletion."""

    type: str
    id: str
    name: str


class CatalogError(Exception):
    """Base class for all reconciliation failures."""

    kind = "catalog_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation of the error."""
        payload: Dict[str, Any] = {"error_type": self.kind, "detail": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(CatalogError):
    """One or more field-level violations, collected exhaustively."""

    kind = "validation_error"

    def __init__(self, message: str, violations: Sequence[FieldViolation]):
        self.violations: List[FieldViolation] = list(violations)
        super().__init__(
            message, {"violations": [asdict(v) for v in self.violations]}
        )


class NotFound(CatalogError):
    """Identity resolution found no matching resource."""

    kind = "not_found"


class Conflict(CatalogError):
    """Name collision on create, or dependents blocking a delete."""

    kind = "conflict"

    def __init__(
        self,
        message: str,
        *,
        existing_id: Optional[str] = None,
        dependents: Optional[Sequence[Dependent]] = None,
        remote_message: Optional[str] = None,
    ):
        self.existing_id = existing_id
        self.dependents: List[Dependent] = list(dependents or [])
        details: Dict[str, Any] = {}
        if existing_id is not None:
            details["existing_id"] = existing_id
        if self.dependents:
            details["dependents"] = [asdict(d) for d in self.dependents]
        if remote_message:
            details["remote_message"] = remote_message
        super().__init__(message, details)


class RemoteUnavailable(CatalogError):
    """The catalog could not be reached or returned malformed data."""

    kind = "remote_unavailable"


class RemoteTimeout(RemoteUnavailable):
    """A remote call did not complete within its timeout."""

    kind = "remote_timeout"


class RemoteRejected(CatalogError):
    """The catalog was reached but reported a business-rule failure."""

    kind = "remote_rejected"

    def __init__(
        self,
        message: str,
        *,
        remote_messages: Optional[Sequence[str]] = None,
        error_types: Optional[Sequence[str]] = None,
    ):
        self.remote_messages: List[str] = list(remote_messages or [])
        self.error_types: List[str] = list(error_types or [])
        details: Dict[str, Any] = {}
        if self.remote_messages:
            details["remote_messages"] = self.remote_messages
        if self.error_types:
            details["error_types"] = self.error_types
        super().__init__(message, details)
