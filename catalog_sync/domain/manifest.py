"""Manifest envelope accepted from clients.

Clients submit resources as ``{apiVersion, kind, metadata: {name}, spec}``
documents. This module unwraps the envelope into the raw spec payload the
engine validates; ``metadata.name`` is authoritative for the resource name.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import FieldViolation, ValidationError
from .models import ResourceKind

API_VERSION = "catalog.onefootball.com/v1alpha1"


class ManifestMetadata(BaseModel):
    name: Optional[str] = None


class Manifest(BaseModel):
    """Declarative resource document.

    Attributes
    ----------
    api_version: str
        Schema version of the document.
    kind: str
        Resource kind (``Component``, ``Metric`` or ``Scorecard``).
    metadata: ManifestMetadata
        Identity metadata; ``name`` overrides ``spec.name``.
    spec: Dict[str, Any]
        Kind-specific desired state, validated by the engine.
    """

    model_config = ConfigDict(populate_by_name=True)

    api_version: str = Field(API_VERSION, alias="apiVersion")
    kind: str
    metadata: ManifestMetadata = Field(default_factory=ManifestMetadata)
    spec: Dict[str, Any] = Field(default_factory=dict)

    def spec_payload(self, expected: Optional[ResourceKind] = None) -> Dict[str, Any]:
        """Return the raw spec with the metadata name folded in.

        Raises
        ------
        ValidationError
            If ``kind`` does not match ``expected`` or names no known kind.
        """
        resolved = self.resource_kind()
        if expected is not None and resolved is not expected:
            raise ValidationError(
                f"Invalid resource kind. Expected \"{expected.value}\".",
                [
                    FieldViolation(
                        "kind", f"expected '{expected.value}', got '{self.kind}'"
                    )
                ],
            )
        payload = dict(self.spec)
        if self.metadata.name:
            payload["name"] = self.metadata.name
        return payload

    def resource_kind(self) -> ResourceKind:
        """Return the :class:`ResourceKind` named by ``kind``."""
        for member in ResourceKind:
            if member.value.lower() == self.kind.lower():
                return member
        raise ValidationError(
            f"Unknown resource kind '{self.kind}'.",
            [
                FieldViolation(
                    "kind",
                    "must be one of: " + ", ".join(k.value for k in ResourceKind),
                )
            ],
        )
