"""Built-in resource kinds."""

from __future__ import annotations

from typing import Dict

from ..domain.models import ResourceKind
from ..reconcile.descriptors import KindDescriptor
from ..reconcile.remote import RemoteCatalog
from .component import component_descriptor
from .metric import metric_descriptor
from .scorecard import scorecard_descriptor


def build_descriptors(remote: RemoteCatalog) -> Dict[ResourceKind, KindDescriptor]:
    """Return the Component, Metric and Scorecard descriptors bound to ``remote``."""
    return {
        ResourceKind.COMPONENT: component_descriptor(remote),
        ResourceKind.METRIC: metric_descriptor(remote),
        ResourceKind.SCORECARD: scorecard_descriptor(remote),
    }
