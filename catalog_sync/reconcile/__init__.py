"""Generic reconciliation engine: diff desired specs against catalog state."""

from .cache import ReadCache
from .changelog import build_change_log
from .differ import CollectionDiff, diff
from .engine import CatalogEngine, ResourceService

__all__ = [
    "CatalogEngine",
    "CollectionDiff",
    "ReadCache",
    "ResourceService",
    "build_change_log",
    "diff",
]
