"""
Catalog sync service package.

This package hosts the reconciliation engine that keeps components, metrics
and scorecards in a remote GraphQL catalog in sync with declarative
manifests, plus its HTTP surface and CLI. See README.md for usage.
"""

from .__version__ import __version__

__all__ = ["__version__"]
