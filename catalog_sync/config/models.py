"""Config models and loader.

This module defines Pydantic models for file- and environment-based
configuration. JSON parsing prefers `orjson` when available for speed and
lower memory usage, but falls back to the Python standard library's `json`
module so minimal environments can still load a config file.
"""

from __future__ import annotations

import json as _json
from pathlib import Path
from typing import Any, Callable, Optional

try:
    import orjson as _orjson_mod  # type: ignore[assignment]
except ImportError:  # pragma: no cover - optional dependency
    _orjson_mod = None  # type: ignore[assignment]
    _loads_orjson: Optional[Callable[[bytes], Any]] = None
else:

    def _loads_orjson(buf: bytes) -> Any:
        loader = getattr(_orjson_mod, "loads")  # type: ignore[assignment]
        return loader(buf)


from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_json(path: Path) -> Any:
    """Parse a JSON file, with `orjson` when it is installed."""
    raw = path.read_bytes()
    if _loads_orjson is not None:
        return _loads_orjson(raw)
    return _json.loads(raw.decode("utf-8"))


class CatalogConfig(BaseModel):
    """Connection settings for the remote catalog.

    Attributes
    ----------
    host: str
        Base URL of the catalog host; the GraphQL gateway path is appended.
    api_token: Optional[str]
        Basic credentials sent with every request.
    cloud_id: str
        Tenant identifier passed to collection reads and creates.
    timeout_seconds: float
        Upper bound for each remote call.
    page_size: int
        Records requested per collection page.
    """

    host: str = Field(..., description="Catalog base URL")
    api_token: Optional[str] = Field(None, description="Authentication token")
    cloud_id: str = Field("", description="Catalog tenant identifier")
    graphql_path: str = Field("/gateway/api/graphql")
    timeout_seconds: float = Field(30, gt=0)
    page_size: int = Field(100, ge=1, le=1000)
    max_retries: int = Field(1, ge=0, description="Number of retry attempts")
    backoff_initial_ms: int = Field(
        200, ge=0, description="Initial backoff in milliseconds"
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, description="Backoff multiplier per attempt"
    )


class AppConfig(BaseModel):
    """Top-level application configuration.

    Attributes
    ----------
    catalog: Optional[CatalogConfig]
        Remote catalog connection; absent means the server starts without a
        client and every resource call reports ``remote_unavailable``.
    """

    catalog: Optional[CatalogConfig] = None

    @staticmethod
    def load(path: Path) -> "AppConfig":
        """Load application config from a JSON file."""
        return AppConfig.model_validate(load_json(path))


class EnvSettings(BaseSettings):
    """Environment-driven settings and .env support.

    Attributes
    ----------
    log_level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".
    config: Optional[str]
        Path to a JSON config file; takes precedence over the catalog
        variables below.
    host, api_token, cloud_id: Optional[str]
        Catalog connection used when no config file is given.
    """

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CATALOG_SYNC_")

    log_level: str = Field("INFO")
    config: Optional[str] = None

    # COMPASS_* names are accepted for existing deployments
    host: Optional[str] = Field(
        None, validation_alias=AliasChoices("CATALOG_SYNC_HOST", "COMPASS_HOST")
    )
    api_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("CATALOG_SYNC_API_TOKEN", "COMPASS_API_TOKEN"),
    )
    cloud_id: str = Field(
        "", validation_alias=AliasChoices("CATALOG_SYNC_CLOUD_ID", "COMPASS_CLOUD_ID")
    )
    timeout_seconds: float = Field(30, gt=0)
    page_size: int = Field(100, ge=1, le=1000)
    max_retries: int = Field(1, ge=0)

    def catalog_config(self) -> Optional[CatalogConfig]:
        """Return the catalog connection from the file or the environment."""
        if self.config:
            return AppConfig.load(Path(self.config)).catalog
        if not self.host:
            return None
        return CatalogConfig(
            host=self.host,
            api_token=self.api_token,
            cloud_id=self.cloud_id,
            timeout_seconds=self.timeout_seconds,
            page_size=self.page_size,
            max_retries=self.max_retries,
        )
