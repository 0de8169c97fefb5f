"""HTTP server exposing the reconciliation engine via FastAPI.

Endpoints implement a thin HTTP transport over
:class:`~catalog_sync.reconcile.engine.CatalogEngine`: every resource kind
gets the same route set, and every :class:`~catalog_sync.errors.CatalogError`
is turned into a structured error body with a status code chosen by its kind.
"""

from __future__ import annotations

import importlib
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .. import __version__
from ..adapters import (
    CatalogClient,
    close_clients,
    get_available_client_ids,
    get_client,
    log_client_status,
    register_client,
)
from ..adapters.graphql import GraphQLCatalogAdapter
from ..config.models import CatalogConfig, EnvSettings
from ..domain.manifest import Manifest
from ..domain.models import ResourceKind
from ..errors import CatalogError, RemoteUnavailable
from ..observability import setup_logging
from ..reconcile.engine import CatalogEngine
from ..utils.correlation import get_request_id, set_request_id

logger = logging.getLogger(__name__)

CLIENT_ID = "catalog"

KIND_ROUTES = (
    ("components", ResourceKind.COMPONENT),
    ("metrics", ResourceKind.METRIC),
    ("scorecards", ResourceKind.SCORECARD),
)

STATUS_BY_ERROR_TYPE: Dict[str, int] = {
    "validation_error": 400,
    "not_found": 404,
    "conflict": 409,
    "remote_rejected": 400,
    "remote_unavailable": 502,
    "remote_timeout": 504,
}


class ErrorResponse(BaseModel):
    """Structured JSON error response for HTTP endpoints.

    Fields
    ------
    detail: str
        Human-readable explanation of the error.
    error_type: str
        Machine-readable error classification.
    details: Dict[str, Any] | None
        Structured context: field violations, the conflicting resource id,
        blocking dependents or the catalog's own messages.
    """

    detail: str = Field(..., description="Human-readable error detail")
    error_type: str = Field(..., description="Machine-readable error type")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Structured error context"
    )


class CorrelationMiddleware(BaseHTTPMiddleware):  # pylint: disable=too-few-public-methods
    """Assign a correlation id to every request and log its completion."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        req_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        set_request_id(req_id)
        response = await call_next(request)
        response.headers["x-correlation-id"] = req_id
        logger.info(
            "http.request.completed",
            extra={
                "req_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.time() - start_time) * 1000, 1),
            },
        )
        return response


def _load_fastapi():
    """Dynamically import FastAPI pieces."""
    fastapi_mod = importlib.import_module("fastapi")
    exc_mod = importlib.import_module("fastapi.exceptions")
    resp_mod = importlib.import_module("fastapi.responses")
    st_exc_mod = importlib.import_module("starlette.exceptions")
    return {
        "fastapi_cls": getattr(fastapi_mod, "FastAPI"),
        "validation_exc": getattr(exc_mod, "RequestValidationError"),
        "json_response": getattr(resp_mod, "JSONResponse"),
        "starlette_http_exc": getattr(st_exc_mod, "HTTPException"),
    }


def _build_app(fastapi_cls: Any, lifespan: Any | None = None):
    """Create base FastAPI app (optionally with lifespan)."""
    if lifespan is not None:
        return fastapi_cls(
            title="Catalog Sync Service", version=__version__, lifespan=lifespan
        )
    return fastapi_cls(title="Catalog Sync Service", version=__version__)


def build_client(config: CatalogConfig) -> GraphQLCatalogAdapter:
    """Create the HTTP catalog client described by ``config``."""
    return GraphQLCatalogAdapter(
        config.host,
        config.api_token,
        config.timeout_seconds,
        graphql_path=config.graphql_path,
        max_retries=config.max_retries,
        backoff_initial_ms=config.backoff_initial_ms,
        backoff_multiplier=config.backoff_multiplier,
    )


def _configure_engine(settings: EnvSettings) -> Optional[CatalogEngine]:
    """Build the engine from a registered client or from configuration."""
    config = settings.catalog_config()
    client: Optional[CatalogClient] = None
    if CLIENT_ID in get_available_client_ids():
        client = get_client(CLIENT_ID)
    elif config is not None:
        client = build_client(config)
        register_client(CLIENT_ID, client)
    log_client_status()
    if client is None:
        return None
    return CatalogEngine(
        client,
        cloud_id=config.cloud_id if config else settings.cloud_id,
        timeout_seconds=config.timeout_seconds if config else settings.timeout_seconds,
        page_size=config.page_size if config else settings.page_size,
    )


def _error_body(exc: CatalogError) -> Dict[str, Any]:
    err = ErrorResponse(
        detail=exc.message, error_type=exc.kind, details=exc.details or None
    )
    return {"detail": err.model_dump()}


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, list):
        return [_dump(v) for v in value]
    return value


def _register_kind(app: Any, plural: str, kind: ResourceKind) -> None:
    """Register the collection routes of one resource kind."""

    def engine() -> CatalogEngine:
        current = getattr(app.state, "engine", None)
        if current is None:
            raise RemoteUnavailable(
                "No catalog client configured; set CATALOG_SYNC_HOST or "
                "CATALOG_SYNC_CONFIG"
            )
        return current

    error_responses = {
        code: {"model": ErrorResponse} for code in sorted(set(STATUS_BY_ERROR_TYPE.values()))
    }

    @app.get(f"/{plural}", summary=f"List {plural}", responses=error_responses)
    async def list_resources() -> List[Dict[str, Any]]:
        return _dump(await engine().get_all(kind))

    @app.get(
        f"/{plural}/by-name/{{name}}",
        summary=f"Get a {kind.value.lower()} by name",
        responses=error_responses,
    )
    async def get_by_name(name: str) -> Dict[str, Any]:
        return _dump(await engine().get_by_name(kind, name))

    @app.get(
        f"/{plural}/{{resource_id}}",
        summary=f"Get a {kind.value.lower()} by id",
        responses=error_responses,
    )
    async def get_by_id(resource_id: str) -> Dict[str, Any]:
        return _dump(await engine().get_by_id(kind, resource_id))

    @app.post(
        f"/{plural}",
        status_code=201,
        summary=f"Create a {kind.value.lower()}",
        responses=error_responses,
    )
    async def create(manifest: Manifest) -> Dict[str, Any]:
        return _dump(await engine().create(kind, manifest.spec_payload(kind)))

    @app.put(
        f"/{plural}/{{resource_id}}",
        summary=f"Update a {kind.value.lower()}",
        responses=error_responses,
    )
    async def update(resource_id: str, manifest: Manifest) -> Dict[str, Any]:
        return _dump(
            await engine().update(kind, resource_id, manifest.spec_payload(kind))
        )

    @app.delete(
        f"/{plural}/{{resource_id}}",
        summary=f"Delete a {kind.value.lower()}",
        responses=error_responses,
    )
    async def delete(resource_id: str) -> Dict[str, Any]:
        return _dump(await engine().delete(kind, resource_id))

    _ = (list_resources, get_by_name, get_by_id, create, update, delete)


def _register_apply(app: Any) -> None:
    """Register the kind-dispatched idempotent apply endpoint."""

    @app.post("/apply", summary="Create or update the resource a manifest describes")
    async def apply(manifest: Manifest) -> Dict[str, Any]:
        current = getattr(app.state, "engine", None)
        if current is None:
            raise RemoteUnavailable("No catalog client configured")
        kind = manifest.resource_kind()
        return _dump(await current.apply(kind, manifest.spec_payload(kind)))

    _ = apply


def create_app():
    """Create and configure the FastAPI application.

    The catalog client is taken from the adapter registry when one is
    registered under ``"catalog"`` (tests do this), otherwise it is built from
    ``CATALOG_SYNC_*`` settings. Without either, the app still starts and
    every resource route answers ``remote_unavailable``.
    """
    settings = EnvSettings()
    # Respect prior logging configuration from CLI; otherwise use env setting
    if not logging.getLogger().hasHandlers():
        setup_logging(settings.log_level)
    parts = _load_fastapi()
    engine = _configure_engine(settings)

    @asynccontextmanager
    async def lifespan(_app: Any):
        logger.info(
            "http.startup",
            extra={"clients": get_available_client_ids(), "configured": engine is not None},
        )
        try:
            yield
        finally:
            await close_clients()
            logger.info("http.shutdown")

    app = _build_app(parts["fastapi_cls"], lifespan=lifespan)
    app.state.engine = engine
    app.add_middleware(CorrelationMiddleware)

    request_validation_error_cls = parts["validation_exc"]
    jr = parts["json_response"]
    starlette_http_exception_cls = parts["starlette_http_exc"]

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(_request: Any, exc: CatalogError):  # noqa: D401
        status = STATUS_BY_ERROR_TYPE.get(exc.kind, 500)
        logger.info(
            "http.catalog_error",
            extra={"req_id": get_request_id(), "error_type": exc.kind, "status": status},
        )
        return jr(status_code=status, content=_error_body(exc))

    @app.exception_handler(request_validation_error_cls)
    async def validation_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        violations = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
                "error": err.get("msg", "invalid"),
            }
            for err in getattr(exc, "errors", lambda: [])()
        ]
        err = ErrorResponse(
            detail="Invalid request body",
            error_type="validation_error",
            details={"violations": violations},
        )
        return jr(status_code=400, content={"detail": err.model_dump()})

    @app.exception_handler(starlette_http_exception_cls)
    async def http_exception_handler(_request: Any, exc: Any):  # noqa: D401
        detail = getattr(exc, "detail", "")
        payload = ErrorResponse(
            detail=str(detail) or "HTTP error", error_type="http_error"
        ).model_dump()
        return jr(status_code=exc.status_code, content={"detail": payload})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Any, exc: Exception):  # noqa: D401
        # Avoid leaking internals; log server-side, return generic error
        logger.error("http.unhandled_exception", exc_info=exc)
        err = ErrorResponse(
            detail="Internal error. See server logs for request id.",
            error_type="internal_server_error",
        )
        return jr(status_code=500, content={"detail": err.model_dump()})

    # Mark handlers as intentionally used (registered via decorators)
    _ = (
        catalog_error_handler,
        validation_exception_handler,
        http_exception_handler,
        unhandled_exception_handler,
    )

    for plural, kind in KIND_ROUTES:
        _register_kind(app, plural, kind)
    _register_apply(app)
    return app
