"""Command-line interface for the catalog sync service.

Two subcommands are provided:

- ``serve`` starts the HTTP API under uvicorn;
- ``apply`` reconciles one or more manifests from a JSON file against the
  catalog and prints the outcome of each.

Usage
-----
    catalog-sync serve --port 8080
    catalog-sync apply -f manifests.json
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..adapters import close_client
from ..config.models import CatalogConfig, EnvSettings, load_json
from ..domain.manifest import Manifest
from ..errors import CatalogError, FieldViolation, ValidationError
from ..observability import setup_logging
from ..reconcile.engine import CatalogEngine
from ..utils.correlation import ensure_request_id
from .http import build_client, create_app

logger = logging.getLogger(__name__)


def _read_manifests(path: Path) -> List[Manifest]:
    """Load a manifest or a list of manifests from a JSON file."""
    data = load_json(path)
    items = data if isinstance(data, list) else [data]
    manifests: List[Manifest] = []
    for i, item in enumerate(items):
        try:
            manifests.append(Manifest.model_validate(item))
        except PydanticValidationError as exc:
            violations = [
                FieldViolation(
                    f"[{i}]." + ".".join(str(p) for p in err.get("loc", ())),
                    err.get("msg", "invalid"),
                )
                for err in exc.errors()
            ]
            raise ValidationError(f"Invalid manifest in {path}", violations) from exc
    return manifests


async def _apply(engine: CatalogEngine, manifests: Sequence[Manifest]) -> List[Dict[str, Any]]:
    """Apply manifests in order, sharing one read cache between them."""
    cache = engine.session()
    results: List[Dict[str, Any]] = []
    for manifest in manifests:
        kind = manifest.resource_kind()
        outcome = await engine.apply(kind, manifest.spec_payload(kind), cache=cache)
        logger.info(
            "cli.apply.result",
            extra={
                "kind": kind.value,
                "resource_name": outcome.resource.name,
                "action": outcome.action,
            },
        )
        results.append(outcome.model_dump(by_alias=True))
    return results


async def _apply_with_config(
    config: CatalogConfig, manifests: Sequence[Manifest]
) -> List[Dict[str, Any]]:
    """Apply manifests with a client built from `config`, closing it afterwards."""
    client = build_client(config)
    engine = CatalogEngine(
        client,
        cloud_id=config.cloud_id,
        timeout_seconds=config.timeout_seconds,
        page_size=config.page_size,
    )
    try:
        return await _apply(engine, manifests)
    finally:
        await close_client(client)


def _run_apply(args: argparse.Namespace) -> int:
    ensure_request_id()
    if args.config:
        os.environ["CATALOG_SYNC_CONFIG"] = args.config
    config = EnvSettings().catalog_config()
    if config is None:
        print(
            "error: no catalog configured; set CATALOG_SYNC_HOST or pass --config",
            file=sys.stderr,
        )
        return 2
    try:
        manifests = _read_manifests(Path(args.file))
        results = asyncio.run(_apply_with_config(config, manifests))
    except CatalogError as exc:
        print(json.dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 1
    except (OSError, ValueError) as exc:
        # unreadable file or invalid JSON
        print(f"error: cannot read {args.file}: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(results, indent=2, default=str))
    return 0


def _run_serve(args: argparse.Namespace, effective_level: str) -> int:
    if args.config:
        os.environ["CATALOG_SYNC_CONFIG"] = args.config
    # Lazy import uvicorn only for HTTP mode
    uvicorn = importlib.import_module("uvicorn")
    app = create_app()
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,  # type: ignore[attr-defined]
        log_level=effective_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Catalog sync CLI")
    parser.add_argument("--config", help="Path to JSON app config")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=[
            "CRITICAL",
            "ERROR",
            "WARNING",
            "INFO",
            "DEBUG",
        ],
        help="Logging level (overrides environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (once sets DEBUG)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument(
        "--host", default="127.0.0.1", help="HTTP bind host (default 127.0.0.1)"
    )
    serve.add_argument("--port", type=int, default=8080, help="HTTP port")

    apply = sub.add_parser("apply", help="Create or update resources from manifests")
    apply.add_argument(
        "-f", "--file", required=True, help="JSON file with a manifest or a list"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Determine effective log level
    env_level = os.environ.get("CATALOG_SYNC_LOG_LEVEL", "INFO").upper()
    effective_level = args.log_level or ("DEBUG" if args.verbose > 0 else env_level)
    # Apply early so subsequent imports use configured level
    setup_logging(effective_level)

    if args.command == "serve":
        return _run_serve(args, effective_level)
    return _run_apply(args)


if __name__ == "__main__":
    sys.exit(main())
