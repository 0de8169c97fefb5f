"""Observability utilities: logging setup.

This module configures standard logging and, if available, integrates
`structlog` for structured logs. The dependency on `structlog` is optional to
keep the base runtime lightweight.
"""

from __future__ import annotations

import importlib
import logging

from ..utils.correlation import get_request_id

# transport libraries that are noisy below WARNING
QUIET_LOGGERS = ("httpx", "httpcore")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(req_id)s] - %(message)s"


class RequestIdFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Stamp records with the current correlation id unless one was passed."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "req_id", None):
            record.req_id = get_request_id() or "-"
        return True


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Parameters
    ----------
    level: str
        Logging level name (e.g., "DEBUG", "INFO"). Defaults to "INFO".

    Behavior
    --------
    - Initializes Python's logging with the requested level. Handlers it
      creates print the request correlation id on every line.
    - If `structlog` is installed, configures it with a filtering bound logger.
    - Keeps HTTP transport libraries at WARNING unless DEBUG was requested.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    fresh = not root.handlers
    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    if fresh:
        for handler in root.handlers:
            handler.addFilter(RequestIdFilter())
    logging.getLogger("catalog_sync").setLevel(numeric_level)

    transport_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(transport_level)

    try:  # optional structlog
        structlog = importlib.import_module("structlog")
        structlog.configure(
            wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        )
    except ModuleNotFoundError:  # pragma: no cover
        pass
