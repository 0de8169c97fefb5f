"""
Partial results handling for secondary reconciliation steps.

Relationship edges are written after the primary resource mutation already
succeeded. A failure there must not fail the whole operation, so each step
is run in order and its outcome is recorded instead of raised. Callers log the
summary and let a subsequent read reveal what actually landed remotely.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Sequence, Tuple

import httpx

from ..errors import CatalogError

logger = logging.getLogger(__name__)


@dataclass
class PartialResult:
    """
    Result container for operations that may partially fail.

    Attributes
    ----------
    successes : List[Any]
        Results of the steps that completed
    failures : List[FailureInfo]
        Information about failed steps
    """

    successes: List[Any] = field(default_factory=list)
    failures: List["FailureInfo"] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate (0.0-1.0)."""
        total = len(self.successes) + len(self.failures)
        if total == 0:
            return 0.0
        return len(self.successes) / total

    @property
    def has_failures(self) -> bool:
        """Check if any operations failed."""
        return len(self.failures) > 0

    @property
    def all_succeeded(self) -> bool:
        """Check if all operations succeeded."""
        return len(self.failures) == 0 and len(self.successes) > 0


@dataclass
class FailureInfo:
    """
    Information about a failed step.

    Attributes
    ----------
    identifier : str
        Identifier for the failed step (e.g., ``create:payments-api``)
    error : str
        Error message
    error_type : str
        Error kind (``remote_rejected``, ``remote_timeout``, ...)
    retryable : bool
        Whether the step might succeed if retried
    """

    identifier: str
    error: str
    error_type: str
    retryable: bool = False


async def run_partial(
    steps: Sequence[Tuple[str, Callable[[], Awaitable[Any]]]],
    operation_type: str = "operation",
) -> PartialResult:
    """
    Run steps one after another and collect partial results.

    Each step is awaited in the given order; a failing step is recorded and
    the next one still runs. Only :class:`CatalogError`, ``httpx`` and timeout
    errors are captured; programming errors propagate.

    Parameters
    ----------
    steps : Sequence[Tuple[str, Callable[[], Awaitable[Any]]]]
        ``(identifier, factory)`` pairs; the factory builds the awaitable
    operation_type : str
        Human-readable type of operation (for logging)

    Returns
    -------
    PartialResult
        Container with successes and failures
    """
    results = PartialResult()

    for identifier, factory in steps:
        try:
            outcome = await factory()
        except (CatalogError, httpx.HTTPError, asyncio.TimeoutError) as exc:
            error_type = _classify_error(exc)
            failure = FailureInfo(
                identifier=identifier,
                error=str(exc),
                error_type=error_type,
                retryable=_is_retryable(error_type),
            )
            results.failures.append(failure)
            logger.warning(
                f"partial_results.{operation_type}.failed",
                extra={
                    "identifier": identifier,
                    "error_type": error_type,
                    "retryable": failure.retryable,
                    "error": str(exc),
                },
            )
        else:
            results.successes.append(outcome)

    if steps:
        logger.info(
            f"partial_results.{operation_type}.complete",
            extra={
                "total": len(steps),
                "successes": len(results.successes),
                "failures": len(results.failures),
                "success_rate": results.success_rate,
            },
        )
    return results


def _classify_error(exc: BaseException) -> str:
    """Classify exception into error type."""
    if isinstance(exc, CatalogError):
        return exc.kind
    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return "remote_timeout"
    if isinstance(exc, httpx.HTTPError):
        return "remote_unavailable"
    return "unknown_error"


def _is_retryable(error_type: str) -> bool:
    """Determine if an error type is retryable."""
    return error_type in {"remote_timeout", "remote_unavailable"}


def format_failure_summary(
    result: PartialResult, operation_type: str = "operation"
) -> str:
    """
    Format a human-readable summary of partial result failures.

    Parameters
    ----------
    result : PartialResult
        The partial result to summarize
    operation_type : str
        Type of operation (for messaging)

    Returns
    -------
    str
        Formatted summary string
    """
    if not result.has_failures:
        return f"All {len(result.successes)} {operation_type}(s) succeeded."

    lines = [
        f"Partial results: {len(result.successes)} succeeded, "
        f"{len(result.failures)} failed ({result.success_rate:.1%} success rate)",
    ]

    failures_by_type: Dict[str, List[FailureInfo]] = {}
    for failure in result.failures:
        failures_by_type.setdefault(failure.error_type, []).append(failure)

    for error_type, failures in failures_by_type.items():
        retry_note = " (retryable)" if failures[0].retryable else " (not retryable)"
        lines.append(f"  - {len(failures)} {error_type}{retry_note}")

        identifiers = [f.identifier for f in failures[:3]]
        if len(failures) > 3:
            identifiers.append(f"... and {len(failures) - 3} more")
        lines.append(f"    Affected: {', '.join(identifiers)}")

    return "\n".join(lines)
