# src/pipeline/retry.py — v1
"""Per-step retry with exponential backoff.

delay(attempt) = backoff_ms * backoff_multiplier ** (attempt - 1), where
attempt counts failures so far (1 for the first retry). Errors that are
deterministic or not failures at all are never retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from shipyard.core.errors import (
    CancellationError,
    ConfigurationError,
    QualityGateError,
    StepTimeoutError,
)
from shipyard.pipeline.models import RetryPolicy

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

# Never retried regardless of the policy.
NON_RETRYABLE: tuple[type[BaseException], ...] = (
    CancellationError,
    ConfigurationError,
    QualityGateError,
)


def compute_delay_ms(policy: RetryPolicy, attempt: int) -> float:
    """Backoff delay in milliseconds before retry number `attempt` (1-based)."""
    return policy.backoff_ms * (policy.backoff_multiplier ** (attempt - 1))


def is_retryable(error: BaseException, retry_on_timeout: bool = False) -> bool:
    """Decide whether an error may consume the retry budget."""
    if isinstance(error, NON_RETRYABLE):
        return False
    if isinstance(error, StepTimeoutError):
        return retry_on_timeout
    return isinstance(error, Exception)


async def execute_with_retries(
    fn: Callable[[], Awaitable[Any]],
    *,
    max_retries: int,
    policy: RetryPolicy,
    step: str = "unknown",
    retry_on_timeout: bool = False,
    sleep: Sleep = asyncio.sleep,
    on_attempt: Callable[[int], None] | None = None,
) -> Any:
    """Call `fn` until it succeeds or `max_retries` retries are exhausted.

    Raises:
        The last error once retries are exhausted, or immediately for
        non-retryable errors.
    """
    attempt = 0
    while True:
        if on_attempt is not None:
            on_attempt(attempt + 1)
        try:
            return await fn()
        except Exception as exc:
            attempt += 1
            if not is_retryable(exc, retry_on_timeout) or attempt > max_retries:
                raise
            delay_ms = compute_delay_ms(policy, attempt)
            logger.warning(
                "Step '%s' failed (attempt %d/%d): %s; retrying in %.0fms",
                step, attempt, max_retries + 1, exc, delay_ms,
            )
            await sleep(delay_ms / 1000.0)
