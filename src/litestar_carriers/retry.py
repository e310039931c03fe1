"""Bounded retry with exponential backoff for provider calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from litestar_carriers.exceptions import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff_delay(attempt: int, backoff_seconds: float) -> float:
    """Compute the wait before the next attempt.

    delay = backoff_seconds * 2^(attempt - 1)
    """
    return backoff_seconds * (2 ** (attempt - 1))


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    backoff_seconds: float,
    carrier: str = "",
    description: str = "request",
) -> T:
    """Run ``operation`` until it succeeds or attempts are exhausted.

    Only TransientProviderError is retried; anything else propagates
    immediately. Exhaustion raises TransientProviderError chained to the
    last failure.
    """
    last_error: TransientProviderError | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except TransientProviderError as exc:
            last_error = exc
            if attempt >= max_attempts:
                break
            delay = compute_backoff_delay(attempt, backoff_seconds)
            logger.info(
                "%s %s: attempt %d/%d failed: %s; retrying in %.2fs",
                carrier,
                description,
                attempt,
                max_attempts,
                exc,
                delay,
            )
            await asyncio.sleep(delay)

    logger.warning(
        "%s %s: giving up after %d attempts: %s",
        carrier,
        description,
        max_attempts,
        last_error,
    )
    raise TransientProviderError(
        f"{description} failed after {max_attempts} attempts: {last_error}",
        carrier=carrier,
    ) from last_error
