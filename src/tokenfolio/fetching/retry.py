"""Exponential backoff and a generic async retry combinator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from tokenfolio.core.config import BatchSettings
from tokenfolio.core.exceptions import ProviderError, RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def delay_for(attempt: int, base: float = 1.0, max_delay: float = 30.0) -> float:
    """Backoff before retry number ``attempt`` (0-based): ``base * 2**attempt``, capped."""
    return min(base * (2**attempt), max_delay)


def is_retryable(exc: BaseException) -> bool:
    """Rate limits, timeouts and network failures are retried; everything else is final."""
    if isinstance(exc, ProviderError):
        return exc.retryable
    return isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError))


def retry_after(exc: BaseException) -> float | None:
    """Provider-requested wait, if the error carries one."""
    if isinstance(exc, RateLimitError):
        return exc.retry_after
    return getattr(exc, "retry_after", None)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to retry and how long to wait in between."""

    max_retries: int = 3
    backoff_base: float = 1.0
    max_backoff: float = 30.0

    @classmethod
    def from_settings(cls, settings: BatchSettings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            backoff_base=settings.backoff_base,
            max_backoff=settings.max_backoff,
        )

    def delay_for(self, attempt: int, exc: BaseException | None = None) -> float:
        """Backoff for ``attempt``, stretched to the provider's Retry-After when longer."""
        delay = delay_for(attempt, self.backoff_base, self.max_backoff)
        hint = retry_after(exc) if exc is not None else None
        if hint is not None and hint > delay:
            delay = min(hint, self.max_backoff)
        return delay


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Sleep = asyncio.sleep,
    label: str = "job",
) -> T:
    """Await ``fn()``, retrying retryable failures up to ``policy.max_retries`` times.

    The last exception is re-raised once retries are exhausted or when the
    failure is not retryable.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if not retryable(exc) or attempt >= policy.max_retries:
                raise
            delay = policy.delay_for(attempt, exc)
            logger.warning(
                "%s failed (%s), retrying in %.1fs (attempt %d/%d)",
                label, type(exc).__name__, delay, attempt + 1, policy.max_retries,
            )
            await sleep(delay)
            attempt += 1
