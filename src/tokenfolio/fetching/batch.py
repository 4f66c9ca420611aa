"""Rate-limited batch fetcher with all-settled groups and per-job retries.

Jobs are split into consecutive groups of at most ``group_size``. Every job
in a group runs concurrently and independently of its siblings. Once each
job in a group has settled its first attempt, the fetcher waits
``group_delay`` and starts the next group; retries of earlier groups keep
running in the background. Jobs that fail for good resolve to "no data"
and never abort the batch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from tokenfolio.core.config import BatchSettings
from tokenfolio.fetching.retry import RetryPolicy, Sleep, retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_DATA = "no data"


@dataclass(frozen=True)
class FetchJob(Generic[T]):
    """A keyed unit of async work. Returning None means "no data"."""

    key: str
    fetch: Callable[[], Awaitable[T | None]]


@dataclass
class BatchResult(Generic[T]):
    """Partial result of a batch: every unique input key is in exactly one map."""

    results: dict[str, T] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)
    groups: int = 0

    @property
    def keys(self) -> set[str]:
        return set(self.results) | set(self.failed)


class BatchFetcher:
    """Runs fetch jobs in paced, concurrent groups.

    Parameters
    ----------
    group_size : int
        Maximum jobs per concurrent group.
    group_delay : float
        Seconds to wait between groups (never after the last one).
    retry : RetryPolicy | None
        Backoff policy for retryable failures. Default: 3 retries, 1s base.
    timeout : float | None
        Per-attempt deadline in seconds. A timed-out attempt is retryable.
    sleep : Callable[[float], Awaitable[None]]
        Injectable sleep used for pacing and backoff.
    """

    def __init__(
        self,
        group_size: int,
        group_delay: float,
        retry: RetryPolicy | None = None,
        timeout: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if group_size < 1:
            raise ValueError("group_size must be >= 1")
        self._group_size = group_size
        self._group_delay = group_delay
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: BatchSettings,
        timeout: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> BatchFetcher:
        return cls(
            group_size=settings.group_size,
            group_delay=settings.group_delay,
            retry=RetryPolicy.from_settings(settings),
            timeout=timeout,
            sleep=sleep,
        )

    @property
    def group_size(self) -> int:
        return self._group_size

    @property
    def group_delay(self) -> float:
        return self._group_delay

    def partition(self, jobs: list[FetchJob[T]]) -> list[list[FetchJob[T]]]:
        """Consecutive groups of at most ``group_size`` jobs."""
        size = self._group_size
        return [jobs[i : i + size] for i in range(0, len(jobs), size)]

    async def run(self, jobs: Iterable[FetchJob[T]]) -> BatchResult[T]:
        """Execute all jobs and collect a partial result set."""
        unique = _dedupe(jobs)
        groups = self.partition(unique)
        result: BatchResult[T] = BatchResult(groups=len(groups))
        if not groups:
            return result

        tasks: list[asyncio.Task] = []
        try:
            for index, group in enumerate(groups):
                settled = [asyncio.Event() for _ in group]
                tasks.extend(
                    asyncio.create_task(self._run_job(job, event))
                    for job, event in zip(group, settled)
                )
                await asyncio.gather(*(event.wait() for event in settled))

                if index < len(groups) - 1:
                    await self._sleep(self._group_delay)

            outcomes = await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        for key, value, reason in outcomes:
            if reason is None:
                result.results[key] = value
            else:
                result.failed[key] = reason

        logger.info(
            "Batch complete: %d/%d succeeded in %d group(s)",
            len(result.results), len(unique), len(groups),
        )
        return result

    async def _run_job(
        self, job: FetchJob[T], first_settled: asyncio.Event
    ) -> tuple[str, T | None, str | None]:
        async def attempt() -> T | None:
            try:
                if self._timeout is None:
                    return await job.fetch()
                return await asyncio.wait_for(job.fetch(), self._timeout)
            finally:
                first_settled.set()

        try:
            value = await retry_async(
                attempt, self._retry, sleep=self._sleep, label=f"Fetch {job.key}"
            )
        except Exception as exc:
            logger.warning("Fetch %s gave up: %s: %s", job.key, type(exc).__name__, exc)
            return job.key, None, f"{type(exc).__name__}: {exc}"

        if value is None:
            logger.debug("Fetch %s returned no data", job.key)
            return job.key, None, NO_DATA
        return job.key, value, None


def _dedupe(jobs: Iterable[FetchJob[T]]) -> list[FetchJob[T]]:
    """Collapse jobs sharing a key; the first one wins."""
    seen: dict[str, FetchJob[T]] = {}
    for job in jobs:
        seen.setdefault(job.key, job)
    return list(seen.values())
