"""Batch fetching: grouped execution, backoff and retry."""

from tokenfolio.fetching.batch import NO_DATA, BatchFetcher, BatchResult, FetchJob
from tokenfolio.fetching.retry import (
    RetryPolicy,
    delay_for,
    is_retryable,
    retry_after,
    retry_async,
)

__all__ = [
    "BatchFetcher",
    "BatchResult",
    "FetchJob",
    "NO_DATA",
    "RetryPolicy",
    "delay_for",
    "is_retryable",
    "retry_after",
    "retry_async",
]
