"""Tests for tokenfolio.fetching.batch (BatchFetcher)."""

from __future__ import annotations

import asyncio

import pytest

from tokenfolio.core.config import BatchSettings
from tokenfolio.core.exceptions import ProviderError, RateLimitError, TransientProviderError
from tokenfolio.fetching import NO_DATA, BatchFetcher, FetchJob, RetryPolicy


def _job(key, value=None, log=None):
    async def fetch():
        if log is not None:
            log.append(key)
        return value if value is not None else f"value-{key}"

    return FetchJob(key=key, fetch=fetch)


def _flaky(key, failures, value="ok", exc_factory=lambda: TransientProviderError("503")):
    calls = []

    async def fetch():
        calls.append(1)
        if len(calls) <= failures:
            raise exc_factory()
        return value

    return FetchJob(key=key, fetch=fetch), calls


class TestPartition:
    def test_groups_of_at_most_group_size(self):
        fetcher = BatchFetcher(group_size=3, group_delay=0)
        jobs = [_job(str(i)) for i in range(7)]
        groups = fetcher.partition(jobs)
        assert [len(g) for g in groups] == [3, 3, 1]
        assert [j.key for g in groups for j in g] == [str(i) for i in range(7)]

    def test_rejects_zero_group_size(self):
        with pytest.raises(ValueError, match="group_size"):
            BatchFetcher(group_size=0, group_delay=0)

    def test_from_settings(self):
        fetcher = BatchFetcher.from_settings(BatchSettings(group_size=4, group_delay=0.25))
        assert fetcher.group_size == 4
        assert fetcher.group_delay == 0.25


class TestRun:
    async def test_all_succeed(self, sleep):
        fetcher = BatchFetcher(group_size=5, group_delay=0.5, sleep=sleep)
        result = await fetcher.run([_job("a"), _job("b")])
        assert result.results == {"a": "value-a", "b": "value-b"}
        assert result.failed == {}
        assert result.groups == 1

    async def test_seven_jobs_two_groups_one_pause(self, sleep):
        fetcher = BatchFetcher(group_size=5, group_delay=0.5, sleep=sleep)
        result = await fetcher.run([_job(str(i)) for i in range(7)])
        assert result.groups == 2
        assert len(result.results) == 7
        assert sleep.delays == [0.5]

    async def test_pause_falls_between_groups(self):
        log: list[str] = []

        async def sleep(seconds):
            log.append("pause")

        fetcher = BatchFetcher(group_size=2, group_delay=1.0, sleep=sleep)
        await fetcher.run([_job(k, log=log) for k in "abcde"])
        assert log == ["a", "b", "pause", "c", "d", "pause", "e"]

    async def test_empty_batch(self, sleep):
        fetcher = BatchFetcher(group_size=5, group_delay=0.5, sleep=sleep)
        result = await fetcher.run([])
        assert result.results == {}
        assert result.failed == {}
        assert result.groups == 0
        assert sleep.delays == []

    async def test_none_is_no_data(self, sleep):
        async def nothing():
            return None

        fetcher = BatchFetcher(group_size=5, group_delay=0, sleep=sleep)
        result = await fetcher.run([FetchJob("x", nothing), _job("y")])
        assert result.failed == {"x": NO_DATA}
        assert result.results == {"y": "value-y"}

    async def test_failure_does_not_abort_batch(self, sleep):
        async def broken():
            raise ProviderError("HTTP 400")

        fetcher = BatchFetcher(group_size=2, group_delay=0, sleep=sleep)
        result = await fetcher.run([FetchJob("bad", broken), _job("good"), _job("later")])
        assert set(result.results) == {"good", "later"}
        assert result.failed["bad"].startswith("ProviderError")

    async def test_every_key_in_exactly_one_map(self, sleep):
        async def nothing():
            return None

        jobs = [_job("a"), FetchJob("b", nothing), _job("c")]
        result = await BatchFetcher(group_size=2, group_delay=0, sleep=sleep).run(jobs)
        assert result.keys == {"a", "b", "c"}
        assert not set(result.results) & set(result.failed)

    async def test_duplicate_keys_first_wins(self, sleep):
        first_calls: list[str] = []
        second_calls: list[str] = []
        jobs = [_job("k", "first", first_calls), _job("k", "second", second_calls)]
        result = await BatchFetcher(group_size=5, group_delay=0, sleep=sleep).run(jobs)
        assert result.results == {"k": "first"}
        assert first_calls == ["k"]
        assert second_calls == []


class TestRetries:
    async def test_transient_failure_retried(self, sleep):
        job, calls = _flaky("a", failures=2)
        fetcher = BatchFetcher(group_size=5, group_delay=0, sleep=sleep)
        result = await fetcher.run([job])
        assert result.results == {"a": "ok"}
        assert len(calls) == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_exhausted_retries_recorded_as_failure(self, sleep):
        job, calls = _flaky("a", failures=10)
        fetcher = BatchFetcher(
            group_size=5, group_delay=0, retry=RetryPolicy(max_retries=2), sleep=sleep
        )
        result = await fetcher.run([job])
        assert "a" in result.failed
        assert result.failed["a"].startswith("TransientProviderError")
        assert len(calls) == 3

    async def test_non_retryable_not_retried(self, sleep):
        job, calls = _flaky("a", failures=1, exc_factory=lambda: ProviderError("HTTP 404"))
        result = await BatchFetcher(group_size=5, group_delay=0, sleep=sleep).run([job])
        assert "a" in result.failed
        assert len(calls) == 1
        assert sleep.delays == []

    async def test_rate_limit_waits_retry_after(self, sleep):
        job, _ = _flaky(
            "a", failures=1, exc_factory=lambda: RateLimitError("429", context={"retry_after": 9})
        )
        result = await BatchFetcher(group_size=5, group_delay=0, sleep=sleep).run([job])
        assert result.results == {"a": "ok"}
        assert sleep.delays == [9.0]

    async def test_timeout_is_a_failure(self, sleep):
        async def slow():
            await asyncio.sleep(5)
            return "late"

        fetcher = BatchFetcher(
            group_size=5,
            group_delay=0,
            retry=RetryPolicy(max_retries=0),
            timeout=0.01,
            sleep=sleep,
        )
        result = await fetcher.run([FetchJob("slow", slow), _job("fast")])
        assert result.results == {"fast": "value-fast"}
        assert result.failed["slow"].startswith("TimeoutError")

    async def test_retries_do_not_hold_up_next_group(self):
        events: list[str] = []
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise TransientProviderError("503")
            events.append("a-retry")
            return "a"

        async def sleep(seconds):
            if seconds == 0.5:
                events.append("pause")
            else:
                await asyncio.sleep(0.05)

        fetcher = BatchFetcher(group_size=1, group_delay=0.5, sleep=sleep)
        result = await fetcher.run([FetchJob("a", flaky), _job("b", log=events)])
        assert result.results == {"a": "a", "b": "value-b"}
        assert events == ["pause", "b", "a-retry"]
