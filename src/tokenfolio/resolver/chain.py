"""Ordered provider fallback.

A ResolverChain holds an ordered list of strategies plus a static fallback.
``resolve()`` tries each strategy in turn, short-circuits on the first
usable value and, when every provider fails, returns whatever the fallback
produces tagged ``Provenance.FALLBACK``. It never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from tokenfolio.core.models import Provenance
from tokenfolio.fetching.retry import is_retryable, retry_after

logger = logging.getLogger(__name__)

R = TypeVar("R")
V = TypeVar("V")


@runtime_checkable
class QuoteStrategy(Protocol[R, V]):
    """One link of a resolver chain.

    ``attempt`` returns a value or raises. Returning None (or a value the
    chain's validator rejects) counts as a failure.
    """

    name: str
    provenance: Provenance

    async def attempt(self, request: R) -> V | None: ...


@dataclass(frozen=True)
class Failure:
    """Why one strategy did not produce a value."""

    source: str
    error: BaseException | None = None

    @property
    def retryable(self) -> bool:
        return self.error is not None and is_retryable(self.error)

    @property
    def reason(self) -> str:
        if self.error is None:
            return "no data"
        return f"{type(self.error).__name__}: {self.error}"


@dataclass(frozen=True)
class Resolution(Generic[V]):
    """Outcome of ``ResolverChain.resolve``. ``value`` is None only when the fallback had nothing."""

    value: V | None
    provenance: Provenance
    source: str
    failures: tuple[Failure, ...] = field(default=())

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def retryable(self) -> bool:
        """True if any provider failed transiently (worth retrying later)."""
        return any(f.retryable for f in self.failures)

    @property
    def retry_after(self) -> float | None:
        hints = [h for f in self.failures if f.error is not None and (h := retry_after(f.error))]
        return max(hints) if hints else None


def _accept_any(value: Any) -> bool:
    return value is not None


class ResolverChain(Generic[R, V]):
    """Tries strategies in order and falls back to a static source.

    Parameters
    ----------
    strategies : Sequence[QuoteStrategy]
        Providers in priority order.
    fallback : QuoteStrategy | None
        Consulted only after every strategy failed. Its result is always
        tagged ``Provenance.FALLBACK``.
    timeout : float | None
        Deadline in seconds for each strategy attempt. A timed-out attempt
        is treated like any other provider failure.
    validate : Callable[[V], bool]
        Rejects empty or invalid provider values.
    """

    def __init__(
        self,
        strategies: Sequence[QuoteStrategy[R, V]],
        fallback: QuoteStrategy[R, V] | None = None,
        timeout: float | None = None,
        validate: Callable[[V], bool] = _accept_any,
    ) -> None:
        self._strategies = list(strategies)
        self._fallback = fallback
        self._timeout = timeout
        self._validate = validate

    @property
    def strategies(self) -> list[QuoteStrategy[R, V]]:
        return list(self._strategies)

    async def resolve(self, request: R) -> Resolution[V]:
        failures: list[Failure] = []

        for strategy in self._strategies:
            value, failure = await self._try(strategy, request)
            if failure is None:
                return Resolution(
                    value=value,
                    provenance=strategy.provenance,
                    source=strategy.name,
                    failures=tuple(failures),
                )
            logger.warning(
                "%s failed for %s (%s), falling through", strategy.name, request, failure.reason
            )
            failures.append(failure)

        if self._fallback is None:
            return Resolution(
                value=None, provenance=Provenance.FALLBACK, source="none", failures=tuple(failures)
            )

        value, failure = await self._try(self._fallback, request)
        if failure is not None:
            logger.debug("Fallback %s has no value for %s", self._fallback.name, request)
        return Resolution(
            value=value if failure is None else None,
            provenance=Provenance.FALLBACK,
            source=self._fallback.name,
            failures=tuple(failures),
        )

    async def _try(
        self, strategy: QuoteStrategy[R, V], request: R
    ) -> tuple[V | None, Failure | None]:
        try:
            if self._timeout is None:
                value = await strategy.attempt(request)
            else:
                value = await asyncio.wait_for(strategy.attempt(request), self._timeout)
        except Exception as exc:
            return None, Failure(source=strategy.name, error=exc)

        if value is None or not self._validate(value):
            return None, Failure(source=strategy.name)
        return value, None
