"""Currency conversion: current and historical USD exchange rates, cached."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from tokenfolio.cache import ExpiringCache, TTLPolicy, current_fx_key, historical_fx_key
from tokenfolio.core.config import FXConfig
from tokenfolio.core.exceptions import RateLimitError, TransientProviderError
from tokenfolio.core.models import Currency, FXRate, Provenance, to_utc
from tokenfolio.fetching.retry import RetryPolicy, Sleep, retry_async
from tokenfolio.fx.providers import CurrentRatesFallback, FXQuery, RateTable, StaticRates
from tokenfolio.resolver import QuoteStrategy, Resolution, ResolverChain

logger = logging.getLogger(__name__)


def _has_rates(table: RateTable) -> bool:
    return any(currency is not Currency.USD for currency in table)


def to_display_currency(amount_usd: Decimal, rate: FXRate | Decimal) -> Decimal:
    """``amount_usd`` expressed in the rate's target currency."""
    value = rate.rate if isinstance(rate, FXRate) else rate
    return amount_usd * value


def find_rate(rates: Iterable[FXRate], target: Currency) -> FXRate | None:
    return next((r for r in rates if r.target_currency == target), None)


@dataclass
class HistoricalFXLookup:
    """Historical rates keyed by ISO date, plus cache accounting."""

    rates: dict[str, list[FXRate]] = field(default_factory=dict)
    cached: int = 0
    fetched: int = 0
    total: int = 0


class CurrencyService:
    """Resolves USD exchange rates through provider chains with a static fallback.

    Current rates fall back to the static table. Historical rates fall back
    to the current rates re-tagged ``fallback`` or, when
    ``historical_fallback_to_current`` is off, straight to the static table.
    Currencies a provider omits are filled from the static table. A lookup
    that only got an answer from the fallback because a provider failed
    transiently is retried with backoff before the fallback is accepted.
    No method raises for a missing rate.
    """

    def __init__(
        self,
        cache: ExpiringCache,
        providers: Sequence[QuoteStrategy[FXQuery, RateTable]],
        historical_providers: Sequence[QuoteStrategy[FXQuery, RateTable]],
        config: FXConfig | None = None,
        ttl: TTLPolicy | None = None,
        timeout: float | None = None,
        retry: RetryPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._cache = cache
        self._retry = retry or RetryPolicy()
        self._sleep = sleep
        self._config = config or FXConfig()
        self._ttl = ttl or TTLPolicy()
        self._static = StaticRates(self._config.fallback_rates)

        historical_fallback: QuoteStrategy[FXQuery, RateTable] = (
            CurrentRatesFallback(self) if self._config.historical_fallback_to_current else self._static
        )
        self._current_chain: ResolverChain[FXQuery, RateTable] = ResolverChain(
            providers, fallback=self._static, timeout=timeout, validate=_has_rates
        )
        self._historical_chain: ResolverChain[FXQuery, RateTable] = ResolverChain(
            historical_providers, fallback=historical_fallback, timeout=timeout, validate=_has_rates
        )

    @property
    def fallback_rates(self) -> RateTable:
        return self._static.rates

    def _currencies(self, currencies: Iterable[Currency] | None) -> tuple[Currency, ...]:
        if currencies is None:
            return tuple(self._config.currencies)
        return tuple(dict.fromkeys(Currency(c) for c in currencies))

    async def current_rates(self, currencies: Iterable[Currency] | None = None) -> list[FXRate]:
        wanted = self._currencies(currencies)
        key = current_fx_key()
        cached: dict[Currency, FXRate] | None = self._cache.get(key)
        if cached is not None and all(c in cached for c in wanted):
            logger.debug("Current FX rates from cache")
            return [cached[c] for c in wanted]

        # Fetch the configured set too so one cache entry serves every caller.
        query = FXQuery(currencies=tuple(dict.fromkeys((*self._config.currencies, *wanted))))
        rates = await self._resolve(self._current_chain, query, instant=datetime.now(timezone.utc))
        by_currency = {r.target_currency: r for r in rates}
        ttl = self._ttl.for_fx(historical=False)
        self._cache.set(key, by_currency, ttl)
        logger.info("Fetched current FX rates from %s", rates[0].source if rates else "none")
        return [by_currency[c] for c in wanted]

    async def historical_rates(
        self, instant: datetime, currencies: Iterable[Currency] | None = None
    ) -> list[FXRate]:
        rates, _ = await self._historical(to_utc(instant).date(), self._currencies(currencies))
        return rates

    async def historical_rates_batch(
        self, requests: Iterable[tuple[datetime, Iterable[Currency] | None]]
    ) -> HistoricalFXLookup:
        """Rates for many instants, one lookup per distinct UTC date."""
        lookup = HistoricalFXLookup()
        for instant, currencies in requests:
            lookup.total += 1
            day = to_utc(instant).date()
            rates, hit = await self._historical(day, self._currencies(currencies))
            if hit:
                lookup.cached += 1
            else:
                lookup.fetched += 1
            lookup.rates[day.isoformat()] = rates

        logger.info(
            "Historical FX rates: %d cached, %d fetched, %d total",
            lookup.cached, lookup.fetched, lookup.total,
        )
        return lookup

    async def _historical(
        self, day: date, wanted: tuple[Currency, ...]
    ) -> tuple[list[FXRate], bool]:
        key = historical_fx_key(day)
        cached: dict[Currency, FXRate] | None = self._cache.get(key)
        if cached is not None and all(c in cached for c in wanted):
            return [cached[c] for c in wanted], True

        query = FXQuery(currencies=tuple(dict.fromkeys((*self._config.currencies, *wanted))), day=day)
        rates = await self._resolve(self._historical_chain, query)
        by_currency = {r.target_currency: r for r in rates}

        # Substituted rates are only kept as long as current rates are.
        genuine = all(r.provenance is not Provenance.FALLBACK for r in rates)
        self._cache.set(key, by_currency, self._ttl.for_fx(historical=genuine))
        logger.info("Fetched historical FX rates for %s from %s", day, rates[0].source if rates else "none")
        return [by_currency[c] for c in wanted], False

    async def _resolve(
        self,
        chain: ResolverChain[FXQuery, RateTable],
        query: FXQuery,
        instant: datetime | None = None,
    ) -> list[FXRate]:
        if all(c is Currency.USD for c in query.currencies):
            return [self._make(Currency.USD, Decimal(1), query, Provenance.PRIMARY, "identity", instant)]

        resolution = await self._resolve_with_retry(chain, query)
        table = resolution.value or {}
        provenance = resolution.provenance
        source = resolution.source if resolution.value is not None else self._static.name

        rates = []
        for currency in query.currencies:
            if currency is Currency.USD:
                rate = Decimal(1)
            else:
                rate = table.get(currency)
                if rate is None:
                    logger.debug("No %s rate from %s, using static table", currency, source)
                    rate = self._static.rates[currency]
            rates.append(self._make(currency, rate, query, provenance, source, instant))
        return rates

    async def _resolve_with_retry(
        self, chain: ResolverChain[FXQuery, RateTable], query: FXQuery
    ) -> Resolution[RateTable]:
        attempts: list[Resolution[RateTable]] = []

        async def attempt() -> Resolution[RateTable]:
            resolution = await chain.resolve(query)
            attempts.append(resolution)
            if resolution.provenance is Provenance.FALLBACK and resolution.retryable:
                context = {"query": str(query), "retry_after": resolution.retry_after}
                if resolution.retry_after is not None:
                    raise RateLimitError(f"FX providers rate limited for {query}", context=context)
                raise TransientProviderError(f"FX providers unavailable for {query}", context=context)
            return resolution

        try:
            return await retry_async(attempt, self._retry, sleep=self._sleep, label=f"FX {query}")
        except TransientProviderError:
            logger.warning("FX providers still failing for %s, using %s", query, attempts[-1].source)
            return attempts[-1]

    @staticmethod
    def _make(
        currency: Currency,
        rate: Decimal,
        query: FXQuery,
        provenance: Provenance,
        source: str,
        instant: datetime | None,
    ) -> FXRate:
        return FXRate(
            target_currency=currency,
            rate=rate,
            instant=instant,
            rate_date=query.day,
            provenance=provenance,
            source=source,
        )

    async def rate(self, target: Currency, instant: datetime | None = None) -> FXRate:
        """The USD->``target`` rate now, or on ``instant``'s UTC date."""
        target = Currency(target)
        if instant is None:
            rates = await self.current_rates([target])
        else:
            rates = await self.historical_rates(instant, [target])
        return rates[0]

    async def convert(
        self, amount_usd: Decimal, target: Currency, instant: datetime | None = None
    ) -> Decimal:
        target = Currency(target)
        if target is Currency.USD:
            return amount_usd
        return to_display_currency(amount_usd, await self.rate(target, instant))

    async def historical_convert(
        self, amount_usd: Decimal, instant: datetime, target: Currency
    ) -> Decimal:
        return await self.convert(amount_usd, target, instant)

    to_display_currency = staticmethod(to_display_currency)
