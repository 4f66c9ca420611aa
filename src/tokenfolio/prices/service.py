"""Cache-first price lookups for many assets at once."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial

from tokenfolio.cache import ExpiringCache, TTLPolicy, price_key
from tokenfolio.core.exceptions import RateLimitError, TransientProviderError
from tokenfolio.core.models import AssetId, Provenance, Quote, QuoteRequest
from tokenfolio.fetching import BatchFetcher, FetchJob
from tokenfolio.prices.tokens import is_common
from tokenfolio.resolver import ResolverChain

logger = logging.getLogger(__name__)


@dataclass
class PriceLookup:
    """Result of one lookup. ``quotes`` is keyed by ``QuoteRequest.key``."""

    quotes: dict[str, Quote] = field(default_factory=dict)
    cached: int = 0
    fetched: int = 0
    total: int = 0

    @property
    def prices(self) -> dict[str, Decimal]:
        return {key: quote.value_usd for key, quote in self.quotes.items()}

    @property
    def missing(self) -> int:
        return self.total - len(self.quotes)


class PriceService:
    """Serves current and historical USD prices.

    Every lookup checks the shared cache first, resolves only the missing
    keys through the matching resolver chain (paced by a BatchFetcher) and
    caches what it resolves. Assets with no data are simply absent from the
    result.
    """

    def __init__(
        self,
        cache: ExpiringCache,
        current_chain: ResolverChain[QuoteRequest, Decimal],
        historical_chain: ResolverChain[QuoteRequest, Decimal],
        current_fetcher: BatchFetcher,
        historical_fetcher: BatchFetcher,
        ttl: TTLPolicy | None = None,
    ) -> None:
        self._cache = cache
        self._current_chain = current_chain
        self._historical_chain = historical_chain
        self._current_fetcher = current_fetcher
        self._historical_fetcher = historical_fetcher
        self._ttl = ttl or TTLPolicy()

    async def current_prices(self, assets: Iterable[AssetId]) -> PriceLookup:
        requests = [QuoteRequest(asset=asset) for asset in assets]
        return await self._lookup(requests, self._current_chain, self._current_fetcher)

    async def historical_prices(self, requests: Iterable[QuoteRequest]) -> PriceLookup:
        requests = list(requests)
        if any(r.instant is None for r in requests):
            raise ValueError("historical_prices requires every request to carry an instant")
        return await self._lookup(requests, self._historical_chain, self._historical_fetcher)

    async def _lookup(
        self,
        requests: list[QuoteRequest],
        chain: ResolverChain[QuoteRequest, Decimal],
        fetcher: BatchFetcher,
    ) -> PriceLookup:
        by_key: dict[str, QuoteRequest] = {}
        for request in requests:
            by_key.setdefault(request.key, request)
        unique = list(by_key.values())
        lookup = PriceLookup(total=len(unique))

        missing: list[QuoteRequest] = []
        for request in unique:
            quote = self._cache.get(price_key(request))
            if quote is not None:
                lookup.quotes[request.key] = quote
            else:
                missing.append(request)
        lookup.cached = len(lookup.quotes)

        logger.info("Cache hit: %d/%d prices", lookup.cached, lookup.total)
        if not missing:
            return lookup

        jobs = [FetchJob(key=r.key, fetch=partial(self._resolve, chain, r)) for r in missing]
        batch = await fetcher.run(jobs)

        for request in missing:
            quote = batch.results.get(request.key)
            if quote is None:
                continue
            common = is_common(request.asset) and quote.provenance is not Provenance.FALLBACK
            self._cache.set(price_key(request), quote, self._ttl.for_price(request, common=common))
            lookup.quotes[request.key] = quote
            lookup.fetched += 1

        logger.info(
            "Fetched %d/%d prices (%d without data)",
            lookup.fetched, len(missing), len(missing) - lookup.fetched,
        )
        return lookup

    async def _resolve(
        self, chain: ResolverChain[QuoteRequest, Decimal], request: QuoteRequest
    ) -> Quote | None:
        resolution = await chain.resolve(request)
        if resolution.value is None:
            if resolution.retryable:
                context = {"key": request.key, "retry_after": resolution.retry_after}
                if resolution.retry_after is not None:
                    raise RateLimitError(f"Providers rate limited for {request.key}", context=context)
                raise TransientProviderError(f"Providers unavailable for {request.key}", context=context)
            return None

        return Quote(
            request=request,
            value_usd=resolution.value,
            provenance=resolution.provenance,
            observed_at=datetime.now(timezone.utc),
            source=resolution.source,
        )

    def cache_stats(self) -> dict:
        return self._cache.stats()
