"""PricingEngine: the public facade over prices, FX and P&L."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal

from tokenfolio.cache import ExpiringCache, TTLPolicy
from tokenfolio.core.config import TokenfolioConfig
from tokenfolio.core.models import (
    AssetId,
    Currency,
    PortfolioPnL,
    Provenance,
    QuoteRequest,
    TokenBalance,
    Transfer,
)
from tokenfolio.fetching import BatchFetcher
from tokenfolio.fetching.retry import RetryPolicy, Sleep
from tokenfolio.fx import CurrencyService, ExchangeRateAPI, OpenExchangeRates
from tokenfolio.portfolio import build_portfolio_pnl, convert_portfolio, value_balances
from tokenfolio.prices import (
    AlchemyPrices,
    CoinGeckoPrices,
    HistoricalPriceLocator,
    PriceService,
    ProviderClient,
    StaticPrices,
)
from tokenfolio.resolver import ResolverChain

logger = logging.getLogger(__name__)


class PricingEngine:
    """Entry point for callers: current/historical prices, P&L and conversion.

    None of the public methods raise when a provider has no data; missing
    prices are simply absent from the returned maps.

    Usage::

        async with PricingEngine.from_config(load_config()) as engine:
            prices = await engine.get_current_prices(assets)
    """

    def __init__(
        self,
        prices: PriceService,
        fx: CurrencyService,
        cache: ExpiringCache,
        clients: Sequence[ProviderClient] = (),
    ) -> None:
        self._prices = prices
        self._fx = fx
        self._cache = cache
        self._clients = list(clients)

    @classmethod
    def from_config(
        cls,
        config: TokenfolioConfig | None = None,
        cache: ExpiringCache | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> PricingEngine:
        """Wire providers, chains and batch fetchers from configuration."""
        config = config or TokenfolioConfig()
        providers = config.providers
        if cache is None:
            cache = ExpiringCache(sweep_interval=config.cache.sweep_interval)
        ttl = TTLPolicy(config.cache)
        timeout = config.resolver.timeout

        def client(name: str, base_url: str, headers: dict[str, str] | None = None) -> ProviderClient:
            return ProviderClient(
                name,
                base_url,
                rate_limit=providers.rate_limit,
                timeout=providers.request_timeout,
                headers=headers,
            )

        cg_headers = (
            {"x-cg-demo-api-key": providers.coingecko_api_key} if providers.coingecko_api_key else None
        )
        alchemy_client = client("alchemy", providers.alchemy_base_url)
        coingecko_client = client("coingecko", providers.coingecko_base_url, cg_headers)
        oxr_client = client("openexchangerates", providers.open_exchange_rates_base_url)
        erapi_client = client("exchangerate-api", providers.exchange_rate_api_base_url)

        static = StaticPrices(config.resolver.static_prices)

        # Current: Alchemy first, CoinGecko second.
        current_chain = ResolverChain(
            [
                AlchemyPrices(alchemy_client, providers.alchemy_api_key, Provenance.PRIMARY),
                CoinGeckoPrices(coingecko_client, cache, ttl, Provenance.SECONDARY),
            ],
            fallback=static,
            timeout=timeout,
        )
        # Historical: CoinGecko's market chart first, Alchemy second.
        historical_chain = ResolverChain(
            [
                HistoricalPriceLocator(
                    CoinGeckoPrices(coingecko_client, cache, ttl), provenance=Provenance.PRIMARY
                ),
                HistoricalPriceLocator(
                    AlchemyPrices(alchemy_client, providers.alchemy_api_key),
                    provenance=Provenance.SECONDARY,
                ),
            ],
            fallback=static,
            timeout=timeout,
        )

        # Deadlines apply per provider inside the chains, so the fallback always runs.
        prices = PriceService(
            cache,
            current_chain,
            historical_chain,
            BatchFetcher.from_settings(config.batch.current, sleep=sleep),
            BatchFetcher.from_settings(config.batch.historical, sleep=sleep),
            ttl,
        )

        oxr = OpenExchangeRates(oxr_client, providers.open_exchange_rates_app_id, Provenance.PRIMARY)
        erapi = ExchangeRateAPI(
            erapi_client,
            providers.exchange_rate_api_key,
            historical=providers.exchange_rate_api_historical,
            provenance=Provenance.SECONDARY,
        )
        fx = CurrencyService(
            cache,
            [oxr, erapi],
            [oxr, erapi],
            config.fx,
            ttl,
            timeout,
            retry=RetryPolicy.from_settings(config.batch.current),
            sleep=sleep,
        )

        return cls(
            prices, fx, cache, clients=[alchemy_client, coingecko_client, oxr_client, erapi_client]
        )

    async def __aenter__(self) -> PricingEngine:
        self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def start(self) -> None:
        """Begin the periodic cache sweep. Needs a running event loop."""
        self._cache.start()

    async def close(self) -> None:
        await self._cache.stop()
        for client in self._clients:
            await client.close()

    @property
    def cache(self) -> ExpiringCache:
        return self._cache

    @property
    def prices(self) -> PriceService:
        return self._prices

    @property
    def fx(self) -> CurrencyService:
        return self._fx

    async def get_current_prices(self, assets: Iterable[AssetId]) -> dict[str, Decimal]:
        """USD spot prices keyed by ``AssetId.key``."""
        lookup = await self._prices.current_prices(assets)
        return lookup.prices

    async def get_historical_prices(self, requests: Iterable[QuoteRequest]) -> dict[str, Decimal]:
        """USD prices at each request's instant, keyed by ``QuoteRequest.key``."""
        lookup = await self._prices.historical_prices(requests)
        return lookup.prices

    async def get_pnl(
        self,
        transfers: Sequence[Transfer],
        current_prices: Mapping[str, Decimal] | None = None,
        currency: Currency = Currency.USD,
    ) -> PortfolioPnL:
        """Cost basis and P&L for ``transfers``.

        Current prices are looked up unless supplied (keyed by
        ``AssetId.key``). Absolute figures are converted with the current
        rate when ``currency`` is not USD.
        """
        transfers = list(transfers)
        historical = await self.get_historical_prices(t.historical_request for t in transfers)
        if current_prices is None:
            current_prices = await self.get_current_prices(
                {t.asset.key: t.asset for t in transfers}.values()
            )

        pnl = build_portfolio_pnl(transfers, historical, current_prices)
        if Currency(currency) is Currency.USD:
            return pnl
        rate = await self._fx.rate(currency)
        return convert_portfolio(pnl, rate)

    async def convert(
        self, amount_usd: Decimal, target_currency: Currency, instant: datetime | None = None
    ) -> Decimal:
        """``amount_usd`` in ``target_currency`` at the current rate or at ``instant``'s date."""
        return await self._fx.convert(amount_usd, target_currency, instant)

    async def value_balances(self, balances: Iterable[TokenBalance]) -> list[TokenBalance]:
        balances = list(balances)
        prices = await self.get_current_prices(b.asset for b in balances)
        return value_balances(balances, prices)
