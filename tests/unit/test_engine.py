"""Tests for tokenfolio.engine (PricingEngine)."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest
import respx

from tokenfolio.core.config import ResolverConfig
from tokenfolio.core.models import Currency, Provenance, QuoteRequest, TokenBalance
from tokenfolio.engine import PricingEngine

COINGECKO = "https://api.coingecko.com/api/v3"
T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
FX = {Currency.USD: Decimal(1), Currency.AUD: Decimal("1.5"), Currency.GBP: Decimal("0.8"), Currency.CAD: Decimal("1.3")}


@pytest.fixture
def strategies(fake_strategy, weth):
    historical_key = QuoteRequest(asset=weth, instant=T0).key
    return {
        "current": fake_strategy("alchemy", values={weth.key: Decimal("3200")}),
        "historical": fake_strategy("coingecko-historical", values={historical_key: Decimal("2000")}),
        "fx": fake_strategy("openexchangerates", default=dict(FX)),
    }


@pytest.fixture
def engine(engine_factory, strategies):
    return engine_factory(**strategies)


class TestPricingEngine:
    async def test_current_prices(self, engine, weth):
        assert await engine.get_current_prices([weth]) == {weth.key: Decimal("3200")}

    async def test_historical_prices(self, engine, weth):
        request = QuoteRequest(asset=weth, instant=T0)
        assert await engine.get_historical_prices([request]) == {request.key: Decimal("2000")}

    async def test_missing_prices_absent(self, engine, unknown_asset):
        assert await engine.get_current_prices([unknown_asset]) == {}

    async def test_pnl_usd(self, engine, sample_transfer):
        pnl = await engine.get_pnl([sample_transfer])
        record = pnl.per_transfer[0]
        assert pnl.currency == Currency.USD
        assert record.cost_basis_usd == Decimal("20000")
        assert record.current_value_usd == Decimal("32000")
        assert record.profit_usd == Decimal("12000")
        assert record.profit_pct == Decimal("60")

    async def test_pnl_in_display_currency(self, engine, sample_transfer):
        pnl = await engine.get_pnl([sample_transfer], currency=Currency.AUD)
        assert pnl.currency == Currency.AUD
        assert pnl.summary.profit_usd == Decimal("18000")
        assert pnl.summary.profit_pct == Decimal("60")

    async def test_pnl_with_supplied_current_prices(self, engine, strategies, sample_transfer):
        pnl = await engine.get_pnl(
            [sample_transfer], current_prices={sample_transfer.asset.key: Decimal("4000")}
        )
        assert pnl.per_transfer[0].profit_usd == Decimal("20000")
        assert strategies["current"].calls == []

    async def test_pnl_unpriced_transfer(self, engine, sample_transfer, unknown_asset):
        other = sample_transfer.model_copy(update={"asset": unknown_asset})
        pnl = await engine.get_pnl([sample_transfer, other])
        assert pnl.per_transfer[1].profit_usd is None
        assert pnl.summary.transfer_count == 1

    async def test_convert(self, engine):
        assert await engine.convert(Decimal("100"), Currency.GBP) == Decimal("80.0")
        assert await engine.convert(Decimal("100"), Currency.USD) == Decimal("100")

    async def test_value_balances(self, engine, weth, unknown_asset):
        balances = [
            TokenBalance(asset=weth, symbol="WETH", quantity=Decimal("2")),
            TokenBalance(asset=unknown_asset, symbol="X", quantity=Decimal("1")),
        ]
        valued = await engine.value_balances(balances)
        assert valued[0].value_usd == Decimal("6400")
        assert valued[1].value_usd is None

    async def test_context_manager_runs_sweep(self, engine):
        async with engine:
            assert engine.cache.sweeping
        assert not engine.cache.sweeping

    async def test_shared_cache(self, engine, weth):
        await engine.get_current_prices([weth])
        await engine.convert(Decimal("1"), Currency.AUD)
        keys = engine.cache.stats()["keys"]
        assert f"price:{weth.address}:1" in keys
        assert "fx:current" in keys


class TestFromConfig:
    async def test_keeps_injected_cache(self, test_config, cache):
        engine = PricingEngine.from_config(test_config, cache=cache)
        assert engine.cache is cache
        await engine.close()

    @respx.mock
    async def test_without_keys_uses_coingecko_and_static_fx(self, test_config, sleep, weth):
        respx.get(f"{COINGECKO}/simple/price").mock(
            return_value=httpx.Response(200, json={"weth": {"usd": 3150.5}})
        )
        async with PricingEngine.from_config(test_config, sleep=sleep) as engine:
            lookup = await engine.prices.current_prices([weth])
            quote = lookup.quotes[weth.key]
            assert quote.value_usd == Decimal("3150.5")
            assert quote.provenance == Provenance.SECONDARY
            assert quote.source == "coingecko"

            assert await engine.convert(Decimal("100"), Currency.AUD) == Decimal("154.00")

    @respx.mock
    async def test_stablecoin_survives_outage(self, test_config, sleep, usdc):
        respx.get(f"{COINGECKO}/simple/price").mock(return_value=httpx.Response(404))
        async with PricingEngine.from_config(test_config, sleep=sleep) as engine:
            lookup = await engine.prices.current_prices([usdc])
        quote = lookup.quotes[usdc.key]
        assert quote.value_usd == Decimal("1")
        assert quote.provenance == Provenance.FALLBACK

    @respx.mock
    async def test_historical_via_market_chart(self, test_config, sleep, weth):
        t_ms = 1709294400000  # 2024-03-01T12:00:00Z
        respx.get(f"{COINGECKO}/coins/weth/market_chart/range").mock(
            return_value=httpx.Response(
                200, json={"prices": [[t_ms - 600_000, 3400.0], [t_ms + 1_500_000, 3500.0]]}
            )
        )
        async with PricingEngine.from_config(test_config, sleep=sleep) as engine:
            request = QuoteRequest(asset=weth, instant=T0)
            prices = await engine.get_historical_prices([request])
        assert prices == {request.key: Decimal("3400.0")}

    @respx.mock
    async def test_coingecko_demo_key_header(self, test_config, sleep, weth):
        config = test_config.model_copy(
            update={"providers": test_config.providers.model_copy(update={"coingecko_api_key": "cg"})}
        )
        route = respx.get(f"{COINGECKO}/simple/price").mock(
            return_value=httpx.Response(200, json={"weth": {"usd": 1}})
        )
        async with PricingEngine.from_config(config, sleep=sleep) as engine:
            await engine.get_current_prices([weth])
        assert route.calls.last.request.headers["x-cg-demo-api-key"] == "cg"

    @respx.mock
    async def test_hanging_provider_still_reaches_fallback(self, test_config, sleep, usdc, weth):
        requested = []

        async def hang(request):
            requested.append(request.url.params["ids"])
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        respx.get(f"{COINGECKO}/simple/price").mock(side_effect=hang)
        config = test_config.model_copy(update={"resolver": ResolverConfig(timeout=0.05)})

        async with PricingEngine.from_config(config, sleep=sleep) as engine:
            lookup = await engine.prices.current_prices([usdc, weth])

        quote = lookup.quotes[usdc.key]
        assert quote.value_usd == Decimal("1")
        assert quote.provenance == Provenance.FALLBACK
        assert quote.source == "static"
        # No static price for WETH: the timeout is retried, then reported as missing.
        assert weth.key not in lookup.quotes
        assert requested.count("usd-coin") == 1
        assert requested.count("weth") == 1 + config.batch.current.max_retries
