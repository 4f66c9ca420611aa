"""Shared test fixtures for tokenfolio."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tokenfolio.cache import ExpiringCache
from tokenfolio.core.config import (
    APIConfig,
    ProvidersConfig,
    TokenfolioConfig,
)
from tokenfolio.core.models import (
    AssetId,
    ChainId,
    Currency,
    Direction,
    Provenance,
    QuoteRequest,
    Transfer,
)
from tokenfolio.engine import PricingEngine
from tokenfolio.fetching import BatchFetcher
from tokenfolio.fx import CurrencyService
from tokenfolio.prices import PriceService, StaticPrices
from tokenfolio.resolver import ResolverChain

WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
AAVE = "0x7fc66500c84a76ad7e9c93437bfc5ac33e2ddae9"
UNKNOWN = "0x1111111111111111111111111111111111111111"

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# --- Test doubles ---


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and remembers every delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeStrategy:
    """Resolver strategy answering from a dict keyed by request key.

    ``errors`` are raised in order before any value is returned.
    """

    def __init__(
        self,
        name: str = "fake",
        provenance: Provenance = Provenance.PRIMARY,
        values: dict | None = None,
        errors: list[BaseException] | None = None,
        default=None,
    ) -> None:
        self.name = name
        self.provenance = provenance
        self.values = values or {}
        self.errors = list(errors or [])
        self.default = default
        self.calls: list = []

    async def attempt(self, request):
        self.calls.append(request)
        if self.errors:
            raise self.errors.pop(0)
        key = getattr(request, "key", request)
        return self.values.get(key, self.default)


# --- Fixtures ---


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> ExpiringCache:
    return ExpiringCache(clock=clock)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def weth() -> AssetId:
    return AssetId(address=WETH, chain_id=ChainId.ETHEREUM)


@pytest.fixture
def usdc() -> AssetId:
    return AssetId(address=USDC, chain_id=ChainId.ETHEREUM)


@pytest.fixture
def unknown_asset() -> AssetId:
    return AssetId(address=UNKNOWN, chain_id=ChainId.BASE)


@pytest.fixture
def sample_transfer(weth: AssetId) -> Transfer:
    return Transfer(
        asset=weth,
        quantity=Decimal("10"),
        direction=Direction.IN,
        instant=T0,
        tx_hash="0xabc",
        symbol="WETH",
    )


@pytest.fixture
def test_config() -> TokenfolioConfig:
    """Config with no provider credentials and no network-facing API key."""
    return TokenfolioConfig(
        providers=ProvidersConfig(rate_limit=1000.0),
        api=APIConfig(api_key=None),
    )


def make_engine(
    current: FakeStrategy | None = None,
    historical: FakeStrategy | None = None,
    fx: FakeStrategy | None = None,
    cache: ExpiringCache | None = None,
    sleep=None,
) -> PricingEngine:
    """A PricingEngine over fake strategies, with zero pacing delays."""
    cache = cache if cache is not None else ExpiringCache()
    sleep = sleep or RecordingSleep()
    prices = PriceService(
        cache,
        ResolverChain([current or FakeStrategy("current")], fallback=StaticPrices()),
        ResolverChain([historical or FakeStrategy("historical")], fallback=StaticPrices()),
        BatchFetcher(group_size=5, group_delay=0.0, sleep=sleep),
        BatchFetcher(group_size=3, group_delay=0.0, sleep=sleep),
    )
    providers = [fx] if fx is not None else []
    currency = CurrencyService(cache, providers, providers)
    return PricingEngine(prices, currency, cache)


@pytest.fixture
def aud() -> Currency:
    return Currency.AUD


@pytest.fixture
def fake_strategy() -> type[FakeStrategy]:
    """The FakeStrategy class, for tests that build their own chains."""
    return FakeStrategy


@pytest.fixture
def engine_factory():
    return make_engine
