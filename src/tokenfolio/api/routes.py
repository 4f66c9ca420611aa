"""FastAPI route definitions for the tokenfolio API."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query

import tokenfolio
from tokenfolio.api.deps import get_engine
from tokenfolio.api.schemas import (
    CacheStatsResponse,
    ConvertResponse,
    FXRateResponse,
    FXRatesResponse,
    HealthResponse,
    HistoricalFXRequest,
    HistoricalFXResponse,
    HistoricalPricesRequest,
    PnLRecordResponse,
    PnLRequest,
    PnLResponse,
    PnLSummaryResponse,
    PricesRequest,
    PricesResponse,
)
from tokenfolio.core.models import Currency, from_epoch_ms
from tokenfolio.engine import PricingEngine
from tokenfolio.prices import PriceLookup

router = APIRouter()


def _prices_response(lookup: PriceLookup) -> PricesResponse:
    return PricesResponse(
        prices={key: float(value) for key, value in lookup.prices.items()},
        cached=lookup.cached,
        fetched=lookup.fetched,
        total=lookup.total,
    )


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: PricingEngine = Depends(get_engine)):
    """Liveness plus cache size."""
    return HealthResponse(
        status="ok",
        version=tokenfolio.__version__,
        cache_size=len(engine.cache),
    )


# -- Prices --


@router.post("/prices", response_model=PricesResponse)
async def current_prices(body: PricesRequest, engine: PricingEngine = Depends(get_engine)):
    """Current USD prices, served from cache where possible."""
    lookup = await engine.prices.current_prices(t.asset() for t in body.tokens)
    return _prices_response(lookup)


@router.get("/prices", response_model=CacheStatsResponse)
async def cache_stats(engine: PricingEngine = Depends(get_engine)):
    """Shared cache statistics."""
    return CacheStatsResponse(**engine.prices.cache_stats())


@router.post("/prices/historical", response_model=PricesResponse)
async def historical_prices(
    body: HistoricalPricesRequest, engine: PricingEngine = Depends(get_engine)
):
    """USD prices at the given instants (epoch ms)."""
    lookup = await engine.prices.historical_prices(r.request() for r in body.requests)
    return _prices_response(lookup)


# -- FX --


@router.get("/fx-rates", response_model=FXRatesResponse)
async def current_fx_rates(
    currencies: str | None = Query(None, description="Comma-separated, e.g. AUD,GBP"),
    engine: PricingEngine = Depends(get_engine),
):
    """Current USD exchange rates."""
    wanted = _parse_currencies(currencies)
    rates = await engine.fx.current_rates(wanted)
    return FXRatesResponse(rates=[FXRateResponse.from_rate(r) for r in rates])


@router.post("/fx-rates/historical", response_model=HistoricalFXResponse)
async def historical_fx_rates(
    body: HistoricalFXRequest, engine: PricingEngine = Depends(get_engine)
):
    """Historical USD exchange rates, one set per UTC date."""
    lookup = await engine.fx.historical_rates_batch(
        (from_epoch_ms(item.timestamp), item.currencies) for item in body.requests
    )
    return HistoricalFXResponse(
        rates={
            day: [FXRateResponse.from_rate(r) for r in rates] for day, rates in lookup.rates.items()
        },
        cached=lookup.cached,
        fetched=lookup.fetched,
        total=lookup.total,
    )


@router.get("/convert", response_model=ConvertResponse)
async def convert(
    amount: Decimal = Query(..., description="Amount in USD"),
    currency: Currency = Query(...),
    timestamp: int | None = Query(None, ge=0, description="Epoch ms for a historical rate"),
    engine: PricingEngine = Depends(get_engine),
):
    """Convert a USD amount at the current rate or the rate on a past date."""
    instant = from_epoch_ms(timestamp) if timestamp is not None else None
    converted = await engine.convert(amount, currency, instant)
    return ConvertResponse(
        amount_usd=float(amount), amount=float(converted), currency=currency, timestamp=timestamp
    )


# -- P&L --


@router.post("/pnl", response_model=PnLResponse)
async def pnl(body: PnLRequest, engine: PricingEngine = Depends(get_engine)):
    """Cost basis and profit/loss per transfer plus a portfolio summary."""
    result = await engine.get_pnl([t.transfer() for t in body.transfers], currency=body.currency)
    return PnLResponse(
        currency=result.currency,
        transfers=[PnLRecordResponse.from_record(r) for r in result.per_transfer],
        summary=PnLSummaryResponse.from_summary(result.summary),
    )


def _parse_currencies(raw: str | None) -> list[Currency] | None:
    if not raw:
        return None
    try:
        return [Currency(code.strip().upper()) for code in raw.split(",") if code.strip()]
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Unsupported currency in {raw!r}") from e
