"""API-specific request/response schemas (Pydantic v2).

JSON field names are camelCase; snake_case is accepted on input too.
Timestamps are Unix epoch milliseconds.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from tokenfolio.core.models import (
    AssetId,
    ChainId,
    Currency,
    Direction,
    FXRate,
    PnLRecord,
    PnLSummary,
    QuoteRequest,
    Transfer,
    epoch_ms,
    from_epoch_ms,
    normalize_address,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Error --


class ErrorResponse(CamelModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Health --


class HealthResponse(CamelModel):
    status: str
    version: str
    cache_size: int


# -- Prices --


class TokenRef(CamelModel):
    """One asset: ``{"address": "0x...", "chainId": 1}``."""

    address: str
    chain_id: ChainId

    @field_validator("address")
    @classmethod
    def address_valid(cls, v: str) -> str:
        return normalize_address(v)

    def asset(self) -> AssetId:
        return AssetId(address=self.address, chain_id=self.chain_id)


class PricesRequest(CamelModel):
    tokens: list[TokenRef]


class HistoricalPriceRef(TokenRef):
    timestamp: int = Field(ge=0, description="Epoch milliseconds")

    def request(self) -> QuoteRequest:
        return QuoteRequest(asset=self.asset(), instant=from_epoch_ms(self.timestamp))


class HistoricalPricesRequest(CamelModel):
    requests: list[HistoricalPriceRef]


class PricesResponse(CamelModel):
    """USD prices keyed by ``{address}_{chainId}`` (plus ``_{timestamp}`` for historical)."""

    prices: dict[str, float]
    cached: int
    fetched: int
    total: int


class CacheStatsResponse(CamelModel):
    size: int
    keys: list[str]


# -- FX --


class FXRateResponse(CamelModel):
    base_currency: Currency = Currency.USD
    target_currency: Currency
    rate: float
    timestamp: int | None = None
    rate_date: date | None = Field(default=None, alias="date")
    source: str
    provenance: str

    @classmethod
    def from_rate(cls, rate: FXRate) -> FXRateResponse:
        return cls(
            target_currency=rate.target_currency,
            rate=float(rate.rate),
            timestamp=epoch_ms(rate.instant) if rate.instant else None,
            rate_date=rate.rate_date,
            source=rate.source,
            provenance=rate.provenance.value,
        )


class FXRatesResponse(CamelModel):
    rates: list[FXRateResponse]


class HistoricalFXItem(CamelModel):
    timestamp: int = Field(ge=0, description="Epoch milliseconds")
    currencies: list[Currency] | None = None


class HistoricalFXRequest(CamelModel):
    requests: list[HistoricalFXItem]


class HistoricalFXResponse(CamelModel):
    """Rates keyed by UTC date (``YYYY-MM-DD``)."""

    rates: dict[str, list[FXRateResponse]]
    cached: int
    fetched: int
    total: int


class ConvertResponse(CamelModel):
    amount_usd: float
    amount: float
    currency: Currency
    timestamp: int | None = None


# -- P&L --


class TransferIn(TokenRef):
    quantity: Decimal = Field(ge=0)
    direction: Direction = Direction.IN
    timestamp: int = Field(ge=0, description="Epoch milliseconds")
    tx_hash: str | None = None
    symbol: str | None = None

    def transfer(self) -> Transfer:
        return Transfer(
            asset=self.asset(),
            quantity=self.quantity,
            direction=self.direction,
            instant=from_epoch_ms(self.timestamp),
            tx_hash=self.tx_hash,
            symbol=self.symbol,
        )


class PnLRequest(CamelModel):
    transfers: list[TransferIn]
    currency: Currency = Currency.USD


def _f(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


class PnLRecordResponse(CamelModel):
    """Absolute amounts are in the response currency; ``None`` means unpriced."""

    address: str
    chain_id: int
    symbol: str | None = None
    tx_hash: str | None = None
    currency: Currency = Currency.USD
    direction: Direction
    quantity: float
    timestamp: int
    historical_price: float | None = None
    current_price: float | None = None
    cost_basis: float | None = None
    current_value: float | None = None
    profit_loss: float | None = None
    profit_loss_percentage: float | None = None

    @classmethod
    def from_record(cls, record: PnLRecord) -> PnLRecordResponse:
        t = record.transfer
        return cls(
            address=t.asset.address,
            chain_id=int(t.asset.chain_id),
            symbol=t.symbol,
            tx_hash=t.tx_hash,
            currency=record.currency,
            direction=t.direction,
            quantity=float(t.quantity),
            timestamp=epoch_ms(t.instant),
            historical_price=_f(record.historical_price_usd),
            current_price=_f(record.current_price_usd),
            cost_basis=_f(record.cost_basis_usd),
            current_value=_f(record.current_value_usd),
            profit_loss=_f(record.profit_usd),
            profit_loss_percentage=_f(record.profit_pct),
        )


class PnLSummaryResponse(CamelModel):
    total_cost_basis: float
    total_current_value: float
    total_profit_loss: float
    total_profit_loss_percentage: float
    transaction_count: int
    profitable_transactions: int
    loss_transactions: int
    break_even_transactions: int

    @classmethod
    def from_summary(cls, s: PnLSummary) -> PnLSummaryResponse:
        return cls(
            total_cost_basis=float(s.cost_basis_usd),
            total_current_value=float(s.current_value_usd),
            total_profit_loss=float(s.profit_usd),
            total_profit_loss_percentage=float(s.profit_pct),
            transaction_count=s.transfer_count,
            profitable_transactions=s.profitable_count,
            loss_transactions=s.loss_count,
            break_even_transactions=s.breakeven_count,
        )


class PnLResponse(CamelModel):
    currency: Currency
    transfers: list[PnLRecordResponse]
    summary: PnLSummaryResponse
