"""Pydantic data models — the system's type contracts."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from enum import IntEnum, StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

Address = str
PriceKey = str

# --- Enumerations ---


class ChainId(IntEnum):
    """EVM chains supported for pricing."""

    ETHEREUM = 1
    ARBITRUM = 42161
    BASE = 8453


class Provenance(StrEnum):
    """Which link of the resolver chain produced a value."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    FALLBACK = "fallback"


class Currency(StrEnum):
    """Display currencies. USD is the base of every rate."""

    USD = "USD"
    AUD = "AUD"
    GBP = "GBP"
    CAD = "CAD"


class Direction(StrEnum):
    """Transfer direction relative to the holder."""

    IN = "in"
    OUT = "out"


class PnLStatus(StrEnum):
    """Sign of a profit/loss figure."""

    PROFIT = "profit"
    LOSS = "loss"
    BREAKEVEN = "breakeven"


# --- Helpers ---


def to_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def epoch_ms(value: datetime) -> int:
    """Milliseconds since the Unix epoch, the key unit for historical prices."""
    utc = to_utc(value)
    return int(utc.replace(microsecond=0).timestamp()) * 1000 + utc.microsecond // 1000


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def from_epoch_ms(ms: int | float) -> datetime:
    return _EPOCH + timedelta(milliseconds=ms)


def normalize_address(value: str) -> Address:
    """Lower-case a 0x-prefixed 20-byte hex address, or raise ValueError."""
    v = value.strip().lower()
    if not v.startswith("0x") or len(v) != 42:
        raise ValueError(f"Address must be a 0x-prefixed 20-byte hex string, got: {v!r}")
    try:
        int(v[2:], 16)
    except ValueError:
        raise ValueError(f"Address is not valid hex: {v!r}") from None
    return v


# --- Asset / Quote Models ---


class AssetId(BaseModel):
    """An on-chain asset: contract address on a specific chain.

    The zero address denotes the chain's native asset (ETH).
    """

    model_config = ConfigDict(frozen=True)

    address: Address
    chain_id: ChainId

    @field_validator("address")
    @classmethod
    def address_is_hex(cls, v: str) -> str:
        return normalize_address(v)

    @property
    def key(self) -> PriceKey:
        """Canonical current-price key: ``{address}_{chain_id}``."""
        return f"{self.address}_{int(self.chain_id)}"


class QuoteRequest(BaseModel):
    """One price lookup. ``instant=None`` means the current spot price."""

    model_config = ConfigDict(frozen=True)

    asset: AssetId
    instant: datetime | None = None

    @field_validator("instant")
    @classmethod
    def instant_is_utc(cls, v: datetime | None) -> datetime | None:
        return to_utc(v) if v is not None else None

    @property
    def is_current(self) -> bool:
        return self.instant is None

    @property
    def key(self) -> PriceKey:
        """Canonical dedup key.

        ``{address}_{chain_id}`` for current prices and
        ``{address}_{chain_id}_{epoch_ms}`` for historical ones.
        """
        if self.instant is None:
            return self.asset.key
        return f"{self.asset.key}_{epoch_ms(self.instant)}"


class Quote(BaseModel):
    """A resolved USD price with its provenance."""

    model_config = ConfigDict(frozen=True)

    request: QuoteRequest
    value_usd: Decimal
    provenance: Provenance
    observed_at: datetime
    source: str = "unknown"


class PricePoint(BaseModel):
    """A single point of a provider price time series."""

    model_config = ConfigDict(frozen=True)

    instant: datetime
    value_usd: Decimal

    @field_validator("instant")
    @classmethod
    def instant_is_utc(cls, v: datetime) -> datetime:
        return to_utc(v)


class FXRate(BaseModel):
    """Units of ``target_currency`` per 1 USD."""

    model_config = ConfigDict(frozen=True)

    target_currency: Currency
    rate: Decimal
    instant: datetime | None = None
    rate_date: date | None = None
    provenance: Provenance
    source: str = "unknown"

    @property
    def base_currency(self) -> Currency:
        return Currency.USD

    @property
    def is_historical(self) -> bool:
        return self.rate_date is not None


# --- Portfolio Models ---


class Transfer(BaseModel):
    """A single asset movement supplied by the blockchain data collaborator."""

    model_config = ConfigDict(frozen=True)

    asset: AssetId
    quantity: Decimal
    direction: Direction
    instant: datetime
    tx_hash: str | None = None
    symbol: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError(f"quantity must be >= 0, got {v}")
        return v

    @field_validator("instant")
    @classmethod
    def instant_is_utc(cls, v: datetime) -> datetime:
        return to_utc(v)

    @property
    def historical_request(self) -> QuoteRequest:
        return QuoteRequest(asset=self.asset, instant=self.instant)


class PnLRecord(BaseModel):
    """Profit/loss of one transfer. Derived fields are None when a price is absent.

    Monetary fields are in ``currency``; the ``_usd`` names hold until the
    record is converted to a display currency.
    """

    model_config = ConfigDict(frozen=True)

    transfer: Transfer
    currency: Currency = Currency.USD
    historical_price_usd: Decimal | None = None
    current_price_usd: Decimal | None = None
    cost_basis_usd: Decimal | None = None
    current_value_usd: Decimal | None = None
    profit_usd: Decimal | None = None
    profit_pct: Decimal | None = None

    @property
    def is_priced(self) -> bool:
        return self.cost_basis_usd is not None and self.current_value_usd is not None


class PnLSummary(BaseModel):
    """Portfolio-wide aggregate over the priced transfers, in ``currency``."""

    model_config = ConfigDict(frozen=True)

    currency: Currency = Currency.USD
    cost_basis_usd: Decimal = Decimal(0)
    current_value_usd: Decimal = Decimal(0)
    profit_usd: Decimal = Decimal(0)
    profit_pct: Decimal = Decimal(0)
    transfer_count: int = 0
    profitable_count: int = 0
    loss_count: int = 0
    breakeven_count: int = 0


class PortfolioPnL(BaseModel):
    """Result of the P&L engine: per-transfer records plus the summary.

    Absolute amounts are in ``currency``; the ``_usd`` field names refer to
    the unconverted figures.
    """

    model_config = ConfigDict(frozen=True)

    per_transfer: list[PnLRecord]
    summary: PnLSummary
    currency: Currency = Currency.USD


class TokenBalance(BaseModel):
    """A holding reported by the blockchain collaborator, optionally priced."""

    model_config = ConfigDict(frozen=True)

    asset: AssetId
    symbol: str
    quantity: Decimal
    price_usd: Decimal | None = None
    value_usd: Decimal | None = None


class ChainBreakdown(BaseModel):
    """Total value held on one chain."""

    model_config = ConfigDict(frozen=True)

    chain_id: ChainId
    chain_name: str
    total_value_usd: Decimal
    token_count: int
