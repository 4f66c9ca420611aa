"""Cache key builders and the TTL policy applied to each kind of entry."""

from __future__ import annotations

from datetime import date

from tokenfolio.core.config import CacheConfig
from tokenfolio.core.models import AssetId, QuoteRequest, epoch_ms


def price_key(request: QuoteRequest) -> str:
    """``price:{address}:{chain}`` or ``historical:{address}:{chain}:{epoch_ms}``."""
    asset = request.asset
    if request.instant is None:
        return f"price:{asset.address}:{int(asset.chain_id)}"
    return f"historical:{asset.address}:{int(asset.chain_id)}:{epoch_ms(request.instant)}"


def current_fx_key() -> str:
    return "fx:current"


def historical_fx_key(day: date) -> str:
    return f"fx:historical:{day.isoformat()}"


def identifier_key(provider: str, asset: AssetId) -> str:
    """Provider-specific asset identifier (e.g. a CoinGecko coin id)."""
    return f"{provider}-id:{int(asset.chain_id)}:{asset.address}"


class TTLPolicy:
    """Maps entry kinds to lifetimes in seconds.

    Historical values never change once observed, so they outlive current
    ones by orders of magnitude; the cap only exists for cache hygiene.
    """

    def __init__(self, config: CacheConfig | None = None) -> None:
        self._config = config or CacheConfig()

    def for_price(self, request: QuoteRequest, *, common: bool) -> float:
        if request.instant is not None:
            return self._config.historical_price_ttl
        if common:
            return self._config.current_price_common_ttl
        return self._config.current_price_ttl

    def for_fx(self, *, historical: bool) -> float:
        if historical:
            return self._config.historical_fx_ttl
        return self._config.current_fx_ttl

    def for_identifier(self) -> float:
        return self._config.identifier_ttl
