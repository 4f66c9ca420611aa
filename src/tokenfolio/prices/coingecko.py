"""CoinGecko source.

Well-known tokens are priced by coin id; everything else by contract
address on the chain's CoinGecko platform. Historical series need a coin id,
which is looked up once per asset and cached.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from tokenfolio.cache import ExpiringCache, TTLPolicy, identifier_key
from tokenfolio.core.exceptions import (
    IdentifierResolutionError,
    MalformedResponseError,
    ProviderError,
)
from tokenfolio.core.models import AssetId, PricePoint, Provenance, QuoteRequest, from_epoch_ms
from tokenfolio.prices.http import ProviderClient
from tokenfolio.prices.tokens import coingecko_platform, well_known_id

logger = logging.getLogger(__name__)


class CoinGeckoPrices:
    """Current-price strategy and historical series source backed by CoinGecko."""

    name = "coingecko"

    def __init__(
        self,
        client: ProviderClient,
        cache: ExpiringCache | None = None,
        ttl: TTLPolicy | None = None,
        provenance: Provenance = Provenance.SECONDARY,
    ) -> None:
        self._client = client
        self._cache = cache
        self._ttl = ttl or TTLPolicy()
        self.provenance = provenance

    async def attempt(self, request: QuoteRequest) -> Decimal | None:
        asset = request.asset
        coin_id = well_known_id(asset)
        if coin_id is not None:
            data = await self._client.get_json(
                "simple/price", params={"ids": coin_id, "vs_currencies": "usd"}
            )
            return _usd(data, coin_id)

        platform = coingecko_platform(asset.chain_id)
        data = await self._client.get_json(
            f"simple/token_price/{platform}",
            params={"contract_addresses": asset.address, "vs_currencies": "usd"},
        )
        return _usd(data, asset.address)

    async def resolve_identifier(self, asset: AssetId) -> str:
        """Coin id for ``asset``: registry first, then the cache, then the contract lookup."""
        coin_id = well_known_id(asset)
        if coin_id is not None:
            return coin_id

        key = identifier_key(self.name, asset)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        platform = coingecko_platform(asset.chain_id)
        context = {"provider": self.name, "address": asset.address, "chain_id": int(asset.chain_id)}
        try:
            info = await self._client.get_json(f"coins/{platform}/contract/{asset.address}")
        except ProviderError as e:
            if e.retryable:
                raise
            raise IdentifierResolutionError(
                f"CoinGecko does not know {asset.address} on {platform}", context=context
            ) from e

        coin_id = info.get("id") if isinstance(info, dict) else None
        if not coin_id:
            raise IdentifierResolutionError(
                f"CoinGecko returned no coin id for {asset.address}", context=context
            )

        if self._cache is not None:
            self._cache.set(key, coin_id, self._ttl.for_identifier())
        logger.debug("Resolved %s on %s to coin id %s", asset.address, platform, coin_id)
        return coin_id

    async def price_series(self, identifier: str, start: datetime, end: datetime) -> list[PricePoint]:
        data = await self._client.get_json(
            f"coins/{identifier}/market_chart/range",
            params={
                "vs_currency": "usd",
                "from": int(start.timestamp()),
                "to": int(end.timestamp()),
            },
        )
        if not isinstance(data, dict) or not isinstance(data.get("prices"), list):
            raise MalformedResponseError(
                f"CoinGecko market chart for {identifier} has no 'prices'",
                context={"provider": self.name, "coin_id": identifier},
            )

        points = []
        for row in data["prices"]:
            if not isinstance(row, list) or len(row) < 2 or row[1] is None:
                continue
            points.append(
                PricePoint(instant=from_epoch_ms(row[0]), value_usd=Decimal(str(row[1])))
            )
        return points


def _usd(data: object, key: str) -> Decimal | None:
    if not isinstance(data, dict):
        raise MalformedResponseError("CoinGecko returned a non-object body", context={"provider": "coingecko"})
    entry = data.get(key)
    if not isinstance(entry, dict) or entry.get("usd") is None:
        return None
    try:
        return Decimal(str(entry["usd"]))
    except InvalidOperation:
        return None
