"""Alchemy Prices API source.

Current prices come from ``POST /tokens/by-address``; historical series from
``GET /tokens/historical``. Both require an API key sent as a Bearer token.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal, InvalidOperation

from tokenfolio.core.exceptions import MalformedResponseError, ProviderNotConfiguredError
from tokenfolio.core.models import AssetId, PricePoint, Provenance, QuoteRequest, to_utc
from tokenfolio.prices.http import ProviderClient
from tokenfolio.prices.tokens import alchemy_network

logger = logging.getLogger(__name__)


class AlchemyPrices:
    """Current-price strategy and historical series source backed by Alchemy."""

    name = "alchemy"

    def __init__(
        self,
        client: ProviderClient,
        api_key: str | None,
        provenance: Provenance = Provenance.PRIMARY,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self.provenance = provenance

    def _auth(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderNotConfiguredError(
                "Alchemy API key not configured", context={"provider": self.name}
            )
        return {"Authorization": f"Bearer {self._api_key}"}

    async def attempt(self, request: QuoteRequest) -> Decimal | None:
        prices = await self.current_prices([request.asset])
        return prices.get(request.asset.key)

    async def current_prices(self, assets: Iterable[AssetId]) -> dict[str, Decimal]:
        """Batch spot prices, keyed by ``AssetId.key``. Assets Alchemy errors on are omitted."""
        headers = self._auth()
        assets = list(assets)
        if not assets:
            return {}

        body = {
            "addresses": [
                {"network": alchemy_network(a.chain_id), "address": a.address} for a in assets
            ]
        }
        payload = await self._client.post_json("tokens/by-address", json=body, headers=headers)
        entries = _require(payload, "data", list)

        results: dict[str, Decimal] = {}
        for asset, entry in zip(assets, entries):
            if entry.get("error"):
                logger.debug("Alchemy error for %s: %s", asset.key, entry["error"])
                continue
            usd = next(
                (p for p in entry.get("prices") or [] if str(p.get("currency")).lower() == "usd"),
                None,
            )
            if usd is None:
                continue
            value = _decimal(usd.get("value"))
            if value is not None:
                results[asset.key] = value

        logger.debug("Alchemy returned %d/%d prices", len(results), len(assets))
        return results

    async def resolve_identifier(self, asset: AssetId) -> tuple[str, str]:
        return alchemy_network(asset.chain_id), asset.address

    async def price_series(
        self, identifier: tuple[str, str], start: datetime, end: datetime
    ) -> list[PricePoint]:
        headers = self._auth()
        network, address = identifier
        params = {
            "network": network,
            "address": address,
            "startTime": _iso(start),
            "endTime": _iso(end),
        }
        payload = await self._client.get_json("tokens/historical", params=params, headers=headers)
        data = _require(payload, "data", dict)

        points = []
        for item in data.get("prices") or []:
            value = _decimal(item.get("value"))
            if value is None or not item.get("timestamp"):
                continue
            instant = datetime.fromisoformat(str(item["timestamp"]).replace("Z", "+00:00"))
            points.append(PricePoint(instant=instant, value_usd=value))
        return points


def _iso(value: datetime) -> str:
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def _require(payload: object, field: str, kind: type) -> object:
    if not isinstance(payload, dict) or not isinstance(payload.get(field), kind):
        raise MalformedResponseError(
            f"Alchemy response missing '{field}'", context={"provider": "alchemy"}
        )
    return payload[field]


def _decimal(raw: object) -> Decimal | None:
    if raw is None:
        return None
    try:
        return Decimal(str(raw))
    except InvalidOperation:
        return None
