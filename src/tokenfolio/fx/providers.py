"""FX rate providers. Every source returns units of currency per 1 USD."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from tokenfolio.core.exceptions import (
    MalformedResponseError,
    ProviderError,
    ProviderNotConfiguredError,
)
from tokenfolio.core.models import Currency, Provenance
from tokenfolio.prices.http import ProviderClient

if TYPE_CHECKING:
    from tokenfolio.fx.service import CurrencyService

logger = logging.getLogger(__name__)

RateTable = dict[Currency, Decimal]


@dataclass(frozen=True)
class FXQuery:
    """Rates for ``currencies`` on ``day`` (UTC), or current rates when ``day`` is None."""

    currencies: tuple[Currency, ...]
    day: date | None = None

    def __str__(self) -> str:
        when = self.day.isoformat() if self.day else "current"
        return f"fx[{when}:{','.join(c.value for c in self.currencies)}]"


def _pick(raw: object, currencies: Sequence[Currency], provider: str) -> RateTable:
    """Select requested currencies from a provider's ``{code: rate}`` mapping."""
    if not isinstance(raw, Mapping):
        raise MalformedResponseError(
            f"{provider} response has no rate table", context={"provider": provider}
        )
    table: RateTable = {}
    for currency in currencies:
        if currency is Currency.USD:
            table[currency] = Decimal(1)
            continue
        value = raw.get(currency.value)
        if value is None:
            continue
        try:
            rate = Decimal(str(value))
        except InvalidOperation:
            continue
        if rate > 0:
            table[currency] = rate
    return table


class OpenExchangeRates:
    """openexchangerates.org: ``latest.json`` and ``historical/{date}.json``."""

    name = "openexchangerates"

    def __init__(
        self,
        client: ProviderClient,
        app_id: str | None,
        provenance: Provenance = Provenance.PRIMARY,
    ) -> None:
        self._client = client
        self._app_id = app_id
        self.provenance = provenance

    async def attempt(self, query: FXQuery) -> RateTable:
        if not self._app_id:
            raise ProviderNotConfiguredError(
                "Open Exchange Rates app id not configured", context={"provider": self.name}
            )
        path = "latest.json" if query.day is None else f"historical/{query.day.isoformat()}.json"
        params = {"app_id": self._app_id, "symbols": ",".join(c.value for c in query.currencies)}
        data = await self._client.get_json(path, params=params)
        rates = data.get("rates") if isinstance(data, dict) else None
        return _pick(rates, query.currencies, self.name)


class ExchangeRateAPI:
    """exchangerate-api.com v6.

    Current rates come from ``latest/USD``. Historical rates
    (``history/USD/{y}/{m}/{d}``) are only attempted when the account's plan
    supports them; otherwise the request fails and the chain falls through.
    """

    name = "exchangerate-api"

    def __init__(
        self,
        client: ProviderClient,
        api_key: str | None,
        historical: bool = False,
        provenance: Provenance = Provenance.SECONDARY,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._historical = historical
        self.provenance = provenance

    async def attempt(self, query: FXQuery) -> RateTable:
        if not self._api_key:
            raise ProviderNotConfiguredError(
                "ExchangeRate-API key not configured", context={"provider": self.name}
            )
        if query.day is None:
            path = f"{self._api_key}/latest/USD"
        elif self._historical:
            d = query.day
            path = f"{self._api_key}/history/USD/{d.year}/{d.month}/{d.day}"
        else:
            raise ProviderError(
                "ExchangeRate-API historical rates require a paid plan",
                context={"provider": self.name, "date": query.day.isoformat()},
            )

        data = await self._client.get_json(path)
        if isinstance(data, dict) and data.get("result") == "error":
            raise ProviderError(
                f"ExchangeRate-API error: {data.get('error-type', 'unknown')}",
                context={"provider": self.name},
            )
        rates = data.get("conversion_rates") if isinstance(data, dict) else None
        return _pick(rates, query.currencies, self.name)


class StaticRates:
    """Fixed approximate rates used when every provider is down."""

    name = "static"
    provenance = Provenance.FALLBACK

    def __init__(self, rates: Mapping[Currency, Decimal]) -> None:
        self._rates = {Currency(c): Decimal(str(r)) for c, r in rates.items()}
        self._rates[Currency.USD] = Decimal(1)

    @property
    def rates(self) -> RateTable:
        return dict(self._rates)

    async def attempt(self, query: FXQuery) -> RateTable:
        return {c: self._rates[c] for c in query.currencies if c in self._rates}


class CurrentRatesFallback:
    """Historical fallback that answers with today's rates."""

    name = "current-rates"
    provenance = Provenance.FALLBACK

    def __init__(self, service: CurrencyService) -> None:
        self._service = service

    async def attempt(self, query: FXQuery) -> RateTable:
        logger.warning("Historical rates unavailable for %s, using current rates", query.day)
        rates = await self._service.current_rates(query.currencies)
        return {r.target_currency: r.rate for r in rates}
