"""Static last-resort price table."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from tokenfolio.core.models import Provenance, QuoteRequest
from tokenfolio.prices.tokens import STABLECOIN_PEGS


class StaticPrices:
    """Resolver fallback: configured prices plus USD stablecoin pegs.

    ``prices`` is keyed by ``AssetId.key`` (``{address}_{chain_id}``) and
    takes precedence over the built-in pegs. The same value answers both
    current and historical requests.
    """

    name = "static"
    provenance = Provenance.FALLBACK

    def __init__(self, prices: Mapping[str, Decimal] | None = None, include_pegs: bool = True) -> None:
        table: dict[str, Decimal] = {}
        if include_pegs:
            table.update(
                {f"{address}_{int(chain)}": peg for (chain, address), peg in STABLECOIN_PEGS.items()}
            )
        for key, value in (prices or {}).items():
            table[key.lower()] = Decimal(str(value))
        self._table = table

    async def attempt(self, request: QuoteRequest) -> Decimal | None:
        return self._table.get(request.asset.key)

    def __contains__(self, key: str) -> bool:
        return key in self._table

    def __len__(self) -> int:
        return len(self._table)
