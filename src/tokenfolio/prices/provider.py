"""Interfaces implemented by quote providers."""

from __future__ import annotations

from collections.abc import Hashable
from datetime import datetime
from typing import Protocol, runtime_checkable

from tokenfolio.core.models import AssetId, PricePoint


@runtime_checkable
class HistoricalSeriesSource(Protocol):
    """A provider able to return a USD price series for an asset.

    ``resolve_identifier`` maps an asset to whatever the provider uses to
    address it (a coin id, a network/address pair, ...). It raises
    IdentifierResolutionError when the provider does not know the asset.
    """

    name: str

    async def resolve_identifier(self, asset: AssetId) -> Hashable: ...

    async def price_series(
        self, identifier: Hashable, start: datetime, end: datetime
    ) -> list[PricePoint]: ...
