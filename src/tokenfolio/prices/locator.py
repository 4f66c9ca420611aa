"""Historical price lookup by nearest neighbour inside a time window."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta
from decimal import Decimal

from tokenfolio.core.exceptions import IdentifierResolutionError
from tokenfolio.core.models import AssetId, PricePoint, Provenance, QuoteRequest, to_utc
from tokenfolio.prices.provider import HistoricalSeriesSource

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(minutes=30)


def select_nearest(points: Sequence[PricePoint], target: datetime) -> PricePoint | None:
    """Point closest to ``target``. Ties keep the earlier point in the series; no interpolation."""
    target = to_utc(target)
    best: PricePoint | None = None
    best_diff: timedelta | None = None
    for point in points:
        diff = abs(point.instant - target)
        if best_diff is None or diff < best_diff:
            best, best_diff = point, diff
    return best


class HistoricalPriceLocator:
    """Finds an asset's USD price at an instant using one series source.

    The series is requested for ``[target - window, target + window]``. An
    asset the source cannot identify, or an empty series, yields None.
    Transport and provider errors propagate so the resolver chain and batch
    fetcher can classify them.
    """

    def __init__(
        self,
        source: HistoricalSeriesSource,
        window: timedelta = DEFAULT_WINDOW,
        provenance: Provenance = Provenance.PRIMARY,
    ) -> None:
        self._source = source
        self._window = window
        self.provenance = provenance
        self.name = f"{source.name}-historical"

    @property
    def window(self) -> timedelta:
        return self._window

    async def locate(self, asset: AssetId, target: datetime) -> Decimal | None:
        try:
            identifier = await self._source.resolve_identifier(asset)
        except IdentifierResolutionError as e:
            logger.debug("No %s identifier for %s: %s", self._source.name, asset.key, e)
            return None

        target = to_utc(target)
        points = await self._source.price_series(
            identifier, target - self._window, target + self._window
        )
        nearest = select_nearest(points, target)
        if nearest is None:
            logger.debug("%s returned no points for %s near %s", self._source.name, asset.key, target)
            return None
        return nearest.value_usd

    async def attempt(self, request: QuoteRequest) -> Decimal | None:
        if request.instant is None:
            raise ValueError("HistoricalPriceLocator needs a request with an instant")
        return await self.locate(request.asset, request.instant)
