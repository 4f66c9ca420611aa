"""tokenfolio.prices — Quote providers, historical locator and the price service."""

from tokenfolio.prices.alchemy import AlchemyPrices
from tokenfolio.prices.coingecko import CoinGeckoPrices
from tokenfolio.prices.http import ProviderClient
from tokenfolio.prices.locator import HistoricalPriceLocator, select_nearest
from tokenfolio.prices.provider import HistoricalSeriesSource
from tokenfolio.prices.service import PriceLookup, PriceService
from tokenfolio.prices.static import StaticPrices
from tokenfolio.prices.tokens import (
    CHAIN_INFO,
    COMMON_TOKENS,
    NATIVE_ADDRESS,
    WELL_KNOWN_TOKENS,
    chain_name,
    is_common,
    well_known_id,
)

__all__ = [
    # Providers
    "AlchemyPrices",
    "CoinGeckoPrices",
    "ProviderClient",
    "StaticPrices",
    "HistoricalSeriesSource",
    # Lookup
    "HistoricalPriceLocator",
    "select_nearest",
    "PriceLookup",
    "PriceService",
    # Registry
    "CHAIN_INFO",
    "COMMON_TOKENS",
    "NATIVE_ADDRESS",
    "WELL_KNOWN_TOKENS",
    "chain_name",
    "is_common",
    "well_known_id",
]
