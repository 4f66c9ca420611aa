"""tokenfolio.fx — USD exchange rates and display-currency conversion."""

from tokenfolio.fx.providers import (
    CurrentRatesFallback,
    ExchangeRateAPI,
    FXQuery,
    OpenExchangeRates,
    RateTable,
    StaticRates,
)
from tokenfolio.fx.service import (
    CurrencyService,
    HistoricalFXLookup,
    find_rate,
    to_display_currency,
)

__all__ = [
    "CurrencyService",
    "CurrentRatesFallback",
    "ExchangeRateAPI",
    "FXQuery",
    "HistoricalFXLookup",
    "OpenExchangeRates",
    "RateTable",
    "StaticRates",
    "find_rate",
    "to_display_currency",
]
