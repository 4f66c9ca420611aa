"""tokenfolio.core — Foundation types, config, and exceptions."""

from tokenfolio.core.config import (
    APIConfig,
    BatchConfig,
    BatchSettings,
    CacheConfig,
    FXConfig,
    ProvidersConfig,
    ResolverConfig,
    TokenfolioConfig,
    load_config,
)
from tokenfolio.core.exceptions import (
    ConfigError,
    IdentifierResolutionError,
    MalformedResponseError,
    ProviderError,
    ProviderNotConfiguredError,
    RateLimitError,
    TokenfolioError,
    TransientProviderError,
)
from tokenfolio.core.models import (
    Address,
    AssetId,
    ChainBreakdown,
    ChainId,
    Currency,
    Direction,
    FXRate,
    PnLRecord,
    PnLStatus,
    PnLSummary,
    PortfolioPnL,
    PriceKey,
    PricePoint,
    Provenance,
    Quote,
    QuoteRequest,
    TokenBalance,
    Transfer,
)

__all__ = [
    # Type aliases
    "Address",
    "PriceKey",
    # Enums
    "ChainId",
    "Provenance",
    "Currency",
    "Direction",
    "PnLStatus",
    # Quote models
    "AssetId",
    "QuoteRequest",
    "Quote",
    "PricePoint",
    "FXRate",
    # Portfolio models
    "Transfer",
    "PnLRecord",
    "PnLSummary",
    "PortfolioPnL",
    "TokenBalance",
    "ChainBreakdown",
    # Config
    "TokenfolioConfig",
    "ProvidersConfig",
    "BatchConfig",
    "BatchSettings",
    "CacheConfig",
    "ResolverConfig",
    "FXConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "TokenfolioError",
    "ConfigError",
    "ProviderError",
    "TransientProviderError",
    "RateLimitError",
    "ProviderNotConfiguredError",
    "IdentifierResolutionError",
    "MalformedResponseError",
]
