"""Configuration loading, validation, and access."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from tokenfolio.core.exceptions import ConfigError
from tokenfolio.core.models import Currency


class ProvidersConfig(BaseModel):
    """Quote provider credentials and HTTP settings.

    A provider without a key is still wired into the resolver chain; it
    simply fails fast with ProviderNotConfiguredError.
    """

    model_config = ConfigDict(frozen=True)

    alchemy_api_key: str | None = None
    coingecko_api_key: str | None = None
    open_exchange_rates_app_id: str | None = None
    exchange_rate_api_key: str | None = None
    # Historical rates need a paid ExchangeRate-API plan.
    exchange_rate_api_historical: bool = False

    alchemy_base_url: str = "https://api.g.alchemy.com/prices/v1"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    open_exchange_rates_base_url: str = "https://openexchangerates.org/api"
    exchange_rate_api_base_url: str = "https://v6.exchangerate-api.com/v6"

    request_timeout: float = 15.0
    rate_limit: float = 10.0

    @field_validator("request_timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("request_timeout must be > 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("rate_limit must be > 0 requests/second")
        return v


class BatchSettings(BaseModel):
    """Tunables for one BatchFetcher instance."""

    model_config = ConfigDict(frozen=True)

    group_size: int
    group_delay: float
    max_retries: int = 3
    backoff_base: float = 1.0
    max_backoff: float = 30.0

    @field_validator("group_size")
    @classmethod
    def group_size_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("group_size must be >= 1")
        return v

    @field_validator("group_delay", "backoff_base", "max_backoff")
    @classmethod
    def delays_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("delays must be >= 0")
        return v

    @field_validator("max_retries")
    @classmethod
    def retries_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0")
        return v


class BatchConfig(BaseModel):
    """Current-price batches are cheaper than historical ones."""

    model_config = ConfigDict(frozen=True)

    current: BatchSettings = BatchSettings(group_size=5, group_delay=0.5)
    historical: BatchSettings = BatchSettings(group_size=3, group_delay=1.0)


class CacheConfig(BaseModel):
    """TTLs (seconds) for the shared expiring cache."""

    model_config = ConfigDict(frozen=True)

    current_price_common_ttl: float = 30 * 60
    current_price_ttl: float = 5 * 60
    historical_price_ttl: float = 7 * 24 * 3600
    current_fx_ttl: float = 24 * 3600
    historical_fx_ttl: float = 30 * 24 * 3600
    identifier_ttl: float = 7 * 24 * 3600
    sweep_interval: float = 5 * 60

    @model_validator(mode="after")
    def ttls_positive(self) -> CacheConfig:
        for name, value in self.model_dump().items():
            if value <= 0:
                raise ValueError(f"{name} must be > 0")
        return self


class ResolverConfig(BaseModel):
    """Resolver chain settings."""

    model_config = ConfigDict(frozen=True)

    timeout: float | None = 20.0
    static_prices: dict[str, Decimal] = {}

    @field_validator("timeout")
    @classmethod
    def timeout_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout must be > 0 or null")
        return v


class FXConfig(BaseModel):
    """Foreign-exchange settings."""

    model_config = ConfigDict(frozen=True)

    currencies: list[Currency] = list(Currency)
    fallback_rates: dict[Currency, Decimal] = {
        Currency.USD: Decimal("1.0"),
        Currency.AUD: Decimal("1.54"),
        Currency.GBP: Decimal("0.79"),
        Currency.CAD: Decimal("1.37"),
    }
    historical_fallback_to_current: bool = True

    @model_validator(mode="after")
    def fallback_covers_currencies(self) -> FXConfig:
        missing = [c.value for c in Currency if c not in self.fallback_rates]
        if missing:
            raise ValueError(f"fallback_rates missing currencies: {', '.join(missing)}")
        return self


class APIConfig(BaseModel):
    """FastAPI server configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int = 8000
    api_key: str | None = None


class TokenfolioConfig(BaseModel):
    """Root configuration for the entire tokenfolio system."""

    model_config = ConfigDict(frozen=True)

    providers: ProvidersConfig = ProvidersConfig()
    batch: BatchConfig = BatchConfig()
    cache: CacheConfig = CacheConfig()
    resolver: ResolverConfig = ResolverConfig()
    fx: FXConfig = FXConfig()
    api: APIConfig = APIConfig()


def load_config(
    config_path: str | None = None,
    env_prefix: str = "TOKENFOLIO_",
) -> TokenfolioConfig:
    """Load configuration from environment + YAML file + defaults.

    Resolution order (highest priority first):
    1. Environment variables (TOKENFOLIO_PROVIDERS__ALCHEMY_API_KEY, etc.)
    2. YAML file at config_path
    3. Built-in defaults

    Nested keys use double-underscore in env vars:
        TOKENFOLIO_BATCH__CURRENT__GROUP_SIZE=10  ->  batch.current.group_size = 10
    """
    try:
        yaml_path = _resolve_config_path(config_path)
        base: dict = {}
        if yaml_path is not None:
            base = _load_yaml(yaml_path)

        merged = _merge_env_vars(base, env_prefix)
        return TokenfolioConfig.model_validate(merged)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(str(e), context={"source": "load_config"}) from e


def _resolve_config_path(explicit: str | None) -> Path | None:
    """Determine config file path."""
    if explicit is not None:
        p = Path(explicit)
        if not p.exists():
            raise ConfigError(
                f"Config file not found: {explicit}",
                context={"field": "config_path", "value": explicit},
            )
        return p

    env_path = os.environ.get("TOKENFOLIO_CONFIG")
    if env_path:
        p = Path(env_path)
        if not p.exists():
            raise ConfigError(
                f"Config file from TOKENFOLIO_CONFIG not found: {env_path}",
                context={"field": "TOKENFOLIO_CONFIG", "value": env_path},
            )
        return p

    default = Path("tokenfolio.yml")
    if default.exists():
        return default

    return None


def _load_yaml(path: Path) -> dict:
    """Load and parse YAML file."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(
                f"YAML config must be a mapping, got {type(data).__name__}",
                context={"field": "config_file", "value": str(path)},
            )
        return data
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Failed to parse YAML config: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Overlay environment variables onto base config dict.

    Double-underscore separates nesting levels.
    Values are auto-cast: "true"/"false" -> bool, numeric strings -> int/float.
    """
    result = dict(base)

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        remainder = key[len(prefix) :]
        parts = [p.lower() for p in remainder.split("__")]

        if parts == ["config"]:
            continue

        cast_value = _auto_cast(value)

        target = result
        for part in parts[:-1]:
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        target[parts[-1]] = cast_value

    return result


def _auto_cast(value: str) -> str | int | float | bool:
    """Auto-cast string values from environment variables."""
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
