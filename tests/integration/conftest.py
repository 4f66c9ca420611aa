"""Integration test fixtures: the real provider wiring with HTTP mocked by respx."""

from __future__ import annotations

import pytest

from tokenfolio.core.config import (
    APIConfig,
    ProvidersConfig,
    TokenfolioConfig,
)


@pytest.fixture
def live_config() -> TokenfolioConfig:
    """Config with Alchemy and Open Exchange Rates credentials."""
    return TokenfolioConfig(
        providers=ProvidersConfig(
            alchemy_api_key="alchemy-key",
            open_exchange_rates_app_id="oxr-app",
            rate_limit=1000.0,
        ),
        api=APIConfig(api_key=None),
    )
