"""Tests for the FastAPI REST API module."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

import tokenfolio
from tokenfolio.api.app import create_app
from tokenfolio.core.config import APIConfig, TokenfolioConfig
from tokenfolio.core.exceptions import (
    ConfigError,
    ProviderError,
    TransientProviderError,
)
from tokenfolio.core.models import AssetId, ChainId, Currency, QuoteRequest, from_epoch_ms

WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
UNKNOWN = "0x1111111111111111111111111111111111111111"
T0_MS = 1709294400000  # 2024-03-01T12:00:00Z
FX = {
    Currency.USD: Decimal(1),
    Currency.AUD: Decimal("1.5"),
    Currency.GBP: Decimal("0.8"),
    Currency.CAD: Decimal("1.3"),
}


# -- Fixtures --


@pytest.fixture
def engine(engine_factory, fake_strategy):
    asset = AssetId(address=WETH, chain_id=ChainId.ETHEREUM)
    historical_key = QuoteRequest(asset=asset, instant=from_epoch_ms(T0_MS)).key
    return engine_factory(
        current=fake_strategy("alchemy", values={asset.key: Decimal("3200")}),
        historical=fake_strategy("coingecko-historical", values={historical_key: Decimal("2000")}),
        fx=fake_strategy("openexchangerates", default=dict(FX)),
    )


@pytest.fixture
def app(test_config, engine):
    return create_app(config=test_config, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def authed_client(engine):
    config = TokenfolioConfig(api=APIConfig(api_key="test-secret-key"))
    with TestClient(create_app(config=config, engine=engine)) as c:
        yield c


# -- Health Endpoint --


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["version"] == tokenfolio.__version__
        assert data["cacheSize"] == 0


# -- Prices --


class TestPrices:
    def test_current_prices(self, client):
        resp = client.post("/api/prices", json={"tokens": [{"address": WETH, "chainId": 1}]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["prices"] == {f"{WETH.lower()}_1": 3200.0}
        assert (data["cached"], data["fetched"], data["total"]) == (0, 1, 1)

    def test_second_request_cached(self, client):
        body = {"tokens": [{"address": WETH, "chainId": 1}]}
        client.post("/api/prices", json=body)
        data = client.post("/api/prices", json=body).json()
        assert data["cached"] == 1
        assert data["fetched"] == 0

    def test_unknown_token_absent(self, client):
        resp = client.post("/api/prices", json={"tokens": [{"address": UNKNOWN, "chainId": 8453}]})
        assert resp.status_code == 200
        assert resp.json()["prices"] == {}

    def test_invalid_address(self, client):
        resp = client.post("/api/prices", json={"tokens": [{"address": "0x123", "chainId": 1}]})
        assert resp.status_code == 422

    def test_unsupported_chain(self, client):
        resp = client.post("/api/prices", json={"tokens": [{"address": WETH, "chainId": 10}]})
        assert resp.status_code == 422

    def test_cache_stats(self, client):
        client.post("/api/prices", json={"tokens": [{"address": WETH, "chainId": 1}]})
        data = client.get("/api/prices").json()
        assert data["size"] == 1
        assert data["keys"] == [f"price:{WETH.lower()}:1"]

    def test_historical_prices(self, client):
        resp = client.post(
            "/api/prices/historical",
            json={"requests": [{"address": WETH, "chainId": 1, "timestamp": T0_MS}]},
        )
        assert resp.status_code == 200
        assert resp.json()["prices"] == {f"{WETH.lower()}_1_{T0_MS}": 2000.0}

    def test_historical_negative_timestamp(self, client):
        resp = client.post(
            "/api/prices/historical",
            json={"requests": [{"address": WETH, "chainId": 1, "timestamp": -1}]},
        )
        assert resp.status_code == 422


# -- FX --


class TestFX:
    def test_current_rates(self, client):
        resp = client.get("/api/fx-rates", params={"currencies": "aud,GBP"})
        assert resp.status_code == 200
        rates = resp.json()["rates"]
        assert [r["targetCurrency"] for r in rates] == ["AUD", "GBP"]
        assert rates[0]["baseCurrency"] == "USD"
        assert rates[0]["rate"] == 1.5
        assert rates[0]["provenance"] == "primary"
        assert rates[0]["date"] is None

    def test_all_configured_currencies(self, client):
        rates = client.get("/api/fx-rates").json()["rates"]
        assert len(rates) == 4

    def test_unsupported_currency(self, client):
        resp = client.get("/api/fx-rates", params={"currencies": "AUD,XYZ"})
        assert resp.status_code == 422

    def test_historical_rates(self, client):
        resp = client.post(
            "/api/fx-rates/historical",
            json={
                "requests": [
                    {"timestamp": T0_MS, "currencies": ["AUD"]},
                    {"timestamp": T0_MS + 3_600_000},
                ]
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert list(data["rates"]) == ["2024-03-01"]
        assert data["rates"]["2024-03-01"][0]["date"] == "2024-03-01"
        assert (data["cached"], data["fetched"], data["total"]) == (1, 1, 2)

    def test_convert(self, client):
        resp = client.get("/api/convert", params={"amount": "100", "currency": "AUD"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["amountUsd"] == 100.0
        assert data["amount"] == 150.0
        assert data["currency"] == "AUD"
        assert data["timestamp"] is None

    def test_convert_historical(self, client):
        resp = client.get(
            "/api/convert", params={"amount": "10", "currency": "GBP", "timestamp": T0_MS}
        )
        assert resp.json()["amount"] == 8.0
        assert resp.json()["timestamp"] == T0_MS

    def test_convert_bad_currency(self, client):
        resp = client.get("/api/convert", params={"amount": "1", "currency": "EUR"})
        assert resp.status_code == 422


# -- P&L --


class TestPnL:
    def _transfer(self, **overrides):
        body = {
            "address": WETH,
            "chainId": 1,
            "quantity": "10",
            "timestamp": T0_MS,
            "txHash": "0xabc",
            "symbol": "WETH",
        }
        body.update(overrides)
        return body

    def test_pnl(self, client):
        resp = client.post("/api/pnl", json={"transfers": [self._transfer()]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["currency"] == "USD"
        record = data["transfers"][0]
        assert record["costBasis"] == 20000.0
        assert record["currentValue"] == 32000.0
        assert record["profitLoss"] == 12000.0
        assert record["profitLossPercentage"] == 60.0
        assert record["txHash"] == "0xabc"
        summary = data["summary"]
        assert summary["totalProfitLoss"] == 12000.0
        assert summary["transactionCount"] == 1
        assert summary["profitableTransactions"] == 1

    def test_pnl_in_aud(self, client):
        resp = client.post(
            "/api/pnl", json={"transfers": [self._transfer()], "currency": "AUD"}
        )
        data = resp.json()
        assert data["currency"] == "AUD"
        assert data["summary"]["totalProfitLoss"] == 18000.0
        assert data["transfers"][0]["currency"] == "AUD"
        assert data["summary"]["totalProfitLossPercentage"] == 60.0

    def test_unpriced_transfer(self, client):
        resp = client.post(
            "/api/pnl",
            json={"transfers": [self._transfer(), self._transfer(address=UNKNOWN, chainId=8453)]},
        )
        data = resp.json()
        assert data["transfers"][1]["profitLoss"] is None
        assert data["summary"]["transactionCount"] == 1

    def test_negative_quantity(self, client):
        resp = client.post("/api/pnl", json={"transfers": [self._transfer(quantity="-1")]})
        assert resp.status_code == 422


# -- Authentication --


class TestAuth:
    def test_health_exempt(self, authed_client):
        assert authed_client.get("/api/health").status_code == 200

    def test_missing_key_rejected(self, authed_client):
        resp = authed_client.get("/api/prices")
        assert resp.status_code == 401
        assert resp.json()["error"] == "Unauthorized"

    def test_wrong_key_rejected(self, authed_client):
        resp = authed_client.get("/api/prices", headers={"X-API-Key": "nope"})
        assert resp.status_code == 401

    def test_valid_key(self, authed_client):
        resp = authed_client.get("/api/prices", headers={"X-API-Key": "test-secret-key"})
        assert resp.status_code == 200


# -- Error mapping --


class TestErrorHandling:
    @pytest.mark.parametrize(
        "exc,status",
        [
            (ConfigError("bad"), 400),
            (TransientProviderError("down"), 503),
            (ProviderError("broken"), 502),
        ],
    )
    def test_tokenfolio_errors_mapped(self, client, engine, exc, status):
        engine.convert = AsyncMock(side_effect=exc)
        resp = client.get("/api/convert", params={"amount": "1", "currency": "AUD"})
        assert resp.status_code == status
        assert resp.json()["error"] == type(exc).__name__
