"""Static registry: chains, provider network names, well-known tokens."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from tokenfolio.core.models import AssetId, ChainId

NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass(frozen=True)
class ChainInfo:
    name: str
    short_name: str
    native_currency: str
    alchemy_network: str
    coingecko_platform: str
    layer: str


CHAIN_INFO: dict[ChainId, ChainInfo] = {
    ChainId.ETHEREUM: ChainInfo("Ethereum", "ETH", "ETH", "eth-mainnet", "ethereum", "L1"),
    ChainId.ARBITRUM: ChainInfo("Arbitrum", "ARB", "ETH", "arb-mainnet", "arbitrum-one", "L2"),
    ChainId.BASE: ChainInfo("Base", "BASE", "ETH", "base-mainnet", "base", "L2"),
}


def chain_name(chain_id: int) -> str:
    try:
        return CHAIN_INFO[ChainId(chain_id)].name
    except ValueError:
        return "Unknown"


def alchemy_network(chain_id: ChainId) -> str:
    return CHAIN_INFO[chain_id].alchemy_network


def coingecko_platform(chain_id: ChainId) -> str:
    return CHAIN_INFO[chain_id].coingecko_platform


# (chain, address) -> CoinGecko coin id. The native asset is ETH on every chain.
WELL_KNOWN_TOKENS: dict[tuple[ChainId, str], str] = {
    (ChainId.ETHEREUM, NATIVE_ADDRESS): "ethereum",
    (ChainId.ARBITRUM, NATIVE_ADDRESS): "ethereum",
    (ChainId.BASE, NATIVE_ADDRESS): "ethereum",
    # Ethereum mainnet
    (ChainId.ETHEREUM, "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"): "usd-coin",
    (ChainId.ETHEREUM, "0xdac17f958d2ee523a2206206994597c13d831ec7"): "tether",
    (ChainId.ETHEREUM, "0x2260fac5e5542a773aa44fbcfedf7c193bc2c599"): "wrapped-bitcoin",
    (ChainId.ETHEREUM, "0x6b175474e89094c44da98b954eedeac495271d0f"): "dai",
    (ChainId.ETHEREUM, "0x7fc66500c84a76ad7e9c93437bfc5ac33e2ddae9"): "aave",
    (ChainId.ETHEREUM, "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"): "uniswap",
    (ChainId.ETHEREUM, "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"): "weth",
    # Arbitrum
    (ChainId.ARBITRUM, "0xff970a61a04b1ca14834a43f5de4533ebddb5cc8"): "usd-coin",
    (ChainId.ARBITRUM, "0xfd086bc7cd5c481dcc9c85ebe478a1c0b69fcbb9"): "tether",
    (ChainId.ARBITRUM, "0xfc5a1a6eb076a2c7ad06ed22c90d7e710e35ad0a"): "gmx",
    # Base
    (ChainId.BASE, "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"): "usd-coin",
}

# Liquid, slow-moving assets whose spot price is cached longer.
_UNCOMMON_IDS = frozenset({"aave", "uniswap"})
COMMON_TOKENS: frozenset[tuple[ChainId, str]] = frozenset(
    k for k, coin_id in WELL_KNOWN_TOKENS.items() if coin_id not in _UNCOMMON_IDS
)

# USD stablecoins: last-resort static price of 1.
STABLECOIN_PEGS: dict[tuple[ChainId, str], Decimal] = {
    k: Decimal("1") for k, coin_id in WELL_KNOWN_TOKENS.items()
    if coin_id in {"usd-coin", "tether", "dai"}
}


def well_known_id(asset: AssetId) -> str | None:
    return WELL_KNOWN_TOKENS.get((asset.chain_id, asset.address))


def is_common(asset: AssetId) -> bool:
    return (asset.chain_id, asset.address) in COMMON_TOKENS
