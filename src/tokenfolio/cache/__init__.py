"""tokenfolio.cache — Shared expiring cache, key builders and TTL policy."""

from tokenfolio.cache.keys import (
    TTLPolicy,
    current_fx_key,
    historical_fx_key,
    identifier_key,
    price_key,
)
from tokenfolio.cache.store import CacheEntry, ExpiringCache

__all__ = [
    "CacheEntry",
    "ExpiringCache",
    "TTLPolicy",
    "price_key",
    "current_fx_key",
    "historical_fx_key",
    "identifier_key",
]
