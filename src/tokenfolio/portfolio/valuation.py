"""Value token balances with current prices and break totals down by chain."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal

from tokenfolio.core.models import ChainBreakdown, ChainId, TokenBalance
from tokenfolio.prices.tokens import chain_name


def value_balances(
    balances: Iterable[TokenBalance], prices: Mapping[str, Decimal]
) -> list[TokenBalance]:
    """Attach price and value to each balance. Unpriced balances keep None for both."""
    valued = []
    for balance in balances:
        price = prices.get(balance.asset.key)
        if price is None:
            valued.append(balance.model_copy(update={"price_usd": None, "value_usd": None}))
        else:
            valued.append(
                balance.model_copy(update={"price_usd": price, "value_usd": balance.quantity * price})
            )
    return valued


def total_value(balances: Iterable[TokenBalance]) -> Decimal:
    return sum((b.value_usd for b in balances if b.value_usd is not None), Decimal(0))


def chain_breakdown(balances: Iterable[TokenBalance]) -> list[ChainBreakdown]:
    """Per-chain totals in first-seen chain order. Unpriced balances count toward token_count."""
    totals: dict[ChainId, tuple[Decimal, int]] = {}
    for balance in balances:
        value, count = totals.get(balance.asset.chain_id, (Decimal(0), 0))
        totals[balance.asset.chain_id] = (value + (balance.value_usd or Decimal(0)), count + 1)

    return [
        ChainBreakdown(
            chain_id=chain_id,
            chain_name=chain_name(chain_id),
            total_value_usd=value,
            token_count=count,
        )
        for chain_id, (value, count) in totals.items()
    ]
