"""Cost-basis and profit/loss per transfer and across a portfolio.

    cost_basis    = quantity * historical price (at the transfer instant)
    current_value = quantity * current price
    profit        = current_value - cost_basis
    profit_pct    = profit / cost_basis * 100   (0 when cost_basis is 0)

Transfer direction does not change the arithmetic: every transfer is valued
as if still held.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from tokenfolio.core.models import (
    Currency,
    PnLRecord,
    PnLStatus,
    PnLSummary,
    PortfolioPnL,
    Transfer,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal(0)
_HUNDRED = Decimal(100)


def profit_pct(profit: Decimal, cost_basis: Decimal) -> Decimal:
    if cost_basis > 0:
        return profit / cost_basis * _HUNDRED
    return _ZERO


def pnl_status(profit: Decimal) -> PnLStatus:
    if profit > 0:
        return PnLStatus.PROFIT
    if profit < 0:
        return PnLStatus.LOSS
    return PnLStatus.BREAKEVEN


def compute_record(
    transfer: Transfer,
    historical_price: Decimal | None,
    current_price: Decimal | None,
) -> PnLRecord:
    """P&L for one transfer. Any absent price leaves every derived field None."""
    if historical_price is None or current_price is None:
        return PnLRecord(
            transfer=transfer,
            historical_price_usd=historical_price,
            current_price_usd=current_price,
        )

    cost_basis = transfer.quantity * historical_price
    current_value = transfer.quantity * current_price
    profit = current_value - cost_basis
    return PnLRecord(
        transfer=transfer,
        historical_price_usd=historical_price,
        current_price_usd=current_price,
        cost_basis_usd=cost_basis,
        current_value_usd=current_value,
        profit_usd=profit,
        profit_pct=profit_pct(profit, cost_basis),
    )


def summarize(records: Iterable[PnLRecord]) -> PnLSummary:
    """Aggregate over priced records only; the percentage comes from the sums."""
    records = list(records)
    currencies = {r.currency for r in records}
    if len(currencies) > 1:
        raise ValueError(f"Cannot summarize records in mixed currencies: {sorted(currencies)}")
    cost_basis = _ZERO
    current_value = _ZERO
    counts = dict.fromkeys(PnLStatus, 0)
    priced = 0

    for record in records:
        if not record.is_priced:
            continue
        priced += 1
        cost_basis += record.cost_basis_usd
        current_value += record.current_value_usd
        counts[pnl_status(record.profit_usd)] += 1

    profit = current_value - cost_basis
    return PnLSummary(
        currency=currencies.pop() if currencies else Currency.USD,
        cost_basis_usd=cost_basis,
        current_value_usd=current_value,
        profit_usd=profit,
        profit_pct=profit_pct(profit, cost_basis),
        transfer_count=priced,
        profitable_count=counts[PnLStatus.PROFIT],
        loss_count=counts[PnLStatus.LOSS],
        breakeven_count=counts[PnLStatus.BREAKEVEN],
    )


def build_portfolio_pnl(
    transfers: Sequence[Transfer],
    historical_prices: Mapping[str, Decimal],
    current_prices: Mapping[str, Decimal],
) -> PortfolioPnL:
    """Join transfers with price maps keyed by ``QuoteRequest.key`` / ``AssetId.key``."""
    records = [
        compute_record(
            transfer,
            historical_prices.get(transfer.historical_request.key),
            current_prices.get(transfer.asset.key),
        )
        for transfer in transfers
    ]
    summary = summarize(records)
    logger.info("Computed P&L for %d/%d transfers", summary.transfer_count, len(records))
    return PortfolioPnL(per_transfer=records, summary=summary)


def filter_records(records: Iterable[PnLRecord], status: PnLStatus | None = None) -> list[PnLRecord]:
    """Records with the given status; ``None`` keeps everything, priced or not."""
    if status is None:
        return list(records)
    return [r for r in records if r.profit_usd is not None and pnl_status(r.profit_usd) == status]


def sort_records(records: Iterable[PnLRecord], descending: bool = True) -> list[PnLRecord]:
    """Order by profit; unpriced records count as zero."""
    return sorted(
        records,
        key=lambda r: r.profit_usd if r.profit_usd is not None else _ZERO,
        reverse=descending,
    )


def top_profitable(records: Iterable[PnLRecord], count: int = 10) -> list[PnLRecord]:
    return sort_records(filter_records(records, PnLStatus.PROFIT), descending=True)[:count]


def top_losses(records: Iterable[PnLRecord], count: int = 10) -> list[PnLRecord]:
    return sort_records(filter_records(records, PnLStatus.LOSS), descending=False)[:count]
