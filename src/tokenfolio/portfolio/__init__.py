"""Portfolio module: cost basis, profit/loss and balance valuation."""

from tokenfolio.portfolio.currency import convert_portfolio, convert_record, convert_summary
from tokenfolio.portfolio.pnl import (
    build_portfolio_pnl,
    compute_record,
    filter_records,
    pnl_status,
    profit_pct,
    sort_records,
    summarize,
    top_losses,
    top_profitable,
)
from tokenfolio.portfolio.valuation import chain_breakdown, total_value, value_balances

__all__ = [
    # P&L
    "build_portfolio_pnl",
    "compute_record",
    "filter_records",
    "pnl_status",
    "profit_pct",
    "sort_records",
    "summarize",
    "top_losses",
    "top_profitable",
    # Currency
    "convert_portfolio",
    "convert_record",
    "convert_summary",
    # Valuation
    "chain_breakdown",
    "total_value",
    "value_balances",
]
