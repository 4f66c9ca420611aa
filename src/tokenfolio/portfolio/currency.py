"""Express P&L figures in a display currency."""

from __future__ import annotations

from decimal import Decimal

from tokenfolio.core.models import Currency, FXRate, PnLRecord, PnLSummary, PortfolioPnL


def _scale(value: Decimal | None, rate: Decimal) -> Decimal | None:
    return value * rate if value is not None else None


def convert_record(record: PnLRecord, rate: FXRate) -> PnLRecord:
    """Multiply the absolute fields by ``rate``. ``profit_pct`` is currency-independent."""
    if record.currency is not Currency.USD:
        raise ValueError(f"Record already converted to {record.currency}")
    if rate.target_currency is Currency.USD:
        return record
    r = rate.rate
    return record.model_copy(
        update={
            "historical_price_usd": _scale(record.historical_price_usd, r),
            "current_price_usd": _scale(record.current_price_usd, r),
            "cost_basis_usd": _scale(record.cost_basis_usd, r),
            "current_value_usd": _scale(record.current_value_usd, r),
            "profit_usd": _scale(record.profit_usd, r),
            "currency": rate.target_currency,
        }
    )


def convert_summary(summary: PnLSummary, rate: FXRate) -> PnLSummary:
    if summary.currency is not Currency.USD:
        raise ValueError(f"Summary already converted to {summary.currency}")
    if rate.target_currency is Currency.USD:
        return summary
    r = rate.rate
    return summary.model_copy(
        update={
            "cost_basis_usd": summary.cost_basis_usd * r,
            "current_value_usd": summary.current_value_usd * r,
            "profit_usd": summary.profit_usd * r,
            "currency": rate.target_currency,
        }
    )


def convert_portfolio(pnl: PortfolioPnL, rate: FXRate) -> PortfolioPnL:
    if pnl.currency is not Currency.USD:
        raise ValueError(f"P&L already converted to {pnl.currency}")
    return PortfolioPnL(
        per_transfer=[convert_record(r, rate) for r in pnl.per_transfer],
        summary=convert_summary(pnl.summary, rate),
        currency=rate.target_currency,
    )
