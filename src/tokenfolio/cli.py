"""Click-based CLI for tokenfolio.

Thin wrapper around the PricingEngine. Every command builds an engine from
config, runs one operation and renders the result with rich.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

console = Console(stderr=True)
out = Console()

_CHAIN_ALIASES = {"eth": 1, "ethereum": 1, "arb": 42161, "arbitrum": 42161, "base": 8453}
_DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from tokenfolio.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


def _engine(ctx: click.Context):
    from tokenfolio.engine import PricingEngine

    return PricingEngine.from_config(_load_config(ctx))


def _parse_token(raw: str):
    """``ADDRESS`` or ``ADDRESS:CHAIN`` (chain id or eth/arb/base). Default chain: Ethereum."""
    from tokenfolio.core import AssetId

    address, _, chain = raw.partition(":")
    chain = chain.strip().lower() or "1"
    try:
        chain_id = _CHAIN_ALIASES.get(chain) or int(chain)
        return AssetId(address=address, chain_id=chain_id)
    except ValueError as e:
        raise click.BadParameter(f"Invalid token {raw!r}: {e}") from e


def _parse_amount(raw: str) -> Decimal:
    try:
        return Decimal(raw)
    except InvalidOperation as e:
        raise click.BadParameter(f"Not a number: {raw!r}") from e


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _fmt(value: Decimal | None, places: int = 2) -> str:
    if value is None:
        return "[dim]n/a[/dim]"
    return f"{value:,.{places}f}"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="TOKENFOLIO_CONFIG",
    default=None,
    help="Path to tokenfolio.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="tokenfolio")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Tokenfolio: on-chain asset pricing, FX conversion and profit/loss."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# prices
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("tokens", nargs=-1, required=True)
@click.option(
    "--at",
    "at",
    type=click.DateTime(formats=_DATETIME_FORMATS),
    default=None,
    help="Historical instant (UTC). Default: current prices.",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def prices(ctx: click.Context, tokens: tuple[str, ...], at: datetime | None, output_format: str) -> None:
    """USD prices for TOKENS (ADDRESS[:CHAIN])."""
    assets = [_parse_token(t) for t in tokens]

    async def _run():
        from tokenfolio.core import QuoteRequest

        async with _engine(ctx) as engine:
            if at is None:
                return await engine.prices.current_prices(assets)
            return await engine.prices.historical_prices(
                QuoteRequest(asset=a, instant=at) for a in assets
            )

    lookup = _run_async(_run())

    if output_format == "json":
        out.print_json(
            json.dumps({
                "prices": {k: str(v) for k, v in lookup.prices.items()},
                "cached": lookup.cached,
                "fetched": lookup.fetched,
                "total": lookup.total,
            })
        )
        return

    title = "Current Prices" if at is None else f"Prices at {at:%Y-%m-%d %H:%M} UTC"
    table = Table(title=title)
    table.add_column("Key", style="bold")
    table.add_column("USD", justify="right")
    table.add_column("Source")
    table.add_column("Provenance")
    for key, quote in lookup.quotes.items():
        table.add_row(key, _fmt(quote.value_usd, 6), quote.source, quote.provenance.value)
    out.print(table)
    console.print(
        f"{len(lookup.quotes)}/{lookup.total} priced "
        f"({lookup.cached} cached, {lookup.fetched} fetched)"
    )


@cli.command()
@click.argument("tokens", nargs=-1, required=True)
@click.option(
    "--at",
    "at",
    type=click.DateTime(formats=_DATETIME_FORMATS),
    required=True,
    help="Instant (UTC) to price at.",
)
@click.pass_context
def historical(ctx: click.Context, tokens: tuple[str, ...], at: datetime) -> None:
    """Historical USD prices for TOKENS at a given instant."""
    ctx.invoke(prices, tokens=tokens, at=at, output_format="table")


# ---------------------------------------------------------------------------
# fx / convert
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--currencies",
    type=str,
    default=None,
    help="Comma-separated currencies (default: all configured).",
)
@click.option(
    "--date",
    "on",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Historical date (YYYY-MM-DD). Default: current rates.",
)
@click.pass_context
def fx(ctx: click.Context, currencies: str | None, on: datetime | None) -> None:
    """USD exchange rates."""
    from tokenfolio.core import Currency

    try:
        wanted = (
            [Currency(c.strip().upper()) for c in currencies.split(",") if c.strip()]
            if currencies
            else None
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--currencies") from e

    async def _run():
        async with _engine(ctx) as engine:
            if on is None:
                return await engine.fx.current_rates(wanted)
            return await engine.fx.historical_rates(on, wanted)

    rates = _run_async(_run())

    table = Table(title="FX Rates (per 1 USD)" if on is None else f"FX Rates on {on:%Y-%m-%d}")
    table.add_column("Currency", style="bold")
    table.add_column("Rate", justify="right")
    table.add_column("Source")
    table.add_column("Provenance")
    for rate in rates:
        table.add_row(rate.target_currency.value, _fmt(rate.rate, 4), rate.source, rate.provenance.value)
    out.print(table)


@cli.command()
@click.argument("amount", type=str)
@click.argument("currency", type=click.Choice(["USD", "AUD", "GBP", "CAD"], case_sensitive=False))
@click.option(
    "--at",
    "at",
    type=click.DateTime(formats=_DATETIME_FORMATS),
    default=None,
    help="Use the rate of this date (UTC). Default: current rate.",
)
@click.pass_context
def convert(ctx: click.Context, amount: str, currency: str, at: datetime | None) -> None:
    """Convert a USD AMOUNT to CURRENCY."""
    from tokenfolio.core import Currency

    amount_usd = _parse_amount(amount)
    target = Currency(currency.upper())

    async def _run():
        async with _engine(ctx) as engine:
            return await engine.convert(amount_usd, target, at)

    converted = _run_async(_run())
    out.print(f"{_fmt(amount_usd)} USD = [bold]{_fmt(converted)} {target.value}[/bold]")


# ---------------------------------------------------------------------------
# pnl
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("transfers_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--currency",
    type=click.Choice(["USD", "AUD", "GBP", "CAD"], case_sensitive=False),
    default="USD",
    help="Display currency.",
)
@click.option("--top", type=int, default=0, help="Only show the N best and N worst transfers.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def pnl(ctx: click.Context, transfers_file: Path, currency: str, top: int, output_format: str) -> None:
    """Cost basis and P&L for the transfers in TRANSFERS_FILE (JSON list).

    Each transfer: {"address", "chainId", "quantity", "timestamp" (epoch ms),
    optional "direction", "txHash", "symbol"}.
    """
    from pydantic import TypeAdapter, ValidationError

    from tokenfolio.api.schemas import PnLRecordResponse, PnLSummaryResponse, TransferIn
    from tokenfolio.core import Currency
    from tokenfolio.portfolio import top_losses, top_profitable

    try:
        raw = json.loads(transfers_file.read_text())
        items = TypeAdapter(list[TransferIn]).validate_python(raw)
    except (json.JSONDecodeError, ValidationError) as e:
        raise click.BadParameter(f"Invalid transfers file: {e}", param_hint="TRANSFERS_FILE") from e

    target = Currency(currency.upper())

    async def _run():
        async with _engine(ctx) as engine:
            return await engine.get_pnl([i.transfer() for i in items], currency=target)

    result = _run_async(_run())

    records = result.per_transfer
    if top > 0:
        records = top_profitable(records, top) + top_losses(records, top)

    if output_format == "json":
        out.print_json(
            json.dumps({
                "currency": result.currency.value,
                "transfers": [PnLRecordResponse.from_record(r).model_dump(by_alias=True) for r in records],
                "summary": PnLSummaryResponse.from_summary(result.summary).model_dump(by_alias=True),
            })
        )
        return

    code = result.currency.value
    table = Table(title=f"Profit & Loss ({code})")
    table.add_column("Token", style="bold")
    table.add_column("Date")
    table.add_column("Quantity", justify="right")
    table.add_column("Cost basis", justify="right")
    table.add_column("Value", justify="right")
    table.add_column("P&L", justify="right")
    table.add_column("P&L %", justify="right")
    for r in records:
        t = r.transfer
        style = "green" if (r.profit_usd or 0) > 0 else "red" if (r.profit_usd or 0) < 0 else ""
        table.add_row(
            t.symbol or t.asset.address[:10],
            f"{t.instant:%Y-%m-%d}",
            _fmt(t.quantity, 4),
            _fmt(r.cost_basis_usd),
            _fmt(r.current_value_usd),
            f"[{style}]{_fmt(r.profit_usd)}[/{style}]" if style else _fmt(r.profit_usd),
            _fmt(r.profit_pct),
        )

    s = result.summary
    table.add_section()
    table.add_row(
        "Total", "", "", _fmt(s.cost_basis_usd), _fmt(s.current_value_usd), _fmt(s.profit_usd), _fmt(s.profit_pct)
    )
    out.print(table)
    console.print(
        f"{s.transfer_count}/{len(result.per_transfer)} priced: "
        f"{s.profitable_count} profitable, {s.loss_count} loss, {s.breakeven_count} break-even"
    )


# ---------------------------------------------------------------------------
# cache-stats
# ---------------------------------------------------------------------------


@cli.command("cache-stats")
@click.option("--url", default="http://localhost:8000", help="Base URL of a running tokenfolio server.")
@click.pass_context
def cache_stats(ctx: click.Context, url: str) -> None:
    """Show the shared price cache of a running server."""
    import httpx

    config = _load_config(ctx)
    headers = {"X-API-Key": config.api.api_key} if config.api.api_key else {}
    try:
        response = httpx.get(f"{url.rstrip('/')}/api/prices", headers=headers, timeout=10.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]Could not reach {url}: {e}[/red]")
        raise SystemExit(1)

    stats = response.json()
    table = Table(title=f"Cache ({stats['size']} entries)")
    table.add_column("Key", style="bold")
    for key in sorted(stats["keys"]):
        table.add_row(key)
    out.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    if ctx.obj.get("config_path"):
        # The app factory loads config itself in the server process.
        os.environ["TOKENFOLIO_CONFIG"] = ctx.obj["config_path"]
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting tokenfolio API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "tokenfolio.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
