#!/usr/bin/env python3
"""Report subcommand - Display portfolio performance for a window."""

import warnings
from datetime import date, datetime, timezone

from dotenv import load_dotenv

load_dotenv()

from ..activities import load_activities_from_excel, load_activities_from_json
from ..calculator import PortfolioCalculator, save_snapshot_to_json
from ..calculator import portfolio_calculator
from ..config import EngineSettings
from ..currency import Currency, FixedExchangeRateManager, load_exchange_rates_from_csv
from ..pricingdata import MarketPriceTable, load_prices_from_csv
from rich.console import Console
from rich.table import Table
from rich.panel import Panel


def register_subcommand(subparsers):
    """Register the report subcommand with the argument parser.

    Args:
        subparsers: The argparse subparsers action to add the command to.
    """
    parser = subparsers.add_parser(
        "report",
        help="Display portfolio performance report",
        description="Compute positions and performance from an activity ledger (JSON or Excel).",
    )
    parser.add_argument("filename", help="Path to the activities file (.json or .xlsx)")
    parser.add_argument("--prices", help="CSV of daily prices (date,data_source,symbol,price)")
    parser.add_argument("--rates", help="CSV of daily FX rates (date,from,to,rate)")
    parser.add_argument(
        "--currency",
        "-c",
        default=None,
        help="Base currency for the report (default: LEDGERFOLIO_BASE_CURRENCY or USD)",
    )
    parser.add_argument(
        "--type",
        dest="calculation_type",
        default=None,
        help="Calculation type, ROI or TWR (default: LEDGERFOLIO_CALCULATION_TYPE or ROI)",
    )
    parser.add_argument("--range", dest="date_range", default="max", help="Preset window: 1d, wtd, mtd, ytd, 1y, 5y, max")
    parser.add_argument("--start", help="Window start (YYYY-MM-DD), overrides --range")
    parser.add_argument("--end", help="Window end (YYYY-MM-DD)")
    parser.add_argument("--now", help="Valuation day for current FX rates (YYYY-MM-DD)")
    parser.add_argument("--json", dest="json_output", help="Also write the snapshot to this JSON file")
    parser.add_argument(
        "--ignore-errors",
        action="store_true",
        help="Hide data-quality warnings",
    )
    parser.add_argument("--verbose", action="store_true", help="Print per-symbol progress")
    parser.set_defaults(func=run)


def _parse_day(value):
    return date.fromisoformat(value) if value else None


def _fmt(value, places=2):
    if value is None:
        return "N/A"
    return f"{value:,.{places}f}"


def _fmt_percentage(value):
    if value is None:
        return "N/A"
    pct = value * 100
    if pct >= 0:
        return f"[green]+{pct:.2f}%[/green]"
    return f"[red]{pct:.2f}%[/red]"


def run(args):
    """Compute and display the snapshot.

    Args:
        args: Parsed argparse namespace.

    Returns:
        int: Exit code (0 for success, 1 for errors).
    """
    if args.ignore_errors:
        warnings.filterwarnings("ignore", category=UserWarning)
    portfolio_calculator.verbose = args.verbose

    try:
        settings = EngineSettings.from_env()
        base_currency = Currency(args.currency.upper()) if args.currency else settings.base_currency
        calculation_type = args.calculation_type or settings.calculation_type
        start, end, now_day = _parse_day(args.start), _parse_day(args.end), _parse_day(args.now)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    if args.filename.lower().endswith(".json"):
        activities = load_activities_from_json(args.filename)
    else:
        activities = load_activities_from_excel(args.filename)

    market_prices = load_prices_from_csv(args.prices) if args.prices else MarketPriceTable()
    if args.rates:
        exchange_rates = load_exchange_rates_from_csv(args.rates, lookback_days=settings.fx_lookback_days)
    else:
        exchange_rates = FixedExchangeRateManager()

    now = datetime.now(timezone.utc)
    if now_day is not None:
        now = datetime(now_day.year, now_day.month, now_day.day, tzinfo=timezone.utc)

    try:
        calculator = PortfolioCalculator(
            activities,
            calculation_type,
            base_currency,
            exchange_rates,
            market_prices,
            start=start,
            end=end,
            date_range=args.date_range,
            now=now,
            max_workers=settings.max_workers,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    snapshot = calculator.compute_snapshot()
    console = Console()
    currency_code = base_currency.value

    positions_table = Table(
        title=f"{snapshot.calculation_type.value} Performance {calculator.start} → {calculator.end}"
    )
    positions_table.add_column("Symbol", style="cyan", justify="left")
    positions_table.add_column("Quantity", style="magenta", justify="right")
    positions_table.add_column("Unit Price\n(Average → Market)", justify="right")
    positions_table.add_column(f"Investment ({currency_code})", style="yellow", justify="right")
    positions_table.add_column(f"Value ({currency_code})", style="green", justify="right")
    positions_table.add_column(f"Net P/L ({currency_code})", justify="right")
    positions_table.add_column("Net %", justify="right")

    for position in snapshot.positions:
        if position.market_price is not None:
            unit_price_str = f"[yellow]{position.average_price:,.2f}[/yellow] → [green]{position.market_price:,.2f}[/green]"
        else:
            unit_price_str = f"[yellow]{position.average_price:,.2f}[/yellow] → N/A"

        symbol_str = position.symbol if not position.has_errors else f"[red]{position.symbol} ![/red]"
        positions_table.add_row(
            symbol_str,
            f"{position.quantity:,f}".rstrip("0").rstrip("."),
            unit_price_str,
            _fmt(position.investment_with_currency_effect),
            _fmt(position.value_in_base_currency),
            _fmt(position.net_performance_with_currency_effect),
            _fmt_percentage(position.net_performance_percentage_with_currency_effect),
        )

    console.print(positions_table)

    summary_lines = [
        f"[bold green]Current Value: {snapshot.current_value_in_base_currency:,.2f} {currency_code}[/bold green]",
        f"Total Investment: {snapshot.total_investment_with_currency_effect:,.2f} {currency_code}",
        f"Net Performance: {snapshot.net_performance_with_currency_effect:,.2f} {currency_code}",
        f"Fees: {snapshot.total_fees_with_currency_effect:,.2f} {currency_code}",
        f"Dividends: {snapshot.total_dividend_with_currency_effect:,.2f} {currency_code}",
        f"Interest: {snapshot.total_interest_with_currency_effect:,.2f} {currency_code}",
        f"Liabilities: {snapshot.total_liabilities_with_currency_effect:,.2f} {currency_code}",
        f"Activities: {snapshot.activities_count}",
    ]
    for error in snapshot.errors:
        summary_lines.append(f"[red]Missing price: {error.symbol} ({error.data_source})[/red]")
    for warning in snapshot.ledger_warnings:
        summary_lines.append(f"[yellow]Inconsistent ledger: {warning.symbol}[/yellow]")

    console.print(Panel("\n".join(summary_lines), title="Summary"))

    if args.json_output:
        save_snapshot_to_json(snapshot, args.json_output)
        console.print(f"Snapshot written to {args.json_output}")

    return 1 if snapshot.has_errors and not args.ignore_errors else 0
