"""Portfolio-level orchestration of the per-symbol performance calculation."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timezone
import json
import sys

from ..activities import (
    Activity,
    ActivityType,
    AssetProfileIdentifier,
    clone_activities,
    summarize_holdings,
)
from ..currency import Currency, CurrencyConverter, ExchangeRateManager
from ..errors import ErrorKind, SymbolError
from ..pricingdata import MarketPriceTable
from .aggregator import merge_historical_data
from .date_range import DateRange, get_interval_from_date_range
from .models import PerformanceCalculationType, PortfolioSnapshot, SymbolMetrics, TimelinePosition
from .strategies import get_strategy

verbose: bool = False


class PortfolioCalculator:
    """Computes a PortfolioSnapshot from a ledger, prices and FX rates.

    Each instance is one invocation: it owns a deep copy of the ledger and
    keeps no state beyond the inputs it was built with.
    """

    def __init__(
        self,
        activities: list[Activity],
        calculation_type: PerformanceCalculationType | str,
        base_currency: Currency,
        exchange_rate_manager: ExchangeRateManager,
        market_prices: MarketPriceTable,
        start: date | None = None,
        end: date | None = None,
        date_range: DateRange | str = DateRange.MAX,
        now: datetime | date | None = None,
        max_workers: int = 1,
    ):
        """Initialize a PortfolioCalculator.

        Args:
            activities: The ledger. It is cloned and never mutated.
            calculation_type: ROI or TWR (enum or string value).
            base_currency: Reporting currency.
            exchange_rate_manager: Source of FX rates.
            market_prices: Daily market prices.
            start: First day of the window. If None, derived from ``date_range``.
            end: Last day of the window. If None, the day of ``now``.
            date_range: Preset used when ``start`` is not given. It ends on
                ``end`` when given, else on the day of ``now``.
            now: Moment of computation; current values use this day's FX
                rate. Defaults to the current UTC time.
            max_workers: Replay symbols on a thread pool when greater than 1.

        Raises:
            ValueError: If the calculation type is unknown, the window is
                inverted or ``max_workers`` is not positive.
        """
        # Contract violations fail here, before any replay
        self.strategy = get_strategy(calculation_type)

        if now is None:
            now = datetime.now(timezone.utc)
        elif not isinstance(now, datetime):
            now = datetime(now.year, now.month, now.day, tzinfo=timezone.utc)
        self.now: datetime = now

        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.max_workers = max_workers

        self.activities = clone_activities(activities)
        self.base_currency = base_currency
        self.exchange_rate_manager = exchange_rate_manager
        self.market_prices = market_prices

        anchor = end if end is not None else self.now.date()
        first_activity_date = min((a.date for a in self.activities), default=None)
        range_start, range_end = get_interval_from_date_range(date_range, anchor, first_activity_date)
        self.start: date = start if start is not None else range_start
        self.end: date = end if end is not None else range_end
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after window end {self.end}")

    @property
    def calculation_type(self) -> PerformanceCalculationType:
        return self.strategy.calculation_type

    def get_asset_profile_identifiers(self) -> list[AssetProfileIdentifier]:
        """Distinct instruments in order of first appearance in the ledger."""
        identifiers: list[AssetProfileIdentifier] = []
        for activity in self.activities:
            if activity.asset_profile not in identifiers:
                identifiers.append(activity.asset_profile)
        return identifiers

    def _compute_symbol(self, identifier: AssetProfileIdentifier, converter: CurrencyConverter) -> SymbolMetrics:
        if verbose:
            print(f"  Replaying {identifier.symbol} ({identifier.data_source.value}) …", file=sys.stderr, flush=True)
        return self.strategy.compute_symbol_metrics(
            identifier.symbol,
            identifier.data_source,
            self.start,
            self.end,
            self.market_prices,
            converter,
            self.activities,
        )

    def _build_position(
        self,
        identifier: AssetProfileIdentifier,
        metrics: SymbolMetrics,
        converter: CurrencyConverter,
    ) -> tuple[TimelinePosition, bool]:
        """Combine bookkeeping and metrics into a position.

        Returns:
            The position and whether its ledger is inconsistent.
        """
        symbol_activities = [a for a in self.activities if a.asset_profile == identifier]
        summary = summarize_holdings(symbol_activities, converter, self.end)

        position = TimelinePosition(
            symbol=summary.symbol,
            data_source=summary.data_source,
            currency=summary.currency,
            quantity=summary.quantity,
            average_price=summary.average_price,
            fee=summary.fee,
            fee_in_base_currency=summary.fee_in_base_currency,
            dividend=summary.dividend,
            first_buy_date=summary.first_buy_date,
            transaction_count=summary.transaction_count,
            tags=list(summary.tags),
            has_errors=metrics.has_errors,
        )
        inconsistent = summary.has_inconsistent_ledger or metrics.has_inconsistent_ledger

        if metrics.has_errors:
            return position, inconsistent

        position.investment = metrics.total_investment
        position.investment_with_currency_effect = metrics.total_investment_with_currency_effect
        position.time_weighted_investment = metrics.time_weighted_investment
        position.time_weighted_investment_with_currency_effect = metrics.time_weighted_investment_with_currency_effect
        position.dividend_in_base_currency = metrics.total_dividend_in_base_currency
        position.interest_in_base_currency = metrics.total_interest_in_base_currency
        position.liabilities_in_base_currency = metrics.total_liabilities_in_base_currency
        position.gross_performance = metrics.gross_performance
        position.gross_performance_percentage = metrics.gross_performance_percentage
        position.gross_performance_percentage_with_currency_effect = metrics.gross_performance_percentage_with_currency_effect
        position.gross_performance_with_currency_effect = metrics.gross_performance_with_currency_effect
        position.net_performance = metrics.net_performance
        position.net_performance_percentage = metrics.net_performance_percentage
        position.net_performance_percentage_with_currency_effect = metrics.net_performance_percentage_with_currency_effect
        position.net_performance_with_currency_effect = metrics.net_performance_with_currency_effect
        position.net_performance_with_currency_effect_map = dict(metrics.net_performance_with_currency_effect_map)
        position.value_in_base_currency = metrics.current_value_with_currency_effect

        if metrics.unit_price_at_end_date is not None:
            position.market_price = float(metrics.unit_price_at_end_date)
            position.market_price_in_base_currency = float(metrics.unit_price_at_end_date * metrics.current_exchange_rate)

        return position, inconsistent

    def compute_snapshot(self) -> PortfolioSnapshot:
        """
        Run the calculation.

        Returns:
            A complete PortfolioSnapshot. Symbols with missing boundary prices
            appear in ``positions`` with their performance fields unset and
            are listed in ``errors``.
        """
        converter = CurrencyConverter(self.exchange_rate_manager, self.base_currency, self.now.date())
        identifiers = self.get_asset_profile_identifiers()

        if verbose:
            print(
                f"Computing {self.calculation_type.value} for {len(identifiers)} symbols "
                f"({self.start} to {self.end}, {self.base_currency.value})",
                file=sys.stderr,
            )

        # map() yields results in input order whatever the completion order
        if self.max_workers > 1 and len(identifiers) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                all_metrics = list(pool.map(lambda i: self._compute_symbol(i, converter), identifiers))
        else:
            all_metrics = [self._compute_symbol(i, converter) for i in identifiers]

        positions: list[TimelinePosition] = []
        errors: list[SymbolError] = []
        ledger_warnings: list[SymbolError] = []

        for identifier, metrics in zip(identifiers, all_metrics):
            position, inconsistent = self._build_position(identifier, metrics, converter)
            positions.append(position)

            if metrics.has_errors:
                errors.append(SymbolError(
                    data_source=identifier.data_source.value,
                    symbol=identifier.symbol,
                    kind=ErrorKind.MISSING_PRICE,
                    message=f"No market price to value {identifier.symbol} between {self.start} and {self.end}",
                ))
            if inconsistent:
                ledger_warnings.append(SymbolError(
                    data_source=identifier.data_source.value,
                    symbol=identifier.symbol,
                    kind=ErrorKind.INCONSISTENT_LEDGER,
                    message=f"{identifier.symbol} sells more units than it holds",
                ))

        snapshot = self.strategy.aggregate_overall_performance(positions, self.now, self.base_currency)
        snapshot.has_errors = snapshot.has_errors or bool(errors)
        snapshot.errors = errors
        snapshot.ledger_warnings = ledger_warnings
        snapshot.historical_data = merge_historical_data(all_metrics)
        snapshot.activities_count = sum(
            1 for a in self.activities
            if a.type in (ActivityType.BUY, ActivityType.SELL) and not a.is_synthetic
        )
        return snapshot


def create_calculator(
    activities: list[Activity],
    calculation_type: PerformanceCalculationType | str,
    base_currency: Currency,
    exchange_rate_manager: ExchangeRateManager,
    market_prices: MarketPriceTable,
    **kwargs,
) -> PortfolioCalculator:
    """
    Build a calculator for the requested calculation type.

    Keyword arguments are passed to PortfolioCalculator unchanged.

    Raises:
        ValueError: If the calculation type is not supported.
    """
    return PortfolioCalculator(
        activities,
        calculation_type,
        base_currency,
        exchange_rate_manager,
        market_prices,
        **kwargs,
    )


def save_snapshot_to_json(snapshot: PortfolioSnapshot, file_path: str) -> None:
    """Write a snapshot to a JSON file with every decimal as a string."""
    with open(file_path, "w") as f:
        json.dump(snapshot.to_dict(), f, indent=2)


def load_snapshot_from_json(file_path: str) -> PortfolioSnapshot:
    """Read a snapshot written by ``save_snapshot_to_json``."""
    with open(file_path, "r") as f:
        return PortfolioSnapshot.from_dict(json.load(f))
