"""Reduction of positions and per-symbol series into portfolio totals."""

from bisect import bisect_right
from datetime import date, datetime
from decimal import Decimal

from ..currency import Currency
from ..errors import safe_divide
from .models import (
    HistoricalDataItem,
    PerformanceCalculationType,
    PortfolioSnapshot,
    SymbolMetrics,
    TimelinePosition,
)


class SnapshotAggregator:
    """Folds positions into portfolio totals.

    Every total is a running sum that skips positions whose contributing
    field is unavailable. A held position that lacks its value, its
    investment or its gross performance marks the whole snapshot as
    errored, but the remaining positions still contribute.
    """

    def aggregate(
        self,
        positions: list[TimelinePosition],
        created_at: datetime,
        base_currency: Currency,
        calculation_type: PerformanceCalculationType,
    ) -> PortfolioSnapshot:
        snapshot = PortfolioSnapshot(
            created_at=created_at,
            base_currency=base_currency,
            calculation_type=calculation_type,
            positions=list(positions),
        )
        has_errors = False

        for position in positions:
            is_held = position.quantity != 0

            snapshot.total_fees_with_currency_effect += position.fee_in_base_currency

            if position.value_in_base_currency is not None:
                snapshot.current_value_in_base_currency += position.value_in_base_currency
            elif is_held:
                has_errors = True

            if position.investment is not None:
                snapshot.total_investment += position.investment
            elif is_held:
                has_errors = True

            if position.investment_with_currency_effect is not None:
                snapshot.total_investment_with_currency_effect += position.investment_with_currency_effect

            if position.gross_performance is not None:
                snapshot.gross_performance += position.gross_performance
                snapshot.net_performance += position.net_performance or Decimal("0")
            elif is_held:
                has_errors = True

            if position.gross_performance_with_currency_effect is not None:
                snapshot.gross_performance_with_currency_effect += position.gross_performance_with_currency_effect
                snapshot.net_performance_with_currency_effect += position.net_performance_with_currency_effect or Decimal("0")

            if position.dividend_in_base_currency is not None:
                snapshot.total_dividend_with_currency_effect += position.dividend_in_base_currency

            if position.interest_in_base_currency is not None:
                snapshot.total_interest_with_currency_effect += position.interest_in_base_currency

            if position.liabilities_in_base_currency is not None:
                snapshot.total_liabilities_with_currency_effect += position.liabilities_in_base_currency

        snapshot.has_errors = has_errors or any(position.has_errors for position in positions)
        return snapshot


def _value_as_of(series: dict[date, Decimal], days: list[date], day: date) -> Decimal:
    """Latest series value on or before ``day``; zero before the series begins."""
    index = bisect_right(days, day)
    if index == 0:
        return Decimal("0")
    return series[days[index - 1]]


def merge_historical_data(metrics: list[SymbolMetrics]) -> list[HistoricalDataItem]:
    """
    Merge per-symbol series into one portfolio series.

    The portfolio has an entry on every day any symbol has one. A symbol
    without an entry on a given day contributes its latest earlier entry.

    Args:
        metrics: Metrics of the symbols to merge. Errored metrics are skipped.

    Returns:
        Date-ordered HistoricalDataItem list.
    """
    usable = [m for m in metrics if not m.has_errors and m.current_values]
    all_days = sorted({day for m in usable for day in m.current_values})

    series_days = [(m, sorted(m.current_values)) for m in usable]

    history: list[HistoricalDataItem] = []
    for day in all_days:
        item = HistoricalDataItem(date=day)
        for m, days in series_days:
            item.net_performance += _value_as_of(m.net_performance_values, days, day)
            item.net_performance_with_currency_effect += _value_as_of(m.net_performance_values_with_currency_effect, days, day)
            item.total_investment += _value_as_of(m.investment_values_accumulated, days, day)
            item.total_investment_value_with_currency_effect += _value_as_of(
                m.investment_values_accumulated_with_currency_effect, days, day
            )
            item.time_weighted_investment += _value_as_of(m.time_weighted_investment_values, days, day)
            item.time_weighted_investment_with_currency_effect += _value_as_of(
                m.time_weighted_investment_values_with_currency_effect, days, day
            )
            item.value += _value_as_of(m.current_values, days, day)
            item.value_with_currency_effect += _value_as_of(m.current_values_with_currency_effect, days, day)

        if item.time_weighted_investment > 0:
            item.net_performance_in_percentage = safe_divide(item.net_performance, item.time_weighted_investment)
        if item.time_weighted_investment_with_currency_effect > 0:
            item.net_performance_in_percentage_with_currency_effect = safe_divide(
                item.net_performance_with_currency_effect, item.time_weighted_investment_with_currency_effect
            )
        history.append(item)

    return history
