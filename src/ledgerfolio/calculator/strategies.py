"""Return-calculation strategies and their dispatch table."""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal

from ..activities import Activity, DataSource
from ..currency import Currency, CurrencyConverter
from ..pricingdata import MarketPriceTable
from .aggregator import SnapshotAggregator
from .models import PerformanceCalculationType, PortfolioSnapshot, SymbolMetrics, TimelinePosition
from .replay import OrderReplayEngine


class PerformanceStrategy(ABC):
    """A pluggable return-calculation philosophy.

    Strategies share the replay and the aggregation; they differ in how a
    capital contribution is weighted against the window and in whether a
    per-day series is produced.
    """

    calculation_type: PerformanceCalculationType
    populates_daily_series: bool = False

    @abstractmethod
    def investment_weight(self, order_date: date, start: date, end: date) -> Decimal:
        """Weight applied to a contribution made on ``order_date`` for the window ``[start, end]``."""

    def compute_symbol_metrics(
        self,
        symbol: str,
        data_source: DataSource,
        start: date,
        end: date,
        market_prices: MarketPriceTable,
        converter: CurrencyConverter,
        activities: list[Activity],
    ) -> SymbolMetrics:
        engine = OrderReplayEngine(self, converter, market_prices)
        return engine.compute_symbol_metrics(symbol, data_source, start, end, activities)

    def aggregate_overall_performance(
        self,
        positions: list[TimelinePosition],
        created_at: datetime,
        base_currency: Currency,
    ) -> PortfolioSnapshot:
        return SnapshotAggregator().aggregate(positions, created_at, base_currency, self.calculation_type)


class RoiStrategy(PerformanceStrategy):
    """Simple return on invested capital.

    Every contribution counts in full, so the percentage denominator is the
    net investment and only the end of the window is reported.
    """

    calculation_type = PerformanceCalculationType.ROI

    def investment_weight(self, order_date: date, start: date, end: date) -> Decimal:
        return Decimal("1")


class TimeWeightedStrategy(PerformanceStrategy):
    """Time-weighted return.

    A contribution is weighted by the fraction of the window it was
    invested for; holdings carried in from before the window count fully.
    """

    calculation_type = PerformanceCalculationType.TWR
    populates_daily_series = True

    def investment_weight(self, order_date: date, start: date, end: date) -> Decimal:
        window_days = (end - start).days
        if window_days <= 0:
            return Decimal("1")
        invested_days = (end - max(order_date, start)).days
        return Decimal(max(invested_days, 0)) / Decimal(window_days)


STRATEGIES: dict[PerformanceCalculationType, type[PerformanceStrategy]] = {
    PerformanceCalculationType.ROI: RoiStrategy,
    PerformanceCalculationType.TWR: TimeWeightedStrategy,
}


def get_strategy(calculation_type: PerformanceCalculationType | str) -> PerformanceStrategy:
    """
    Look up the strategy for a calculation type.

    Args:
        calculation_type: A PerformanceCalculationType or its string value.

    Returns:
        A new strategy instance.

    Raises:
        ValueError: If the calculation type is not supported.
    """
    if not isinstance(calculation_type, PerformanceCalculationType):
        try:
            calculation_type = PerformanceCalculationType(str(calculation_type).strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported calculation type: {calculation_type}") from None

    strategy_class = STRATEGIES.get(calculation_type)
    if strategy_class is None:
        raise ValueError(f"Unsupported calculation type: {calculation_type.value}")
    return strategy_class()
