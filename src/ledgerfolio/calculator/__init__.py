"""Portfolio performance calculation.

Replays a ledger of activities per instrument against daily market prices
and FX rates, and aggregates the results into a PortfolioSnapshot. Two
return philosophies are available: simple return on investment (ROI) and
time-weighted return (TWR).
"""

from .aggregator import SnapshotAggregator, merge_historical_data
from .date_range import DateRange, get_interval_from_date_range
from .models import (
    HistoricalDataItem,
    PerformanceCalculationType,
    PortfolioSnapshot,
    ReplayAccumulator,
    SymbolMetrics,
    TimelinePosition,
)
from .portfolio_calculator import (
    PortfolioCalculator,
    create_calculator,
    load_snapshot_from_json,
    save_snapshot_to_json,
)
from .replay import OrderReplayEngine, synthesize_boundary_orders
from .strategies import (
    STRATEGIES,
    PerformanceStrategy,
    RoiStrategy,
    TimeWeightedStrategy,
    get_strategy,
)

__all__ = [
    # Orchestration
    "PortfolioCalculator",
    "create_calculator",
    "load_snapshot_from_json",
    "save_snapshot_to_json",
    # Strategies
    "STRATEGIES",
    "PerformanceStrategy",
    "RoiStrategy",
    "TimeWeightedStrategy",
    "get_strategy",
    # Replay and aggregation
    "OrderReplayEngine",
    "SnapshotAggregator",
    "merge_historical_data",
    "synthesize_boundary_orders",
    # Windows
    "DateRange",
    "get_interval_from_date_range",
    # Models
    "HistoricalDataItem",
    "PerformanceCalculationType",
    "PortfolioSnapshot",
    "ReplayAccumulator",
    "SymbolMetrics",
    "TimelinePosition",
]
