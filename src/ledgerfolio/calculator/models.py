from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from ..activities import DataSource
from ..currency import Currency
from ..errors import SymbolError


class PerformanceCalculationType(Enum):
    """Supported return-calculation philosophies."""

    ROI = "ROI"
    TWR = "TWR"


def _to_jsonable(value: Any) -> Any:
    """Recursively render decimals as strings and dates as ISO text."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {_to_jsonable(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def _decimal_or_none(value: Any) -> Decimal | None:
    return None if value is None else Decimal(str(value))


def _date_or_none(value: Any) -> date | None:
    return None if value is None else date.fromisoformat(value)


@dataclass
class ReplayAccumulator:
    """Running totals for one symbol's replay.

    A fresh instance is the additive identity; the replay engine creates
    one per symbol and never shares it.
    """
    total_units: Decimal = Decimal("0")
    total_investment: Decimal = Decimal("0")
    total_investment_with_currency_effect: Decimal = Decimal("0")
    time_weighted_investment: Decimal = Decimal("0")
    time_weighted_investment_with_currency_effect: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    fees_with_currency_effect: Decimal = Decimal("0")
    total_dividend: Decimal = Decimal("0")
    total_dividend_in_base_currency: Decimal = Decimal("0")
    total_interest: Decimal = Decimal("0")
    total_interest_in_base_currency: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    total_liabilities_in_base_currency: Decimal = Decimal("0")
    total_quantity_from_buy_transactions: Decimal = Decimal("0")
    total_investment_from_buy_transactions: Decimal = Decimal("0")
    total_investment_from_buy_transactions_with_currency_effect: Decimal = Decimal("0")
    units_at_start_date: Decimal = Decimal("0")
    has_inconsistent_ledger: bool = False

    def is_identity(self) -> bool:
        """True if no order has been applied yet."""
        return all(
            getattr(self, f.name) == f.default
            for f in fields(self)
        )


@dataclass
class SymbolMetrics:
    """Performance figures of one instrument over a window."""
    current_values: dict[date, Decimal] = field(default_factory=dict)
    current_values_with_currency_effect: dict[date, Decimal] = field(default_factory=dict)
    investment_values_accumulated: dict[date, Decimal] = field(default_factory=dict)
    investment_values_accumulated_with_currency_effect: dict[date, Decimal] = field(default_factory=dict)
    investment_values_with_currency_effect: dict[date, Decimal] = field(default_factory=dict)
    net_performance_values: dict[date, Decimal] = field(default_factory=dict)
    net_performance_values_with_currency_effect: dict[date, Decimal] = field(default_factory=dict)
    time_weighted_investment_values: dict[date, Decimal] = field(default_factory=dict)
    time_weighted_investment_values_with_currency_effect: dict[date, Decimal] = field(default_factory=dict)
    net_performance_with_currency_effect_map: dict[str, Decimal] = field(default_factory=dict)
    net_performance_percentage_with_currency_effect_map: dict[str, Decimal] = field(default_factory=dict)
    current_value: Decimal = Decimal("0")
    current_value_with_currency_effect: Decimal = Decimal("0")
    fees: Decimal = Decimal("0")
    fees_with_currency_effect: Decimal = Decimal("0")
    gross_performance: Decimal = Decimal("0")
    gross_performance_percentage: Decimal = Decimal("0")
    gross_performance_percentage_with_currency_effect: Decimal = Decimal("0")
    gross_performance_with_currency_effect: Decimal = Decimal("0")
    net_performance: Decimal = Decimal("0")
    net_performance_percentage: Decimal = Decimal("0")
    net_performance_percentage_with_currency_effect: Decimal = Decimal("0")
    net_performance_with_currency_effect: Decimal = Decimal("0")
    initial_value: Decimal = Decimal("0")
    initial_value_with_currency_effect: Decimal = Decimal("0")
    time_weighted_investment: Decimal = Decimal("0")
    time_weighted_investment_with_currency_effect: Decimal = Decimal("0")
    total_dividend: Decimal = Decimal("0")
    total_dividend_in_base_currency: Decimal = Decimal("0")
    total_interest: Decimal = Decimal("0")
    total_interest_in_base_currency: Decimal = Decimal("0")
    total_investment: Decimal = Decimal("0")
    total_investment_with_currency_effect: Decimal = Decimal("0")
    total_liabilities: Decimal = Decimal("0")
    total_liabilities_in_base_currency: Decimal = Decimal("0")
    total_units: Decimal = Decimal("0")
    unit_price_at_end_date: Decimal | None = None
    current_exchange_rate: Decimal = Decimal("1")
    has_errors: bool = False
    has_inconsistent_ledger: bool = False

    @classmethod
    def empty(cls, has_errors: bool = False) -> "SymbolMetrics":
        """The additive identity, optionally flagged as errored."""
        return cls(has_errors=has_errors)


@dataclass
class TimelinePosition:
    """An instrument's position and performance as exposed to callers.

    Performance fields are None when the instrument's prices were
    unavailable; bookkeeping fields are always populated.
    """
    symbol: str
    data_source: DataSource
    currency: Currency
    quantity: Decimal
    average_price: Decimal
    fee: Decimal
    fee_in_base_currency: Decimal
    dividend: Decimal
    first_buy_date: date | None
    transaction_count: int
    tags: list[str] = field(default_factory=list)
    investment: Decimal | None = None
    investment_with_currency_effect: Decimal | None = None
    time_weighted_investment: Decimal | None = None
    time_weighted_investment_with_currency_effect: Decimal | None = None
    dividend_in_base_currency: Decimal | None = None
    interest_in_base_currency: Decimal | None = None
    liabilities_in_base_currency: Decimal | None = None
    gross_performance: Decimal | None = None
    gross_performance_percentage: Decimal | None = None
    gross_performance_percentage_with_currency_effect: Decimal | None = None
    gross_performance_with_currency_effect: Decimal | None = None
    net_performance: Decimal | None = None
    net_performance_percentage: Decimal | None = None
    net_performance_percentage_with_currency_effect: Decimal | None = None
    net_performance_with_currency_effect: Decimal | None = None
    net_performance_with_currency_effect_map: dict[str, Decimal] = field(default_factory=dict)
    # Display echoes only; never used in money arithmetic
    market_price: float | None = None
    market_price_in_base_currency: float | None = None
    value_in_base_currency: Decimal | None = None
    has_errors: bool = False

    _decimal_fields = (
        "quantity", "average_price", "fee", "fee_in_base_currency", "dividend",
        "investment", "investment_with_currency_effect",
        "time_weighted_investment", "time_weighted_investment_with_currency_effect",
        "dividend_in_base_currency", "interest_in_base_currency", "liabilities_in_base_currency",
        "gross_performance", "gross_performance_percentage",
        "gross_performance_percentage_with_currency_effect", "gross_performance_with_currency_effect",
        "net_performance", "net_performance_percentage",
        "net_performance_percentage_with_currency_effect", "net_performance_with_currency_effect",
        "value_in_base_currency",
    )

    def to_dict(self) -> dict[str, Any]:
        return _to_jsonable(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimelinePosition":
        kwargs = dict(data)
        for name in cls._decimal_fields:
            kwargs[name] = _decimal_or_none(kwargs.get(name))
        kwargs["data_source"] = DataSource(kwargs["data_source"])
        kwargs["currency"] = Currency(kwargs["currency"])
        kwargs["first_buy_date"] = _date_or_none(kwargs.get("first_buy_date"))
        kwargs["net_performance_with_currency_effect_map"] = {
            k: Decimal(v) for k, v in (kwargs.get("net_performance_with_currency_effect_map") or {}).items()
        }
        return cls(**kwargs)


@dataclass
class HistoricalDataItem:
    """Aggregated portfolio figures on one day."""
    date: date
    net_performance: Decimal = Decimal("0")
    net_performance_with_currency_effect: Decimal = Decimal("0")
    net_performance_in_percentage: Decimal = Decimal("0")
    net_performance_in_percentage_with_currency_effect: Decimal = Decimal("0")
    total_investment: Decimal = Decimal("0")
    total_investment_value_with_currency_effect: Decimal = Decimal("0")
    time_weighted_investment: Decimal = Decimal("0")
    time_weighted_investment_with_currency_effect: Decimal = Decimal("0")
    value: Decimal = Decimal("0")
    value_with_currency_effect: Decimal = Decimal("0")

    def to_dict(self) -> dict[str, Any]:
        return _to_jsonable(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoricalDataItem":
        kwargs: dict[str, Any] = {k: Decimal(v) for k, v in data.items() if k != "date"}
        return cls(date=date.fromisoformat(data["date"]), **kwargs)


@dataclass
class PortfolioSnapshot:
    """Aggregated result of one performance calculation."""
    created_at: datetime
    base_currency: Currency
    calculation_type: PerformanceCalculationType
    current_value_in_base_currency: Decimal = Decimal("0")
    gross_performance: Decimal = Decimal("0")
    gross_performance_with_currency_effect: Decimal = Decimal("0")
    net_performance: Decimal = Decimal("0")
    net_performance_with_currency_effect: Decimal = Decimal("0")
    total_dividend_with_currency_effect: Decimal = Decimal("0")
    total_fees_with_currency_effect: Decimal = Decimal("0")
    total_interest_with_currency_effect: Decimal = Decimal("0")
    total_investment: Decimal = Decimal("0")
    total_investment_with_currency_effect: Decimal = Decimal("0")
    total_liabilities_with_currency_effect: Decimal = Decimal("0")
    has_errors: bool = False
    errors: list[SymbolError] = field(default_factory=list)
    ledger_warnings: list[SymbolError] = field(default_factory=list)
    positions: list[TimelinePosition] = field(default_factory=list)
    historical_data: list[HistoricalDataItem] = field(default_factory=list)
    activities_count: int = 0

    _decimal_fields = (
        "current_value_in_base_currency", "gross_performance",
        "gross_performance_with_currency_effect", "net_performance",
        "net_performance_with_currency_effect", "total_dividend_with_currency_effect",
        "total_fees_with_currency_effect", "total_interest_with_currency_effect",
        "total_investment", "total_investment_with_currency_effect",
        "total_liabilities_with_currency_effect",
    )

    def to_dict(self) -> dict[str, Any]:
        """Render the snapshot as JSON-compatible data, decimals as strings."""
        data = _to_jsonable({
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("errors", "ledger_warnings", "positions", "historical_data")
        })
        data["errors"] = [e.to_dict() for e in self.errors]
        data["ledger_warnings"] = [e.to_dict() for e in self.ledger_warnings]
        data["positions"] = [p.to_dict() for p in self.positions]
        data["historical_data"] = [h.to_dict() for h in self.historical_data]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PortfolioSnapshot":
        """Rebuild a snapshot produced by ``to_dict`` without precision loss."""
        kwargs = dict(data)
        for name in cls._decimal_fields:
            kwargs[name] = Decimal(kwargs[name])
        kwargs["created_at"] = datetime.fromisoformat(kwargs["created_at"])
        kwargs["base_currency"] = Currency(kwargs["base_currency"])
        kwargs["calculation_type"] = PerformanceCalculationType(kwargs["calculation_type"])
        kwargs["errors"] = [SymbolError.from_dict(e) for e in kwargs.get("errors", [])]
        kwargs["ledger_warnings"] = [SymbolError.from_dict(e) for e in kwargs.get("ledger_warnings", [])]
        kwargs["positions"] = [TimelinePosition.from_dict(p) for p in kwargs.get("positions", [])]
        kwargs["historical_data"] = [HistoricalDataItem.from_dict(h) for h in kwargs.get("historical_data", [])]
        return cls(**kwargs)
