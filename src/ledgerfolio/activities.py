from datetime import date, datetime
from decimal import Decimal
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import copy
import json
import os
import warnings

import pandas as pd
from openpyxl import Workbook

from .currency import Currency, CurrencyConverter
from .errors import InconsistentLedgerWarning


class ActivityType(Enum):
    """Enumeration of supported ledger activity types."""

    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    INTEREST = "INTEREST"
    LIABILITY = "LIABILITY"


class DataSource(Enum):
    """Where an instrument's market data comes from."""

    ALPHA_VANTAGE = "ALPHA_VANTAGE"
    COINGECKO = "COINGECKO"
    EOD_HISTORICAL_DATA = "EOD_HISTORICAL_DATA"
    FINANCIAL_MODELING_PREP = "FINANCIAL_MODELING_PREP"
    GOOGLE_SHEETS = "GOOGLE_SHEETS"
    MANUAL = "MANUAL"
    RAPID_API = "RAPID_API"
    YAHOO = "YAHOO"


class BoundaryItemType(Enum):
    """Marks synthetic orders inserted at a reporting window's edges."""

    START = "start"
    END = "end"


@dataclass(frozen=True)
class AssetProfileIdentifier:
    """Identifies an instrument by data source and symbol."""
    data_source: DataSource
    symbol: str


def get_factor(activity_type: ActivityType) -> int:
    """Return the direction of an activity: +1 for BUY, -1 for SELL, 0 otherwise."""
    if activity_type == ActivityType.BUY:
        return 1
    if activity_type == ActivityType.SELL:
        return -1
    return 0


class Activity():
    """A single ledger entry (buy, sell, dividend, interest or liability)."""

    def __init__(
        self,
        date: date,
        type: ActivityType,
        symbol: str,
        data_source: DataSource,
        quantity: Decimal,
        unit_price: Decimal | None,
        fee: Decimal = Decimal("0"),
        fee_in_base_currency: Decimal | None = None,
        currency: Currency = Currency.USD,
        tags: list[str] | None = None,
        item_type: BoundaryItemType | None = None,
    ):
        """Initialize an Activity.

        Args:
            date: Day the activity took place.
            type: The type of activity.
            symbol: Ticker symbol of the instrument.
            data_source: Where the instrument's market data comes from.
            quantity: Number of units (non-negative).
            unit_price: Price per unit in instrument currency. Only synthetic
                boundary orders may leave it unset.
            fee: Fee in instrument currency.
            fee_in_base_currency: Fee already converted into the base
                currency. If None, it is valued at the activity date's rate.
            currency: Currency the instrument is quoted in. Defaults to USD.
            tags: Free-form labels carried through to the position.
            item_type: Set only on synthetic boundary orders.
        """
        self.date = date
        self.type = type
        self.symbol: str = symbol
        self.data_source: DataSource = data_source
        self.quantity: Decimal = quantity
        self.unit_price: Decimal | None = unit_price
        self.fee: Decimal = fee
        self.fee_in_base_currency: Decimal | None = fee_in_base_currency
        self.currency: Currency = currency
        self.tags: list[str] = list(tags or [])
        self.item_type: BoundaryItemType | None = item_type

    @property
    def is_synthetic(self) -> bool:
        return self.item_type is not None

    @property
    def asset_profile(self) -> AssetProfileIdentifier:
        return AssetProfileIdentifier(self.data_source, self.symbol)

    def __repr__(self):
        return f"Activity(symbol={self.symbol}, date={self.date}, type={self.type}, quantity={self.quantity}, unit_price={self.unit_price}, fee={self.fee}, currency={self.currency})"


def clone_activities(activities: list[Activity], symbol: str | None = None) -> list[Activity]:
    """
    Deep-copy a ledger, optionally keeping only one symbol.

    The engine sorts and inserts synthetic orders into its working copy,
    so it never works on the caller's objects.
    """
    selected = [a for a in activities if symbol is None or a.symbol == symbol]
    return copy.deepcopy(selected)


@dataclass
class HoldingSummary:
    """Quantity, cost basis and bookkeeping for one instrument."""
    symbol: str
    data_source: DataSource
    currency: Currency
    quantity: Decimal = Decimal("0")
    average_price: Decimal = Decimal("0")
    investment: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")
    fee_in_base_currency: Decimal = Decimal("0")
    dividend: Decimal = Decimal("0")
    first_buy_date: date | None = None
    transaction_count: int = 0
    tags: list[str] = field(default_factory=list)
    has_inconsistent_ledger: bool = False


def summarize_holdings(
    activities: list[Activity],
    converter: CurrencyConverter,
    end: date | None = None,
) -> HoldingSummary:
    """
    Summarize the holdings of a single instrument up to a date.

    The average price follows the cost basis of the units still held:
    buys add their value, sells remove cost proportionally. A sell that
    exceeds the units held is kept as given (the quantity goes negative)
    and the summary is flagged as inconsistent. Fees count on buys and
    sells only.

    Args:
        activities: Activities of exactly one instrument.
        converter: Used to value fees that lack a base currency amount.
        end: Ignore activities dated after this day. If None, uses all.

    Returns:
        A HoldingSummary for the instrument.

    Raises:
        ValueError: If ``activities`` is empty or spans several symbols.
    """
    if not activities:
        raise ValueError("Cannot summarize holdings without activities")

    symbols = {a.symbol for a in activities}
    if len(symbols) > 1:
        raise ValueError(f"Expected activities of one symbol, got {sorted(symbols)}")

    first = activities[0]
    summary = HoldingSummary(symbol=first.symbol, data_source=first.data_source, currency=first.currency)
    cost_basis = Decimal("0")

    sorted_activities = sorted(activities, key=lambda a: a.date)

    for activity in sorted_activities:
        if end is not None and activity.date > end:
            break

        for tag in activity.tags:
            if tag not in summary.tags:
                summary.tags.append(tag)

        if activity.type in (ActivityType.BUY, ActivityType.SELL):
            summary.fee += activity.fee
            if activity.fee_in_base_currency is not None:
                summary.fee_in_base_currency += activity.fee_in_base_currency
            else:
                summary.fee_in_base_currency += converter.to_base(activity.fee, activity.currency, activity.date)

        unit_price = activity.unit_price or Decimal("0")
        total_value = activity.quantity * unit_price

        if activity.type == ActivityType.BUY:
            if summary.first_buy_date is None:
                summary.first_buy_date = activity.date
            cost_basis += total_value
            summary.quantity += activity.quantity
            summary.transaction_count += 1

        elif activity.type == ActivityType.SELL:
            if summary.quantity > 0:
                sold_from_long = min(activity.quantity, summary.quantity)
                cost_basis -= cost_basis / summary.quantity * sold_from_long
            summary.quantity -= activity.quantity
            summary.transaction_count += 1

            if summary.quantity < 0 and not summary.has_inconsistent_ledger:
                summary.has_inconsistent_ledger = True
                warnings.warn(
                    f"Ledger for {summary.symbol} sells more units than it holds "
                    f"(quantity {summary.quantity} after {activity.date.isoformat()})",
                    InconsistentLedgerWarning,
                    stacklevel=2,
                )

        elif activity.type == ActivityType.DIVIDEND:
            summary.dividend += total_value

    if summary.quantity > 0:
        summary.investment = cost_basis
        summary.average_price = cost_basis / summary.quantity
    return summary


def _to_date(value: Any) -> date:
    """Turn an ISO string, datetime or date into a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).strip()).date()


def _to_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    """Parse a decimal from its string form; empty cells yield ``default``."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return default
    text = str(value).strip()
    if not text:
        return default
    return Decimal(text)


def _activity_from_record(record: dict[str, Any]) -> Activity:
    """Build an Activity from a flat mapping of field names to raw values."""
    quantity = _to_decimal(record["quantity"])
    unit_price = _to_decimal(record["unit_price"])
    if quantity is None or unit_price is None:
        raise ValueError(f"Activity is missing quantity or unit price: {record}")
    if quantity < 0 or unit_price < 0:
        raise ValueError(f"Activity quantity and unit price must be non-negative: {record}")

    fee = _to_decimal(record.get("fee"), Decimal("0"))
    assert fee is not None
    if fee < 0:
        raise ValueError(f"Activity fee must be non-negative: {record}")

    tags = record.get("tags") or []
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.split(",") if t.strip()]

    return Activity(
        date=_to_date(record["date"]),
        type=ActivityType(str(record["type"]).strip().upper()),
        symbol=str(record["symbol"]).strip(),
        data_source=DataSource(str(record.get("data_source") or "YAHOO").strip().upper()),
        quantity=quantity,
        unit_price=unit_price,
        fee=fee,
        fee_in_base_currency=_to_decimal(record.get("fee_in_base_currency")),
        currency=Currency(str(record.get("currency") or "USD").strip().upper()),
        tags=list(tags),
    )


def load_activities_from_json(file_path: str) -> list[Activity]:
    """
    Load a ledger from a JSON file.

    Args:
        file_path: Path to the JSON file containing activities.

    Returns:
        List of activities in file order.

    Expected JSON structure:
        [
            {
                "date": "2023-01-03",
                "type": "BUY",
                "symbol": "GOOGL",
                "data_source": "YAHOO",
                "currency": "USD",
                "quantity": "1",
                "unit_price": "89.12",
                "fee": "1",
                "fee_in_base_currency": "0.9238",
                "tags": []
            },
            ...
        ]

    Numbers may be given as strings or JSON numbers; both are parsed
    through their string form.
    """
    with open(file_path, "r") as f:
        data = json.load(f, parse_float=str, parse_int=str)

    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of activities")

    return [_activity_from_record(item) for item in data]


def save_activities_to_json(activities: list[Activity], file_path: str) -> None:
    """
    Save a ledger to a JSON file, writing every decimal as a string.

    Args:
        activities: Activities to save. Synthetic boundary orders are skipped.
        file_path: Path to the JSON file to write.
    """
    data = []
    for activity in activities:
        if activity.is_synthetic:
            continue
        data.append({
            "date": activity.date.isoformat(),
            "type": activity.type.value,
            "symbol": activity.symbol,
            "data_source": activity.data_source.value,
            "currency": activity.currency.value,
            "quantity": str(activity.quantity),
            "unit_price": str(activity.unit_price),
            "fee": str(activity.fee),
            "fee_in_base_currency": None if activity.fee_in_base_currency is None else str(activity.fee_in_base_currency),
            "tags": activity.tags,
        })

    with open(file_path, "w") as f:
        json.dump(data, f, indent=2)


EXCEL_COLUMNS = ["DATE", "TYPE", "SYMBOL", "DATA SOURCE", "CURRENCY", "QUANTITY", "UNIT PRICE", "FEE", "FEE IN BASE CURRENCY", "TAGS"]


def _create_empty_activities_excel(file_path: str) -> None:
    """Create an empty Excel file with just the required headers."""
    wb = Workbook()
    ws = wb.active
    assert ws is not None
    for col, header in enumerate(EXCEL_COLUMNS, start=1):
        ws.cell(row=1, column=col, value=header)
    wb.save(file_path)


def load_activities_from_excel(file_path: str, create_if_missing: bool = False) -> list[Activity]:
    """
    Load a ledger from an Excel file.

    Args:
        file_path: Path to the Excel file containing activities.
        create_if_missing: If True and the file doesn't exist, create an
            empty file with headers and return an empty ledger.

    Returns:
        List of activities in row order.

    Expected Excel columns (order independent):
        - DATE: Activity day (ISO format)
        - TYPE: BUY, SELL, DIVIDEND, INTEREST or LIABILITY
        - SYMBOL: Instrument symbol
        - DATA SOURCE: e.g. YAHOO, MANUAL. Empty means YAHOO.
        - CURRENCY: Instrument currency. Empty means the first row's currency.
        - QUANTITY, UNIT PRICE, FEE
        - FEE IN BASE CURRENCY (optional)
        - TAGS (optional, comma separated)
    """
    if not os.path.exists(file_path):
        if create_if_missing:
            _create_empty_activities_excel(file_path)
            return []
        raise FileNotFoundError(f"Activities file not found: {file_path}")

    # Read everything as text so decimals never pass through floats
    df = pd.read_excel(file_path, dtype=str)

    if df.empty:
        return []

    required_columns = {"DATE", "TYPE", "SYMBOL", "QUANTITY", "UNIT PRICE"}
    missing_columns = required_columns - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    default_currency = "USD"
    if "CURRENCY" in df.columns and pd.notna(df["CURRENCY"].iloc[0]):
        default_currency = str(df["CURRENCY"].iloc[0])

    activities: list[Activity] = []
    for _, row in df.iterrows():
        currency_value = row.get("CURRENCY")
        activities.append(_activity_from_record({
            "date": row["DATE"],
            "type": row["TYPE"],
            "symbol": row["SYMBOL"],
            "data_source": row.get("DATA SOURCE") if pd.notna(row.get("DATA SOURCE")) else None,
            "currency": currency_value if pd.notna(currency_value) and currency_value else default_currency,
            "quantity": row["QUANTITY"],
            "unit_price": row["UNIT PRICE"],
            "fee": row.get("FEE"),
            "fee_in_base_currency": row.get("FEE IN BASE CURRENCY"),
            "tags": row.get("TAGS") if pd.notna(row.get("TAGS")) else None,
        }))

    return activities
