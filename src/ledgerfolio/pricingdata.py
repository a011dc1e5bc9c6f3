from decimal import Decimal
from datetime import date

import pandas as pd

from .activities import DataSource
from .currency import Currency


class PricePoint:
    """A single closing price observation for an instrument."""

    def __init__(self, symbol: str, price_date: date, price: Decimal, data_source: DataSource = DataSource.YAHOO, base_currency: Currency = Currency.USD):
        """Initialize a PricePoint.

        Args:
            symbol: Ticker symbol (e.g., "AAPL", "GOOGL").
            price_date: The day the price was observed.
            price: The observed price as a Decimal.
            data_source: Where the price comes from.
            base_currency: Currency the price is denominated in.
        """
        self.symbol: str = symbol
        self.price_date: date = price_date
        self.price: Decimal = price
        self.data_source: DataSource = data_source
        self.base_currency: Currency = base_currency

    def __repr__(self):
        return f"PricePoint(symbol={self.symbol}, date={self.price_date}, price={self.price}, data_source={self.data_source})"


class MarketPriceTable:
    """Sparse daily market prices keyed by day and instrument.

    Absence of a price is normal (weekends, holidays, illiquid or manual
    instruments); lookups return None rather than guessing.
    """

    def __init__(self, price_points: list[PricePoint] | None = None):
        self.prices: dict[tuple[date, DataSource, str], Decimal] = {}
        for price_point in price_points or []:
            self.add_price_point(price_point)

    def add_price_point(self, price_point: PricePoint) -> None:
        self.set_price(price_point.data_source, price_point.symbol, price_point.price_date, price_point.price)

    def set_price(self, data_source: DataSource, symbol: str, on: date, price: Decimal) -> None:
        self.prices[(on, data_source, symbol)] = price

    def get_price(self, data_source: DataSource, symbol: str, on: date) -> Decimal | None:
        """Return the exact price for an instrument on a day, or None."""
        return self.prices.get((on, data_source, symbol))

    def get_dates(self, data_source: DataSource, symbol: str, start: date | None = None, end: date | None = None) -> list[date]:
        """Sorted days within [start, end] that have a price for the instrument."""
        return sorted(
            price_date
            for (price_date, source, sym) in self.prices
            if source == data_source
            and sym == symbol
            and (start is None or price_date >= start)
            and (end is None or price_date <= end)
        )

    def __len__(self) -> int:
        return len(self.prices)


def load_prices_from_csv(file_path: str) -> MarketPriceTable:
    """
    Load daily market prices from a CSV file.

    Expected columns: ``date`` (ISO), ``data_source``, ``symbol``, ``price``.
    Prices are parsed from their string form.

    Args:
        file_path: Path to the CSV file.

    Returns:
        A MarketPriceTable containing every row of the file.

    Raises:
        ValueError: If required columns are missing or a data source is unknown.
    """
    df = pd.read_csv(file_path, dtype=str)

    required_columns = {"date", "data_source", "symbol", "price"}
    missing_columns = required_columns - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    table = MarketPriceTable()
    for _, row in df.iterrows():
        table.set_price(
            DataSource(str(row["data_source"]).strip().upper()),
            str(row["symbol"]).strip(),
            date.fromisoformat(str(row["date"]).strip()),
            Decimal(str(row["price"]).strip()),
        )

    return table
