from enum import Enum
from abc import ABC, abstractmethod
from decimal import Decimal
from datetime import date, timedelta
import warnings

import pandas as pd

from .errors import MissingExchangeRateWarning

class Currency(Enum):
    """Supported currencies for exchange rate conversions."""

    USD = "USD"
    CAD = "CAD"
    EUR = "EUR"
    TWD = "TWD"
    SGD = "SGD"
    AUD = "AUD"
    JPY = "JPY"
    KRW = "KRW"
    GBP = "GBP"
    BRL = "BRL"
    CNY = "CNY"
    HKD = "HKD"
    MXN = "MXN"
    ZAR = "ZAR"
    CHF = "CHF"
    THB = "THB"

class ExchangeRateManager(ABC):
    """Abstract base class for currency exchange rate providers."""

    @abstractmethod
    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, on: date) -> Decimal:
        """Get the exchange rate between two currencies.

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            on: The date for the rate lookup.

        Returns:
            The exchange rate as a Decimal.

        Raises:
            ValueError: If no rate is available for the pair on that date.
        """
        raise NotImplementedError("This method should be overridden by subclasses.")

class FixedExchangeRateManager(ExchangeRateManager):
    """Exchange rate manager using fixed rates that do not vary by date.

    Useful for tests or single-currency portfolios.
    """

    def __init__(self, exchange_rates: dict[tuple[Currency, Currency], Decimal] | None = None):
        """Initialize with custom exchange rates.

        Args:
            exchange_rates: Mapping of (from, to) currency pairs to rates.
        """
        self.exchange_rates: dict[tuple[Currency, Currency], Decimal] = dict(exchange_rates or {})

    def set_exchange_rate(self, from_currency: Currency, to_currency: Currency, rate: Decimal):
        """Set or override the exchange rate for a currency pair."""
        self.exchange_rates[(from_currency, to_currency)] = rate

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, on: date | None = None) -> Decimal:
        """Get the fixed exchange rate between two currencies.

        Tries the direct pair, then the inverse pair, then a USD-triangulated
        conversion.

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            on: Ignored; included for interface compatibility.

        Returns:
            The exchange rate as a Decimal.

        Raises:
            ValueError: If no rate is available for the currency pair.
        """
        if from_currency == to_currency:
            return Decimal("1")

        if (from_currency, to_currency) in self.exchange_rates:
            return self.exchange_rates[(from_currency, to_currency)]

        if (to_currency, from_currency) in self.exchange_rates:
            return Decimal("1") / self.exchange_rates[(to_currency, from_currency)]

        # If neither currency is USD, try converting via USD
        if from_currency != Currency.USD and to_currency != Currency.USD:
            from_to_usd = (from_currency, Currency.USD)
            usd_to_target = (Currency.USD, to_currency)

            if from_to_usd in self.exchange_rates and usd_to_target in self.exchange_rates:
                return self.exchange_rates[from_to_usd] * self.exchange_rates[usd_to_target]

        raise ValueError(f"Exchange rate from {from_currency.value} to {to_currency.value} not available.")

class ExchangeRateTable(ExchangeRateManager):
    """Exchange rate manager backed by a sparse table of daily rates.

    Rates are keyed by (date, "XXX->YYY"). Missing dates are bridged by
    looking back up to ``lookback_days`` days to cover weekends, bank
    holidays and publication delays.
    """

    def __init__(self, rates: dict[tuple[date, Currency, Currency], Decimal] | None = None, lookback_days: int = 14):
        """Initialize the table.

        Args:
            rates: Mapping of (date, from_currency, to_currency) to rate.
            lookback_days: How many earlier days to search when a date is missing.
        """
        if lookback_days < 0:
            raise ValueError(f"lookback_days must be non-negative, got {lookback_days}")

        self.lookback_days = lookback_days

        # e.g., {(date(2023, 1, 3), "USD->CHF"): Decimal("0.9238")}
        self.exchange_rates: dict[tuple[date, str], Decimal] = {}

        for (rate_date, from_currency, to_currency), rate in (rates or {}).items():
            self.set_exchange_rate(from_currency, to_currency, rate_date, rate)

    def set_exchange_rate(self, from_currency: Currency, to_currency: Currency, on: date, rate: Decimal):
        """Set or override the rate for a currency pair on a date."""
        self.exchange_rates[(on, f"{from_currency.value}->{to_currency.value}")] = rate

    def _get_rate_for_pair(self, pair: str, on: date) -> Decimal | None:
        """Try to get exchange rate for a pair, looking back up to ``lookback_days`` days.

        Args:
            pair: Currency pair string in "XXX->YYY" format.
            on: The target date to start the lookback from.

        Returns:
            The exchange rate as a Decimal, or None if no rate is found
            within the lookback window.
        """
        for days_back in range(self.lookback_days + 1):
            lookup_date = on - timedelta(days=days_back)
            if (lookup_date, pair) in self.exchange_rates:
                return self.exchange_rates[(lookup_date, pair)]
        return None

    def _get_rate_or_inverse(self, from_currency: Currency, to_currency: Currency, on: date) -> Decimal | None:
        rate = self._get_rate_for_pair(f"{from_currency.value}->{to_currency.value}", on)
        if rate is not None:
            return rate

        inverse_rate = self._get_rate_for_pair(f"{to_currency.value}->{from_currency.value}", on)
        if inverse_rate is not None and inverse_rate != 0:
            return Decimal("1") / inverse_rate

        return None

    def get_exchange_rate(self, from_currency: Currency, to_currency: Currency, on: date) -> Decimal:
        """Get exchange rate for a currency pair on a specific date.

        If neither currency is USD and no direct or inverse rate exists,
        converts via USD (e.g., HKD -> USD -> CHF).

        Args:
            from_currency: The source currency.
            to_currency: The target currency.
            on: The date for the rate lookup.

        Returns:
            The exchange rate as a Decimal.

        Raises:
            ValueError: If no rate is available for the pair within the
                lookback window.
        """
        if from_currency == to_currency:
            return Decimal("1")

        rate = self._get_rate_or_inverse(from_currency, to_currency, on)
        if rate is not None:
            return rate

        if from_currency != Currency.USD and to_currency != Currency.USD:
            rate_to_usd = self._get_rate_or_inverse(from_currency, Currency.USD, on)
            rate_from_usd = self._get_rate_or_inverse(Currency.USD, to_currency, on)

            if rate_to_usd is not None and rate_from_usd is not None:
                return rate_to_usd * rate_from_usd

        raise ValueError(
            f"Exchange rate from {from_currency.value} to {to_currency.value} "
            f"not available for date {on.isoformat()} or the previous {self.lookback_days} days."
        )

class CurrencyConverter:
    """Converts instrument-currency amounts into a base currency.

    Wraps an ExchangeRateManager for one base currency and one valuation
    moment ("now"). Lookups never abort a computation: a missing rate is
    reported through a MissingExchangeRateWarning and resolves to 1.
    """

    def __init__(self, exchange_rate_manager: ExchangeRateManager, base_currency: Currency, now: date):
        self.exchange_rate_manager = exchange_rate_manager
        self.base_currency = base_currency
        self.now = now

    def get_rate(self, from_currency: Currency, on: date) -> Decimal:
        """Rate from ``from_currency`` into the base currency on ``on``."""
        if from_currency == self.base_currency:
            return Decimal("1")

        try:
            return self.exchange_rate_manager.get_exchange_rate(from_currency, self.base_currency, on)
        except ValueError as e:
            warnings.warn(
                f"{e} Falling back to a rate of 1.",
                MissingExchangeRateWarning,
                stacklevel=2,
            )
            return Decimal("1")

    def get_current_rate(self, from_currency: Currency) -> Decimal:
        """Rate into the base currency as of the valuation moment."""
        return self.get_rate(from_currency, self.now)

    def to_base(self, amount: Decimal, from_currency: Currency, on: date) -> Decimal:
        """Convert ``amount`` into the base currency at the rate of ``on``."""
        return amount * self.get_rate(from_currency, on)

def load_exchange_rates_from_csv(file_path: str, lookback_days: int = 14) -> ExchangeRateTable:
    """
    Load daily exchange rates from a CSV file.

    Expected columns: ``date`` (ISO), ``from``, ``to``, ``rate``. Rates are
    parsed from their string form so no binary floating point is involved.

    Args:
        file_path: Path to the CSV file.
        lookback_days: Lookback used by the returned table.

    Returns:
        An ExchangeRateTable populated with every row of the file.

    Raises:
        ValueError: If required columns are missing or a currency is unknown.
    """
    df = pd.read_csv(file_path, dtype=str)

    required_columns = {"date", "from", "to", "rate"}
    missing_columns = required_columns - set(df.columns)
    if missing_columns:
        raise ValueError(f"Missing required columns: {missing_columns}")

    table = ExchangeRateTable(lookback_days=lookback_days)
    for _, row in df.iterrows():
        table.set_exchange_rate(
            Currency(str(row["from"]).strip().upper()),
            Currency(str(row["to"]).strip().upper()),
            date.fromisoformat(str(row["date"]).strip()),
            Decimal(str(row["rate"]).strip()),
        )

    return table
