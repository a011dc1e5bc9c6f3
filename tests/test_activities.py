"""Tests for ledger activities, holdings summaries and ledger file I/O."""

from datetime import date
from decimal import Decimal

import pytest
from openpyxl import Workbook

from ledgerfolio.activities import (
    EXCEL_COLUMNS,
    Activity,
    ActivityType,
    DataSource,
    clone_activities,
    get_factor,
    load_activities_from_excel,
    load_activities_from_json,
    save_activities_to_json,
    summarize_holdings,
)
from ledgerfolio.currency import Currency, CurrencyConverter, FixedExchangeRateManager
from ledgerfolio.errors import InconsistentLedgerWarning


def _converter():
    fx = FixedExchangeRateManager({(Currency.USD, Currency.CHF): Decimal("0.9")})
    return CurrencyConverter(fx, Currency.CHF, date(2023, 7, 10))


def _buy(day, quantity, price, fee="0", symbol="MSFT"):
    return Activity(day, ActivityType.BUY, symbol, DataSource.YAHOO, Decimal(quantity), Decimal(price), fee=Decimal(fee))


def _sell(day, quantity, price, fee="0", symbol="MSFT"):
    return Activity(day, ActivityType.SELL, symbol, DataSource.YAHOO, Decimal(quantity), Decimal(price), fee=Decimal(fee))


def test_get_factor():
    """BUY adds units, SELL removes them, cash flows do not move units."""
    assert get_factor(ActivityType.BUY) == 1
    assert get_factor(ActivityType.SELL) == -1
    assert get_factor(ActivityType.DIVIDEND) == 0
    assert get_factor(ActivityType.INTEREST) == 0
    assert get_factor(ActivityType.LIABILITY) == 0


def test_clone_activities_is_deep_and_filters_symbol():
    """Mutating a clone never touches the caller's ledger."""
    ledger = [_buy(date(2023, 1, 3), "1", "100", symbol="MSFT"), _buy(date(2023, 1, 4), "2", "50", symbol="AAPL")]

    cloned = clone_activities(ledger, "MSFT")
    assert len(cloned) == 1
    assert cloned[0] is not ledger[0]

    cloned[0].quantity = Decimal("99")
    cloned[0].tags.append("changed")
    assert ledger[0].quantity == Decimal("1")
    assert ledger[0].tags == []


class TestSummarizeHoldings:
    """Tests for cost-basis bookkeeping of a single instrument."""

    def test_partial_sell_keeps_average_price(self):
        """
        BUY 10 @ 100, BUY 10 @ 200, SELL 5 @ 300.
        Cost basis 3000 - 3000/20*5 = 2250 for 15 units, average 150.
        """
        activities = [
            _buy(date(2023, 1, 3), "10", "100", fee="1"),
            _buy(date(2023, 2, 3), "10", "200", fee="1"),
            _sell(date(2023, 3, 3), "5", "300", fee="2"),
        ]

        summary = summarize_holdings(activities, _converter())

        assert summary.quantity == Decimal("15")
        assert summary.investment == Decimal("2250")
        assert summary.average_price == Decimal("150")
        assert summary.fee == Decimal("4")
        assert summary.fee_in_base_currency == Decimal("3.6")
        assert summary.first_buy_date == date(2023, 1, 3)
        assert summary.transaction_count == 3
        assert not summary.has_inconsistent_ledger

    def test_end_date_excludes_later_activities(self):
        activities = [_buy(date(2023, 1, 3), "10", "100"), _buy(date(2023, 6, 1), "10", "100")]
        summary = summarize_holdings(activities, _converter(), end=date(2023, 3, 1))
        assert summary.quantity == Decimal("10")
        assert summary.transaction_count == 1

    def test_fee_in_base_currency_is_preferred(self):
        """A recorded base-currency fee is used as given."""
        activity = _buy(date(2023, 1, 3), "1", "89.12", fee="1")
        activity.fee_in_base_currency = Decimal("0.9238")
        summary = summarize_holdings([activity], _converter())
        assert summary.fee_in_base_currency == Decimal("0.9238")

    def test_dividends_and_tags(self):
        buy = _buy(date(2023, 1, 3), "10", "100")
        buy.tags = ["core"]
        dividend = Activity(date(2023, 4, 1), ActivityType.DIVIDEND, "MSFT", DataSource.YAHOO, Decimal("10"), Decimal("0.68"), tags=["core", "income"])

        summary = summarize_holdings([buy, dividend], _converter())

        assert summary.dividend == Decimal("6.80")
        assert summary.tags == ["core", "income"]
        assert summary.transaction_count == 1

    def test_only_trades_count_fees(self):
        buy = _buy(date(2023, 1, 3), "10", "100", fee="1")
        dividend = Activity(date(2023, 4, 1), ActivityType.DIVIDEND, "MSFT", DataSource.YAHOO, Decimal("10"), Decimal("0.68"), fee=Decimal("5"))

        summary = summarize_holdings([buy, dividend], _converter())

        assert summary.fee == Decimal("1")
        assert summary.fee_in_base_currency == Decimal("0.9")

    def test_oversold_ledger_is_flagged_once(self):
        """Selling more than held keeps the numbers as given and warns once."""
        activities = [
            _buy(date(2023, 1, 3), "1", "100"),
            _sell(date(2023, 1, 4), "2", "110"),
            _sell(date(2023, 1, 5), "1", "120"),
        ]

        with pytest.warns(InconsistentLedgerWarning) as record:
            summary = summarize_holdings(activities, _converter())

        assert len([w for w in record if issubclass(w.category, InconsistentLedgerWarning)]) == 1
        assert summary.quantity == Decimal("-2")
        assert summary.has_inconsistent_ledger
        assert summary.investment == Decimal("0")

    def test_rejects_empty_and_mixed_ledgers(self):
        with pytest.raises(ValueError):
            summarize_holdings([], _converter())
        with pytest.raises(ValueError, match="one symbol"):
            summarize_holdings([_buy(date(2023, 1, 3), "1", "1", symbol="A"), _buy(date(2023, 1, 3), "1", "1", symbol="B")], _converter())


def test_json_round_trip_keeps_precision(tmp_path):
    """Verify decimals survive a JSON save and load unchanged."""
    activity = Activity(
        date(2023, 1, 3), ActivityType.BUY, "GOOGL", DataSource.YAHOO,
        Decimal("1"), Decimal("89.12"), fee=Decimal("1"), fee_in_base_currency=Decimal("0.9238"),
        currency=Currency.USD, tags=["tech"],
    )
    path = tmp_path / "activities.json"

    save_activities_to_json([activity], str(path))
    loaded = load_activities_from_json(str(path))

    assert len(loaded) == 1
    assert loaded[0].date == date(2023, 1, 3)
    assert loaded[0].type == ActivityType.BUY
    assert loaded[0].unit_price == Decimal("89.12")
    assert loaded[0].fee_in_base_currency == Decimal("0.9238")
    assert loaded[0].currency == Currency.USD
    assert loaded[0].tags == ["tech"]


def test_json_numbers_are_parsed_through_strings(tmp_path):
    """JSON floats never pass through binary floating point."""
    path = tmp_path / "activities.json"
    path.write_text('[{"date": "2023-01-03", "type": "buy", "symbol": "GOOGL", "quantity": 1, "unit_price": 0.1}]')

    loaded = load_activities_from_json(str(path))

    assert loaded[0].unit_price == Decimal("0.1")
    assert loaded[0].data_source == DataSource.YAHOO
    assert loaded[0].fee == Decimal("0")
    assert loaded[0].fee_in_base_currency is None


def test_json_rejects_negative_quantity(tmp_path):
    path = tmp_path / "activities.json"
    path.write_text('[{"date": "2023-01-03", "type": "BUY", "symbol": "GOOGL", "quantity": "-1", "unit_price": "10"}]')

    with pytest.raises(ValueError, match="non-negative"):
        load_activities_from_json(str(path))


def test_load_activities_from_excel(tmp_path):
    """Verify Excel rows become activities in row order."""
    path = tmp_path / "activities.xlsx"
    wb = Workbook()
    ws = wb.active
    ws.append(EXCEL_COLUMNS)
    ws.append(["2023-01-03", "BUY", "GOOGL", "YAHOO", "USD", "1", "89.12", "1", "0.9238", "tech, growth"])
    ws.append(["2023-03-01", "DIVIDEND", "GOOGL", None, None, "1", "0.5", None, None, None])
    wb.save(path)

    activities = load_activities_from_excel(str(path))

    assert [a.type for a in activities] == [ActivityType.BUY, ActivityType.DIVIDEND]
    assert activities[0].unit_price == Decimal("89.12")
    assert activities[0].fee_in_base_currency == Decimal("0.9238")
    assert activities[0].tags == ["tech", "growth"]
    assert activities[1].data_source == DataSource.YAHOO
    assert activities[1].currency == Currency.USD
    assert activities[1].fee == Decimal("0")


def test_load_activities_from_excel_create_if_missing(tmp_path):
    """Verify a missing workbook is created with headers when requested."""
    path = tmp_path / "new.xlsx"

    assert load_activities_from_excel(str(path), create_if_missing=True) == []
    assert path.exists()
    assert load_activities_from_excel(str(path)) == []


def test_load_activities_from_excel_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_activities_from_excel(str(tmp_path / "absent.xlsx"))
