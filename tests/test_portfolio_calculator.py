"""End-to-end tests for the portfolio calculator and snapshot aggregation."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ledgerfolio.activities import Activity, ActivityType, DataSource
from ledgerfolio.calculator import (
    PerformanceCalculationType,
    PortfolioCalculator,
    SnapshotAggregator,
    TimelinePosition,
    create_calculator,
)
from ledgerfolio.currency import Currency, ExchangeRateTable
from ledgerfolio.errors import ErrorKind, InconsistentLedgerWarning, MissingPriceWarning
from ledgerfolio.pricingdata import MarketPriceTable

NOW = datetime(2023, 7, 10, tzinfo=timezone.utc)
START = date(2023, 1, 3)
END = date(2023, 7, 10)


def _rates():
    return ExchangeRateTable({
        (date(2023, 1, 3), Currency.USD, Currency.CHF): Decimal("0.9238"),
        (date(2023, 2, 1), Currency.USD, Currency.CHF): Decimal("0.92"),
        (date(2023, 3, 1), Currency.USD, Currency.CHF): Decimal("0.93"),
        (date(2023, 7, 10), Currency.USD, Currency.CHF): Decimal("0.8854"),
    })


def _prices():
    prices = MarketPriceTable()
    prices.set_price(DataSource.YAHOO, "GOOGL", END, Decimal("116.45"))
    prices.set_price(DataSource.YAHOO, "MSFT", END, Decimal("340"))
    return prices


def _googl_buy():
    return Activity(
        date(2023, 1, 3), ActivityType.BUY, "GOOGL", DataSource.YAHOO,
        Decimal("1"), Decimal("89.12"),
        fee=Decimal("1"), fee_in_base_currency=Decimal("0.9238"),
        currency=Currency.USD,
    )


def _msft_buy():
    return Activity(date(2023, 2, 1), ActivityType.BUY, "MSFT", DataSource.YAHOO, Decimal("2"), Decimal("250"), currency=Currency.USD)


def _calculator(activities, calculation_type=PerformanceCalculationType.ROI, **kwargs):
    kwargs.setdefault("start", START)
    kwargs.setdefault("end", END)
    return PortfolioCalculator(activities, calculation_type, Currency.CHF, _rates(), _prices(), now=NOW, **kwargs)


class TestSingleForeignPosition:
    """One BUY of GOOGL in USD reported in CHF."""

    def test_snapshot_totals(self):
        snapshot = _calculator([_googl_buy()]).compute_snapshot()

        assert not snapshot.has_errors
        assert snapshot.errors == []
        assert snapshot.created_at == NOW
        assert snapshot.base_currency == Currency.CHF
        assert snapshot.current_value_in_base_currency == Decimal("103.10483")
        assert snapshot.gross_performance == Decimal("27.33")
        assert snapshot.net_performance == Decimal("26.33")
        assert snapshot.total_investment == Decimal("89.12")
        assert snapshot.total_investment_with_currency_effect == Decimal("82.329056")
        assert snapshot.gross_performance_with_currency_effect == Decimal("20.775774")
        assert snapshot.net_performance_with_currency_effect == Decimal("19.851974")
        assert snapshot.total_fees_with_currency_effect == Decimal("0.9238")
        assert snapshot.activities_count == 1

    def test_position(self):
        snapshot = _calculator([_googl_buy()]).compute_snapshot()

        assert len(snapshot.positions) == 1
        position = snapshot.positions[0]
        assert position.symbol == "GOOGL"
        assert position.quantity == Decimal("1")
        assert position.average_price == Decimal("89.12")
        assert position.investment == Decimal("89.12")
        assert position.investment_with_currency_effect == Decimal("82.329056")
        assert position.fee_in_base_currency == Decimal("0.9238")
        assert position.first_buy_date == date(2023, 1, 3)
        assert position.transaction_count == 1
        assert position.market_price == 116.45
        assert position.market_price_in_base_currency == float(Decimal("103.10483"))
        assert position.value_in_base_currency == Decimal("103.10483")
        assert position.net_performance_with_currency_effect_map == {"max": Decimal("19.851974")}
        assert not position.has_errors

    def test_historical_data(self):
        snapshot = _calculator([_googl_buy()]).compute_snapshot()

        assert [item.date for item in snapshot.historical_data] == [END]
        assert snapshot.historical_data[-1].net_performance_with_currency_effect == Decimal("19.851974")
        assert snapshot.historical_data[-1].value_with_currency_effect == Decimal("103.10483")


def test_totals_are_the_sum_of_positions_and_errors_are_ored():
    """A symbol without an end price is reported without corrupting the other totals."""
    amzn = Activity(date(2023, 3, 1), ActivityType.BUY, "AMZN", DataSource.YAHOO, Decimal("1"), Decimal("95"), currency=Currency.USD)
    ledger = [_msft_buy(), _googl_buy(), amzn]

    with pytest.warns(MissingPriceWarning, match="AMZN"):
        snapshot = _calculator(ledger).compute_snapshot()

    # Positions keep the ledger's order of first appearance
    assert [p.symbol for p in snapshot.positions] == ["MSFT", "GOOGL", "AMZN"]

    assert snapshot.has_errors
    assert [(e.symbol, e.kind) for e in snapshot.errors] == [("AMZN", ErrorKind.MISSING_PRICE)]

    healthy = [p for p in snapshot.positions if not p.has_errors]
    assert snapshot.total_investment == sum((p.investment for p in healthy), Decimal("0"))
    assert snapshot.total_investment == Decimal("589.12")
    assert snapshot.current_value_in_base_currency == Decimal("103.10483") + Decimal("602.072")
    assert snapshot.net_performance_with_currency_effect == Decimal("19.851974") + Decimal("142.072")

    errored = snapshot.positions[2]
    assert errored.has_errors
    assert errored.quantity == Decimal("1")
    assert errored.average_price == Decimal("95")
    assert errored.investment is None
    assert errored.value_in_base_currency is None
    assert errored.net_performance is None


def test_interest_and_liability_totals_are_the_sum_of_positions():
    """Cash-flow totals add up the healthy positions and leave out the errored one."""
    def cash_flow(day, activity_type, symbol, amount, fee="0"):
        return Activity(day, activity_type, symbol, DataSource.YAHOO, Decimal("1"), Decimal(amount), fee=Decimal(fee), currency=Currency.USD)

    ledger = [
        _googl_buy(),
        cash_flow(date(2023, 2, 1), ActivityType.INTEREST, "GOOGL", "2", fee="3"),
        cash_flow(date(2023, 2, 1), ActivityType.LIABILITY, "GOOGL", "4"),
        _msft_buy(),
        cash_flow(date(2023, 3, 1), ActivityType.INTEREST, "MSFT", "3"),
        cash_flow(date(2023, 3, 1), ActivityType.LIABILITY, "MSFT", "10"),
        Activity(date(2023, 3, 1), ActivityType.BUY, "AMZN", DataSource.YAHOO, Decimal("1"), Decimal("95"), currency=Currency.USD),
        cash_flow(date(2023, 3, 1), ActivityType.INTEREST, "AMZN", "7"),
        cash_flow(date(2023, 3, 1), ActivityType.LIABILITY, "AMZN", "20"),
    ]

    with pytest.warns(MissingPriceWarning, match="AMZN"):
        snapshot = _calculator(ledger).compute_snapshot()

    assert snapshot.has_errors
    googl, msft, amzn = snapshot.positions
    assert amzn.has_errors
    assert amzn.interest_in_base_currency is None
    assert amzn.liabilities_in_base_currency is None

    assert googl.interest_in_base_currency == Decimal("1.84")
    assert msft.interest_in_base_currency == Decimal("2.79")
    assert snapshot.total_interest_with_currency_effect == googl.interest_in_base_currency + msft.interest_in_base_currency
    assert snapshot.total_interest_with_currency_effect == Decimal("4.63")

    assert googl.liabilities_in_base_currency == Decimal("3.68")
    assert msft.liabilities_in_base_currency == Decimal("9.3")
    assert snapshot.total_liabilities_with_currency_effect == googl.liabilities_in_base_currency + msft.liabilities_in_base_currency
    assert snapshot.total_liabilities_with_currency_effect == Decimal("12.98")

    # The fee on the interest entry is not a trading cost
    assert googl.net_performance == Decimal("26.33")
    assert snapshot.total_fees_with_currency_effect == Decimal("0.9238")


def test_thread_pool_gives_the_same_snapshot():
    ledger = [_msft_buy(), _googl_buy()]

    sequential = _calculator(ledger).compute_snapshot()
    parallel = _calculator(ledger, max_workers=4).compute_snapshot()

    assert parallel.to_dict() == sequential.to_dict()


def test_identical_inputs_give_identical_snapshots():
    ledger = [_msft_buy(), _googl_buy()]
    assert _calculator(ledger).compute_snapshot() == _calculator(ledger).compute_snapshot()


def test_callers_ledger_is_left_untouched():
    ledger = [_googl_buy()]

    _calculator(ledger, PerformanceCalculationType.TWR).compute_snapshot()

    assert len(ledger) == 1
    assert ledger[0].item_type is None
    assert ledger[0].unit_price == Decimal("89.12")


def test_inconsistent_ledger_is_a_warning_not_an_error():
    sell = Activity(date(2023, 2, 1), ActivityType.SELL, "GOOGL", DataSource.YAHOO, Decimal("2"), Decimal("95"), currency=Currency.USD)

    with pytest.warns(InconsistentLedgerWarning):
        snapshot = _calculator([_googl_buy(), sell]).compute_snapshot()

    assert not snapshot.has_errors
    assert [(w.symbol, w.kind) for w in snapshot.ledger_warnings] == [("GOOGL", ErrorKind.INCONSISTENT_LEDGER)]
    assert snapshot.positions[0].quantity == Decimal("-1")


def test_activities_count_excludes_cash_flows():
    dividend = Activity(date(2023, 2, 1), ActivityType.DIVIDEND, "MSFT", DataSource.YAHOO, Decimal("2"), Decimal("0.68"), currency=Currency.USD)

    snapshot = _calculator([_msft_buy(), dividend]).compute_snapshot()

    assert snapshot.activities_count == 1
    assert snapshot.total_dividend_with_currency_effect == Decimal("1.36") * Decimal("0.92")


def test_window_defaults_to_the_whole_history():
    calculator = PortfolioCalculator([_msft_buy(), _googl_buy()], "ROI", Currency.CHF, _rates(), _prices(), now=NOW)

    assert calculator.start == date(2023, 1, 3)
    assert calculator.end == date(2023, 7, 10)


def test_preset_window_ends_on_an_explicit_end():
    """A preset counts back from the given end, not from now."""
    calculator = _calculator([_googl_buy()], start=None, end=date(2023, 6, 30), date_range="mtd")

    assert calculator.start == date(2023, 6, 1)
    assert calculator.end == date(2023, 6, 30)

    calculator = _calculator([_googl_buy()], start=None, end=date(2023, 12, 31), date_range="ytd")
    assert calculator.start == date(2023, 1, 3)

    # A year-end before the first activity gives a single-day window
    calculator = _calculator([_googl_buy()], start=None, end=date(2022, 12, 31), date_range="ytd")
    assert calculator.start == calculator.end == date(2022, 12, 31)


def test_unknown_calculation_type_fails_before_replay():
    with pytest.raises(ValueError, match="Unsupported calculation type"):
        create_calculator([_googl_buy()], "XIRR", Currency.CHF, _rates(), _prices(), now=NOW)


def test_inverted_window_is_rejected():
    with pytest.raises(ValueError, match="after window end"):
        _calculator([_googl_buy()], start=END, end=START)


def test_non_positive_worker_count_is_rejected():
    with pytest.raises(ValueError, match="max_workers"):
        _calculator([_googl_buy()], max_workers=0)


class TestSnapshotAggregator:
    """Tests for per-field availability in the aggregation."""

    def _position(self, quantity, **kwargs):
        return TimelinePosition(
            symbol="X", data_source=DataSource.YAHOO, currency=Currency.USD,
            quantity=Decimal(quantity), average_price=Decimal("0"), fee=Decimal("0"),
            fee_in_base_currency=Decimal("0"), dividend=Decimal("0"),
            first_buy_date=None, transaction_count=0, **kwargs,
        )

    def _aggregate(self, positions):
        return SnapshotAggregator().aggregate(positions, NOW, Currency.USD, PerformanceCalculationType.ROI)

    def test_closed_position_without_performance_is_not_an_error(self):
        snapshot = self._aggregate([self._position("0")])
        assert not snapshot.has_errors

    def test_held_position_without_investment_is_an_error(self):
        position = self._position("1", gross_performance=Decimal("1"), value_in_base_currency=Decimal("5"))
        snapshot = self._aggregate([position])
        assert snapshot.has_errors
        assert snapshot.current_value_in_base_currency == Decimal("5")

    def test_held_position_without_gross_performance_is_an_error(self):
        position = self._position("1", investment=Decimal("4"), value_in_base_currency=Decimal("5"))
        snapshot = self._aggregate([position])
        assert snapshot.has_errors
        assert snapshot.total_investment == Decimal("4")
