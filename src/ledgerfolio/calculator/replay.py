"""Chronological replay of one instrument's activities over a window."""

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING
import warnings

from ..activities import (
    Activity,
    ActivityType,
    BoundaryItemType,
    DataSource,
    clone_activities,
    get_factor,
)
from ..currency import Currency, CurrencyConverter
from ..errors import MissingPriceWarning
from ..pricingdata import MarketPriceTable
from .models import ReplayAccumulator, SymbolMetrics

if TYPE_CHECKING:
    from .strategies import PerformanceStrategy


def percentage(performance: Decimal, investment: Decimal) -> Decimal:
    """Performance relative to investment, or exactly zero without a positive investment."""
    if investment > 0:
        return performance / investment
    return Decimal("0")


def synthesize_boundary_orders(
    orders: list[Activity],
    start: date,
    end: date,
    unit_price_at_start: Decimal | None,
    unit_price_at_end: Decimal,
) -> list[Activity]:
    """
    Insert zero-quantity start and end markers and sort the working ledger.

    The sort is stable and the markers are appended last, so real orders
    dated on a boundary day stay ahead of the marker for that day.

    Args:
        orders: Cloned activities of a single instrument.
        start: First day of the window.
        end: Last day of the window.
        unit_price_at_start: Market price on the start day, if known.
        unit_price_at_end: Resolved price on the end day.

    Returns:
        A new, date-sorted list containing the orders and both markers.
    """
    first = orders[0]
    markers = [
        Activity(
            date=boundary_date,
            type=ActivityType.BUY,
            symbol=first.symbol,
            data_source=first.data_source,
            quantity=Decimal("0"),
            unit_price=unit_price,
            fee=Decimal("0"),
            fee_in_base_currency=Decimal("0"),
            currency=first.currency,
            item_type=item_type,
        )
        for boundary_date, unit_price, item_type in (
            (start, unit_price_at_start, BoundaryItemType.START),
            (end, unit_price_at_end, BoundaryItemType.END),
        )
    ]
    return sorted(orders + markers, key=lambda order: order.date)


class OrderReplayEngine:
    """Replays one instrument's orders and produces its SymbolMetrics.

    The investment-weighting policy and the shape of the time series come
    from the strategy; everything else (boundary prices, FX handling, fee
    and cash-flow bookkeeping) is shared by all strategies.
    """

    def __init__(self, strategy: "PerformanceStrategy", converter: CurrencyConverter, market_prices: MarketPriceTable):
        self.strategy = strategy
        self.converter = converter
        self.market_prices = market_prices

    def _resolve_end_price(self, orders: list[Activity], data_source: DataSource, symbol: str, end: date) -> Decimal | None:
        unit_price_at_end = self.market_prices.get_price(data_source, symbol, end)
        if unit_price_at_end is not None:
            return unit_price_at_end

        # Manual instruments have no market data; fall back to the latest
        # BUY / SELL unit price on or before the end of the window.
        past_orders = [order for order in orders if order.date <= end]
        if data_source == DataSource.MANUAL and past_orders:
            latest_activity = past_orders[-1]
            if latest_activity.type in (ActivityType.BUY, ActivityType.SELL) and latest_activity.unit_price:
                return latest_activity.unit_price

        return None

    def _apply_order(self, acc: ReplayAccumulator, order: Activity, currency: Currency, start: date, end: date) -> None:
        """Fold one real order into the accumulator."""
        unit_price = order.unit_price or Decimal("0")
        order_value = order.quantity * unit_price
        exchange_rate = self.converter.get_rate(currency, order.date)
        order_value_with_currency_effect = order_value * exchange_rate

        if order.type in (ActivityType.BUY, ActivityType.SELL):
            factor = get_factor(order.type)
            weight = self.strategy.investment_weight(order.date, start, end)

            # Only trades carry fees into net performance
            acc.fees += order.fee
            if order.fee_in_base_currency is not None:
                acc.fees_with_currency_effect += order.fee_in_base_currency
            else:
                acc.fees_with_currency_effect += order.fee * exchange_rate

            acc.total_units += order.quantity * factor
            acc.total_investment += order_value * factor
            acc.total_investment_with_currency_effect += order_value_with_currency_effect * factor
            acc.time_weighted_investment += order_value * factor * weight
            acc.time_weighted_investment_with_currency_effect += order_value_with_currency_effect * factor * weight

            if order.type == ActivityType.BUY:
                acc.total_quantity_from_buy_transactions += order.quantity
                acc.total_investment_from_buy_transactions += order_value
                acc.total_investment_from_buy_transactions_with_currency_effect += order_value_with_currency_effect

            if acc.total_units < 0:
                acc.has_inconsistent_ledger = True

        # Cash flows are valued at the rate of the day they occurred
        elif order.type == ActivityType.DIVIDEND:
            acc.total_dividend += order_value
            acc.total_dividend_in_base_currency += order_value_with_currency_effect

        elif order.type == ActivityType.INTEREST:
            acc.total_interest += order_value
            acc.total_interest_in_base_currency += order_value_with_currency_effect

        elif order.type == ActivityType.LIABILITY:
            acc.total_liabilities += order_value
            acc.total_liabilities_in_base_currency += order_value_with_currency_effect

    def compute_symbol_metrics(
        self,
        symbol: str,
        data_source: DataSource,
        start: date,
        end: date,
        activities: list[Activity],
    ) -> SymbolMetrics:
        """
        Compute the metrics of one instrument over ``[start, end]``.

        Args:
            symbol: Instrument symbol.
            data_source: Instrument data source.
            start: First day of the window.
            end: Last day of the window.
            activities: The full ledger; it is neither mutated nor aliased.

        Returns:
            The instrument's SymbolMetrics. An instrument without activities
            yields the additive identity; an unresolved boundary price yields
            a zeroed result with ``has_errors`` set.
        """
        orders = [
            order for order in clone_activities(activities, symbol)
            if order.data_source == data_source and not order.is_synthetic
        ]
        if not orders:
            return SymbolMetrics.empty()

        orders.sort(key=lambda order: order.date)
        currency = orders[0].currency
        date_of_first_transaction = orders[0].date

        unit_price_at_end = self._resolve_end_price(orders, data_source, symbol, end)
        if unit_price_at_end is None:
            warnings.warn(
                f"No market price for {symbol} ({data_source.value}) on {end.isoformat()}",
                MissingPriceWarning,
                stacklevel=2,
            )
            return SymbolMetrics.empty(has_errors=True)

        unit_price_at_start = self.market_prices.get_price(data_source, symbol, start)
        if unit_price_at_start is None and date_of_first_transaction < start:
            warnings.warn(
                f"No market price for {symbol} ({data_source.value}) on {start.isoformat()} "
                f"although it was held since {date_of_first_transaction.isoformat()}",
                MissingPriceWarning,
                stacklevel=2,
            )
            return SymbolMetrics.empty(has_errors=True)

        orders = synthesize_boundary_orders(orders, start, end, unit_price_at_start, unit_price_at_end)
        index_of_end_order = next(
            i for i, order in enumerate(orders) if order.item_type == BoundaryItemType.END
        )

        acc = ReplayAccumulator()
        for order in orders[:index_of_end_order]:
            if order.item_type == BoundaryItemType.START:
                acc.units_at_start_date = acc.total_units
                continue
            self._apply_order(acc, order, currency, start, end)

        current_exchange_rate = self.converter.get_current_rate(currency)
        current_value = acc.total_units * unit_price_at_end
        current_value_with_currency_effect = current_value * current_exchange_rate

        gross_performance = current_value - acc.total_investment
        gross_performance_with_currency_effect = (
            current_value_with_currency_effect - acc.total_investment_with_currency_effect
        )
        net_performance = gross_performance - acc.fees
        net_performance_with_currency_effect = (
            gross_performance_with_currency_effect - acc.fees_with_currency_effect
        )

        investment = acc.time_weighted_investment
        investment_with_currency_effect = acc.time_weighted_investment_with_currency_effect
        net_performance_percentage_with_currency_effect = percentage(
            net_performance_with_currency_effect, investment_with_currency_effect
        )

        if unit_price_at_start is not None:
            initial_value = acc.units_at_start_date * unit_price_at_start
            initial_value_with_currency_effect = initial_value * self.converter.get_rate(currency, start)
        else:
            initial_value = Decimal("0")
            initial_value_with_currency_effect = Decimal("0")

        metrics = SymbolMetrics(
            current_value=current_value,
            current_value_with_currency_effect=current_value_with_currency_effect,
            fees=acc.fees,
            fees_with_currency_effect=acc.fees_with_currency_effect,
            gross_performance=gross_performance,
            gross_performance_percentage=percentage(gross_performance, investment),
            gross_performance_percentage_with_currency_effect=percentage(
                gross_performance_with_currency_effect, investment_with_currency_effect
            ),
            gross_performance_with_currency_effect=gross_performance_with_currency_effect,
            net_performance=net_performance,
            net_performance_percentage=percentage(net_performance, investment),
            net_performance_percentage_with_currency_effect=net_performance_percentage_with_currency_effect,
            net_performance_with_currency_effect=net_performance_with_currency_effect,
            net_performance_with_currency_effect_map={"max": net_performance_with_currency_effect},
            net_performance_percentage_with_currency_effect_map={"max": net_performance_percentage_with_currency_effect},
            initial_value=initial_value,
            initial_value_with_currency_effect=initial_value_with_currency_effect,
            time_weighted_investment=acc.time_weighted_investment,
            time_weighted_investment_with_currency_effect=acc.time_weighted_investment_with_currency_effect,
            total_dividend=acc.total_dividend,
            total_dividend_in_base_currency=acc.total_dividend_in_base_currency,
            total_interest=acc.total_interest,
            total_interest_in_base_currency=acc.total_interest_in_base_currency,
            total_investment=acc.total_investment,
            total_investment_with_currency_effect=acc.total_investment_with_currency_effect,
            total_liabilities=acc.total_liabilities,
            total_liabilities_in_base_currency=acc.total_liabilities_in_base_currency,
            total_units=acc.total_units,
            unit_price_at_end_date=unit_price_at_end,
            current_exchange_rate=current_exchange_rate,
            has_errors=False,
            has_inconsistent_ledger=acc.has_inconsistent_ledger,
        )

        if self.strategy.populates_daily_series:
            self._populate_daily_series(metrics, orders[:index_of_end_order], currency, symbol, data_source, start, end)
        else:
            self._populate_end_date_series(metrics, end)

        return metrics

    def _populate_end_date_series(self, metrics: SymbolMetrics, end: date) -> None:
        metrics.current_values[end] = metrics.current_value
        metrics.current_values_with_currency_effect[end] = metrics.current_value_with_currency_effect
        metrics.investment_values_accumulated[end] = metrics.total_investment
        metrics.investment_values_accumulated_with_currency_effect[end] = metrics.total_investment_with_currency_effect
        metrics.investment_values_with_currency_effect[end] = metrics.total_investment_with_currency_effect
        metrics.net_performance_values[end] = metrics.net_performance
        metrics.net_performance_values_with_currency_effect[end] = metrics.net_performance_with_currency_effect
        metrics.time_weighted_investment_values[end] = metrics.time_weighted_investment
        metrics.time_weighted_investment_values_with_currency_effect[end] = metrics.time_weighted_investment_with_currency_effect

    def _populate_daily_series(
        self,
        metrics: SymbolMetrics,
        orders: list[Activity],
        currency: Currency,
        symbol: str,
        data_source: DataSource,
        start: date,
        end: date,
    ) -> None:
        """
        Fill one series entry per distinct day in the window.

        Days are the window edges, the order days inside the window and the
        days with a market price. A day without a market price is valued at
        the last known price (market or order unit price). Each day's
        investment is weighted over ``[start, day]``.
        """
        real_orders = [order for order in orders if not order.is_synthetic]
        days = {start, end}
        days.update(order.date for order in real_orders if start <= order.date <= end)
        days.update(self.market_prices.get_dates(data_source, symbol, start, end))

        # (date, signed value, signed value in base currency)
        contributions: list[tuple[date, Decimal, Decimal]] = []
        total_units = Decimal("0")
        investment = Decimal("0")
        investment_with_currency_effect = Decimal("0")
        fees = Decimal("0")
        fees_with_currency_effect = Decimal("0")
        last_known_price: Decimal | None = None
        order_index = 0

        for day in sorted(days):
            while order_index < len(real_orders) and real_orders[order_index].date <= day:
                order = real_orders[order_index]
                order_index += 1

                if order.type not in (ActivityType.BUY, ActivityType.SELL):
                    continue

                exchange_rate = self.converter.get_rate(currency, order.date)
                fees += order.fee
                if order.fee_in_base_currency is not None:
                    fees_with_currency_effect += order.fee_in_base_currency
                else:
                    fees_with_currency_effect += order.fee * exchange_rate

                factor = get_factor(order.type)
                order_value = order.quantity * (order.unit_price or Decimal("0")) * factor
                total_units += order.quantity * factor
                investment += order_value
                investment_with_currency_effect += order_value * exchange_rate
                contributions.append((order.date, order_value, order_value * exchange_rate))
                if order.unit_price:
                    last_known_price = order.unit_price

            market_price = self.market_prices.get_price(data_source, symbol, day)
            if market_price is not None:
                last_known_price = market_price

            if day == end:
                unit_price = metrics.unit_price_at_end_date
                exchange_rate = metrics.current_exchange_rate
            else:
                unit_price = last_known_price
                exchange_rate = self.converter.get_rate(currency, day)

            value = total_units * (unit_price or Decimal("0"))
            value_with_currency_effect = value * exchange_rate

            time_weighted_investment = sum(
                (value_ * self.strategy.investment_weight(order_date, start, day) for order_date, value_, _ in contributions),
                Decimal("0"),
            )
            time_weighted_investment_with_currency_effect = sum(
                (value_ce * self.strategy.investment_weight(order_date, start, day) for order_date, _, value_ce in contributions),
                Decimal("0"),
            )

            metrics.current_values[day] = value
            metrics.current_values_with_currency_effect[day] = value_with_currency_effect
            metrics.investment_values_accumulated[day] = investment
            metrics.investment_values_accumulated_with_currency_effect[day] = investment_with_currency_effect
            metrics.investment_values_with_currency_effect[day] = investment_with_currency_effect
            metrics.net_performance_values[day] = value - investment - fees
            metrics.net_performance_values_with_currency_effect[day] = (
                value_with_currency_effect - investment_with_currency_effect - fees_with_currency_effect
            )
            metrics.time_weighted_investment_values[day] = time_weighted_investment
            metrics.time_weighted_investment_values_with_currency_effect[day] = time_weighted_investment_with_currency_effect
