from datetime import date, timedelta
from enum import Enum


class DateRange(Enum):
    """Named reporting windows ending on the current day."""

    ONE_DAY = "1d"
    WEEK_TO_DATE = "wtd"
    MONTH_TO_DATE = "mtd"
    YEAR_TO_DATE = "ytd"
    ONE_YEAR = "1y"
    FIVE_YEARS = "5y"
    MAX = "max"


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return day.replace(year=day.year - years, day=28)


def get_interval_from_date_range(
    date_range: DateRange | str,
    today: date,
    first_activity_date: date | None = None,
) -> tuple[date, date]:
    """
    Resolve a named range into a concrete ``(start, end)`` window.

    The window always ends on ``today``. Its start is never earlier than the
    first activity, so a range longer than the ledger's history begins on
    the first activity day.

    Args:
        date_range: A DateRange or its string value (e.g. "ytd").
        today: The day the window ends on.
        first_activity_date: Day of the earliest activity, if any.

    Returns:
        Tuple of (start, end) dates with start <= end.

    Raises:
        ValueError: If the range name is unknown.
    """
    if not isinstance(date_range, DateRange):
        date_range = DateRange(str(date_range).strip().lower())

    if date_range == DateRange.ONE_DAY:
        start = today - timedelta(days=1)
    elif date_range == DateRange.WEEK_TO_DATE:
        start = today - timedelta(days=today.weekday())
    elif date_range == DateRange.MONTH_TO_DATE:
        start = today.replace(day=1)
    elif date_range == DateRange.YEAR_TO_DATE:
        start = today.replace(month=1, day=1)
    elif date_range == DateRange.ONE_YEAR:
        start = _years_before(today, 1)
    elif date_range == DateRange.FIVE_YEARS:
        start = _years_before(today, 5)
    else:
        start = today

    if first_activity_date is not None and (date_range == DateRange.MAX or first_activity_date > start):
        start = min(first_activity_date, today)

    return start, today
