import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from models import BudgetPeriod


class UnknownPeriodError(ValueError):
    pass


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime


def parse_budget_period(value: Optional[str]) -> BudgetPeriod:
    if isinstance(value, BudgetPeriod):
        return value
    normalized = (value or "").strip().lower()
    try:
        return BudgetPeriod(normalized)
    except ValueError as exc:
        raise UnknownPeriodError(f"Unknown budget period: {value!r}") from exc


def _start_of_day(day: date, now: datetime) -> datetime:
    return datetime.combine(day, time.min, tzinfo=now.tzinfo)


def resolve_window(period: BudgetPeriod, now: datetime) -> Window:
    """Window covering the budget's current period up to ``now``.

    Weeks start on Sunday.
    """
    today = now.date()
    if period is BudgetPeriod.monthly:
        start = today.replace(day=1)
    elif period is BudgetPeriod.yearly:
        start = date(today.year, 1, 1)
    elif period is BudgetPeriod.weekly:
        start = today - timedelta(days=(today.weekday() + 1) % 7)
    else:
        raise UnknownPeriodError(f"Unknown budget period: {period!r}")
    return Window(_start_of_day(start, now), now)


def previous_month_window(now: datetime) -> Window:
    if now.month == 1:
        year, month = now.year - 1, 12
    else:
        year, month = now.year, now.month - 1
    # Mar 31 -> Feb 29/28
    day = min(now.day, calendar.monthrange(year, month)[1])
    return Window(now.replace(year=year, month=month, day=day), now)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "custom" or (not period and (start or end)):
        start_date = date.fromisoformat(start) if start else date(1970, 1, 1)
        end_date = date.fromisoformat(end) if end else date(2099, 12, 31)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), date(2099, 12, 31))
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        last_month_start = last_month_end.replace(day=1)
        return Period("last_month", last_month_start, last_month_end)
    if period == "this_month":
        first = today.replace(day=1)
        last_day = calendar.monthrange(first.year, first.month)[1]
        return Period("this_month", first, first.replace(day=last_day))
    raise ValueError(f"Unknown period: {period}")
