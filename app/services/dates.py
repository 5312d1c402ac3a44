"""Date helpers shared by capacity, check-in, dashboard and export services.

Weeks start on Monday. Quarters are written "Q<n> <yyyy>" and are treated as
13 weeks of capacity regardless of their calendar length.
"""
import calendar
from datetime import date, datetime, timedelta

from app.utils.helpers import parse_date

BASELINE_FTE_HOURS = 40
WEEKS_PER_QUARTER = 13


def get_quarter_date_range(quarter: str) -> tuple[date, date, int]:
    """Return (first day, last day, weeks) for a "Q<n> <yyyy>" string.

    Raises:
        ValueError: if the string is not a valid quarter.
    """
    try:
        q_part, year_part = quarter.strip().split()
        q_num = int(q_part.upper().lstrip("Q"))
        year = int(year_part)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid quarter: '{quarter}'. Expected e.g. 'Q1 2026'") from exc
    if q_num not in (1, 2, 3, 4):
        raise ValueError(f"Invalid quarter: '{quarter}'. Expected e.g. 'Q1 2026'")

    start_month = (q_num - 1) * 3 + 1
    end_month = start_month + 2
    last_day = calendar.monthrange(year, end_month)[1]
    return date(year, start_month, 1), date(year, end_month, last_day), WEEKS_PER_QUARTER


def get_monday(value=None) -> date:
    """Monday of the week containing ``value`` (defaults to today).

    Accepts a date, datetime or ISO string. Sunday belongs to the week that
    started the previous Monday.
    """
    if value is None:
        d = date.today()
    elif isinstance(value, datetime):
        d = value.date()
    elif isinstance(value, date):
        d = value
    else:
        d = parse_date(value)
        if d is None:
            raise ValueError(f"Invalid date: '{value}'")
    return d - timedelta(days=d.weekday())


def weeks_between(start, end) -> list[date]:
    """Every Monday from the week of ``start`` up to ``end`` inclusive."""
    current = get_monday(start)
    end_d = end if isinstance(end, date) else parse_date(end)
    weeks = []
    while current <= end_d:
        weeks.append(current)
        current += timedelta(days=7)
    return weeks


def quarter_from_date(d: date) -> str:
    return f"Q{(d.month - 1) // 3 + 1} {d.year}"


def current_quarter() -> str:
    return quarter_from_date(date.today())


def format_week_label(d: date) -> str:
    """dd/mm label used as PMO export column header."""
    return d.strftime("%d/%m")


def month_key(d: date) -> str:
    return d.strftime("%Y-%m")


def fte(weekly_hours) -> float:
    return (weekly_hours or 0) / BASELINE_FTE_HOURS
