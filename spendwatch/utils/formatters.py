"""Formatting utilities for currency, dates and periods."""

from decimal import Decimal
from datetime import date, datetime, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta


def format_currency(amount: Union[Decimal, float, int], show_sign: bool = False) -> str:
    """Format a dollar amount as a currency string."""
    if show_sign and amount >= 0:
        return f"+${amount:,.2f}"
    elif amount < 0:
        return f"-${abs(amount):,.2f}"
    return f"${amount:,.2f}"


def format_percentage(value: float, decimals: int = 1) -> str:
    """Format an already-scaled percentage (85.0 -> '85.0%')."""
    return f"{value:.{decimals}f}%"


def pluralize(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def month_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    """Return the first and last instant of a calendar month."""
    start = datetime(year, month, 1)
    end = start + relativedelta(months=1) - timedelta(microseconds=1)
    return start, end


def start_of_month(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def to_timestamp(value: datetime) -> str:
    """Serialize a datetime so that string order matches time order."""
    return value.isoformat(timespec="microseconds")


def format_month(month: int, year: int) -> str:
    """Format a month/year pair for display."""
    return date(year, month, 1).strftime("%B %Y")
