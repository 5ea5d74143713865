"""
Calendar month helpers for the import chain
"""
import calendar
from datetime import date
from typing import Iterator, Tuple

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def month_name(month: int) -> str:
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return "Unknown"


def month_label(year: int, month: int) -> str:
    """'Mar 2024'"""
    return f"{month_name(month)} {year}"


def month_key(year: int, month: int) -> str:
    """'2024-3', the key written to sync log messages"""
    return f"{year}-{month}"


def month_date_range(year: int, month: int) -> Tuple[date, date]:
    """First and last day of the month, both inclusive."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


def is_after_month(year: int, month: int, reference: date) -> bool:
    """True when (year, month) is strictly after the reference date's month."""
    return (year, month) > (reference.year, reference.month)


def iter_months(start_year: int, start_month: int, end_year: int, end_month: int) -> Iterator[Tuple[int, int]]:
    """Yield (year, month) from the start month through the end month inclusive."""
    year, month = start_year, start_month
    while (year, month) <= (end_year, end_month):
        yield year, month
        year, month = next_month(year, month)
