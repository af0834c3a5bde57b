"""Date manipulation utilities"""

from datetime import date, timedelta


def month_index(value: date) -> int:
    """Encode a calendar month as year*12 + zero-based month"""
    return value.year * 12 + (value.month - 1)


def day_before(value: date) -> date:
    return value - timedelta(days=1)


def month_name(value: date) -> str:
    """English month name, independent of process locale"""
    return MONTH_NAMES[value.month - 1]


MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
