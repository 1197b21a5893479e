"""Utility functions."""

from intake_safety.utils.time import format_datetime, parse_date, utc_now, utc_today

__all__ = [
    "utc_now",
    "utc_today",
    "format_datetime",
    "parse_date",
]
