"""Time and date utilities."""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    """Get the current date in UTC."""
    return utc_now().date()


def format_datetime(dt: datetime, fmt: str = "%Y-%m-%dT%H:%M:%SZ") -> str:
    """Format datetime to ISO string.

    Args:
        dt: Datetime to format
        fmt: Format string (default ISO 8601)

    Returns:
        Formatted datetime string
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.strftime(fmt)


def parse_date(value: str) -> date:
    """Parse an ISO date or datetime string to a date.

    Intake forms submit dates as "YYYY-MM-DD", but datetimes with a
    time component are accepted and truncated.

    Args:
        value: ISO format date or datetime string

    Returns:
        Parsed date

    Raises:
        ValueError: If the string is not a recognised ISO date
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass

    return datetime.fromisoformat(text).date()
