"""Calendar helpers shared by the ledger, streak and summary code.

The game week runs Sunday through Saturday. Week numbers stored on ledger
rows are ISO-8601 week numbers.
"""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from activity_ledger_server.core.config import settings

SHORT_DATE_FORMAT = "%m/%d/%Y"


def today(tz: str | None = None) -> date:
    """Current date in the configured timezone."""
    return datetime.now(ZoneInfo(tz or settings.timezone)).date()


def week_start(day: date) -> date:
    """Sunday on or before ``day``."""
    # weekday(): Monday=0 .. Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_end(day: date) -> date:
    """Saturday on or after ``day``."""
    return week_start(day) + timedelta(days=6)


def iso_week_number(day: date) -> int:
    return day.isocalendar()[1]


def format_ymd(day: date) -> str:
    return day.strftime("%Y-%m-%d")


def format_short(day: date) -> str:
    return day.strftime(SHORT_DATE_FORMAT)


def format_points(points: int) -> str:
    """Render points with an explicit sign (``+3``, ``-2``, ``0``)."""
    if points > 0:
        return f"+{points}"
    return str(points)


def parse_date(value: object) -> date | None:
    """Coerce a stored cell value to a date.

    Accepts ``date``, ``datetime`` and ISO-8601 strings (date or datetime).

    Returns:
        The date, or None when the value cannot be interpreted
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            try:
                return datetime.fromisoformat(text).date()
            except ValueError:
                return None
    return None
