# utils/helpers.py
from datetime import date, datetime
import calendar
import logging
from typing import Union, Optional

NumberLike = Union[float, int, str]
DateLike = Union[date, datetime, str]

_log = logging.getLogger(__name__)


def today_str() -> str:
    """Return today's date as ISO string (YYYY-MM-DD)."""
    return date.today().isoformat()


def now_ts() -> str:
    """Local timestamp text ('YYYY-MM-DD HH:MM:SS'), same clock as today_str()."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def to_iso_date(value: Optional[DateLike]) -> Optional[str]:
    """
    Normalize a date-ish value to 'YYYY-MM-DD', discarding any time of day.

    Accepts date/datetime objects and ISO strings, including timestamps such as
    '2025-01-31T18:20:00' or '2025-01-31 18:20:00'. Returns None for None/''.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return None
    head = text[:10]
    try:
        return date.fromisoformat(head).isoformat()
    except ValueError as e:
        raise ValueError(f"Could not parse {value!r} as a date (expected YYYY-MM-DD).") from e


def month_bounds(year: int, month: int) -> tuple[str, str]:
    """First and last calendar day of a month, ISO formatted."""
    if not 1 <= int(month) <= 12:
        raise ValueError(f"Month must be 1..12, got {month}")
    last = calendar.monthrange(int(year), int(month))[1]
    return date(int(year), int(month), 1).isoformat(), date(int(year), int(month), last).isoformat()


def round_money(x: float, places: int = 2) -> float:
    return round(float(x), places)


def fmt_money(
    v: NumberLike,
    places: int = 2,
    *,
    strict: bool = False,
    sentinel: Optional[str] = None,
) -> str:
    """
    Format a number as money with thousands separators and a fixed number of decimals.

    Behavior on parse failure:
      - By default (strict=False, sentinel=None), returns str(v).
      - If `sentinel` is provided (e.g., "N/A"), returns that sentinel instead.
      - If `strict=True`, raises ValueError on parse failures.
    """
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        # Log at debug level to aid troubleshooting without spamming user logs.
        _log.debug("fmt_money: failed to parse %r as float: %s", v, e)
        if strict:
            raise ValueError(f"Could not parse {v!r} as a number.") from e
        return str(sentinel) if sentinel is not None else str(v)
    return f"{x:,.{places}f}"
