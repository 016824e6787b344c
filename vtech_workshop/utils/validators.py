# utils/validators.py
import math
import re

from ..errors import ValidationError
from .helpers import to_iso_date

_DIGITS = re.compile(r"\D+")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def non_empty(text: str) -> bool:
    """
    True if `text` is not None/empty after stripping whitespace.
    """
    return bool(text and str(text).strip())


def require_text(value, field_label: str) -> str:
    """Return the stripped text or raise ValidationError naming the field."""
    if not non_empty(value):
        raise ValidationError(f"{field_label} is required.")
    return str(value).strip()


def optional_text(value) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


# ---- Numeric parsing & validators ----

def try_parse_float(x):
    """
    Best-effort parse to float.

    Returns:
        (ok: bool, value: float|None)

    ok == False means parsing failed and value is None.
    """
    if isinstance(x, bool):
        return False, None
    try:
        return True, float(x)
    except (TypeError, ValueError):
        return False, None


def require_amount(x, field_label: str, *, allow_zero: bool = True, signed: bool = False) -> float:
    """Money input: parse and bound-check, raising ValidationError."""
    ok, val = try_parse_float(x)
    if not ok or val is None or not math.isfinite(val):
        raise ValidationError(f"{field_label} must be a number.")
    if abs(round(val, 2) - val) > 1e-9:
        raise ValidationError(f"{field_label} can have at most 2 decimal places.")
    val = round(val, 2)
    if signed:
        return float(val)
    if allow_zero and val < 0:
        raise ValidationError(f"{field_label} cannot be negative.")
    if not allow_zero and val <= 0:
        raise ValidationError(f"{field_label} must be greater than zero.")
    return float(val)


def require_quantity(x, field_label: str = "Quantity", *, allow_zero: bool = False) -> int:
    """Whole-unit counts (stock, part quantities)."""
    if isinstance(x, bool):
        raise ValidationError(f"{field_label} must be a whole number.")
    if isinstance(x, float):
        if not x.is_integer():
            raise ValidationError(f"{field_label} must be a whole number.")
        x = int(x)
    try:
        val = int(str(x).strip())
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_label} must be a whole number.") from e
    if val < 0 or (val == 0 and not allow_zero):
        raise ValidationError(
            f"{field_label} must be {'zero or more' if allow_zero else 'at least 1'}."
        )
    return val


# ---- Contact details ----

def normalize_mobile(text: str) -> str:
    """
    Keep digits only; a usable mobile number has at least 10 of them
    (job status messages go to the last 10 digits).
    """
    digits = _DIGITS.sub("", str(text or ""))
    if len(digits) < 10:
        raise ValidationError("Mobile number must have at least 10 digits.")
    return digits


def is_valid_email(text: str) -> bool:
    return bool(text and _EMAIL.match(str(text).strip()))


# ---- Dates ----

def parse_date(value, field_label: str = "Date"):
    """'YYYY-MM-DD' or None for blank input; ValidationError otherwise."""
    try:
        return to_iso_date(value)
    except ValueError as e:
        raise ValidationError(f"{field_label} must be a date (YYYY-MM-DD).") from e
