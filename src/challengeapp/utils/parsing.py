import math
import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from ..errors import ValidationError

ISO_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')
CENT = Decimal("0.01")

def require_text(value: Any, field: str) -> str:
    """Return the stripped text or fail when it is missing or blank."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required.")
    return value.strip()

def optional_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()

def parse_iso_date(value: Any, field: str) -> date:
    """Parse a YYYY-MM-DD calendar date."""
    if isinstance(value, date):
        return value
    text = require_text(value, field)
    if not ISO_DATE.match(text):
        raise ValidationError(f"{field} must use the YYYY-MM-DD format.")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} is not a valid calendar date.")

def parse_optional_date(value: Any, field: str) -> Optional[date]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_iso_date(value, field)

def parse_number(value: Any, field: str, minimum: Optional[float] = None) -> float:
    """Parse a finite real number, optionally bounded below (inclusive)."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is invalid.")
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} is invalid.")
    if not math.isfinite(number):
        raise ValidationError(f"{field} is invalid.")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be greater than or equal to {minimum}.")
    return number

def parse_optional_number(value: Any, field: str, minimum: Optional[float] = None) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_number(value, field, minimum)

def parse_positive_number(value: Any, field: str) -> float:
    number = parse_number(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be greater than zero.")
    return number

def parse_int(value: Any, field: str, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Parse a whole number; "3" and 3.0 are accepted, 3.5 is not."""
    number = parse_number(value, field)
    if not number.is_integer():
        raise ValidationError(f"{field} must be a whole number.")
    parsed = int(number)
    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{field} must be greater than or equal to {minimum}.")
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"{field} must be less than or equal to {maximum}.")
    return parsed

def parse_amount_cents(value: Any, field: str) -> int:
    """Convert a positive monetary amount to integer cents, rounding half up."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} is invalid.")
    try:
        amount = Decimal(value.strip() if isinstance(value, str) else str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} is invalid.")
    if not amount.is_finite():
        raise ValidationError(f"{field} is invalid.")
    if amount < CENT:
        raise ValidationError(f"{field} must be at least {CENT}.")
    return int(amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100)

def format_cents(cents: int) -> str:
    """Render integer cents as a plain decimal amount."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
