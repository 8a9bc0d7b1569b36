"""Validation helpers shared across the Clocket repositories."""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

from .exceptions import ValidationError
from .models import parse_datetime

YEAR_MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def quantize(amount: Decimal, places: int = 2) -> Decimal:
    """Round the amount to ``places`` decimals using HALF_UP rounding."""
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def _to_decimal(raw: object, field: str) -> Decimal:
    if isinstance(raw, bool):
        raise ValidationError(f"{field} must be a numeric value")
    try:
        amount = Decimal(str(raw).strip())
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a numeric value") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a numeric value")
    return amount


def parse_amount(raw: object, field: str, places: int = 2) -> Decimal:
    """Convert raw input to a positive Decimal rounded to ``places`` fraction digits."""
    amount = _to_decimal(raw, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than 0.")
    return quantize(amount, places)


def parse_decimal(raw: object, field: str, places: int = 2) -> Decimal:
    """Convert raw input to a finite Decimal; zero and negatives are allowed."""
    return quantize(_to_decimal(raw, field), places)


def validate_required_str(value: object, field: str, max_length: Optional[int] = None) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} is required.")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} is required.")
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return trimmed


def validate_optional_str(value: object, field: str) -> Optional[str]:
    """Trim optional text; blank strings collapse to ``None``."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    trimmed = value.strip()
    return trimmed or None


def validate_year_month(value: object, field: str, default: Optional[str] = None) -> str:
    raw = value.strip() if isinstance(value, str) else value
    if not raw and default is not None:
        return default
    message = f"{field} must use YYYY-MM format."
    if not isinstance(raw, str):
        raise ValidationError(message)
    match = YEAR_MONTH_PATTERN.fullmatch(raw)
    if not match or not 1 <= int(match.group(2)) <= 12:
        raise ValidationError(message)
    return raw


def validate_iso_date(value: object, field: str) -> date:
    message = f"{field} must use YYYY-MM-DD format."
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE_PATTERN.fullmatch(value.strip()):
        raise ValidationError(message)
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ValidationError(message) from exc


def validate_datetime(value: object, field: str) -> datetime:
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    elif isinstance(value, str):
        try:
            dt = parse_datetime(value)
        except ValueError as exc:
            raise ValidationError(f"{field} must be a valid ISO 8601 timestamp") from exc
    else:
        raise ValidationError(f"{field} must be a datetime or ISO 8601 string")
    return dt.astimezone(timezone.utc)


def validate_enum(value: object, field: str, allowed: Iterable[str]) -> str:
    allowed = set(allowed)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")
    canonical = value.strip().lower()
    if canonical not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(sorted(allowed))}")
    return canonical


def validate_int(value: object, field: str, minimum: Optional[int] = None) -> int:
    """Floor numeric input to an integer, as counts typed into forms often arrive as floats."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a valid number.")
    try:
        number = int(_to_decimal(value, field).to_integral_value(rounding=ROUND_FLOOR))
    except ValidationError as exc:
        raise ValidationError(f"{field} must be a valid number.") from exc
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}.")
    return number


def comparison_key(value: str) -> str:
    """Case and locale insensitive key used for name uniqueness checks."""
    return unicodedata.normalize("NFKC", value.strip()).casefold()


def normalize_names(raw_names: Optional[Iterable[object]], *, fold_case: bool = False) -> List[str]:
    """Trim, drop blanks and deduplicate while keeping the first spelling seen."""
    if raw_names is None:
        return []
    if isinstance(raw_names, str):
        raise ValidationError("names must be a list of strings")
    normalized: List[str] = []
    seen = set()
    for raw in raw_names:
        if not isinstance(raw, str):
            raise ValidationError("names must be strings")
        name = raw.strip()
        if not name:
            continue
        key = comparison_key(name) if fold_case else name
        if key in seen:
            continue
        seen.add(key)
        normalized.append(name)
    return normalized


def current_year_month(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"{now.year:04d}-{now.month:02d}"


# Structural predicates used when validating persisted payloads -------------
def is_record(value: Any) -> bool:
    return isinstance(value, dict)


def is_text(value: Any) -> bool:
    return isinstance(value, str)


def is_optional_text(value: Any) -> bool:
    return value is None or isinstance(value, str)


def is_number(value: Any, *, positive: bool = False, non_negative: bool = False) -> bool:
    """Accept numbers and numeric strings, since older payloads stored plain JSON numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return False
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return False
    if not number.is_finite():
        return False
    if positive and number <= 0:
        return False
    if non_negative and number < 0:
        return False
    return True


def is_int(value: Any, *, non_negative: bool = False) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return not (non_negative and value < 0)


def is_timestamp(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parse_datetime(value)
    except ValueError:
        return False
    return True


def is_year_month(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    match = YEAR_MONTH_PATTERN.fullmatch(value)
    return bool(match) and 1 <= int(match.group(2)) <= 12


def is_iso_date(value: Any) -> bool:
    if not isinstance(value, str) or not ISO_DATE_PATTERN.fullmatch(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_text_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)
