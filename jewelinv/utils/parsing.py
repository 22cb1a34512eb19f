"""Parsing helpers for numeric request fields."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from jewelinv.errors import ValidationFailure

WEIGHT_PLACES = Decimal("0.001")
# Upper bounds of the Integer and Numeric(12, 3) columns.
MAX_QUANTITY = 2**31 - 1
MAX_WEIGHT = Decimal("999999999.999")
MAX_REMARKS_LENGTH = 1000


def _to_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationFailure(f"{field_name} must be a number.")
    if isinstance(value, (int, float, Decimal)):
        value = str(value)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationFailure(f"{field_name} must be a number.") from exc
    if not number.is_finite():
        raise ValidationFailure(f"{field_name} must be a number.")
    return number


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_int(value, field_name: str, *, default: int = 0) -> int:
    """Parse a whole-number quantity; blanks become ``default``."""

    if _is_blank(value):
        return default
    number = _to_decimal(value, field_name)
    if number != number.to_integral_value():
        raise ValidationFailure(f"{field_name} must be a whole number.")
    if abs(number) > MAX_QUANTITY:
        raise ValidationFailure(f"{field_name} is too large.")
    return int(number)


def parse_non_negative_int(value, field_name: str, *, default: int = 0) -> int:
    number = parse_int(value, field_name, default=default)
    if number < 0:
        raise ValidationFailure(f"{field_name} must not be negative.")
    return number


def clamp_quantity(value, field_name: str) -> int:
    """Movement quantities below zero count as zero."""

    return max(parse_int(value, field_name), 0)


def parse_weight(value, field_name: str) -> Decimal:
    if _is_blank(value):
        return Decimal("0.000")
    number = _to_decimal(value, field_name)
    if number < 0:
        raise ValidationFailure(f"{field_name} must not be negative.")
    if number > MAX_WEIGHT:
        raise ValidationFailure(f"{field_name} is too large.")
    return number.quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP)


def total_weight(unit_weight, quantity: int) -> Decimal:
    unit = Decimal(str(unit_weight or 0))
    return (unit * int(quantity or 0)).quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP)


def parse_remarks(value) -> str:
    """Free-text remarks; numbers are kept as their text form."""

    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float, Decimal)):
        raise ValidationFailure("remarks must be text.")
    text = str(value).strip()
    if len(text) > MAX_REMARKS_LENGTH:
        raise ValidationFailure(f"remarks must be at most {MAX_REMARKS_LENGTH} characters.")
    return text
