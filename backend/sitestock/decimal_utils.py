from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# Largest value a Numeric(12, 2) column can hold
MAX_AMOUNT = Decimal("9999999999.99")


def quantize(value: Decimal | int | str) -> Decimal:
    """Round to 2 decimal places, half-up (the display rule)."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_decimal(value, field: str) -> Decimal:
    """
    Coerce client input to a 2-place Decimal.

    Floats go through str() so 0.1 stays 0.10 instead of its binary expansion.
    Values carrying more than 2 places are rejected rather than silently rounded.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, float):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field} must be a number")
    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if dec != dec.quantize(TWO_PLACES, rounding=ROUND_HALF_UP):
        raise ValidationError(f"{field} cannot have more than 2 decimal places")
    dec = quantize(dec)
    if abs(dec) > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    return dec


def fmt(value: Decimal | None) -> str | None:
    """Serialize a Decimal for JSON as a fixed 2-place string."""
    if value is None:
        return None
    return f"{quantize(value):.2f}"
