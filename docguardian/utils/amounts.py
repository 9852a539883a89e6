"""Helpers for reading monetary values out of OCR text and field maps."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any) -> Decimal | None:
    """Parse a monetary value such as ``"$45,000.00"`` or ``85000``.

    Args:
        value: A number or a string with optional currency symbol and
            thousands separators.

    Returns:
        The value as a ``Decimal``, or ``None`` when it is not numeric.
    """
    if value is None or isinstance(value, bool):
        return None
    cleaned = str(value).strip().replace(",", "").replace("$", "").replace(" ", "")
    if not cleaned:
        return None
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def parse_amount(value: Any) -> float | None:
    """Parse a monetary value into a float, or ``None`` when not numeric."""
    amount = to_decimal(value)
    return float(amount) if amount is not None else None


def round_half_up(value: float) -> int:
    """Round a non-negative number to the nearest integer, halves going up."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
