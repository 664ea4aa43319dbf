"""Currency conversions between major units (dollars) and processor minor units (cents)."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any) -> Decimal:
    """Coerce a float/int/str amount into a Decimal without float artefacts."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def to_cents(value: Any) -> int:
    """
    Convert a major-unit amount to integer cents, rounding half up.

    >>> to_cents("120.00")
    12000
    >>> to_cents(0.005)
    1
    """
    dec_value = to_decimal(value)
    cents = dec_value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP) * 100
    return int(cents.to_integral_value(rounding=ROUND_HALF_UP))
