"""
Fixed-point money helpers.

All amounts are handled as Decimal quantized to cents so sums of many
line items and payments never drift.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any, default: Optional[Decimal] = ZERO) -> Decimal:
    """
    Convert a number-like value to a cent-quantized Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.10") rather than the
    binary approximation. None and "" map to `default`.

    Raises:
        ValueError: If the value is not numeric (or is None with no default)
    """
    if value is None or value == "":
        if default is None:
            raise ValueError("Amount is required")
        return default.quantize(CENT, rounding=ROUND_HALF_UP)
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Any]) -> Decimal:
    """Sum amounts, treating missing values as zero."""
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def non_negative(amount: Decimal) -> Decimal:
    """Clamp an amount at zero."""
    return amount if amount > ZERO else ZERO


def round_to_unit(amount: Decimal) -> Decimal:
    """Round half-up to a whole currency unit (e.g. 100.5 -> 101)."""
    return amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP).quantize(CENT)
