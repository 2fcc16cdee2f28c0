"""
Currency value normalization.

Every amount entering the pricing engine passes through to_amount() once,
at the boundary; downstream code only ever sees floats in major currency
units and never branches on input shape again.
"""

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

TWO_PLACES = Decimal("0.01")


class InvalidAmountError(ValueError):
    """Raised when a value cannot be read as a finite currency amount."""


def _parse_decimal(text: str) -> Decimal:
    try:
        value = Decimal(text.strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(f"'{text}' is not a valid amount")
    if not value.is_finite():
        raise InvalidAmountError(f"'{text}' is not a finite amount")
    return value


def to_amount(value: Any) -> float:
    """
    Convert a number, numeric string, Decimal or number-like object to float.

    Objects are converted through __float__ when they define it, otherwise
    through their string form. NaN, infinities, booleans, None and
    non-numeric strings raise InvalidAmountError.
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(f"{value!r} is not a valid amount")

    if isinstance(value, (int, float)):
        result = float(value)
    elif isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidAmountError(f"{value!r} is not a finite amount")
        result = float(value)
    elif isinstance(value, str):
        result = float(_parse_decimal(value))
    elif hasattr(type(value), "__float__"):
        try:
            result = float(value)
        except (TypeError, ValueError) as e:
            raise InvalidAmountError(f"{value!r} is not a valid amount") from e
    else:
        result = float(_parse_decimal(str(value)))

    if math.isnan(result) or math.isinf(result):
        raise InvalidAmountError(f"{value!r} is not a finite amount")
    return result


def round2(value: Any) -> float:
    """Round to two decimals, half away from zero (1.005 -> 1.01)."""
    amount = to_amount(value)
    return float(Decimal(repr(amount)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def to_decimal(value: Any) -> Decimal:
    """Two-place Decimal for persisting into Numeric columns."""
    return Decimal(repr(round2(value))).quantize(TWO_PLACES)
