"""
Fee & Tax Calculator

Pure functions that turn subtotal, tax rate, delivery fee, tip and discount
into the monetary fields of an order's pricing snapshot. Amounts are rounded
to two decimals at every addition into the running total, and the total is
clamped at zero exactly once, after the combined discount is subtracted.
"""

from enum import Enum
from typing import Any, Dict, Optional

from app.config import settings
from app.core.errors import PricingValidationError
from app.core.money import InvalidAmountError, round2, to_amount


class FulfillmentType(str, Enum):
    DELIVERY = "DELIVERY"
    PICKUP = "PICKUP"


def _non_negative(value: Any, field: str) -> float:
    try:
        amount = to_amount(value)
    except InvalidAmountError as e:
        raise PricingValidationError(f"{field}: {e}")
    if amount < 0:
        raise PricingValidationError(f"{field} cannot be negative")
    return amount


def calculate_tax(subtotal: Any, tax_rate: Any) -> float:
    """Tax on the subtotal, rounded to cents."""
    subtotal = _non_negative(subtotal, "subtotal")
    tax_rate = _non_negative(tax_rate, "tax_rate")
    return round2(subtotal * tax_rate)


def calculate_delivery_fee(
    custom_fee: Optional[Any] = None,
    min_order_amount: Optional[Any] = None,
    order_subtotal: Optional[Any] = None,
    default_fee: Optional[Any] = None,
) -> float:
    """
    Delivery fee for an order.

    A custom fee (zone or promotion pricing) is returned unchanged. Orders
    below the minimum order amount carry no delivery fee; that only applies
    when both the minimum and the subtotal are known. Anything left as None
    is treated as "no constraint".
    """
    if custom_fee is not None:
        return _non_negative(custom_fee, "delivery_fee")

    if min_order_amount is not None and order_subtotal is not None:
        minimum = _non_negative(min_order_amount, "min_order_amount")
        subtotal = _non_negative(order_subtotal, "order_subtotal")
        if subtotal < minimum:
            return 0.0

    if default_fee is None:
        default_fee = settings.DEFAULT_DELIVERY_FEE
    return round2(_non_negative(default_fee, "default_fee"))


def calculate_order_total(
    subtotal: Any,
    tax_rate: Any,
    delivery_fee: Any,
    tip: Any,
    discount: Any,
) -> float:
    """subtotal + tax + delivery fee + tip - discount, never below zero."""
    subtotal = _non_negative(subtotal, "subtotal")
    tax = calculate_tax(subtotal, tax_rate)
    delivery_fee = _non_negative(delivery_fee, "delivery_fee")
    tip = _non_negative(tip, "tip")
    discount = _non_negative(discount, "discount")

    total = round2(subtotal + tax)
    total = round2(total + delivery_fee)
    total = round2(total + tip)
    total = round2(total - discount)
    return max(0.0, total)


def get_order_calculations(
    subtotal: Any,
    tax_rate: Any,
    delivery_fee: Any,
    tip: Any,
    discount: Any,
    fulfillment_type: str = FulfillmentType.DELIVERY.value,
) -> Dict[str, float]:
    """
    Full pricing snapshot for an order.

    Pickup orders never carry a delivery fee, whatever was passed in.
    """
    try:
        fulfillment = FulfillmentType(str(fulfillment_type).upper())
    except ValueError:
        raise PricingValidationError(f"Unknown fulfillment type '{fulfillment_type}'")

    final_delivery_fee = 0.0 if fulfillment == FulfillmentType.PICKUP else round2(
        _non_negative(delivery_fee, "delivery_fee")
    )
    total = calculate_order_total(subtotal, tax_rate, final_delivery_fee, tip, discount)

    return {
        "subtotal": round2(_non_negative(subtotal, "subtotal")),
        "tax": calculate_tax(subtotal, tax_rate),
        "delivery_fee": final_delivery_fee,
        "tip": round2(_non_negative(tip, "tip")),
        "discount": round2(_non_negative(discount, "discount")),
        "total": total,
    }
