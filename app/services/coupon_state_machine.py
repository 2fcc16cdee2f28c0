"""
Coupon State Machine

This module is the single source of truth for coupon status transitions.

    ACTIVE -> EXPIRED    validation found valid_until in the past
    ACTIVE -> INACTIVE   usage_count reached usage_limit, or admin deactivation

EXPIRED and INACTIVE are terminal: nothing in the engine reactivates a coupon.
"""

from typing import Dict, List

from app.core.errors import InstrumentStateError, Instrument
from app.models.coupon import CouponStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

COUPON_TRANSITIONS: Dict[str, List[str]] = {
    CouponStatus.ACTIVE.value: [
        CouponStatus.EXPIRED.value,     # Validity window passed
        CouponStatus.INACTIVE.value,    # Usage limit reached / deactivated
    ],
    CouponStatus.EXPIRED.value: [],     # Terminal state
    CouponStatus.INACTIVE.value: [],    # Terminal state
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (CouponStatus.ACTIVE.value, CouponStatus.EXPIRED.value): "Expire",
    (CouponStatus.ACTIVE.value, CouponStatus.INACTIVE.value): "Deactivate",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in COUPON_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return COUPON_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a status transition. Raises InstrumentStateError if invalid.

    Re-applying the current status is always allowed.
    """
    if current_status == new_status:
        return

    if not can_transition(current_status, new_status):
        if is_terminal(current_status):
            raise InstrumentStateError(
                f"Coupon in '{current_status}' status cannot be changed. This is a terminal state.",
                Instrument.COUPON,
            )
        raise InstrumentStateError(
            f"Cannot change coupon from '{current_status}' to '{new_status}'.",
            Instrument.COUPON,
        )


def is_terminal(status: str) -> bool:
    return status in (CouponStatus.EXPIRED.value, CouponStatus.INACTIVE.value)


def is_redeemable(status: str) -> bool:
    return status == CouponStatus.ACTIVE.value
