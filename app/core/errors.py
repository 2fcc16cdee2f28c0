"""
Pricing Error Taxonomy

Business-rule failures raised inside the pricing engine. Public service
methods catch these and return typed failure results so the caller can
render a message; ledger mutation helpers let them propagate so that the
surrounding unit of work rolls back.

    PricingValidationError    malformed input, rejected before any lookup
    InstrumentNotFoundError   coupon / gift card / account unknown
    InstrumentStateError      expired, inactive or limit-exhausted instrument
    InsufficientBalanceError  gift card or loyalty balance too low
    ThresholdError            subtotal below a minimum
    StorageUnavailableError   data store failure (fatal, caller may retry)
"""

from enum import Enum
from typing import Optional


class PricingErrorCode(str, Enum):
    """Machine-readable error codes returned with every failure."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    STATE_ERROR = "STATE_ERROR"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    THRESHOLD_ERROR = "THRESHOLD_ERROR"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"


class Instrument(str, Enum):
    """Discount instrument a failure belongs to."""
    COUPON = "coupon"
    GIFT_CARD = "gift_card"
    LOYALTY = "loyalty"


class PricingError(Exception):
    """Base class for pricing engine failures."""

    error_code: PricingErrorCode = PricingErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, instrument: Optional[Instrument] = None):
        super().__init__(message)
        self.message = message
        self.instrument = instrument

    def with_instrument(self, instrument: Instrument) -> "PricingError":
        if self.instrument is None:
            self.instrument = instrument
        return self

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.message,
            "error_code": self.error_code.value,
            "instrument": self.instrument.value if self.instrument else None,
        }


class PricingValidationError(PricingError):
    error_code = PricingErrorCode.VALIDATION_ERROR


class InstrumentNotFoundError(PricingError):
    error_code = PricingErrorCode.NOT_FOUND


class InstrumentStateError(PricingError):
    error_code = PricingErrorCode.STATE_ERROR


class InsufficientBalanceError(PricingError):
    error_code = PricingErrorCode.INSUFFICIENT_BALANCE


class ThresholdError(PricingError):
    error_code = PricingErrorCode.THRESHOLD_ERROR


class StorageUnavailableError(PricingError):
    """Raised when the data store fails; never a business-rule outcome."""
    error_code = PricingErrorCode.STORAGE_UNAVAILABLE

    def __init__(self, message: str = "Pricing service temporarily unavailable, please try again"):
        super().__init__(message)
