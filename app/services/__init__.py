# Services module
from app.services.settings_service import RestaurantSettingsService, PricingSettings

# Discount instruments
from app.services.coupon_service import CouponService
from app.services.gift_card_service import GiftCardService
from app.services.loyalty_service import LoyaltyService

# Checkout
from app.services.order_pricing_service import OrderPricingService, PricingRequest

__all__ = [
    "RestaurantSettingsService",
    "PricingSettings",
    # Discount instruments
    "CouponService",
    "GiftCardService",
    "LoyaltyService",
    # Checkout
    "OrderPricingService",
    "PricingRequest",
]
