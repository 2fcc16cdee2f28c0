# Import all models here so SQLAlchemy registers them into Base.metadata.

from app.models.coupon import Coupon, CouponUsage  # noqa: F401
from app.models.gift_card import GiftCard, GiftCardTransaction  # noqa: F401
from app.models.loyalty import LoyaltyAccount, LoyaltyTransaction  # noqa: F401
from app.models.restaurant_settings import RestaurantSettings  # noqa: F401
