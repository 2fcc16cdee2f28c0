from typing import Annotated, Optional
import logging

from fastapi import Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.base import BusinessFailureResponse
from app.services.coupon_service import CouponService
from app.services.gift_card_service import GiftCardService
from app.services.loyalty_service import LoyaltyService
from app.services.order_pricing_service import OrderPricingService


logger = logging.getLogger(__name__)

DB = Annotated[AsyncSession, Depends(get_db)]


def get_coupon_service(db: DB) -> CouponService:
    return CouponService(db)


def get_gift_card_service(db: DB) -> GiftCardService:
    return GiftCardService(db)


def get_loyalty_service(db: DB) -> LoyaltyService:
    return LoyaltyService(db)


def get_order_pricing_service(db: DB) -> OrderPricingService:
    return OrderPricingService(db)


Coupons = Annotated[CouponService, Depends(get_coupon_service)]
GiftCards = Annotated[GiftCardService, Depends(get_gift_card_service)]
Loyalty = Annotated[LoyaltyService, Depends(get_loyalty_service)]
OrderPricing = Annotated[OrderPricingService, Depends(get_order_pricing_service)]


def business_failure(
    error: Optional[str],
    error_code: Optional[str],
    instrument: Optional[str] = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    **extra,
) -> JSONResponse:
    """
    Render a business-rule failure.

    Returned (not raised) so that get_db still commits work done before the
    failure, such as an instrument being flipped to EXPIRED.
    """
    content = BusinessFailureResponse(
        error=error, error_code=error_code, instrument=instrument
    ).model_dump(exclude_none=True)
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)
