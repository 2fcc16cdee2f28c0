"""
Coupon API Endpoints

Admin management of coupons plus the checkout-time validate / apply calls.
Nothing here records a redemption; that happens when an order is placed
through /pricing/place.
"""

import logging
import uuid
from typing import Optional, List

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import Coupons, business_failure
from app.core.errors import PricingError
from app.schemas.coupon import (
    CouponCreate,
    CouponUpdate,
    CouponResponse,
    CouponDetailResponse,
    CouponUsageResponse,
    ValidateCouponRequest,
    ValidateCouponResponse,
    ApplyCouponRequest,
    ApplyCouponResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/coupons", tags=["Coupons"])


# ==================== Admin Endpoints ====================

@router.post("", response_model=CouponResponse, status_code=status.HTTP_201_CREATED)
async def create_coupon(data: CouponCreate, coupons: Coupons):
    """Create a coupon. Codes are stored upper-cased and must be unique."""
    try:
        return await coupons.create_coupon(data)
    except PricingError as e:
        return business_failure(e.message, e.error_code.value)


@router.get("", response_model=List[CouponResponse])
async def list_coupons(
    coupons: Coupons,
    status_filter: Optional[str] = Query(None, alias="status"),
    active: bool = False,
):
    return await coupons.list_coupons(status=status_filter, active=active)


@router.get("/{coupon_id}", response_model=CouponDetailResponse)
async def get_coupon(coupon_id: uuid.UUID, coupons: Coupons):
    """A coupon with its 10 most recent usages."""
    coupon = await coupons.get_coupon_by_id(coupon_id)
    if not coupon:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")

    usages = await coupons.get_usages(coupon.id)
    return CouponDetailResponse(
        **CouponResponse.model_validate(coupon).model_dump(),
        recent_usages=[CouponUsageResponse.model_validate(u) for u in usages],
    )


@router.patch("/{coupon_id}", response_model=CouponResponse)
async def update_coupon(coupon_id: uuid.UUID, data: CouponUpdate, coupons: Coupons):
    if not await coupons.get_coupon_by_id(coupon_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    try:
        return await coupons.update_coupon(coupon_id, data)
    except PricingError as e:
        return business_failure(e.message, e.error_code.value)


@router.delete("/{coupon_id}", response_model=CouponResponse)
async def delete_coupon(coupon_id: uuid.UUID, coupons: Coupons):
    """Soft delete: the coupon is deactivated."""
    if not await coupons.get_coupon_by_id(coupon_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    return await coupons.delete_coupon(coupon_id)


# ==================== Checkout Endpoints ====================

@router.post("/validate", response_model=ValidateCouponResponse)
async def validate_coupon(request: ValidateCouponRequest, coupons: Coupons):
    """
    Validate a coupon code against an order subtotal.
    Returns the coupon if valid, an error message and code if not.
    """
    result = await coupons.validate_coupon(request.code, request.order_subtotal, request.user_id)
    if not result.valid:
        return business_failure(result.error, result.error_code, valid=False)

    return ValidateCouponResponse(
        valid=True,
        coupon=CouponResponse.model_validate(result.coupon),
    )


@router.post("/apply", response_model=ApplyCouponResponse)
async def apply_coupon(request: ApplyCouponRequest, coupons: Coupons):
    """Validate a coupon and return the discount it is worth. No usage is recorded."""
    result = await coupons.apply_coupon(
        request.code,
        request.order_subtotal,
        order_items=[item.model_dump() for item in request.order_items],
        user_id=request.user_id,
        delivery_fee=request.delivery_fee,
    )
    if not result.success:
        return business_failure(result.error, result.error_code)

    logger.debug(f"Coupon {result.coupon.code} worth {result.discount:.2f}")
    return ApplyCouponResponse(
        success=True,
        discount=result.discount,
        coupon=CouponResponse.model_validate(result.coupon),
    )
