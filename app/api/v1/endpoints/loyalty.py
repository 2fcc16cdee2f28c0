"""
Loyalty API Endpoints
"""

import logging
from typing import List

from fastapi import APIRouter, Query

from app.api.deps import Loyalty, business_failure
from app.core.errors import PricingError
from app.schemas.loyalty import (
    LoyaltyAccountResponse,
    LoyaltyAccountDetail,
    LoyaltyTransactionResponse,
    EarnPointsRequest,
    EarnPointsResponse,
    RedeemPointsRequest,
    RedeemPointsResponse,
    AdjustPointsRequest,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/loyalty", tags=["Loyalty"])


@router.get("/{user_id}", response_model=LoyaltyAccountDetail)
async def get_account(user_id: str, loyalty: Loyalty):
    """Account, its current value and the last 10 transactions. Opens an account on first access."""
    account = await loyalty.get_or_create_account(user_id)
    history = await loyalty.get_transaction_history(user_id, limit=10)
    return LoyaltyAccountDetail(
        account=LoyaltyAccountResponse.model_validate(account),
        points_value=await loyalty.get_points_value(account.points),
        recent_transactions=[LoyaltyTransactionResponse.model_validate(t) for t in history],
    )


@router.get("/{user_id}/history", response_model=List[LoyaltyTransactionResponse])
async def get_history(user_id: str, loyalty: Loyalty, limit: int = Query(50, ge=1, le=500)):
    return await loyalty.get_transaction_history(user_id, limit=limit)


@router.post("/earn", response_model=EarnPointsResponse)
async def earn_points(request: EarnPointsRequest, loyalty: Loyalty):
    result = await loyalty.earn_points(
        request.user_id, request.order_id, request.order_total, request.description
    )
    if not result.success:
        return business_failure(result.error, result.error_code)

    return EarnPointsResponse(
        success=True,
        points_earned=result.points_earned,
        account=LoyaltyAccountResponse.model_validate(result.account),
    )


@router.post("/redeem", response_model=RedeemPointsResponse)
async def redeem_points(request: RedeemPointsRequest, loyalty: Loyalty):
    result = await loyalty.redeem_points(
        request.user_id, request.points, request.order_id, request.description
    )
    if not result.success:
        return business_failure(result.error, result.error_code)

    return RedeemPointsResponse(
        success=True,
        discount_amount=result.discount_amount,
        new_balance=result.new_balance,
    )


@router.post("/{user_id}/adjust", response_model=LoyaltyAccountResponse)
async def adjust_points(user_id: str, request: AdjustPointsRequest, loyalty: Loyalty):
    """Admin correction of a user's balance."""
    try:
        return await loyalty.adjust_points(
            user_id, request.points, request.type, request.description
        )
    except PricingError as e:
        return business_failure(e.message, e.error_code.value)
