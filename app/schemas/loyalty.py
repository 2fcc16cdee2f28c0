"""Pydantic schemas for loyalty accounts."""
from datetime import datetime
from typing import Optional, List, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema


class LoyaltyAccountResponse(BaseResponseSchema):
    id: UUID
    user_id: str
    points: int
    lifetime_points: int
    tier: str
    created_at: datetime
    updated_at: datetime


class LoyaltyTransactionResponse(BaseResponseSchema):
    id: UUID
    order_id: Optional[str] = None
    points: int
    type: str
    description: Optional[str] = None
    created_at: datetime


class LoyaltyAccountDetail(BaseModel):
    account: LoyaltyAccountResponse
    points_value: float
    recent_transactions: List[LoyaltyTransactionResponse] = []


class EarnPointsRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)
    order_id: str = Field(..., min_length=1, max_length=100)
    order_total: float = Field(..., ge=0)
    description: Optional[str] = None


class EarnPointsResponse(BaseModel):
    success: bool
    points_earned: int = 0
    account: Optional[LoyaltyAccountResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class RedeemPointsRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)
    points: int
    order_id: Optional[str] = None
    description: Optional[str] = None


class RedeemPointsResponse(BaseModel):
    success: bool
    discount_amount: Optional[float] = None
    new_balance: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class AdjustPointsRequest(BaseModel):
    points: int
    type: Literal["ADJUSTED", "EXPIRED"] = "ADJUSTED"
    description: Optional[str] = None
