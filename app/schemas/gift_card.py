"""Pydantic schemas for gift cards."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class GiftCardCreate(BaseCreateSchema):
    """Issue a gift card. Code and PIN are generated when omitted."""
    code: Optional[str] = Field(None, min_length=4, max_length=20)
    pin: Optional[str] = Field(None, min_length=4, max_length=12, pattern=r"^\d+$")
    original_balance: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    purchased_by: Optional[str] = None
    expires_at: Optional[datetime] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class GiftCardResponse(BaseResponseSchema):
    id: UUID
    code: str
    original_balance: float
    current_balance: float
    currency: str
    status: str
    purchased_by: Optional[str] = None
    purchased_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime


class GiftCardTransactionResponse(BaseResponseSchema):
    id: UUID
    order_id: Optional[str] = None
    amount: float
    balance_after: float
    type: str
    description: Optional[str] = None
    created_at: datetime


class GiftCardDetailResponse(BaseModel):
    gift_card: GiftCardResponse
    transactions: List[GiftCardTransactionResponse]


class GiftCardIssuedResponse(BaseModel):
    """Returned once on creation; the plain PIN is never shown again."""
    success: bool = True
    gift_card: GiftCardResponse
    pin: Optional[str] = None


class GiftCardBalanceResponse(BaseModel):
    code: str
    balance: float
    currency: str
    status: str
    expires_at: Optional[datetime] = None


class RedeemGiftCardRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=20)
    pin: Optional[str] = None
    amount: float = Field(..., gt=0)
    order_id: Optional[str] = None


class RedeemGiftCardResponse(BaseModel):
    success: bool
    amount: Optional[float] = None
    new_balance: Optional[float] = None
    status: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
