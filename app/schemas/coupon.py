"""Pydantic schemas for coupons."""
from datetime import datetime
from typing import Optional, List
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.coupon import CouponType
from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


class BuyXGetYRule(BaseModel):
    buy_quantity: int = Field(..., ge=1)
    get_quantity: int = Field(..., ge=1)
    get_item_id: Optional[str] = None


class CouponCreate(BaseCreateSchema):
    """Admin request to create a coupon."""
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: CouponType
    discount_value: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    buy_x_get_y: Optional[BuyXGetYRule] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_user: Optional[int] = Field(None, ge=1)
    valid_from: datetime
    valid_until: datetime
    created_by: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper()

    @model_validator(mode="after")
    def check_window(self):
        if self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        if self.type == CouponType.PERCENTAGE and self.discount_value is not None and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class CouponUpdate(BaseUpdateSchema):
    """Partial update. Status and usage_count are not editable."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[CouponType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    min_order_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    buy_x_get_y: Optional[BuyXGetYRule] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    usage_limit_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class CouponResponse(BaseResponseSchema):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    type: str
    discount_value: Optional[float] = None
    min_order_amount: Optional[float] = None
    max_discount_amount: Optional[float] = None
    buy_x_get_y: Optional[dict] = None
    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    usage_count: int
    valid_from: datetime
    valid_until: datetime
    status: str


class CouponUsageResponse(BaseResponseSchema):
    id: UUID
    order_id: str
    user_id: Optional[str] = None
    discount_amount: float
    used_at: datetime


class CouponDetailResponse(CouponResponse):
    """A coupon with its most recent redemptions."""
    recent_usages: List[CouponUsageResponse] = []


class OrderItemInput(BaseModel):
    menu_item_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., gt=0)


class ValidateCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_subtotal: float = Field(..., ge=0)
    user_id: Optional[str] = None


class ValidateCouponResponse(BaseModel):
    valid: bool
    coupon: Optional[CouponResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class ApplyCouponRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    order_subtotal: float = Field(..., ge=0)
    order_items: List[OrderItemInput] = Field(default_factory=list)
    user_id: Optional[str] = None
    delivery_fee: Optional[float] = Field(None, ge=0)


class ApplyCouponResponse(BaseModel):
    success: bool
    discount: Optional[float] = None
    coupon: Optional[CouponResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
