"""Pydantic schemas for order pricing."""
from typing import Optional, List

from pydantic import BaseModel, Field

from app.schemas.coupon import OrderItemInput
from app.services.fee_calculator import FulfillmentType


class OrderTotalsRequest(BaseModel):
    """Plain fee & tax calculation; no instruments are resolved."""
    subtotal: float = Field(..., ge=0)
    tax_rate: float = Field(..., ge=0)
    delivery_fee: float = Field(0, ge=0)
    tip: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY


class OrderTotalsResponse(BaseModel):
    subtotal: float
    tax: float
    delivery_fee: float
    tip: float
    discount: float
    total: float


class PricingQuoteRequest(BaseModel):
    subtotal: float = Field(..., ge=0)
    fulfillment_type: FulfillmentType = FulfillmentType.DELIVERY
    tip: float = Field(0, ge=0)
    tax_rate: Optional[float] = Field(None, ge=0)
    delivery_fee: Optional[float] = Field(None, ge=0)
    coupon_code: Optional[str] = Field(None, max_length=50)
    gift_card_code: Optional[str] = Field(None, max_length=20)
    gift_card_pin: Optional[str] = None
    gift_card_amount: Optional[float] = Field(None, gt=0)
    loyalty_points: Optional[int] = Field(None, gt=0)
    user_id: Optional[str] = None
    items: List[OrderItemInput] = Field(default_factory=list)


class PlaceOrderPricingRequest(PricingQuoteRequest):
    order_id: str = Field(..., min_length=1, max_length=100)


class PricingSnapshotResponse(BaseModel):
    subtotal: float
    tax: float
    delivery_fee: float
    tip: float
    discount: float
    total: float
    tax_rate: float
    coupon_discount: float = 0
    gift_card_amount: float = 0
    loyalty_discount: float = 0
    coupon_code: Optional[str] = None
    gift_card_code: Optional[str] = None
    loyalty_points: int = 0
    order_id: Optional[str] = None


class PricingResultResponse(BaseModel):
    success: bool
    pricing: Optional[PricingSnapshotResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    instrument: Optional[str] = None
