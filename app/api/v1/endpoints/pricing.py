"""
Order Pricing API Endpoints

    POST /pricing/totals  fee & tax arithmetic only
    POST /pricing/quote   price an order with its coupon / gift card / points
    POST /pricing/place   price and apply the instruments for a created order
"""

import logging

from fastapi import APIRouter

from app.api.deps import OrderPricing, business_failure
from app.core.errors import PricingError
from app.schemas.pricing import (
    OrderTotalsRequest,
    OrderTotalsResponse,
    PricingQuoteRequest,
    PlaceOrderPricingRequest,
    PricingResultResponse,
)
from app.services.fee_calculator import get_order_calculations
from app.services.order_pricing_service import OrderPricingResult, PricingRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/pricing", tags=["Pricing"])


def _to_pricing_request(request: PricingQuoteRequest) -> PricingRequest:
    return PricingRequest(
        subtotal=request.subtotal,
        fulfillment_type=request.fulfillment_type.value,
        tip=request.tip,
        tax_rate=request.tax_rate,
        delivery_fee=request.delivery_fee,
        coupon_code=request.coupon_code,
        gift_card_code=request.gift_card_code,
        gift_card_pin=request.gift_card_pin,
        gift_card_amount=request.gift_card_amount,
        loyalty_points=request.loyalty_points,
        user_id=request.user_id,
        items=[item.model_dump() for item in request.items],
    )


def _render(result: OrderPricingResult):
    if not result.success:
        return business_failure(result.error, result.error_code, instrument=result.instrument)
    return PricingResultResponse(success=True, pricing=result.snapshot.to_dict())


@router.post("/totals", response_model=OrderTotalsResponse)
async def compute_order_totals(request: OrderTotalsRequest):
    try:
        return get_order_calculations(
            request.subtotal,
            request.tax_rate,
            request.delivery_fee,
            request.tip,
            request.discount,
            request.fulfillment_type.value,
        )
    except PricingError as e:
        return business_failure(e.message, e.error_code.value)


@router.post("/quote", response_model=PricingResultResponse)
async def quote_order(request: PricingQuoteRequest, pricing: OrderPricing):
    result = await pricing.quote(_to_pricing_request(request))
    return _render(result)


@router.post("/place", response_model=PricingResultResponse)
async def place_order(request: PlaceOrderPricingRequest, pricing: OrderPricing):
    """Apply the order's instruments. All of them are applied, or none."""
    result = await pricing.place(_to_pricing_request(request), request.order_id)
    if result.success:
        logger.info(f"Pricing applied to order {request.order_id}")
    return _render(result)
