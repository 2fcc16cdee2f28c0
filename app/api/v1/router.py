from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Promotions
    coupons,
    gift_cards,
    loyalty,
    # Checkout
    pricing,
)


api_router = APIRouter(prefix="/api/v1")

# Promotions
api_router.include_router(coupons.router)
api_router.include_router(gift_cards.router)
api_router.include_router(loyalty.router)

# Checkout
api_router.include_router(pricing.router)
