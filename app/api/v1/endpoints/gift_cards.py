"""
Gift Card API Endpoints

Issue gift cards, look them up with their ledger, check balances (public,
no PIN) and redeem against an order.
"""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status

from app.api.deps import GiftCards, business_failure
from app.core.errors import PricingError
from app.schemas.gift_card import (
    GiftCardCreate,
    GiftCardResponse,
    GiftCardDetailResponse,
    GiftCardTransactionResponse,
    GiftCardIssuedResponse,
    GiftCardBalanceResponse,
    RedeemGiftCardRequest,
    RedeemGiftCardResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/gift-cards", tags=["Gift Cards"])


@router.post("", response_model=GiftCardIssuedResponse, status_code=status.HTTP_201_CREATED)
async def create_gift_card(data: GiftCardCreate, gift_cards: GiftCards):
    """
    Issue a gift card.

    The plain PIN is only ever returned here.
    """
    try:
        gift_card, pin = await gift_cards.create_gift_card(data)
    except PricingError as e:
        return business_failure(e.message, e.error_code.value)

    return GiftCardIssuedResponse(
        gift_card=GiftCardResponse.model_validate(gift_card),
        pin=pin,
    )


@router.get("/{gift_card_id}", response_model=GiftCardDetailResponse)
async def get_gift_card(gift_card_id: uuid.UUID, gift_cards: GiftCards):
    """Admin view of a card with its 10 most recent transactions."""
    gift_card = await gift_cards.get_gift_card_by_id(gift_card_id)
    if not gift_card:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift card not found")

    transactions = await gift_cards.get_transactions(gift_card.id)
    return GiftCardDetailResponse(
        gift_card=GiftCardResponse.model_validate(gift_card),
        transactions=[GiftCardTransactionResponse.model_validate(t) for t in transactions],
    )


@router.get("/{code}/balance", response_model=GiftCardBalanceResponse)
async def check_balance(code: str, gift_cards: GiftCards):
    balance = await gift_cards.check_balance(code)
    if balance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Gift card not found")
    return balance


@router.post("/redeem", response_model=RedeemGiftCardResponse)
async def redeem_gift_card(request: RedeemGiftCardRequest, gift_cards: GiftCards):
    result = await gift_cards.redeem_gift_card(
        request.code, request.pin, request.amount, order_id=request.order_id
    )
    if not result.success:
        return business_failure(result.error, result.error_code)

    return RedeemGiftCardResponse(
        success=True,
        amount=result.amount,
        new_balance=result.new_balance,
        status=result.gift_card.status,
    )
