"""
Order Total Composer.

Combines the fee & tax calculator with the three discount instruments
(coupon, gift card, loyalty points) into a single pricing snapshot.

    quote()  resolves every instrument and prices the order. Read-only,
             except that an instrument found expired is flipped to EXPIRED.
    place()  quotes, then records the coupon usage, debits the gift card and
             redeems the loyalty points in one unit of work. If any of the
             three fails none of them is applied.

Both return an OrderPricingResult; business failures name the instrument
that caused them. Call place() only once the order row exists.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    Instrument,
    InsufficientBalanceError,
    PricingError,
    PricingValidationError,
    StorageUnavailableError,
)
from app.core.money import InvalidAmountError, round2, to_amount
from app.models.coupon import Coupon
from app.models.gift_card import GiftCard
from app.services.coupon_service import CouponService
from app.services.fee_calculator import (
    FulfillmentType,
    calculate_delivery_fee,
    calculate_tax,
    get_order_calculations,
)
from app.services.gift_card_service import GiftCardService
from app.services.loyalty_service import LoyaltyService
from app.services.settings_service import RestaurantSettingsService
from app.services.unit_of_work import atomic

logger = logging.getLogger(__name__)


@dataclass
class PricingRequest:
    """Everything needed to price one order."""
    subtotal: Any
    fulfillment_type: str = FulfillmentType.DELIVERY.value
    tip: Any = 0
    tax_rate: Optional[Any] = None          # None = restaurant setting
    delivery_fee: Optional[Any] = None      # Custom fee (zone/promotion), None = settings
    coupon_code: Optional[str] = None
    gift_card_code: Optional[str] = None
    gift_card_pin: Optional[str] = None
    gift_card_amount: Optional[Any] = None  # None = as much as the order needs
    loyalty_points: Optional[int] = None
    user_id: Optional[str] = None
    items: List[dict] = field(default_factory=list)


@dataclass
class PricingSnapshot:
    subtotal: float
    tax: float
    delivery_fee: float
    tip: float
    discount: float
    total: float
    tax_rate: float
    coupon_discount: float = 0.0
    gift_card_amount: float = 0.0
    loyalty_discount: float = 0.0
    coupon_code: Optional[str] = None
    gift_card_code: Optional[str] = None
    loyalty_points: int = 0
    order_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class OrderPricingResult:
    success: bool
    snapshot: Optional[PricingSnapshot] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    instrument: Optional[str] = None

    @classmethod
    def failure(cls, error: PricingError) -> "OrderPricingResult":
        return cls(
            success=False,
            error=error.message,
            error_code=error.error_code.value,
            instrument=error.instrument.value if error.instrument else None,
        )


class OrderPricingService:
    """Prices orders and applies their discount instruments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings_service = RestaurantSettingsService(db)
        self.coupons = CouponService(db)
        self.gift_cards = GiftCardService(db)

    async def quote(self, request: PricingRequest) -> OrderPricingResult:
        try:
            snapshot, _, _ = await self._price(request)
        except StorageUnavailableError:
            raise
        except PricingError as e:
            logger.info(f"Quote rejected ({e.instrument}): {e.message}")
            return OrderPricingResult.failure(e)
        except SQLAlchemyError as e:
            logger.error(f"Quote failed at the storage layer: {e}")
            raise StorageUnavailableError() from e

        return OrderPricingResult(success=True, snapshot=snapshot)

    async def place(self, request: PricingRequest, order_id: str) -> OrderPricingResult:
        if not order_id:
            return OrderPricingResult.failure(PricingValidationError("order_id is required"))

        try:
            snapshot, coupon, gift_card = await self._price(request)
            loyalty = LoyaltyService(self.db, await self.settings_service.get_pricing_settings())

            async with atomic(self.db):
                if coupon is not None:
                    await self.coupons.record_usage(
                        coupon.id, order_id, snapshot.coupon_discount, request.user_id
                    )
                if gift_card is not None and snapshot.gift_card_amount > 0:
                    await self.gift_cards.use_gift_card(
                        gift_card.id,
                        snapshot.gift_card_amount,
                        order_id=order_id,
                        description=f"Order {order_id}",
                    )
                if snapshot.loyalty_points:
                    await loyalty.debit_points(
                        request.user_id,
                        snapshot.loyalty_points,
                        order_id=order_id,
                        description=f"Redeemed {snapshot.loyalty_points} points on order {order_id}",
                    )
        except StorageUnavailableError:
            raise
        except PricingError as e:
            logger.warning(f"Placing order {order_id} rolled back ({e.instrument}): {e.message}")
            return OrderPricingResult.failure(e)
        except SQLAlchemyError as e:
            logger.error(f"Placing order {order_id} failed at the storage layer: {e}")
            raise StorageUnavailableError() from e

        snapshot.order_id = order_id
        logger.info(f"Order {order_id} priced at {snapshot.total:.2f} (discount {snapshot.discount:.2f})")
        return OrderPricingResult(success=True, snapshot=snapshot)

    async def _price(
        self, request: PricingRequest
    ) -> Tuple[PricingSnapshot, Optional[Coupon], Optional[GiftCard]]:
        pricing = await self.settings_service.get_pricing_settings()

        try:
            fulfillment = FulfillmentType(str(request.fulfillment_type).upper())
            subtotal = to_amount(request.subtotal)
            tip = to_amount(request.tip)
        except (ValueError, InvalidAmountError) as e:
            raise PricingValidationError(str(e))

        tax_rate = pricing.tax_rate if request.tax_rate is None else request.tax_rate
        tax = calculate_tax(subtotal, tax_rate)

        if fulfillment == FulfillmentType.PICKUP:
            delivery_fee = 0.0
        else:
            delivery_fee = calculate_delivery_fee(
                custom_fee=request.delivery_fee,
                min_order_amount=pricing.min_order_amount,
                order_subtotal=subtotal,
                default_fee=pricing.delivery_fee,
            )

        coupon = None
        coupon_discount = 0.0
        if request.coupon_code:
            coupon = await self.coupons.resolve_coupon(request.coupon_code, subtotal, request.user_id)
            coupon_discount = CouponService.calculate_discount(coupon, subtotal, delivery_fee)

        loyalty_points = 0
        loyalty_discount = 0.0
        if request.loyalty_points:
            loyalty = LoyaltyService(self.db, pricing)
            loyalty_discount = await loyalty.quote_redemption(request.user_id, request.loyalty_points)
            loyalty_points = request.loyalty_points

        gift_card = None
        gift_card_amount = 0.0
        if request.gift_card_code:
            gift_card = await self.gift_cards.resolve_gift_card(
                request.gift_card_code, request.gift_card_pin
            )
            balance = to_amount(gift_card.current_balance)
            gross = round2(round2(round2(subtotal + tax) + delivery_fee) + to_amount(tip))
            remaining = max(0.0, round2(gross - coupon_discount - loyalty_discount))

            if request.gift_card_amount is not None:
                try:
                    requested = round2(request.gift_card_amount)
                except InvalidAmountError as e:
                    raise PricingValidationError(f"gift_card_amount: {e}", Instrument.GIFT_CARD)
                if requested <= 0:
                    raise PricingValidationError(
                        "Gift card amount must be greater than zero", Instrument.GIFT_CARD
                    )
                if requested > balance:
                    raise InsufficientBalanceError("Insufficient balance", Instrument.GIFT_CARD)
                gift_card_amount = min(requested, remaining)
            else:
                gift_card_amount = min(balance, remaining)

        discount = round2(coupon_discount + loyalty_discount + gift_card_amount)
        calculations = get_order_calculations(
            subtotal, tax_rate, delivery_fee, tip, discount, fulfillment.value
        )

        snapshot = PricingSnapshot(
            subtotal=calculations["subtotal"],
            tax=calculations["tax"],
            delivery_fee=calculations["delivery_fee"],
            tip=calculations["tip"],
            discount=calculations["discount"],
            total=calculations["total"],
            tax_rate=to_amount(tax_rate),
            coupon_discount=coupon_discount,
            gift_card_amount=gift_card_amount,
            loyalty_discount=loyalty_discount,
            coupon_code=coupon.code if coupon else None,
            gift_card_code=gift_card.code if gift_card else None,
            loyalty_points=loyalty_points,
        )
        return snapshot, coupon, gift_card
