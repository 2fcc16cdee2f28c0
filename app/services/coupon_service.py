"""
Coupon Resolver.

Looks up a coupon by code, checks it against an order (status, validity
window, global and per-user usage limits, minimum order amount), computes
the discount and records a redemption.

Customer-facing methods (validate_coupon, apply_coupon) never raise for
business-rule failures; they return a CouponValidation / CouponApplication
carrying the error and error code. Admin methods and record_usage raise
PricingError subclasses. Storage failures always surface as
StorageUnavailableError.

Usage accounting is concurrency safe: record_usage locks the coupon row and
increments usage_count with a conditional UPDATE that only matches while the
coupon is ACTIVE and under its limit, so N concurrent redemptions of a
coupon with usage_limit=N-1 produce exactly N-1 successes.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import select, update, func, or_, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import as_utc, utc_now
from app.core.errors import (
    Instrument,
    InstrumentNotFoundError,
    InstrumentStateError,
    PricingError,
    PricingValidationError,
    StorageUnavailableError,
    ThresholdError,
)
from app.core.money import InvalidAmountError, round2, to_amount, to_decimal
from app.models.coupon import Coupon, CouponStatus, CouponType, CouponUsage
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.services.coupon_state_machine import is_terminal, validate_transition
from app.services.settings_service import RestaurantSettingsService
from app.services.unit_of_work import atomic

logger = logging.getLogger(__name__)

# Columns a partial update may change but never clear
REQUIRED_COUPON_FIELDS = {"name", "type", "valid_from", "valid_until"}


@dataclass
class CouponValidation:
    """Result of validating a coupon against an order."""
    valid: bool
    coupon: Optional[Coupon] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class CouponApplication:
    """Result of applying a coupon: the discount it is worth for this order."""
    success: bool
    discount: float = 0.0
    coupon: Optional[Coupon] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


def normalize_coupon_code(code: Any) -> str:
    if not isinstance(code, str) or not code.strip():
        raise PricingValidationError("Coupon code is required", Instrument.COUPON)
    return code.strip().upper()


def _order_amount(value: Any, field: str) -> float:
    try:
        amount = to_amount(value)
    except InvalidAmountError as e:
        raise PricingValidationError(f"{field}: {e}", Instrument.COUPON)
    if amount < 0:
        raise PricingValidationError(f"{field} cannot be negative", Instrument.COUPON)
    return amount


class CouponService:
    """Coupon lookups, validation, discount calculation and usage accounting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Admin ====================

    async def create_coupon(self, data: CouponCreate) -> Coupon:
        code = normalize_coupon_code(data.code)
        if await self.get_coupon_by_code(code):
            raise PricingValidationError("Coupon code already exists", Instrument.COUPON)

        coupon = Coupon(
            code=code,
            name=data.name,
            description=data.description,
            type=data.type.value,
            discount_value=data.discount_value,
            min_order_amount=data.min_order_amount,
            max_discount_amount=data.max_discount_amount,
            buy_x_get_y=data.buy_x_get_y.model_dump() if data.buy_x_get_y else None,
            usage_limit=data.usage_limit,
            usage_limit_per_user=data.usage_limit_per_user,
            usage_count=0,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            status=CouponStatus.ACTIVE.value,
            created_by=data.created_by,
        )
        self.db.add(coupon)
        await self.db.flush()
        await self.db.refresh(coupon)

        logger.info(f"Created coupon {coupon.code} ({coupon.type})")
        return coupon

    async def get_coupon_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.db.execute(
            select(Coupon).where(Coupon.code == normalize_coupon_code(code))
        )
        return result.scalar_one_or_none()

    async def get_coupon_by_id(self, coupon_id: uuid.UUID) -> Optional[Coupon]:
        result = await self.db.execute(select(Coupon).where(Coupon.id == coupon_id))
        return result.scalar_one_or_none()

    async def list_coupons(
        self,
        status: Optional[str] = None,
        active: bool = False,
    ) -> List[Coupon]:
        """All coupons, newest first. active=True keeps only currently redeemable ones."""
        query = select(Coupon)

        if status:
            query = query.where(Coupon.status == status.upper())

        if active:
            now = utc_now()
            query = query.where(
                Coupon.status == CouponStatus.ACTIVE.value,
                Coupon.valid_from <= now,
                Coupon.valid_until >= now,
            )

        result = await self.db.execute(query.order_by(desc(Coupon.created_at)))
        return list(result.scalars().all())

    async def update_coupon(self, coupon_id: uuid.UUID, data: CouponUpdate) -> Coupon:
        coupon = await self.get_coupon_by_id(coupon_id)
        if not coupon:
            raise InstrumentNotFoundError("Coupon not found", Instrument.COUPON)

        update_data = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field not in REQUIRED_COUPON_FIELDS
        }
        if "type" in update_data:
            update_data["type"] = update_data["type"].value

        # Check the merged values before touching the row so a rejected
        # update leaves nothing dirty for the request to commit
        valid_from = update_data.get("valid_from", coupon.valid_from)
        valid_until = update_data.get("valid_until", coupon.valid_until)
        if as_utc(valid_until) <= as_utc(valid_from):
            raise PricingValidationError("valid_until must be after valid_from", Instrument.COUPON)

        usage_limit = update_data.get("usage_limit", coupon.usage_limit)
        if usage_limit is not None and usage_limit < coupon.usage_count:
            raise PricingValidationError(
                f"usage_limit cannot be below the {coupon.usage_count} uses already recorded",
                Instrument.COUPON,
            )

        for field, value in update_data.items():
            setattr(coupon, field, value)

        await self.db.flush()
        await self.db.refresh(coupon)
        logger.info(f"Updated coupon {coupon.code}: {sorted(update_data)}")
        return coupon

    async def delete_coupon(self, coupon_id: uuid.UUID) -> Coupon:
        """Soft delete: the coupon is deactivated, its usage history is kept."""
        coupon = await self.get_coupon_by_id(coupon_id)
        if not coupon:
            raise InstrumentNotFoundError("Coupon not found", Instrument.COUPON)

        if is_terminal(coupon.status):
            return coupon

        validate_transition(coupon.status, CouponStatus.INACTIVE.value)
        coupon.status = CouponStatus.INACTIVE.value
        await self.db.flush()
        logger.info(f"Deactivated coupon {coupon.code}")
        return coupon

    # ==================== Validation ====================

    async def resolve_coupon(
        self,
        code: str,
        order_subtotal: Any,
        user_id: Optional[str] = None,
    ) -> Coupon:
        """
        Return the coupon if it is redeemable for this order, else raise.

        Checks run in a fixed order and the first failure wins:
        code -> existence -> status -> not yet valid -> expired ->
        global limit -> per-user limit -> minimum order amount.
        A coupon found past valid_until is flipped to EXPIRED.
        """
        code = normalize_coupon_code(code)
        subtotal = _order_amount(order_subtotal, "order_subtotal")

        coupon = await self.get_coupon_by_code(code)
        if not coupon:
            raise InstrumentNotFoundError("Coupon not found", Instrument.COUPON)

        if coupon.status != CouponStatus.ACTIVE.value:
            if coupon.status == CouponStatus.EXPIRED.value:
                raise InstrumentStateError("Coupon has expired", Instrument.COUPON)
            raise InstrumentStateError("Coupon is not active", Instrument.COUPON)

        now = utc_now()
        if as_utc(coupon.valid_from) > now:
            raise InstrumentStateError("Coupon is not yet valid", Instrument.COUPON)

        if as_utc(coupon.valid_until) < now:
            await self._expire(coupon)
            raise InstrumentStateError("Coupon has expired", Instrument.COUPON)

        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            raise InstrumentStateError("Coupon usage limit reached", Instrument.COUPON)

        if user_id and coupon.usage_limit_per_user is not None:
            used = await self._count_user_usages(coupon.id, user_id)
            if used >= coupon.usage_limit_per_user:
                raise InstrumentStateError(
                    "You have reached the usage limit for this coupon", Instrument.COUPON
                )

        if coupon.min_order_amount and subtotal < to_amount(coupon.min_order_amount):
            raise ThresholdError(
                f"Minimum order amount of ${to_amount(coupon.min_order_amount):.2f} required",
                Instrument.COUPON,
            )

        return coupon

    async def validate_coupon(
        self,
        code: str,
        order_subtotal: Any,
        user_id: Optional[str] = None,
    ) -> CouponValidation:
        try:
            coupon = await self.resolve_coupon(code, order_subtotal, user_id)
        except StorageUnavailableError:
            raise
        except PricingError as e:
            logger.debug(f"Coupon '{code}' rejected: {e.message}")
            return CouponValidation(valid=False, error=e.message, error_code=e.error_code.value)
        except SQLAlchemyError as e:
            logger.error(f"Coupon validation failed for '{code}': {e}")
            raise StorageUnavailableError() from e

        return CouponValidation(valid=True, coupon=coupon)

    # ==================== Discount ====================

    @staticmethod
    def calculate_discount(coupon: Any, subtotal: Any, delivery_fee: Any = 0) -> float:
        """
        Discount a coupon is worth for an order, rounded to cents and >= 0.

        PERCENTAGE   subtotal * value / 100, capped at max_discount_amount
        FIXED        value, capped at the subtotal
        FREE_SHIPPING the order's delivery fee
        BUY_X_GET_Y  0 (item-level rules are not evaluated)
        """
        subtotal = to_amount(subtotal)
        delivery_fee = to_amount(delivery_fee)
        value = to_amount(coupon.discount_value) if coupon.discount_value is not None else 0.0

        if coupon.type == CouponType.PERCENTAGE.value:
            discount = subtotal * value / 100
            if coupon.max_discount_amount is not None:
                discount = min(discount, to_amount(coupon.max_discount_amount))
        elif coupon.type == CouponType.FIXED.value:
            discount = min(value, subtotal)
        elif coupon.type == CouponType.FREE_SHIPPING.value:
            discount = delivery_fee
        elif coupon.type == CouponType.BUY_X_GET_Y.value:
            logger.info(f"BUY_X_GET_Y coupon {coupon.code} applied with no item-level discount")
            discount = 0.0
        else:
            raise PricingValidationError(f"Unknown coupon type '{coupon.type}'", Instrument.COUPON)

        return max(0.0, round2(discount))

    async def apply_coupon(
        self,
        code: str,
        order_subtotal: Any,
        order_items: Optional[List[dict]] = None,
        user_id: Optional[str] = None,
        delivery_fee: Optional[Any] = None,
    ) -> CouponApplication:
        """
        Validate a coupon and compute its discount. Nothing is recorded.

        When delivery_fee is omitted the restaurant's configured fee is used
        for FREE_SHIPPING coupons.
        """
        try:
            coupon = await self.resolve_coupon(code, order_subtotal, user_id)
            if delivery_fee is None:
                if coupon.type == CouponType.FREE_SHIPPING.value:
                    pricing = await RestaurantSettingsService(self.db).get_pricing_settings()
                    delivery_fee = pricing.delivery_fee
                else:
                    delivery_fee = 0
            discount = self.calculate_discount(
                coupon, order_subtotal, _order_amount(delivery_fee, "delivery_fee")
            )
        except StorageUnavailableError:
            raise
        except PricingError as e:
            return CouponApplication(success=False, error=e.message, error_code=e.error_code.value)
        except SQLAlchemyError as e:
            logger.error(f"Applying coupon '{code}' failed: {e}")
            raise StorageUnavailableError() from e

        return CouponApplication(success=True, discount=discount, coupon=coupon)

    # ==================== Usage ====================

    async def record_usage(
        self,
        coupon_id: uuid.UUID,
        order_id: str,
        discount_amount: Any,
        user_id: Optional[str] = None,
    ) -> CouponUsage:
        """
        Record one redemption of a coupon on an order.

        The usage row and the usage_count increment are written together.
        The increment only succeeds while usage_count < usage_limit; when it
        reaches the limit the coupon becomes INACTIVE. Raises
        InstrumentStateError when the limit (global or per user) is already
        exhausted, in which case nothing is written.
        """
        if not order_id:
            raise PricingValidationError("order_id is required", Instrument.COUPON)
        amount = _order_amount(discount_amount, "discount_amount")

        async with atomic(self.db):
            result = await self.db.execute(
                select(Coupon)
                .where(Coupon.id == coupon_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            coupon = result.scalar_one_or_none()
            if not coupon:
                raise InstrumentNotFoundError("Coupon not found", Instrument.COUPON)

            # Deactivated or expired since it was validated
            if coupon.status != CouponStatus.ACTIVE.value:
                raise InstrumentStateError("Coupon is not active", Instrument.COUPON)
            if as_utc(coupon.valid_until) < utc_now():
                raise InstrumentStateError("Coupon has expired", Instrument.COUPON)

            if user_id and coupon.usage_limit_per_user is not None:
                used = await self._count_user_usages(coupon.id, user_id)
                if used >= coupon.usage_limit_per_user:
                    raise InstrumentStateError(
                        "You have reached the usage limit for this coupon", Instrument.COUPON
                    )

            incremented = await self.db.execute(
                update(Coupon)
                .where(
                    Coupon.id == coupon_id,
                    Coupon.status == CouponStatus.ACTIVE.value,
                    or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
                )
                .values(usage_count=Coupon.usage_count + 1, updated_at=utc_now())
                .returning(Coupon.usage_count, Coupon.usage_limit)
                .execution_options(synchronize_session=False)
            )
            row = incremented.one_or_none()
            if row is None:
                raise InstrumentStateError("Coupon usage limit reached", Instrument.COUPON)

            new_count, usage_limit = row
            usage = CouponUsage(
                coupon_id=coupon_id,
                order_id=str(order_id),
                user_id=user_id,
                discount_amount=to_decimal(amount),
            )
            self.db.add(usage)

            if usage_limit is not None and new_count >= usage_limit:
                validate_transition(coupon.status, CouponStatus.INACTIVE.value)
                await self.db.execute(
                    update(Coupon)
                    .where(Coupon.id == coupon_id, Coupon.status == CouponStatus.ACTIVE.value)
                    .values(status=CouponStatus.INACTIVE.value)
                    .execution_options(synchronize_session=False)
                )
                logger.info(f"Coupon {coupon.code} reached its usage limit ({usage_limit})")

            await self.db.flush()

        await self.db.refresh(coupon)
        logger.info(f"Recorded coupon {coupon.code} on order {order_id}: -{round2(amount):.2f}")
        return usage

    async def get_usages(self, coupon_id: uuid.UUID, limit: int = 10) -> List[CouponUsage]:
        result = await self.db.execute(
            select(CouponUsage)
            .where(CouponUsage.coupon_id == coupon_id)
            .order_by(desc(CouponUsage.used_at))
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== Internals ====================

    async def _count_user_usages(self, coupon_id: uuid.UUID, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(CouponUsage.id)).where(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.user_id == user_id,
            )
        )
        return result.scalar() or 0

    async def _expire(self, coupon: Coupon) -> None:
        """Persist ACTIVE -> EXPIRED. Only matches while the coupon is still ACTIVE."""
        validate_transition(coupon.status, CouponStatus.EXPIRED.value)
        async with atomic(self.db):
            await self.db.execute(
                update(Coupon)
                .where(Coupon.id == coupon.id, Coupon.status == CouponStatus.ACTIVE.value)
                .values(status=CouponStatus.EXPIRED.value, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        await self.db.refresh(coupon)
        logger.info(f"Coupon {coupon.code} expired at {coupon.valid_until}")
