from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select, func

from app.core.clock import utc_now
from app.core.errors import InstrumentStateError, PricingValidationError
from app.models.coupon import Coupon, CouponStatus, CouponType, CouponUsage
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.services.coupon_service import CouponService


def _coupon(type, value=None, max_discount=None, code="X"):
    return SimpleNamespace(
        code=code,
        type=type.value,
        discount_value=value,
        max_discount_amount=max_discount,
    )


class TestCalculateDiscount:
    def test_percentage_capped(self):
        coupon = _coupon(CouponType.PERCENTAGE, Decimal("20"), Decimal("15"))
        assert CouponService.calculate_discount(coupon, 100) == 15

    def test_percentage_uncapped(self):
        coupon = _coupon(CouponType.PERCENTAGE, Decimal("20"))
        assert CouponService.calculate_discount(coupon, 100) == 20

    def test_fixed_capped_at_subtotal(self):
        coupon = _coupon(CouponType.FIXED, Decimal("50"))
        assert CouponService.calculate_discount(coupon, 30) == 30

    def test_free_shipping_uses_delivery_fee(self):
        coupon = _coupon(CouponType.FREE_SHIPPING)
        assert CouponService.calculate_discount(coupon, 100, 3.99) == 3.99

    def test_buy_x_get_y_is_zero(self):
        coupon = _coupon(CouponType.BUY_X_GET_Y)
        assert CouponService.calculate_discount(coupon, 100) == 0

    def test_rounds_to_cents(self):
        coupon = _coupon(CouponType.PERCENTAGE, Decimal("15"))
        assert CouponService.calculate_discount(coupon, 45.5) == 6.83

    def test_unknown_type(self):
        coupon = SimpleNamespace(code="X", type="MYSTERY", discount_value=None, max_discount_amount=None)
        with pytest.raises(PricingValidationError):
            CouponService.calculate_discount(coupon, 100)


class TestValidateCoupon:
    async def test_valid_coupon(self, db, make_coupon):
        await make_coupon()
        result = await CouponService(db).validate_coupon("save10", 40)
        assert result.valid
        assert result.coupon.code == "SAVE10"

    async def test_blank_code_is_validation_error(self, db):
        result = await CouponService(db).validate_coupon("   ", 40)
        assert not result.valid
        assert result.error_code == "VALIDATION_ERROR"

    async def test_unknown_code(self, db):
        result = await CouponService(db).validate_coupon("NOPE", 40)
        assert not result.valid
        assert result.error_code == "NOT_FOUND"

    async def test_inactive_coupon(self, db, make_coupon):
        await make_coupon(status=CouponStatus.INACTIVE.value)
        result = await CouponService(db).validate_coupon("SAVE10", 40)
        assert result.error_code == "STATE_ERROR"
        assert result.error == "Coupon is not active"

    async def test_not_yet_valid(self, db, make_coupon):
        await make_coupon(valid_from=utc_now() + timedelta(days=1))
        result = await CouponService(db).validate_coupon("SAVE10", 40)
        assert result.error == "Coupon is not yet valid"

    async def test_expired_coupon_is_flipped_and_persisted(self, db, make_coupon, session_factory):
        coupon = await make_coupon(valid_until=utc_now() - timedelta(minutes=1))

        result = await CouponService(db).validate_coupon("SAVE10", 40)
        assert result.error == "Coupon has expired"
        assert result.error_code == "STATE_ERROR"
        await db.commit()

        async with session_factory() as other:
            stored = await other.get(Coupon, coupon.id)
            assert stored.status == CouponStatus.EXPIRED.value

    async def test_validation_is_repeatable(self, db, make_coupon):
        await make_coupon(valid_until=utc_now() - timedelta(minutes=1))
        service = CouponService(db)
        first = await service.validate_coupon("SAVE10", 40)
        second = await service.validate_coupon("SAVE10", 40)
        assert (first.valid, first.error, first.error_code) == (second.valid, second.error, second.error_code)

    async def test_global_limit_reached(self, db, make_coupon):
        await make_coupon(usage_limit=5, usage_count=5)
        result = await CouponService(db).validate_coupon("SAVE10", 40)
        assert result.error == "Coupon usage limit reached"

    async def test_per_user_limit_reached(self, db, make_coupon):
        coupon = await make_coupon(usage_limit_per_user=1)
        db.add(CouponUsage(coupon_id=coupon.id, order_id="o-1", user_id="u-1", discount_amount=Decimal("4.00")))
        await db.commit()

        service = CouponService(db)
        blocked = await service.validate_coupon("SAVE10", 40, user_id="u-1")
        other_user = await service.validate_coupon("SAVE10", 40, user_id="u-2")
        assert blocked.error_code == "STATE_ERROR"
        assert other_user.valid

    async def test_minimum_order_amount(self, db, make_coupon):
        await make_coupon(min_order_amount=Decimal("25.00"))
        result = await CouponService(db).validate_coupon("SAVE10", 20)
        assert result.error_code == "THRESHOLD_ERROR"
        assert result.error == "Minimum order amount of $25.00 required"

    async def test_status_checked_before_minimum(self, db, make_coupon):
        await make_coupon(status=CouponStatus.INACTIVE.value, min_order_amount=Decimal("25.00"))
        result = await CouponService(db).validate_coupon("SAVE10", 20)
        assert result.error_code == "STATE_ERROR"

    async def test_validation_never_counts_usage(self, db, make_coupon):
        coupon = await make_coupon(usage_limit=3)
        await CouponService(db).validate_coupon("SAVE10", 40)
        await db.refresh(coupon)
        assert coupon.usage_count == 0


class TestApplyCoupon:
    async def test_apply_percentage(self, db, make_coupon):
        await make_coupon(discount_value=Decimal("20"), max_discount_amount=Decimal("15"))
        result = await CouponService(db).apply_coupon("SAVE10", 100)
        assert result.success
        assert result.discount == 15

    async def test_free_shipping_defaults_to_configured_fee(self, db, make_coupon):
        await make_coupon(code="FREESHIP", type=CouponType.FREE_SHIPPING.value, discount_value=None)
        result = await CouponService(db).apply_coupon("FREESHIP", 40)
        assert result.discount == 3.99

    async def test_failure_carries_code(self, db):
        result = await CouponService(db).apply_coupon("MISSING", 40)
        assert not result.success
        assert result.error_code == "NOT_FOUND"


class TestRecordUsage:
    async def test_limit_reached_deactivates(self, db, make_coupon):
        coupon = await make_coupon(usage_limit=2)
        service = CouponService(db)

        await service.record_usage(coupon.id, "order-1", 4.0, user_id="u-1")
        await service.record_usage(coupon.id, "order-2", 4.0, user_id="u-2")
        await db.commit()

        await db.refresh(coupon)
        assert coupon.usage_count == 2
        assert coupon.status == CouponStatus.INACTIVE.value

        with pytest.raises(InstrumentStateError):
            await service.record_usage(coupon.id, "order-3", 4.0, user_id="u-3")
        await db.rollback()

        await db.refresh(coupon)
        assert coupon.usage_count == 2
        usages = await db.execute(select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon.id))
        assert usages.scalar() == 2

    async def test_stale_read_cannot_exceed_limit(self, make_coupon, session_factory):
        coupon = await make_coupon(usage_limit=1)

        async with session_factory() as stale, session_factory() as fresh:
            stale_service = CouponService(stale)
            validation = await stale_service.validate_coupon("SAVE10", 40)
            assert validation.valid
            await stale.commit()

            await CouponService(fresh).record_usage(coupon.id, "order-1", 4.0)
            await fresh.commit()

            assert validation.coupon.usage_count == 0
            with pytest.raises(InstrumentStateError):
                await stale_service.record_usage(coupon.id, "order-2", 4.0)

        async with session_factory() as check:
            stored = await check.get(Coupon, coupon.id)
            assert stored.usage_count == 1

    async def test_per_user_cap_rechecked(self, db, make_coupon):
        coupon = await make_coupon(usage_limit_per_user=1)
        service = CouponService(db)
        await service.record_usage(coupon.id, "order-1", 4.0, user_id="u-1")
        await db.commit()

        with pytest.raises(InstrumentStateError):
            await service.record_usage(coupon.id, "order-2", 4.0, user_id="u-1")

    async def test_deactivated_coupon_is_not_recorded(self, db, make_coupon):
        coupon = await make_coupon()
        service = CouponService(db)
        await service.delete_coupon(coupon.id)
        await db.commit()

        with pytest.raises(InstrumentStateError):
            await service.record_usage(coupon.id, "order-x", 4.0)
        await db.rollback()

        await db.refresh(coupon)
        assert coupon.usage_count == 0
        usages = await db.execute(select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon.id))
        assert usages.scalar() == 0

    async def test_coupon_past_valid_until_is_not_recorded(self, db, make_coupon):
        coupon = await make_coupon(valid_until=utc_now() - timedelta(minutes=1))
        with pytest.raises(InstrumentStateError):
            await CouponService(db).record_usage(coupon.id, "order-x", 4.0)
        await db.rollback()

        await db.refresh(coupon)
        assert coupon.usage_count == 0

    async def test_zero_per_user_cap_blocks_everyone(self, db, make_coupon):
        coupon = await make_coupon(usage_limit_per_user=0)
        result = await CouponService(db).validate_coupon("SAVE10", 40, user_id="u-1")
        assert result.error_code == "STATE_ERROR"

        with pytest.raises(InstrumentStateError):
            await CouponService(db).record_usage(coupon.id, "order-1", 4.0, user_id="u-1")

    async def test_usages_listed_for_coupon(self, db, make_coupon):
        coupon = await make_coupon()
        service = CouponService(db)
        await service.record_usage(coupon.id, "order-1", 4.0, user_id="u-1")
        await service.record_usage(coupon.id, "order-2", 2.5, user_id="u-2")
        await db.commit()

        usages = await service.get_usages(coupon.id)
        assert sorted(u.order_id for u in usages) == ["order-1", "order-2"]

    async def test_unlimited_coupon_keeps_counting(self, db, make_coupon):
        coupon = await make_coupon()
        service = CouponService(db)
        for n in range(3):
            await service.record_usage(coupon.id, f"order-{n}", 1.0)
        await db.commit()
        await db.refresh(coupon)
        assert coupon.usage_count == 3
        assert coupon.status == CouponStatus.ACTIVE.value


class TestCouponAdmin:
    async def test_create_upper_cases_code(self, db):
        now = utc_now()
        coupon = await CouponService(db).create_coupon(CouponCreate(
            code="summer5",
            name="Summer",
            type=CouponType.FIXED,
            discount_value=Decimal("5"),
            valid_from=now,
            valid_until=now + timedelta(days=7),
        ))
        assert coupon.code == "SUMMER5"
        assert coupon.usage_count == 0

    async def test_duplicate_code_rejected(self, db, make_coupon):
        await make_coupon()
        now = utc_now()
        with pytest.raises(PricingValidationError):
            await CouponService(db).create_coupon(CouponCreate(
                code="save10",
                name="Dup",
                type=CouponType.FIXED,
                discount_value=Decimal("5"),
                valid_from=now,
                valid_until=now + timedelta(days=7),
            ))

    async def test_list_active_only(self, db, make_coupon):
        await make_coupon()
        await make_coupon(code="OLD", status=CouponStatus.EXPIRED.value)
        coupons = await CouponService(db).list_coupons(active=True)
        assert [c.code for c in coupons] == ["SAVE10"]

    async def test_update_and_soft_delete(self, db, make_coupon):
        coupon = await make_coupon()
        service = CouponService(db)

        updated = await service.update_coupon(coupon.id, CouponUpdate(name="Renamed"))
        assert updated.name == "Renamed"

        cleared = await service.update_coupon(coupon.id, CouponUpdate(name=None, usage_limit=None))
        assert cleared.name == "Renamed"
        assert cleared.usage_limit is None

        deleted = await service.delete_coupon(coupon.id)
        assert deleted.status == CouponStatus.INACTIVE.value
        again = await service.delete_coupon(coupon.id)
        assert again.status == CouponStatus.INACTIVE.value

    async def test_usage_limit_cannot_drop_below_usage_count(self, db, make_coupon):
        coupon = await make_coupon(usage_limit=5, usage_count=3)
        with pytest.raises(PricingValidationError):
            await CouponService(db).update_coupon(coupon.id, CouponUpdate(usage_limit=1))

        await db.commit()
        await db.refresh(coupon)
        assert coupon.usage_limit == 5

    async def test_usage_limit_can_match_usage_count(self, db, make_coupon):
        coupon = await make_coupon(usage_limit=5, usage_count=3)
        updated = await CouponService(db).update_coupon(coupon.id, CouponUpdate(usage_limit=3))
        assert updated.usage_limit == 3
