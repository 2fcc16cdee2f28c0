import pytest
from sqlalchemy import select

from app.core.errors import InsufficientBalanceError
from app.models.loyalty import LoyaltyAccount, LoyaltyTier, LoyaltyTransaction, LoyaltyTransactionType
from app.services.loyalty_service import LoyaltyService


@pytest.mark.parametrize("lifetime, tier", [
    (0, LoyaltyTier.BRONZE),
    (999, LoyaltyTier.BRONZE),
    (1000, LoyaltyTier.SILVER),
    (5000, LoyaltyTier.GOLD),
    (10000, LoyaltyTier.PLATINUM),
])
def test_calculate_tier(lifetime, tier):
    assert LoyaltyService.calculate_tier(lifetime) == tier.value


class TestRedeemPoints:
    async def test_redeem_within_balance(self, db, make_loyalty_account):
        await make_loyalty_account(points=250)
        result = await LoyaltyService(db).redeem_points("user-1", 200, order_id="order-1")
        assert result.success
        assert result.discount_amount == 2.0
        assert result.new_balance == 50

        transactions = (await db.execute(select(LoyaltyTransaction))).scalars().all()
        assert [(t.points, t.type) for t in transactions] == [(-200, LoyaltyTransactionType.REDEEMED.value)]

    async def test_insufficient_points_leave_balance_unchanged(self, db, make_loyalty_account):
        account = await make_loyalty_account(points=50)
        result = await LoyaltyService(db).redeem_points("user-1", 100)
        assert not result.success
        assert result.error_code == "INSUFFICIENT_BALANCE"

        await db.refresh(account)
        assert account.points == 50

    async def test_unknown_user_has_no_points(self, db):
        result = await LoyaltyService(db).redeem_points("ghost", 10)
        assert result.error_code == "INSUFFICIENT_BALANCE"

    @pytest.mark.parametrize("points", [0, -5, 2.5, "10", True])
    async def test_points_must_be_positive_integer(self, db, make_loyalty_account, points):
        await make_loyalty_account(points=100)
        result = await LoyaltyService(db).redeem_points("user-1", points)
        assert result.error_code == "VALIDATION_ERROR"

    async def test_disabled_program(self, db, make_loyalty_account, make_settings):
        await make_settings(enable_loyalty_points=False)
        await make_loyalty_account(points=500)
        result = await LoyaltyService(db).redeem_points("user-1", 100)
        assert result.error_code == "STATE_ERROR"

    async def test_configured_ratio(self, db, make_loyalty_account, make_settings):
        await make_settings(loyalty_points_for_free=50)
        await make_loyalty_account(points=500)
        result = await LoyaltyService(db).redeem_points("user-1", 125)
        assert result.discount_amount == 2.5


class TestEarnPoints:
    async def test_earn_creates_account(self, db):
        result = await LoyaltyService(db).earn_points("user-7", "order-1", 45.99)
        assert result.success
        assert result.points_earned == 22
        assert result.account.points == 22
        assert result.account.lifetime_points == 22

    async def test_earn_promotes_tier(self, db, make_loyalty_account):
        await make_loyalty_account(points=10, lifetime_points=990)
        result = await LoyaltyService(db).earn_points("user-1", "order-1", 40)
        assert result.account.lifetime_points == 1010
        assert result.account.tier == LoyaltyTier.SILVER.value

    async def test_nothing_to_earn(self, db):
        result = await LoyaltyService(db).earn_points("user-1", "order-1", 1)
        assert not result.success


class TestAdjustPoints:
    async def test_expire_removes_points(self, db, make_loyalty_account):
        await make_loyalty_account(points=100)
        account = await LoyaltyService(db).adjust_points("user-1", 30, LoyaltyTransactionType.EXPIRED.value)
        assert account.points == 70

    async def test_cannot_go_negative(self, db, make_loyalty_account):
        await make_loyalty_account(points=10)
        with pytest.raises(InsufficientBalanceError):
            await LoyaltyService(db).adjust_points("user-1", -20)

    async def test_points_value(self, db):
        assert await LoyaltyService(db).get_points_value(250) == 2.5

    async def test_history_lists_every_entry(self, db, make_loyalty_account):
        await make_loyalty_account(points=300)
        service = LoyaltyService(db)
        await service.redeem_points("user-1", 100, order_id="order-1")
        await service.adjust_points("user-1", 5)
        history = await service.get_transaction_history("user-1")
        assert len(history) == 2
        assert {t.type for t in history} == {
            LoyaltyTransactionType.REDEEMED.value,
            LoyaltyTransactionType.ADJUSTED.value,
        }


class TestDebitPoints:
    async def test_stale_read_cannot_overspend(self, make_loyalty_account, session_factory):
        await make_loyalty_account(points=100)

        async with session_factory() as stale, session_factory() as fresh:
            stale_service = LoyaltyService(stale)
            account = await stale_service.get_account("user-1")
            assert account.points == 100
            await stale.commit()

            await LoyaltyService(fresh).debit_points("user-1", 80, order_id="order-1")
            await fresh.commit()

            with pytest.raises(InsufficientBalanceError):
                await stale_service.debit_points("user-1", 80, order_id="order-2")

        async with session_factory() as check:
            stored = (await check.execute(
                select(LoyaltyAccount).where(LoyaltyAccount.user_id == "user-1")
            )).scalar_one()
            assert stored.points == 20
            redeemed = await check.execute(
                select(LoyaltyTransaction).where(
                    LoyaltyTransaction.type == LoyaltyTransactionType.REDEEMED.value
                )
            )
            assert len(redeemed.scalars().all()) == 1
