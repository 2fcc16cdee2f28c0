from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.clock import utc_now
from app.core.errors import InsufficientBalanceError, InstrumentStateError, PricingValidationError
from app.core.security import GIFT_CARD_CODE_ALPHABET, verify_pin
from app.models.gift_card import GiftCard, GiftCardStatus, GiftCardTransaction
from app.schemas.gift_card import GiftCardCreate
from app.services.gift_card_service import GiftCardService


class TestCreateGiftCard:
    async def test_generates_code_and_pin(self, db):
        gift_card, pin = await GiftCardService(db).create_gift_card(
            GiftCardCreate(original_balance=Decimal("25.00"))
        )
        groups = gift_card.code.split("-")
        assert [len(g) for g in groups] == [4, 4, 4]
        assert all(ch in GIFT_CARD_CODE_ALPHABET for ch in "".join(groups))
        assert len(pin) == 4 and pin.isdigit()
        assert gift_card.pin != pin
        assert verify_pin(pin, gift_card.pin)
        assert gift_card.current_balance == gift_card.original_balance

    async def test_custom_code_must_be_unique(self, db, make_gift_card):
        await make_gift_card(code="HOLIDAY-2026")
        with pytest.raises(PricingValidationError):
            await GiftCardService(db).create_gift_card(
                GiftCardCreate(code="holiday-2026", original_balance=Decimal("10"))
            )


class TestValidateGiftCard:
    async def test_valid_card(self, db, make_gift_card):
        await make_gift_card(pin="1234")
        result = await GiftCardService(db).validate_gift_card("gift-aaaa-bbbb", "1234")
        assert result.valid

    async def test_unknown_card(self, db):
        result = await GiftCardService(db).validate_gift_card("NOPE-NOPE-NOPE")
        assert result.error_code == "NOT_FOUND"

    async def test_pin_required(self, db, make_gift_card):
        await make_gift_card(pin="1234")
        result = await GiftCardService(db).validate_gift_card("GIFT-AAAA-BBBB")
        assert result.error == "PIN required"
        assert result.error_code == "VALIDATION_ERROR"

    async def test_wrong_pin(self, db, make_gift_card):
        await make_gift_card(pin="1234")
        result = await GiftCardService(db).validate_gift_card("GIFT-AAAA-BBBB", "9999")
        assert result.error == "Invalid PIN"

    async def test_card_without_pin_accepts_any(self, db, make_gift_card):
        await make_gift_card()
        result = await GiftCardService(db).validate_gift_card("GIFT-AAAA-BBBB", "0000")
        assert result.valid

    async def test_used_card(self, db, make_gift_card):
        await make_gift_card(status=GiftCardStatus.USED.value)
        result = await GiftCardService(db).validate_gift_card("GIFT-AAAA-BBBB")
        assert result.error_code == "STATE_ERROR"

    async def test_expired_card_is_flipped(self, db, make_gift_card, session_factory):
        card = await make_gift_card(expires_at=utc_now() - timedelta(days=1))
        result = await GiftCardService(db).validate_gift_card("GIFT-AAAA-BBBB")
        assert result.error == "Gift card has expired"
        await db.commit()

        async with session_factory() as other:
            stored = await other.get(GiftCard, card.id)
            assert stored.status == GiftCardStatus.EXPIRED.value

    async def test_empty_card(self, db, make_gift_card):
        await make_gift_card(current_balance=Decimal("0.00"))
        result = await GiftCardService(db).validate_gift_card("GIFT-AAAA-BBBB")
        assert result.error_code == "INSUFFICIENT_BALANCE"


class TestUseGiftCard:
    async def test_partial_debit(self, db, make_gift_card):
        card = await make_gift_card(balance="50.00")
        transaction = await GiftCardService(db).use_gift_card(card.id, 20.10, order_id="order-1")
        await db.commit()

        await db.refresh(card)
        assert card.current_balance == Decimal("29.90")
        assert card.status == GiftCardStatus.ACTIVE.value
        assert transaction.amount == Decimal("-20.10")
        assert transaction.balance_after == Decimal("29.90")

    async def test_exact_balance_marks_used(self, db, make_gift_card):
        card = await make_gift_card(balance="50.00")
        await GiftCardService(db).use_gift_card(card.id, 50)
        await db.commit()

        await db.refresh(card)
        assert card.current_balance == Decimal("0.00")
        assert card.status == GiftCardStatus.USED.value

        with pytest.raises(InstrumentStateError):
            await GiftCardService(db).use_gift_card(card.id, 0.01)
        await db.rollback()

        result = await GiftCardService(db).redeem_gift_card("GIFT-AAAA-BBBB", None, 1, "order-2")
        assert not result.success
        assert result.error_code == "STATE_ERROR"

    async def test_stale_read_cannot_overdraw(self, make_gift_card, session_factory):
        card = await make_gift_card(balance="50.00")

        async with session_factory() as stale, session_factory() as fresh:
            stale_service = GiftCardService(stale)
            validation = await stale_service.validate_gift_card("GIFT-AAAA-BBBB")
            assert validation.valid
            await stale.commit()

            await GiftCardService(fresh).use_gift_card(card.id, 40, order_id="order-1")
            await fresh.commit()

            assert validation.gift_card.current_balance == Decimal("50.00")
            with pytest.raises(InsufficientBalanceError):
                await stale_service.use_gift_card(card.id, 40, order_id="order-2")

        async with session_factory() as check:
            stored = await check.get(GiftCard, card.id)
            assert stored.current_balance == Decimal("10.00")
            transactions = await check.execute(
                select(GiftCardTransaction).where(GiftCardTransaction.gift_card_id == card.id)
            )
            assert len(transactions.scalars().all()) == 1

    async def test_overdraw_leaves_balance_unchanged(self, db, make_gift_card):
        card = await make_gift_card(balance="50.00")
        with pytest.raises(InsufficientBalanceError):
            await GiftCardService(db).use_gift_card(card.id, 50.01)
        await db.rollback()

        await db.refresh(card)
        assert card.current_balance == Decimal("50.00")
        transactions = await db.execute(select(GiftCardTransaction))
        assert transactions.scalars().all() == []

    async def test_expired_card_cannot_be_debited(self, db, make_gift_card):
        card = await make_gift_card(expires_at=utc_now() - timedelta(minutes=5))
        with pytest.raises(InstrumentStateError):
            await GiftCardService(db).use_gift_card(card.id, 5)

    async def test_amount_must_be_positive(self, db, make_gift_card):
        card = await make_gift_card()
        with pytest.raises(PricingValidationError):
            await GiftCardService(db).use_gift_card(card.id, 0)


class TestRedeemGiftCard:
    async def test_redeem(self, db, make_gift_card):
        await make_gift_card(pin="4321", balance="30.00")
        result = await GiftCardService(db).redeem_gift_card("GIFT-AAAA-BBBB", "4321", 12.5, "order-9")
        assert result.success
        assert result.new_balance == 17.5

    async def test_redeem_more_than_balance(self, db, make_gift_card):
        await make_gift_card(balance="10.00")
        result = await GiftCardService(db).redeem_gift_card("GIFT-AAAA-BBBB", None, 15, "order-9")
        assert not result.success
        assert result.error_code == "INSUFFICIENT_BALANCE"

    async def test_check_balance_needs_no_pin(self, db, make_gift_card):
        await make_gift_card(pin="4321", balance="30.00")
        balance = await GiftCardService(db).check_balance("gift-aaaa-bbbb")
        assert balance["balance"] == 30.0
        assert balance["status"] == GiftCardStatus.ACTIVE.value
        assert await GiftCardService(db).check_balance("MISSING") is None
