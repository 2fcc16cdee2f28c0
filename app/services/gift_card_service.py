"""
Gift Card Ledger.

Issues gift cards, validates code + PIN, and debits balances. Every debit is
a single conditional UPDATE that only matches an ACTIVE, unexpired card with
enough balance, so two concurrent redemptions can never overdraw a card.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, or_, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.clock import as_utc, utc_now
from app.core.errors import (
    Instrument,
    InstrumentNotFoundError,
    InstrumentStateError,
    InsufficientBalanceError,
    PricingError,
    PricingValidationError,
    StorageUnavailableError,
)
from app.core.money import InvalidAmountError, round2, to_amount, to_decimal
from app.core.security import generate_gift_card_code, generate_pin, hash_pin, verify_pin
from app.models.gift_card import (
    GiftCard,
    GiftCardStatus,
    GiftCardTransaction,
    GiftCardTransactionType,
)
from app.schemas.gift_card import GiftCardCreate
from app.services.unit_of_work import atomic

logger = logging.getLogger(__name__)


@dataclass
class GiftCardValidation:
    valid: bool
    gift_card: Optional[GiftCard] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class GiftCardRedemption:
    """Result of redeem_gift_card."""
    success: bool
    amount: float = 0.0
    new_balance: Optional[float] = None
    gift_card: Optional[GiftCard] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


def normalize_gift_card_code(code: Any) -> str:
    if not isinstance(code, str) or not code.strip():
        raise PricingValidationError("Gift card code is required", Instrument.GIFT_CARD)
    return code.strip().upper()


def _debit_amount(value: Any) -> float:
    try:
        amount = round2(value)
    except InvalidAmountError as e:
        raise PricingValidationError(f"amount: {e}", Instrument.GIFT_CARD)
    if amount <= 0:
        raise PricingValidationError("Amount must be greater than zero", Instrument.GIFT_CARD)
    return amount


def _is_expired(gift_card: GiftCard) -> bool:
    return gift_card.expires_at is not None and as_utc(gift_card.expires_at) <= utc_now()


class GiftCardService:
    """Gift card issuing, validation and balance debits."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Issuing ====================

    async def create_gift_card(self, data: GiftCardCreate) -> Tuple[GiftCard, Optional[str]]:
        """
        Issue a gift card.

        Returns the card and the plain PIN. The PIN is stored hashed, so this
        is the only time it can be shown to the purchaser.
        """
        if data.code:
            code = normalize_gift_card_code(data.code)
            if await self.get_gift_card_by_code(code):
                raise PricingValidationError("Gift card code already exists", Instrument.GIFT_CARD)
        else:
            code = await self._generate_unique_code()

        pin = data.pin
        if not pin and settings.GIFT_CARD_PIN_REQUIRED:
            pin = generate_pin()

        now = utc_now()
        balance = to_decimal(data.original_balance)
        gift_card = GiftCard(
            code=code,
            pin=hash_pin(pin) if pin else None,
            original_balance=balance,
            current_balance=balance,
            currency=(data.currency or settings.DEFAULT_CURRENCY).upper(),
            status=GiftCardStatus.ACTIVE.value,
            purchased_by=data.purchased_by,
            purchased_at=now if data.purchased_by else None,
            expires_at=data.expires_at,
        )
        self.db.add(gift_card)
        await self.db.flush()
        await self.db.refresh(gift_card)

        logger.info(f"Issued gift card {gift_card.code} for {balance} {gift_card.currency}")
        return gift_card, pin

    async def _generate_unique_code(self) -> str:
        for _ in range(settings.GIFT_CARD_CODE_ATTEMPTS):
            code = generate_gift_card_code()
            if not await self.get_gift_card_by_code(code):
                return code
        logger.error("Gift card code generation exhausted all attempts")
        raise InstrumentStateError("Failed to generate unique gift card code", Instrument.GIFT_CARD)

    # ==================== Lookups ====================

    async def get_gift_card_by_code(self, code: str) -> Optional[GiftCard]:
        result = await self.db.execute(
            select(GiftCard).where(GiftCard.code == normalize_gift_card_code(code))
        )
        return result.scalar_one_or_none()

    async def get_gift_card_by_id(self, gift_card_id: uuid.UUID) -> Optional[GiftCard]:
        result = await self.db.execute(select(GiftCard).where(GiftCard.id == gift_card_id))
        return result.scalar_one_or_none()

    async def get_transactions(
        self, gift_card_id: uuid.UUID, limit: int = 10
    ) -> List[GiftCardTransaction]:
        result = await self.db.execute(
            select(GiftCardTransaction)
            .where(GiftCardTransaction.gift_card_id == gift_card_id)
            .order_by(desc(GiftCardTransaction.created_at))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def check_balance(self, code: str) -> Optional[Dict[str, Any]]:
        """Public balance lookup; no PIN required and nothing is mutated."""
        try:
            gift_card = await self.get_gift_card_by_code(code)
        except PricingValidationError:
            return None
        except SQLAlchemyError as e:
            logger.error(f"Gift card balance lookup failed: {e}")
            raise StorageUnavailableError() from e

        if not gift_card:
            return None

        return {
            "code": gift_card.code,
            "balance": to_amount(gift_card.current_balance),
            "currency": gift_card.currency,
            "status": gift_card.status,
            "expires_at": gift_card.expires_at,
        }

    # ==================== Validation ====================

    async def resolve_gift_card(self, code: str, pin: Optional[str] = None) -> GiftCard:
        """
        Return the card if it can pay for an order, else raise.

        Checks: existence -> PIN -> status -> expiry -> balance. A card found
        past expires_at is flipped to EXPIRED.
        """
        gift_card = await self.get_gift_card_by_code(normalize_gift_card_code(code))
        if not gift_card:
            raise InstrumentNotFoundError("Gift card not found", Instrument.GIFT_CARD)

        if gift_card.pin:
            if not pin:
                raise PricingValidationError("PIN required", Instrument.GIFT_CARD)
            if not verify_pin(pin, gift_card.pin):
                raise PricingValidationError("Invalid PIN", Instrument.GIFT_CARD)

        if gift_card.status != GiftCardStatus.ACTIVE.value:
            if gift_card.status == GiftCardStatus.EXPIRED.value:
                raise InstrumentStateError("Gift card has expired", Instrument.GIFT_CARD)
            raise InstrumentStateError("Gift card is not active", Instrument.GIFT_CARD)

        if _is_expired(gift_card):
            await self._expire(gift_card)
            raise InstrumentStateError("Gift card has expired", Instrument.GIFT_CARD)

        if to_amount(gift_card.current_balance) <= 0:
            raise InsufficientBalanceError("Gift card has no balance", Instrument.GIFT_CARD)

        return gift_card

    async def validate_gift_card(self, code: str, pin: Optional[str] = None) -> GiftCardValidation:
        try:
            gift_card = await self.resolve_gift_card(code, pin)
        except StorageUnavailableError:
            raise
        except PricingError as e:
            return GiftCardValidation(valid=False, error=e.message, error_code=e.error_code.value)
        except SQLAlchemyError as e:
            logger.error(f"Gift card validation failed: {e}")
            raise StorageUnavailableError() from e

        return GiftCardValidation(valid=True, gift_card=gift_card)

    # ==================== Debits ====================

    async def use_gift_card(
        self,
        gift_card_id: uuid.UUID,
        amount: Any,
        order_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> GiftCardTransaction:
        """
        Debit a gift card and append a USAGE transaction.

        Raises InsufficientBalanceError, InstrumentStateError or
        InstrumentNotFoundError when the debit cannot be made; the balance
        is untouched in that case.
        """
        amount = _debit_amount(amount)
        debit = to_decimal(amount)

        async with atomic(self.db):
            now = utc_now()
            result = await self.db.execute(
                update(GiftCard)
                .where(
                    GiftCard.id == gift_card_id,
                    GiftCard.status == GiftCardStatus.ACTIVE.value,
                    GiftCard.current_balance >= debit,
                    or_(GiftCard.expires_at.is_(None), GiftCard.expires_at > now),
                )
                .values(
                    current_balance=GiftCard.current_balance - debit,
                    last_used_at=now,
                    updated_at=now,
                )
                .returning(GiftCard.current_balance)
                .execution_options(synchronize_session=False)
            )
            new_balance = result.scalar_one_or_none()
            if new_balance is None:
                await self._raise_debit_failure(gift_card_id)

            new_balance = round2(new_balance)
            if new_balance <= 0:
                await self.db.execute(
                    update(GiftCard)
                    .where(GiftCard.id == gift_card_id)
                    .values(status=GiftCardStatus.USED.value)
                    .execution_options(synchronize_session=False)
                )

            transaction = GiftCardTransaction(
                gift_card_id=gift_card_id,
                order_id=order_id,
                amount=to_decimal(-amount),
                balance_after=to_decimal(new_balance),
                type=GiftCardTransactionType.USAGE.value,
                description=description,
            )
            self.db.add(transaction)
            await self.db.flush()

        logger.info(f"Gift card {gift_card_id} debited {amount:.2f}, balance {new_balance:.2f}")
        return transaction

    async def _raise_debit_failure(self, gift_card_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(GiftCard)
            .where(GiftCard.id == gift_card_id)
            .execution_options(populate_existing=True)
        )
        gift_card = result.scalar_one_or_none()
        if not gift_card:
            raise InstrumentNotFoundError("Gift card not found", Instrument.GIFT_CARD)
        if gift_card.status == GiftCardStatus.EXPIRED.value or _is_expired(gift_card):
            raise InstrumentStateError("Gift card has expired", Instrument.GIFT_CARD)
        if gift_card.status != GiftCardStatus.ACTIVE.value:
            raise InstrumentStateError("Gift card is not active", Instrument.GIFT_CARD)
        raise InsufficientBalanceError("Insufficient balance", Instrument.GIFT_CARD)

    async def redeem_gift_card(
        self,
        code: str,
        pin: Optional[str],
        amount: Any,
        order_id: Optional[str] = None,
    ) -> GiftCardRedemption:
        """Validate a card and debit it. Returns a failure result instead of raising."""
        try:
            gift_card = await self.resolve_gift_card(code, pin)
            debit = _debit_amount(amount)
            if debit > to_amount(gift_card.current_balance):
                raise InsufficientBalanceError("Insufficient balance", Instrument.GIFT_CARD)
            transaction = await self.use_gift_card(
                gift_card.id, debit, order_id=order_id,
                description=f"Order {order_id}" if order_id else None,
            )
        except StorageUnavailableError:
            raise
        except PricingError as e:
            return GiftCardRedemption(success=False, error=e.message, error_code=e.error_code.value)
        except SQLAlchemyError as e:
            logger.error(f"Gift card redemption failed: {e}")
            raise StorageUnavailableError() from e

        await self.db.refresh(gift_card)
        return GiftCardRedemption(
            success=True,
            amount=debit,
            new_balance=to_amount(transaction.balance_after),
            gift_card=gift_card,
        )

    async def _expire(self, gift_card: GiftCard) -> None:
        async with atomic(self.db):
            await self.db.execute(
                update(GiftCard)
                .where(GiftCard.id == gift_card.id, GiftCard.status == GiftCardStatus.ACTIVE.value)
                .values(status=GiftCardStatus.EXPIRED.value, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        await self.db.refresh(gift_card)
        logger.info(f"Gift card {gift_card.code} expired")
