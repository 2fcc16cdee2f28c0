"""
Loyalty Points Ledger.

Accounts hold a spendable point balance plus lifetime points (which drive
the tier). Every balance change appends a LoyaltyTransaction. Redemptions
are a compare-and-decrement UPDATE, so a balance can never go negative even
under concurrent redemptions.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy import select, update, desc
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utc_now
from app.core.errors import (
    Instrument,
    InstrumentStateError,
    InsufficientBalanceError,
    PricingError,
    PricingValidationError,
    StorageUnavailableError,
)
from app.core.money import InvalidAmountError, round2, to_amount
from app.models.loyalty import (
    LoyaltyAccount,
    LoyaltyTier,
    LoyaltyTransaction,
    LoyaltyTransactionType,
)
from app.services.settings_service import PricingSettings, RestaurantSettingsService
from app.services.unit_of_work import atomic

logger = logging.getLogger(__name__)


TIER_THRESHOLDS = (
    (10000, LoyaltyTier.PLATINUM),
    (5000, LoyaltyTier.GOLD),
    (1000, LoyaltyTier.SILVER),
)


@dataclass
class LoyaltyEarning:
    success: bool
    points_earned: int = 0
    account: Optional[LoyaltyAccount] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


@dataclass
class LoyaltyRedemption:
    success: bool
    discount_amount: float = 0.0
    new_balance: Optional[int] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


def _validate_points(points: Any) -> int:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise PricingValidationError("Points must be a positive whole number", Instrument.LOYALTY)
    return points


class LoyaltyService:
    """Loyalty accounts, earning, redemption and admin adjustments."""

    def __init__(self, db: AsyncSession, pricing_settings: Optional[PricingSettings] = None):
        self.db = db
        self._pricing_settings = pricing_settings

    async def get_pricing_settings(self) -> PricingSettings:
        if self._pricing_settings is None:
            self._pricing_settings = await RestaurantSettingsService(self.db).get_pricing_settings()
        return self._pricing_settings

    # ==================== Accounts ====================

    async def get_account(self, user_id: str) -> Optional[LoyaltyAccount]:
        result = await self.db.execute(
            select(LoyaltyAccount).where(LoyaltyAccount.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create_account(self, user_id: str) -> LoyaltyAccount:
        account = await self.get_account(user_id)
        if account:
            return account

        try:
            async with self.db.begin_nested():
                account = LoyaltyAccount(
                    user_id=user_id,
                    points=0,
                    lifetime_points=0,
                    tier=LoyaltyTier.BRONZE.value,
                )
                self.db.add(account)
                await self.db.flush()
        except IntegrityError:
            # Created concurrently by another request
            account = await self.get_account(user_id)
            if account is None:
                raise

        logger.info(f"Opened loyalty account for user {user_id}")
        return account

    @staticmethod
    def calculate_tier(lifetime_points: int) -> str:
        for threshold, tier in TIER_THRESHOLDS:
            if lifetime_points >= threshold:
                return tier.value
        return LoyaltyTier.BRONZE.value

    # ==================== Valuation ====================

    async def calculate_points_to_earn(self, order_total: Any) -> int:
        pricing = await self.get_pricing_settings()
        if not pricing.enable_loyalty_points:
            return 0
        try:
            total = to_amount(order_total)
        except InvalidAmountError as e:
            raise PricingValidationError(f"order_total: {e}", Instrument.LOYALTY)
        return max(0, math.floor(total * pricing.loyalty_points_per_dollar))

    async def get_points_value(self, points: int) -> float:
        """Currency value of a number of points (loyalty_points_for_free points = 1.00)."""
        pricing = await self.get_pricing_settings()
        return round2(points / pricing.loyalty_points_for_free)

    async def quote_redemption(self, user_id: Optional[str], points: Any) -> float:
        """
        Discount a redemption would be worth, checking the balance without
        touching it. Raises when the redemption could not go through.
        """
        points = _validate_points(points)
        if not user_id:
            raise PricingValidationError("user_id is required to redeem points", Instrument.LOYALTY)

        pricing = await self.get_pricing_settings()
        if not pricing.enable_loyalty_points:
            raise InstrumentStateError("Loyalty program is disabled", Instrument.LOYALTY)

        account = await self.get_account(user_id)
        if not account or account.points < points:
            raise InsufficientBalanceError("Insufficient points", Instrument.LOYALTY)

        return await self.get_points_value(points)

    # ==================== Earning ====================

    async def earn_points(
        self,
        user_id: str,
        order_id: str,
        order_total: Any,
        description: Optional[str] = None,
    ) -> LoyaltyEarning:
        try:
            points = await self.calculate_points_to_earn(order_total)
            if points <= 0:
                return LoyaltyEarning(success=False, error="No points to earn")

            async with atomic(self.db):
                account = await self.get_or_create_account(user_id)
                result = await self.db.execute(
                    update(LoyaltyAccount)
                    .where(LoyaltyAccount.id == account.id)
                    .values(
                        points=LoyaltyAccount.points + points,
                        lifetime_points=LoyaltyAccount.lifetime_points + points,
                        updated_at=utc_now(),
                    )
                    .returning(LoyaltyAccount.lifetime_points)
                    .execution_options(synchronize_session=False)
                )
                lifetime = result.scalar_one()
                await self.db.execute(
                    update(LoyaltyAccount)
                    .where(LoyaltyAccount.id == account.id)
                    .values(tier=self.calculate_tier(lifetime))
                    .execution_options(synchronize_session=False)
                )
                self.db.add(LoyaltyTransaction(
                    loyalty_account_id=account.id,
                    order_id=order_id,
                    points=points,
                    type=LoyaltyTransactionType.EARNED.value,
                    description=description or f"Earned {points} points from order",
                ))
                await self.db.flush()
        except StorageUnavailableError:
            raise
        except PricingError as e:
            return LoyaltyEarning(success=False, error=e.message, error_code=e.error_code.value)
        except SQLAlchemyError as e:
            logger.error(f"Earning points failed for user {user_id}: {e}")
            raise StorageUnavailableError() from e

        await self.db.refresh(account)
        logger.info(f"User {user_id} earned {points} points on order {order_id}")
        return LoyaltyEarning(success=True, points_earned=points, account=account)

    # ==================== Redemption ====================

    async def debit_points(
        self,
        user_id: str,
        points: Any,
        order_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> LoyaltyRedemption:
        """
        Take points off an account and append a REDEEMED transaction.

        Raises InsufficientBalanceError (nothing written) when the account
        holds fewer points than requested.
        """
        points = _validate_points(points)
        pricing = await self.get_pricing_settings()
        if not pricing.enable_loyalty_points:
            raise InstrumentStateError("Loyalty program is disabled", Instrument.LOYALTY)

        async with atomic(self.db):
            account = await self.get_account(user_id)
            if not account:
                raise InsufficientBalanceError("Insufficient points", Instrument.LOYALTY)

            result = await self.db.execute(
                update(LoyaltyAccount)
                .where(LoyaltyAccount.id == account.id, LoyaltyAccount.points >= points)
                .values(points=LoyaltyAccount.points - points, updated_at=utc_now())
                .returning(LoyaltyAccount.points)
                .execution_options(synchronize_session=False)
            )
            new_balance = result.scalar_one_or_none()
            if new_balance is None:
                raise InsufficientBalanceError("Insufficient points", Instrument.LOYALTY)

            self.db.add(LoyaltyTransaction(
                loyalty_account_id=account.id,
                order_id=order_id,
                points=-points,
                type=LoyaltyTransactionType.REDEEMED.value,
                description=description or f"Redeemed {points} points",
            ))
            await self.db.flush()

        await self.db.refresh(account)
        discount = await self.get_points_value(points)
        logger.info(f"User {user_id} redeemed {points} points for {discount:.2f}")
        return LoyaltyRedemption(success=True, discount_amount=discount, new_balance=new_balance)

    async def redeem_points(
        self,
        user_id: str,
        points: Any,
        order_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> LoyaltyRedemption:
        try:
            return await self.debit_points(user_id, points, order_id, description)
        except StorageUnavailableError:
            raise
        except PricingError as e:
            return LoyaltyRedemption(success=False, error=e.message, error_code=e.error_code.value)
        except SQLAlchemyError as e:
            logger.error(f"Redeeming points failed for user {user_id}: {e}")
            raise StorageUnavailableError() from e

    # ==================== History & admin ====================

    async def get_transaction_history(self, user_id: str, limit: int = 50) -> List[LoyaltyTransaction]:
        account = await self.get_account(user_id)
        if not account:
            return []
        result = await self.db.execute(
            select(LoyaltyTransaction)
            .where(LoyaltyTransaction.loyalty_account_id == account.id)
            .order_by(desc(LoyaltyTransaction.created_at))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def adjust_points(
        self,
        user_id: str,
        points: int,
        type: str = LoyaltyTransactionType.ADJUSTED.value,
        description: Optional[str] = None,
    ) -> LoyaltyAccount:
        """
        Admin correction. EXPIRED always removes points; ADJUSTED adds or
        removes by sign. Raises InsufficientBalanceError rather than taking
        the balance below zero.
        """
        if type not in (LoyaltyTransactionType.ADJUSTED.value, LoyaltyTransactionType.EXPIRED.value):
            raise PricingValidationError(f"Unsupported adjustment type '{type}'", Instrument.LOYALTY)
        if isinstance(points, bool) or not isinstance(points, int) or points == 0:
            raise PricingValidationError("Points must be a non-zero whole number", Instrument.LOYALTY)

        delta = -abs(points) if type == LoyaltyTransactionType.EXPIRED.value else points

        async with atomic(self.db):
            account = await self.get_or_create_account(user_id)
            result = await self.db.execute(
                update(LoyaltyAccount)
                .where(LoyaltyAccount.id == account.id, LoyaltyAccount.points + delta >= 0)
                .values(points=LoyaltyAccount.points + delta, updated_at=utc_now())
                .returning(LoyaltyAccount.points)
                .execution_options(synchronize_session=False)
            )
            if result.scalar_one_or_none() is None:
                raise InsufficientBalanceError("Adjustment would make the balance negative", Instrument.LOYALTY)

            self.db.add(LoyaltyTransaction(
                loyalty_account_id=account.id,
                points=delta,
                type=type,
                description=description or f"{type} {abs(points)} points",
            ))
            await self.db.flush()

        await self.db.refresh(account)
        logger.info(f"Adjusted loyalty points for user {user_id} by {delta} ({type})")
        return account
