"""
Restaurant settings provider.

Supplies the tax rate, minimum order amount, delivery fee and loyalty ratios
used by pricing. Values come from the restaurant_settings row and fall back
to application configuration column by column.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.money import to_amount
from app.models.restaurant_settings import RestaurantSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PricingSettings:
    tax_rate: float
    min_order_amount: float
    delivery_fee: float
    enable_loyalty_points: bool
    loyalty_points_per_dollar: float
    loyalty_points_for_free: int

    @classmethod
    def defaults(cls) -> "PricingSettings":
        return cls(
            tax_rate=settings.DEFAULT_TAX_RATE,
            min_order_amount=settings.DEFAULT_MIN_ORDER_AMOUNT,
            delivery_fee=settings.DEFAULT_DELIVERY_FEE,
            enable_loyalty_points=settings.LOYALTY_ENABLED,
            loyalty_points_per_dollar=settings.LOYALTY_POINTS_PER_DOLLAR,
            loyalty_points_for_free=settings.LOYALTY_POINTS_FOR_FREE,
        )


class RestaurantSettingsService:
    """Reads pricing settings; one instance per request/session."""

    def __init__(self, db: AsyncSession, settings_id: Optional[str] = None):
        self.db = db
        self.settings_id = settings_id or settings.RESTAURANT_SETTINGS_ID

    async def get_pricing_settings(self) -> PricingSettings:
        defaults = PricingSettings.defaults()

        result = await self.db.execute(
            select(RestaurantSettings).where(RestaurantSettings.id == self.settings_id)
        )
        row = result.scalar_one_or_none()
        if row is None:
            logger.debug(f"No restaurant settings row '{self.settings_id}', using defaults")
            return defaults

        points_for_free = row.loyalty_points_for_free or defaults.loyalty_points_for_free
        if points_for_free <= 0:
            logger.warning(f"Ignoring non-positive loyalty_points_for_free={points_for_free}")
            points_for_free = defaults.loyalty_points_for_free

        return PricingSettings(
            tax_rate=to_amount(row.tax_rate) if row.tax_rate is not None else defaults.tax_rate,
            min_order_amount=(
                to_amount(row.min_order_amount)
                if row.min_order_amount is not None else defaults.min_order_amount
            ),
            delivery_fee=(
                to_amount(row.delivery_fee) if row.delivery_fee is not None else defaults.delivery_fee
            ),
            enable_loyalty_points=(
                row.enable_loyalty_points
                if row.enable_loyalty_points is not None else defaults.enable_loyalty_points
            ),
            loyalty_points_per_dollar=(
                to_amount(row.loyalty_points_per_dollar)
                if row.loyalty_points_per_dollar is not None else defaults.loyalty_points_per_dollar
            ),
            loyalty_points_for_free=int(points_for_free),
        )
