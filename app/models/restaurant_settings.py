"""Restaurant-wide pricing settings (single row, id='default')."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import MoneyType


class RestaurantSettings(Base):
    __tablename__ = "restaurant_settings"

    id: Mapped[str] = mapped_column(String(50), primary_key=True, default="default")

    tax_rate: Mapped[Optional[float]] = mapped_column(
        Numeric(6, 4),
        nullable=True,
        comment="e.g. 0.0825 for 8.25%"
    )
    min_order_amount: Mapped[Optional[float]] = mapped_column(MoneyType, nullable=True)
    delivery_fee: Mapped[Optional[float]] = mapped_column(MoneyType, nullable=True)

    enable_loyalty_points: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    loyalty_points_per_dollar: Mapped[Optional[float]] = mapped_column(
        Numeric(6, 2),
        nullable=True,
        comment="Points earned per currency unit spent"
    )
    loyalty_points_for_free: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Points redeemed per 1.00 of discount"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )
