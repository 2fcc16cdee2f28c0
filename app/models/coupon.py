"""
Coupon Model for the Restaurant Storefront

Supports percentage, fixed, free-shipping and buy-X-get-Y coupons with
global and per-user usage limits and a validity window.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import JSONType, MoneyType, UUIDType


class CouponType(str, Enum):
    """Coupon discount type enumeration."""
    PERCENTAGE = "PERCENTAGE"  # e.g., 10% off
    FIXED = "FIXED"  # e.g., $5 off
    BUY_X_GET_Y = "BUY_X_GET_Y"  # e.g., buy 2 get 1
    FREE_SHIPPING = "FREE_SHIPPING"  # Waives the delivery fee


class CouponStatus(str, Enum):
    """Coupon status enumeration."""
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"


class Coupon(Base):
    """
    Coupon/Promo code issued by an administrator.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        Index("ix_coupons_status", "status"),
        Index("ix_coupons_validity", "valid_from", "valid_until"),
        CheckConstraint(
            "usage_limit IS NULL OR usage_count <= usage_limit",
            name="coupons_usage_within_limit",
        ),
        CheckConstraint("usage_count >= 0", name="coupons_usage_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Coupon Code
    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Unique coupon code (stored upper-cased)"
    )

    # Display Info
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Display name for the coupon"
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Description shown to customers"
    )

    # Discount Type & Value
    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=CouponType.PERCENTAGE.value,
        comment="PERCENTAGE, FIXED, BUY_X_GET_Y, FREE_SHIPPING"
    )
    discount_value: Mapped[Optional[float]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Discount value (percentage or amount)"
    )
    max_discount_amount: Mapped[Optional[float]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Cap on discount for PERCENTAGE type"
    )
    buy_x_get_y: Mapped[Optional[dict]] = mapped_column(
        JSONType,
        nullable=True,
        comment="{buy_quantity, get_quantity, get_item_id}"
    )

    # Minimum Requirements
    min_order_amount: Mapped[Optional[float]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Minimum order subtotal to apply coupon"
    )

    # Usage Limits
    usage_limit: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Total times this coupon can be used"
    )
    usage_limit_per_user: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="Times each user can use this coupon"
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of times coupon has been used"
    )

    # Validity Period
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    valid_until: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=CouponStatus.ACTIVE.value,
        comment="ACTIVE, INACTIVE, EXPIRED"
    )

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Coupon(code='{self.code}', type='{self.type}', status='{self.status}')>"


class CouponUsage(Base):
    """
    Append-only record of a coupon redeemed on an order.
    """
    __tablename__ = "coupon_usages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        nullable=False,
        index=True
    )
    order_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True
    )
    discount_amount: Mapped[float] = mapped_column(
        MoneyType,
        nullable=False,
        comment="Actual discount applied"
    )
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
