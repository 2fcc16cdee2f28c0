"""
Gift Card Model

Stored-value instrument identified by code and optional PIN. The balance
only ever decreases through redemptions; every debit is journaled in
GiftCardTransaction.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, DateTime, Text, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import MoneyType, UUIDType


class GiftCardStatus(str, Enum):
    """Gift card status enumeration."""
    ACTIVE = "ACTIVE"
    USED = "USED"  # Balance fully redeemed
    EXPIRED = "EXPIRED"
    INACTIVE = "INACTIVE"


class GiftCardTransactionType(str, Enum):
    USAGE = "USAGE"


class GiftCard(Base):
    __tablename__ = "gift_cards"
    __table_args__ = (
        Index("ix_gift_cards_status", "status"),
        CheckConstraint(
            "current_balance >= 0 AND current_balance <= original_balance",
            name="gift_cards_balance_bounds",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True
    )
    pin: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Hashed PIN, null = no PIN required"
    )

    original_balance: Mapped[float] = mapped_column(MoneyType, nullable=False)
    current_balance: Mapped[float] = mapped_column(MoneyType, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=GiftCardStatus.ACTIVE.value,
        comment="ACTIVE, USED, EXPIRED, INACTIVE"
    )

    purchased_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    purchased_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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
        return f"<GiftCard(code='{self.code}', balance={self.current_balance}, status='{self.status}')>"


class GiftCardTransaction(Base):
    """Immutable journal entry for a gift card balance change."""
    __tablename__ = "gift_card_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    gift_card_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    amount: Mapped[float] = mapped_column(
        MoneyType,
        nullable=False,
        comment="Negative for usage"
    )
    balance_after: Mapped[float] = mapped_column(MoneyType, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
