import os
from datetime import timedelta
from decimal import Decimal

import pytest

# Settings require a DATABASE_URL at import time; tests build their own engines
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app import models  # noqa: F401
from app.core.clock import utc_now
from app.core.security import hash_pin
from app.database import Base, build_engine, get_db
from app.main import app
from app.models.coupon import Coupon, CouponStatus, CouponType
from app.models.gift_card import GiftCard, GiftCardStatus
from app.models.loyalty import LoyaltyAccount, LoyaltyTier
from app.models.restaurant_settings import RestaurantSettings


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'pricing.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ==================== Factories ====================

@pytest.fixture
def make_coupon(db):
    async def _make(**overrides) -> Coupon:
        now = utc_now()
        values = dict(
            code="SAVE10",
            name="Save 10%",
            type=CouponType.PERCENTAGE.value,
            discount_value=Decimal("10.00"),
            usage_count=0,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=30),
            status=CouponStatus.ACTIVE.value,
        )
        values.update(overrides)
        coupon = Coupon(**values)
        db.add(coupon)
        await db.commit()
        return coupon
    return _make


@pytest.fixture
def make_gift_card(db):
    async def _make(balance="50.00", pin=None, **overrides) -> GiftCard:
        values = dict(
            code="GIFT-AAAA-BBBB",
            pin=hash_pin(pin) if pin else None,
            original_balance=Decimal(balance),
            current_balance=Decimal(balance),
            currency="USD",
            status=GiftCardStatus.ACTIVE.value,
        )
        values.update(overrides)
        gift_card = GiftCard(**values)
        db.add(gift_card)
        await db.commit()
        return gift_card
    return _make


@pytest.fixture
def make_loyalty_account(db):
    async def _make(user_id="user-1", points=0, lifetime_points=None) -> LoyaltyAccount:
        account = LoyaltyAccount(
            user_id=user_id,
            points=points,
            lifetime_points=points if lifetime_points is None else lifetime_points,
            tier=LoyaltyTier.BRONZE.value,
        )
        db.add(account)
        await db.commit()
        return account
    return _make


@pytest.fixture
def make_settings(db):
    async def _make(**overrides) -> RestaurantSettings:
        row = RestaurantSettings(id="default", **overrides)
        db.add(row)
        await db.commit()
        return row
    return _make
