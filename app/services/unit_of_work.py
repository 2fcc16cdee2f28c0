"""
Unit of Work for multi-ledger pricing mutations.

    async with atomic(db):
        await coupon_service.record_usage(...)
        await gift_card_service.use_gift_card(...)

Everything inside the block commits together or not at all. When the
session already has a transaction open (the usual case inside a request,
where get_db() owns the outer transaction) the block runs in a SAVEPOINT,
so a failure rolls back only the block and leaves earlier work, such as a
persisted EXPIRED flip, intact. Otherwise a new transaction is started and
committed on exit.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import StorageUnavailableError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    try:
        if db.in_transaction():
            async with db.begin_nested():
                yield db
        else:
            async with db.begin():
                yield db
    except SQLAlchemyError as e:
        logger.error(f"Pricing unit of work failed at the storage layer: {e}")
        raise StorageUnavailableError() from e
