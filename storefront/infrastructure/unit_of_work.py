from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.infrastructure.repositories import (
    SQLAlchemyBookRepository,
    SQLAlchemyPromoCodeRepository,
    SQLAlchemyPromoUsageRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyOutboxRepository
)


class UnitOfWork:
    """Opens one storefront transaction per `async with uow() as tx`.

    Work that was not committed when the block exits is rolled back, also when
    the block is left through cancellation or a checkout timeout.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            tx = StorefrontTransaction(session)
            try:
                yield tx
            finally:
                if not tx.committed:
                    await session.rollback()


class StorefrontTransaction:
    """Repositories sharing one session"""

    def __init__(self, session: AsyncSession):
        self._session = session
        self.committed = False
        self.books = SQLAlchemyBookRepository(session)
        self.promo_codes = SQLAlchemyPromoCodeRepository(session)
        self.promo_usages = SQLAlchemyPromoUsageRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)
        self.outbox = SQLAlchemyOutboxRepository(session)

    async def commit(self):
        await self._session.commit()
        self.committed = True

    async def rollback(self):
        await self._session.rollback()
        self.committed = False
