import uuid
from decimal import Decimal
from typing import Optional, List, Tuple
from datetime import datetime, timezone
from sqlalchemy import select, insert, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.models import (
    Book, Order, OrderItem, OrderStatus, PaymentMethod, PaymentResult, PromoCode, PromoCodeUsage,
    DiscountType, ShippingAddress,
)
from storefront.infrastructure.db_schema import (
    books_tbl, promo_codes_tbl, promo_code_usages_tbl, orders_tbl, outbox_events_tbl,
)
from storefront.application.interfaces import (
    BookRepository, PromoCodeRepository, PromoUsageRepository, OrderRepository, OutboxRepository,
)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything is stored in UTC"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyBookRepository(BookRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, book_id: str) -> Optional[Book]:
        result = await self._session.execute(
            select(books_tbl).where(books_tbl.c.id == book_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def create(self, book: Book) -> None:
        await self._session.execute(
            insert(books_tbl).values(
                id=book.id,
                title=book.title,
                category=book.category,
                price=book.price,
                stock=book.stock
            )
        )

    async def try_reserve(self, book_id: str, qty: int) -> Optional[Tuple[str, Decimal]]:
        # check and decrement in one statement
        stmt = (
            update(books_tbl)
            .where(books_tbl.c.id == book_id, books_tbl.c.stock >= qty)
            .values(stock=books_tbl.c.stock - qty, updated_at=_now())
            .returning(books_tbl.c.title, books_tbl.c.price)
        )
        result = await self._session.execute(stmt)
        row = result.fetchone()
        if row is None:
            return None
        return row.title, Decimal(row.price)

    async def release(self, book_id: str, qty: int) -> None:
        stmt = (
            update(books_tbl)
            .where(books_tbl.c.id == book_id)
            .values(stock=books_tbl.c.stock + qty, updated_at=_now())
        )
        await self._session.execute(stmt)

    async def list_low_stock(self, threshold: int, category: Optional[str] = None, limit: int = 20) -> List[Book]:
        query = (
            select(books_tbl)
            .where(books_tbl.c.stock >= 0, books_tbl.c.stock <= threshold)
            .order_by(books_tbl.c.stock.asc(), books_tbl.c.title.asc())
            .limit(limit)
        )
        if category:
            query = query.where(books_tbl.c.category == category)
        result = await self._session.execute(query)
        return [self._to_domain(row) for row in result.fetchall()]

    def _to_domain(self, row) -> Book:
        return Book(
            id=row.id,
            title=row.title,
            category=row.category,
            price=row.price,
            stock=row.stock
        )


class SQLAlchemyPromoCodeRepository(PromoCodeRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, promo_code_id: str) -> Optional[PromoCode]:
        result = await self._session.execute(
            select(promo_codes_tbl).where(promo_codes_tbl.c.id == promo_code_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_code(self, code: str) -> Optional[PromoCode]:
        result = await self._session.execute(
            select(promo_codes_tbl).where(promo_codes_tbl.c.code == code)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_all(self) -> List[PromoCode]:
        result = await self._session.execute(
            select(promo_codes_tbl).order_by(promo_codes_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, promo: PromoCode) -> None:
        now = _now()
        stmt = insert(promo_codes_tbl).values(
            id=promo.id,
            code=promo.code,
            discount_type=promo.discount_type,
            discount_value=promo.discount_value,
            min_cart_value=promo.min_cart_value,
            max_discount=promo.max_discount,
            usage_limit=promo.usage_limit,
            used_count=promo.used_count,
            per_user_limit=promo.per_user_limit,
            expiry_date=promo.expiry_date,
            is_active=promo.is_active,
            created_at=promo.created_at or now,
            updated_at=promo.updated_at or now
        )
        await self._session.execute(stmt)

    async def update(self, promo_code_id: str, values: dict) -> None:
        stmt = (
            update(promo_codes_tbl)
            .where(promo_codes_tbl.c.id == promo_code_id)
            .values(**values, updated_at=_now())
        )
        await self._session.execute(stmt)

    async def try_increment_usage(self, promo_code_id: str, now: datetime) -> bool:
        # the limit check and the increment are one statement; the row stays
        # locked until the surrounding transaction ends
        stmt = (
            update(promo_codes_tbl)
            .where(
                promo_codes_tbl.c.id == promo_code_id,
                promo_codes_tbl.c.is_active.is_(True),
                promo_codes_tbl.c.expiry_date >= now,
                promo_codes_tbl.c.used_count < promo_codes_tbl.c.usage_limit
            )
            .values(used_count=promo_codes_tbl.c.used_count + 1, updated_at=now)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> PromoCode:
        return PromoCode(
            id=row.id,
            code=row.code,
            discount_type=DiscountType(row.discount_type),
            discount_value=row.discount_value,
            min_cart_value=row.min_cart_value,
            max_discount=row.max_discount,
            usage_limit=row.usage_limit,
            used_count=row.used_count,
            per_user_limit=row.per_user_limit,
            expiry_date=_aware(row.expiry_date),
            is_active=row.is_active,
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at)
        )


class SQLAlchemyPromoUsageRepository(PromoUsageRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def count_for(self, promo_code_id: str, user_id: str) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(promo_code_usages_tbl)
            .where(
                promo_code_usages_tbl.c.promo_code_id == promo_code_id,
                promo_code_usages_tbl.c.user_id == user_id
            )
        )
        return result.scalar_one()

    async def record(self, promo_code_id: str, user_id: str, order_id: str, discount_amount: Decimal) -> str:
        usage_id = str(uuid.uuid4())
        stmt = insert(promo_code_usages_tbl).values(
            id=usage_id,
            promo_code_id=promo_code_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
            used_at=_now()
        )
        await self._session.execute(stmt)
        return usage_id

    async def list_for_code(self, promo_code_id: str) -> List[PromoCodeUsage]:
        result = await self._session.execute(
            select(promo_code_usages_tbl)
            .where(promo_code_usages_tbl.c.promo_code_id == promo_code_id)
            .order_by(promo_code_usages_tbl.c.used_at.desc())
        )
        return [
            PromoCodeUsage(
                id=row.id,
                promo_code_id=row.promo_code_id,
                user_id=row.user_id,
                order_id=row.order_id,
                discount_amount=row.discount_amount,
                used_at=_aware(row.used_at)
            )
            for row in result.fetchall()
        ]


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._session.execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Order]:
        result = await self._session.execute(
            select(orders_tbl)
            .where(orders_tbl.c.user_id == user_id)
            .order_by(orders_tbl.c.created_at.desc())
        )
        return [self._to_domain(row) for row in result.fetchall()]

    async def list_all(self, status: Optional[OrderStatus] = None, limit: int = 100, offset: int = 0) -> List[Order]:
        query = select(orders_tbl).order_by(orders_tbl.c.created_at.desc(), orders_tbl.c.id)
        if status is not None:
            query = query.where(orders_tbl.c.status == status)
        result = await self._session.execute(query.limit(limit).offset(offset))
        return [self._to_domain(row) for row in result.fetchall()]

    async def create(self, order: Order) -> None:
        stmt = insert(orders_tbl).values(
            id=order.id,
            user_id=order.user_id,
            order_items=[item.model_dump(mode="json") for item in order.order_items],
            shipping_address=order.shipping_address.model_dump(mode="json"),
            payment_method=order.payment_method,
            items_price=order.items_price,
            tax_price=order.tax_price,
            shipping_price=order.shipping_price,
            discount_amount=order.discount_amount,
            total_price=order.total_price,
            promo_code_id=order.promo_code_id,
            is_paid=order.is_paid,
            is_delivered=order.is_delivered,
            status=order.status,
            created_at=order.created_at,
            updated_at=order.updated_at
        )
        await self._session.execute(stmt)

    async def transition_status(self, order_id: str, source: OrderStatus, values: dict) -> bool:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.status == source)
            .values(**values, updated_at=_now())
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_paid_if_unpaid(self, order_id: str, result: PaymentResult, paid_at: datetime) -> bool:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.is_paid.is_(False))
            .values(
                is_paid=True,
                paid_at=paid_at,
                payment_result=result.model_dump(mode="json"),
                updated_at=paid_at
            )
        )
        updated = await self._session.execute(stmt)
        return updated.rowcount == 1

    async def set_payment_session(self, order_id: str, session_id: str) -> bool:
        stmt = (
            update(orders_tbl)
            .where(orders_tbl.c.id == order_id, orders_tbl.c.payment_session_id.is_(None))
            .values(payment_session_id=session_id, updated_at=_now())
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    def _to_domain(self, row) -> Order:
        """DB row → Domain"""
        return Order(
            id=row.id,
            user_id=row.user_id,
            order_items=[OrderItem(**item) for item in row.order_items],
            shipping_address=ShippingAddress(**row.shipping_address),
            payment_method=PaymentMethod(row.payment_method),
            items_price=row.items_price,
            tax_price=row.tax_price,
            shipping_price=row.shipping_price,
            discount_amount=row.discount_amount,
            total_price=row.total_price,
            promo_code_id=row.promo_code_id,
            is_paid=row.is_paid,
            paid_at=_aware(row.paid_at),
            payment_result=PaymentResult(**row.payment_result) if row.payment_result else None,
            payment_session_id=row.payment_session_id,
            is_delivered=row.is_delivered,
            delivered_at=_aware(row.delivered_at),
            status=OrderStatus(row.status),
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at)
        )


class SQLAlchemyOutboxRepository(OutboxRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        event_id = str(uuid.uuid4())
        stmt = insert(outbox_events_tbl).values(
            id=event_id,
            event_type=event_type,
            event_data=event_data,  # JSON column serialises it
            order_id=order_id,
            status="pending",
            created_at=_now()
        )
        await self._session.execute(stmt)
        return event_id

    async def get_pending(self, limit: int = 10) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.status == "pending")
            .order_by(outbox_events_tbl.c.created_at.asc())
            .limit(limit)
        )
        rows = result.fetchall()

        return [
            {
                "id": row.id,
                "event_type": row.event_type,
                "event_data": row.event_data,
                "order_id": row.order_id
            }
            for row in rows
        ]

    async def list_for_order(self, order_id: str) -> List[dict]:
        result = await self._session.execute(
            select(outbox_events_tbl)
            .where(outbox_events_tbl.c.order_id == order_id)
            .order_by(outbox_events_tbl.c.created_at.asc())
        )
        return [
            {"id": row.id, "event_type": row.event_type, "event_data": row.event_data, "status": row.status}
            for row in result.fetchall()
        ]

    async def mark_as_published(self, event_id: str) -> None:
        stmt = (
            update(outbox_events_tbl)
            .where(outbox_events_tbl.c.id == event_id)
            .values(status="published")
        )
        await self._session.execute(stmt)
