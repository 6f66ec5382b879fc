"""Pytest fixtures for storefront tests."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.pool import NullPool

from storefront.application.create_order import CreateOrderDTO, CreateOrderUseCase
from storefront.application.interfaces import NotificationsService
from storefront.database import build_engine, build_session_factory
from storefront.domain.models import (
    Book, CartLine, DiscountType, PaymentMethod, PromoCode, ShippingAddress,
)
from storefront.infrastructure.db_schema import metadata
from storefront.infrastructure.http_clients import RazorpayPaymentGateway
from storefront.infrastructure.unit_of_work import UnitOfWork

KEY_SECRET = "test_key_secret"

ADDRESS = ShippingAddress(address="12 Anna Salai", city="Chennai", postal_code="600002", country="India")


class FakeNotifications(NotificationsService):
    def __init__(self):
        self.sent = []

    async def send(self, message, reference_id, idempotency_key, user_id):
        self.sent.append({"reference_id": reference_id, "idempotency_key": idempotency_key, "user_id": user_id})
        return True


class RecordingDispatcher:
    """Records background work instead of scheduling it."""

    def __init__(self):
        self.descriptions = []

    def __call__(self, coro, description):
        self.descriptions.append(description)
        coro.close()


class FakeGateway(RazorpayPaymentGateway):
    """Real signature scheme, canned provider orders."""

    def __init__(self):
        super().__init__("rzp_test_key", KEY_SECRET)
        self.created = []

    async def create_session(self, amount, currency, receipt):
        self._ensure_configured()
        provider_order = {"id": f"order_{uuid.uuid4().hex[:14]}", "amount": amount, "currency": currency}
        self.created.append({**provider_order, "receipt": receipt})
        return provider_order


class Shop:
    """Seeds and inspects the test database."""

    def __init__(self, uow):
        self.uow = uow

    def add_book(self, book_id="book-1", price="100.00", stock=10, title=None, category="fiction"):
        book = Book(id=book_id, title=title or f"Title {book_id}", category=category, price=Decimal(price), stock=stock)

        async def _add():
            async with self.uow() as uow:
                await uow.books.create(book)
                await uow.commit()

        asyncio.run(_add())
        return book

    def add_promo(
        self,
        code="SAVE10",
        discount_type=DiscountType.PERCENT,
        discount_value="10",
        usage_limit=5,
        used_count=0,
        per_user_limit=1,
        min_cart_value="0",
        max_discount=None,
        expires_in=timedelta(days=30),
        is_active=True
    ):
        promo = PromoCode(
            id=str(uuid.uuid4()),
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            min_cart_value=Decimal(min_cart_value),
            max_discount=Decimal(max_discount) if max_discount is not None else None,
            usage_limit=usage_limit,
            used_count=used_count,
            per_user_limit=per_user_limit,
            expiry_date=datetime.now(timezone.utc) + expires_in,
            is_active=is_active
        )

        async def _add():
            async with self.uow() as uow:
                await uow.promo_codes.create(promo)
                await uow.commit()

        asyncio.run(_add())
        return promo

    def _read(self, fn):
        async def _run():
            async with self.uow() as uow:
                return await fn(uow)

        return asyncio.run(_run())

    def stock(self, book_id):
        return self._read(lambda uow: uow.books.get_by_id(book_id)).stock

    def promo(self, promo_code_id):
        return self._read(lambda uow: uow.promo_codes.get_by_id(promo_code_id))

    def usages(self, promo_code_id):
        return self._read(lambda uow: uow.promo_usages.list_for_code(promo_code_id))

    def order(self, order_id):
        return self._read(lambda uow: uow.orders.get_by_id(order_id))

    def orders_of(self, user_id):
        return self._read(lambda uow: uow.orders.list_for_user(user_id))

    def events(self, order_id):
        return self._read(lambda uow: uow.outbox.list_for_order(order_id))


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite database per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}", poolclass=NullPool)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    asyncio.run(_create())
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def uow(session_factory):
    return UnitOfWork(session_factory)


@pytest.fixture
def shop(uow):
    return Shop(uow)


@pytest.fixture
def notifications():
    return FakeNotifications()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def checkout(uow, notifications, dispatcher):
    """Builds the checkout use case with the storefront's shipping rule."""

    def _build(timeout=15.0):
        return CreateOrderUseCase(
            uow,
            notifications,
            dispatcher,
            free_shipping_threshold=Decimal("499"),
            shipping_fee=Decimal("49"),
            timeout=timeout
        )

    return _build


def cart(user_id, lines, promo_code_id=None, payment_method=PaymentMethod.COD):
    return CreateOrderDTO(
        user_id=user_id,
        order_items=[line if isinstance(line, CartLine) else CartLine(product_id=line[0], qty=line[1]) for line in lines],
        shipping_address=ADDRESS,
        payment_method=payment_method,
        promo_code_id=promo_code_id
    )


@pytest.fixture
def place_order(checkout):
    """Places one order synchronously."""

    def _place(user_id, lines, promo_code_id=None, payment_method=PaymentMethod.COD):
        return asyncio.run(checkout()(cart(user_id, lines, promo_code_id, payment_method)))

    return _place


@pytest.fixture
def make_cart():
    return cart
