"""Tests for checkout: stock, promo redemption and the order row together."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from storefront.application.validate_promo import ValidatePromoCodeUseCase
from storefront.domain.exceptions import (
    CheckoutTimeoutError,
    EmptyCartError,
    InsufficientStockError,
    InvalidCartError,
    InvalidRequestError,
    OrderPlacementError,
    PriceChangedError,
    PromoBelowMinimumError,
    PromoExpiredError,
    PromoLimitReachedError,
    PromoNotFoundError,
    PromoPerUserLimitReachedError,
)
from storefront.domain.models import CartLine, DiscountType, OrderStatus, PaymentMethod
from storefront.infrastructure.db_schema import books_tbl
from storefront.infrastructure.repositories import SQLAlchemyBookRepository, SQLAlchemyPromoUsageRepository


class TestPricing:
    def test_shipping_fee_below_threshold(self, shop, place_order):
        shop.add_book("book-1", price="200.00", stock=5)

        order = place_order("user-1", [("book-1", 2)])

        assert order.items_price == Decimal("400.00")
        assert order.shipping_price == Decimal("49.00")
        assert order.tax_price == Decimal("0.00")
        assert order.total_price == Decimal("449.00")

    def test_threshold_itself_still_pays_shipping(self, shop, place_order):
        shop.add_book("book-1", price="499.00", stock=5)
        order = place_order("user-1", [("book-1", 1)])
        assert order.shipping_price == Decimal("49.00")

    def test_free_shipping_above_threshold(self, shop, place_order):
        shop.add_book("book-1", price="250.00", stock=5)
        order = place_order("user-1", [("book-1", 2)])
        assert order.shipping_price == Decimal("0.00")
        assert order.total_price == Decimal("500.00")

    def test_total_round_trips_through_storage(self, shop, place_order):
        shop.add_book("book-1", price="333.33", stock=5)
        shop.add_book("book-2", price="19.99", stock=5)
        promo = shop.add_promo(discount_value="7.5")

        placed = place_order("user-1", [("book-1", 2), ("book-2", 3)], promo_code_id=promo.id)
        stored = shop.order(placed.id)

        assert stored.total_price == (
            stored.items_price + stored.tax_price + stored.shipping_price - stored.discount_amount
        )
        assert stored.total_price == placed.total_price
        assert [(item.product_id, item.qty) for item in stored.order_items] == [("book-1", 2), ("book-2", 3)]

    def test_snapshot_survives_catalog_price_change(self, session_factory, shop, place_order):
        shop.add_book("book-1", price="150.00", stock=5)
        order = place_order("user-1", [("book-1", 1)])

        async def _reprice():
            async with session_factory() as session:
                await session.execute(update(books_tbl).values(price=Decimal("999.00")))
                await session.commit()

        asyncio.run(_reprice())

        stored = shop.order(order.id)
        assert stored.order_items[0].price == Decimal("150.00")
        assert stored.items_price == Decimal("150.00")


class TestCartValidation:
    def test_empty_cart(self, shop, place_order):
        with pytest.raises(EmptyCartError):
            place_order("user-1", [])

    def test_zero_quantity(self, shop, place_order):
        shop.add_book("book-1", stock=5)
        with pytest.raises(InvalidCartError):
            place_order("user-1", [("book-1", 0)])
        assert shop.stock("book-1") == 5

    def test_stale_client_price_rejected(self, shop, place_order):
        shop.add_book("book-1", price="100.00", stock=5)

        with pytest.raises(PriceChangedError) as exc:
            place_order("user-1", [CartLine(product_id="book-1", qty=1, price=Decimal("90.00"))])

        assert exc.value.current == Decimal("100.00")
        assert shop.stock("book-1") == 5
        assert shop.orders_of("user-1") == []

    def test_matching_client_price_accepted(self, shop, place_order):
        shop.add_book("book-1", price="100.00", stock=5)
        order = place_order("user-1", [CartLine(product_id="book-1", qty=1, price=Decimal("100"))])
        assert order.items_price == Decimal("100.00")

    def test_insufficient_stock_releases_earlier_lines(self, shop, place_order):
        shop.add_book("book-1", stock=5)
        shop.add_book("book-2", stock=1)

        with pytest.raises(InsufficientStockError) as exc:
            place_order("user-1", [("book-1", 2), ("book-2", 2)])

        assert exc.value.product_id == "book-2"
        assert shop.stock("book-1") == 5
        assert shop.stock("book-2") == 1
        assert shop.orders_of("user-1") == []


class TestOrderPlacement:
    def test_order_is_pending_and_unpaid(self, shop, place_order):
        shop.add_book("book-1", stock=5)

        order = place_order("user-1", [("book-1", 1)], payment_method=PaymentMethod.RAZORPAY)

        assert order.status == OrderStatus.PENDING
        assert not order.is_paid
        assert not order.is_delivered
        assert shop.stock("book-1") == 4

    def test_created_event_written(self, shop, place_order):
        shop.add_book("book-1", stock=5)
        order = place_order("user-1", [("book-1", 2)])

        events = shop.events(order.id)

        assert [event["event_type"] for event in events] == ["order.created"]
        assert events[0]["event_data"]["items"] == [{"product_id": "book-1", "qty": 2}]
        assert events[0]["status"] == "pending"

    def test_invoice_dispatched_in_background(self, shop, place_order, dispatcher):
        shop.add_book("book-1", stock=5)
        order = place_order("user-1", [("book-1", 1)])
        assert dispatcher.descriptions == [f"Invoice notification for order {order.id}"]

    def test_concurrent_checkouts_for_last_unit(self, shop, checkout, make_cart):
        shop.add_book("book-1", stock=1)
        use_case = checkout()

        async def _run():
            return await asyncio.gather(
                use_case(make_cart("user-1", [("book-1", 1)])),
                use_case(make_cart("user-2", [("book-1", 1)])),
                return_exceptions=True
            )

        results = asyncio.run(_run())

        orders = [r for r in results if not isinstance(r, Exception)]
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(orders) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)
        assert shop.stock("book-1") == 0
        assert len(shop.orders_of("user-1")) + len(shop.orders_of("user-2")) == 1

    def test_failure_after_reservation_rolls_everything_back(self, shop, place_order, monkeypatch):
        shop.add_book("book-1", stock=5)
        shop.add_book("book-2", stock=5)
        promo = shop.add_promo()

        async def broken_record(self, *args, **kwargs):
            raise RuntimeError("disk I/O error")

        monkeypatch.setattr(SQLAlchemyPromoUsageRepository, "record", broken_record)

        with pytest.raises(OrderPlacementError) as exc:
            place_order("user-1", [("book-1", 2), ("book-2", 1)], promo_code_id=promo.id)

        assert exc.value.code == "INTERNAL_ERROR"
        assert "disk" not in exc.value.message
        assert shop.stock("book-1") == 5
        assert shop.stock("book-2") == 5
        assert shop.orders_of("user-1") == []
        assert shop.promo(promo.id).used_count == 0
        assert shop.usages(promo.id) == []

    def test_timeout_rolls_back_reservation(self, shop, checkout, make_cart, monkeypatch):
        shop.add_book("book-1", stock=5)
        original = SQLAlchemyBookRepository.try_reserve

        async def slow_reserve(self, book_id, qty):
            snapshot = await original(self, book_id, qty)
            await asyncio.sleep(2)
            return snapshot

        monkeypatch.setattr(SQLAlchemyBookRepository, "try_reserve", slow_reserve)

        with pytest.raises(CheckoutTimeoutError):
            asyncio.run(checkout(timeout=0.2)(make_cart("user-1", [("book-1", 3)])))

        assert shop.stock("book-1") == 5
        assert shop.orders_of("user-1") == []


class TestPromoRedemption:
    def test_percent_code_redeemed(self, shop, place_order):
        shop.add_book("book-1", price="500.00", stock=5)
        promo = shop.add_promo("SAVE10", discount_value="10", usage_limit=5)

        order = place_order("user-1", [("book-1", 2)], promo_code_id=promo.id)

        assert order.items_price == Decimal("1000.00")
        assert order.discount_amount == Decimal("100.00")
        assert order.total_price == Decimal("900.00")
        assert order.promo_code_id == promo.id
        assert shop.promo(promo.id).used_count == 1
        usages = shop.usages(promo.id)
        assert len(usages) == 1
        assert usages[0].order_id == order.id
        assert usages[0].user_id == "user-1"
        assert usages[0].discount_amount == Decimal("100.00")

    def test_discount_applies_to_shipping_inclusive_total(self, shop, place_order):
        shop.add_book("book-1", price="400.00", stock=5)
        promo = shop.add_promo("FLAT50", discount_type=DiscountType.FLAT, discount_value="50")

        order = place_order("user-1", [("book-1", 1)], promo_code_id=promo.id)

        assert order.shipping_price == Decimal("49.00")
        assert order.discount_amount == Decimal("50.00")
        assert order.total_price == Decimal("399.00")

    def test_per_user_limit_enforced_at_checkout(self, shop, place_order):
        shop.add_book("book-1", stock=5)
        promo = shop.add_promo(per_user_limit=1)
        place_order("user-1", [("book-1", 1)], promo_code_id=promo.id)

        with pytest.raises(PromoPerUserLimitReachedError):
            place_order("user-1", [("book-1", 1)], promo_code_id=promo.id)

        assert shop.stock("book-1") == 4
        assert shop.promo(promo.id).used_count == 1

    def test_exhausted_after_validation(self, uow, shop, place_order):
        shop.add_book("book-1", stock=5)
        promo = shop.add_promo("ONCE", usage_limit=1)

        quote = asyncio.run(ValidatePromoCodeUseCase(uow)("once", "user-1", Decimal("100")))
        assert quote.discount == Decimal("10.00")

        place_order("user-2", [("book-1", 1)], promo_code_id=promo.id)

        with pytest.raises(PromoLimitReachedError):
            place_order("user-1", [("book-1", 1)], promo_code_id=promo.id)
        assert shop.stock("book-1") == 4

    def test_expired_code(self, shop, place_order):
        shop.add_book("book-1", stock=5)
        promo = shop.add_promo(expires_in=timedelta(minutes=-1))

        with pytest.raises(PromoExpiredError):
            place_order("user-1", [("book-1", 1)], promo_code_id=promo.id)
        assert shop.stock("book-1") == 5

    def test_below_minimum_rolls_back_counter_and_stock(self, shop, place_order):
        shop.add_book("book-1", price="250.00", stock=5)
        promo = shop.add_promo(min_cart_value="1000")

        with pytest.raises(PromoBelowMinimumError):
            place_order("user-1", [("book-1", 2)], promo_code_id=promo.id)

        assert shop.stock("book-1") == 5
        assert shop.promo(promo.id).used_count == 0

    def test_minimum_judged_before_stock(self, shop, place_order):
        shop.add_book("book-1", price="100.00", stock=1)
        promo = shop.add_promo(min_cart_value="1000")

        with pytest.raises(PromoBelowMinimumError):
            place_order("user-1", [("book-1", 2)], promo_code_id=promo.id)

        assert shop.stock("book-1") == 1
        assert shop.promo(promo.id).used_count == 0

    def test_unknown_code(self, shop, place_order):
        shop.add_book("book-1", stock=5)
        with pytest.raises(PromoNotFoundError):
            place_order("user-1", [("book-1", 1)], promo_code_id="missing")

    def test_concurrent_redemptions_respect_global_limit(self, shop, checkout, make_cart):
        shop.add_book("book-1", stock=20)
        promo = shop.add_promo(usage_limit=2)
        use_case = checkout()

        async def _run():
            return await asyncio.gather(
                *(use_case(make_cart(f"user-{n}", [("book-1", 1)], promo.id)) for n in range(5)),
                return_exceptions=True
            )

        results = asyncio.run(_run())

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(results) - len(errors) == 2
        assert all(isinstance(e, PromoLimitReachedError) for e in errors)
        assert shop.promo(promo.id).used_count == 2
        assert len(shop.usages(promo.id)) == 2
        assert shop.stock("book-1") == 18

    def test_concurrent_redemptions_respect_per_user_limit(self, shop, checkout, make_cart):
        shop.add_book("book-1", stock=20)
        promo = shop.add_promo(usage_limit=10, per_user_limit=1)
        use_case = checkout()

        async def _run():
            return await asyncio.gather(
                *(use_case(make_cart("user-1", [("book-1", 1)], promo.id)) for _ in range(3)),
                return_exceptions=True
            )

        results = asyncio.run(_run())

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(results) - len(errors) == 1
        assert all(isinstance(e, PromoPerUserLimitReachedError) for e in errors)
        assert shop.promo(promo.id).used_count == 1
        assert len(shop.usages(promo.id)) == 1


class TestValidatePromo:
    def test_quote_is_read_only(self, uow, shop):
        promo = shop.add_promo("SAVE10", discount_value="10")

        quote = asyncio.run(ValidatePromoCodeUseCase(uow)("  save10", "user-1", Decimal("1000")))

        assert quote.discount == Decimal("100.00")
        assert quote.final_amount == Decimal("900.00")
        assert shop.promo(promo.id).used_count == 0

    def test_used_by_this_user(self, uow, shop, place_order):
        shop.add_book("book-1", price="500.00", stock=5)
        promo = shop.add_promo("SAVE10", per_user_limit=1)
        place_order("user-1", [("book-1", 2)], promo_code_id=promo.id)

        with pytest.raises(PromoPerUserLimitReachedError):
            asyncio.run(ValidatePromoCodeUseCase(uow)("SAVE10", "user-1", Decimal("1000")))

        # another user still gets the quote
        quote = asyncio.run(ValidatePromoCodeUseCase(uow)("SAVE10", "user-2", Decimal("1000")))
        assert quote.discount == Decimal("100.00")

    def test_unknown_code(self, uow):
        with pytest.raises(PromoNotFoundError):
            asyncio.run(ValidatePromoCodeUseCase(uow)("NOPE", "user-1", Decimal("100")))

    def test_non_positive_cart_total(self, uow, shop):
        shop.add_promo("SAVE10")
        with pytest.raises(InvalidRequestError):
            asyncio.run(ValidatePromoCodeUseCase(uow)("SAVE10", "user-1", Decimal("0")))
