import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel

from storefront.domain.models import (
    CartLine, DiscountQuote, Order, OrderStatus, PaymentMethod, PromoCode, ShippingAddress, money,
)
from storefront.domain.promo import check_redeemable, evaluate
from storefront.domain.exceptions import (
    DomainException, EmptyCartError, InvalidCartError, PriceChangedError, PromoNotFoundError,
    PromoLimitReachedError, OrderPlacementError, CheckoutTimeoutError,
)
from storefront.application.interfaces import NotificationsService
from storefront.application.invoice import render_invoice
from storefront.application.stock_ledger import StockLedger


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class CreateOrderDTO(BaseModel):
    user_id: str
    order_items: List[CartLine]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    promo_code_id: Optional[str] = None


class CreateOrderUseCase:
    """Places an order: stock, price snapshot, promo redemption and the order
    row are committed together or not at all."""

    def __init__(
        self,
        unit_of_work,
        notifications_service: NotificationsService,
        dispatcher,
        free_shipping_threshold: Decimal,
        shipping_fee: Decimal,
        timeout: float
    ):
        self._uow = unit_of_work
        self._notifications = notifications_service
        self._dispatch = dispatcher
        self._free_shipping_threshold = free_shipping_threshold
        self._shipping_fee = shipping_fee
        self._timeout = timeout

    async def __call__(self, order_data: CreateOrderDTO) -> Order:
        logger.info(f"Creating order for user {order_data.user_id}, {len(order_data.order_items)} lines")
        self._validate(order_data)

        try:
            order = await asyncio.wait_for(self._place(order_data), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.error(f"Checkout for user {order_data.user_id} timed out, transaction rolled back")
            raise CheckoutTimeoutError()
        except DomainException:
            raise
        except Exception as e:
            logger.exception(f"Order placement failed for user {order_data.user_id}: {e}")
            raise OrderPlacementError() from e

        logger.info(f"Order created: {order.id}, total {order.total_price}")
        self._dispatch(
            self._notifications.send(
                message=render_invoice(order),
                reference_id=order.id,
                idempotency_key=f"invoice_{order.id}",
                user_id=order.user_id
            ),
            f"Invoice notification for order {order.id}"
        )
        return order

    def shipping_for(self, items_price: Decimal) -> Decimal:
        if items_price > self._free_shipping_threshold:
            return ZERO
        return money(self._shipping_fee)

    def _validate(self, order_data: CreateOrderDTO) -> None:
        if not order_data.order_items:
            raise EmptyCartError()
        for line in order_data.order_items:
            if line.qty <= 0:
                raise InvalidCartError(f"Quantity for {line.product_id} must be positive")

    async def _place(self, order_data: CreateOrderDTO) -> Order:
        now = datetime.now(timezone.utc)
        async with self._uow() as uow:
            promo = None
            if order_data.promo_code_id:
                # the whole rule set is judged before any stock is touched
                promo = await self._load_promo(uow, order_data.promo_code_id)
                used = await uow.promo_usages.count_for(promo.id, order_data.user_id)
                cart_total = await self._price_cart(uow, order_data.order_items)
                if cart_total is None:
                    check_redeemable(promo, used, now)
                else:
                    evaluate(promo, used, cart_total, now)

            reserved = await StockLedger(uow.books).reserve_all(order_data.order_items)
            self._check_claimed_prices(order_data.order_items, reserved)

            order_items = []
            for line in order_data.order_items:
                if line.product_id in reserved:
                    order_items.append(reserved.pop(line.product_id))

            items_price = money(sum((item.line_total for item in order_items), ZERO))
            tax_price = ZERO
            shipping_price = self.shipping_for(items_price)

            quote = None
            if promo:
                quote = await self._redeem(uow, promo, order_data.user_id, items_price + tax_price + shipping_price, now)
            discount_amount = quote.discount if quote else ZERO

            order = Order(
                id=str(uuid.uuid4()),
                user_id=order_data.user_id,
                order_items=order_items,
                shipping_address=order_data.shipping_address,
                payment_method=order_data.payment_method,
                items_price=items_price,
                tax_price=tax_price,
                shipping_price=shipping_price,
                discount_amount=discount_amount,
                total_price=items_price + tax_price + shipping_price - discount_amount,
                promo_code_id=promo.id if promo else None,
                status=OrderStatus.PENDING,
                created_at=now,
                updated_at=now
            )
            await uow.orders.create(order)

            if quote:
                await uow.promo_usages.record(
                    promo_code_id=promo.id,
                    user_id=order.user_id,
                    order_id=order.id,
                    discount_amount=quote.discount
                )

            await uow.outbox.create(
                event_type="order.created",
                event_data={
                    "order_id": order.id,
                    "user_id": order.user_id,
                    "total_price": str(order.total_price),
                    "promo_code_id": order.promo_code_id,
                    "items": [{"product_id": i.product_id, "qty": i.qty} for i in order.order_items]
                },
                order_id=order.id
            )
            await uow.commit()
        return order

    async def _price_cart(self, uow, lines: List[CartLine]) -> Optional[Decimal]:
        """Cart total with shipping at current prices, None if a book is unknown"""
        items_price = ZERO
        for line in lines:
            book = await uow.books.get_by_id(line.product_id)
            if book is None:
                return None
            items_price += money(book.price * line.qty)
        items_price = money(items_price)
        return items_price + self.shipping_for(items_price)

    async def _load_promo(self, uow, promo_code_id: str) -> PromoCode:
        promo = await uow.promo_codes.get_by_id(promo_code_id)
        if not promo:
            raise PromoNotFoundError()
        return promo

    async def _redeem(self, uow, promo: PromoCode, user_id: str, cart_total: Decimal, now: datetime) -> DiscountQuote:
        """Guarded increment first: it locks the code row, so the per-user
        count read after it cannot race another redemption of the same code."""
        if not await uow.promo_codes.try_increment_usage(promo.id, now):
            current = await self._load_promo(uow, promo.id)
            check_redeemable(current, 0, now)
            raise PromoLimitReachedError()

        current = await self._load_promo(uow, promo.id)
        used = await uow.promo_usages.count_for(current.id, user_id)
        # judge the code as it was before this redemption
        before = current.model_copy(update={"used_count": current.used_count - 1})
        return evaluate(before, used, cart_total, now)

    def _check_claimed_prices(self, lines: List[CartLine], reserved) -> None:
        for line in lines:
            if line.price is None:
                continue
            snapshot = reserved[line.product_id]
            if money(line.price) != money(snapshot.price):
                raise PriceChangedError(line.product_id, money(line.price), money(snapshot.price))
