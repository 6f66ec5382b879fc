import logging
from datetime import datetime, timezone

from storefront.domain.models import Order, OrderStatus
from storefront.domain.status_machine import plan_transition
from storefront.domain.exceptions import (
    OrderNotFoundError, OrderAccessDeniedError, InvalidStatusTransitionError,
)
from storefront.application.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    """Moves an order through the status machine and applies the side effects
    of the move in the same transaction."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, target: OrderStatus, user_id: str = "", is_admin: bool = False) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if not is_admin and not order.is_owned_by(user_id):
                raise OrderAccessDeniedError("Not authorized to cancel this order")

            transition = plan_transition(order, target)
            now = datetime.now(timezone.utc)
            # guarded on the status we planned from, a concurrent move wins
            if not await uow.orders.transition_status(order.id, transition.source, transition.field_changes(now)):
                current = await uow.orders.get_by_id(order.id)
                raise InvalidStatusTransitionError(current.status.value, target.value)

            if transition.release_stock:
                await StockLedger(uow.books).release_all(order.order_items)
                logger.info(f"Released stock for {len(order.order_items)} lines of order {order.id}")

            if transition.event_type:
                await uow.outbox.create(
                    event_type=transition.event_type,
                    event_data={
                        "order_id": order.id,
                        "user_id": order.user_id,
                        "status": target.value,
                        "total_price": str(order.total_price),
                        "payment_method": order.payment_method.value
                    },
                    order_id=order.id
                )

            await uow.commit()
            updated = await uow.orders.get_by_id(order.id)

        logger.info(f"Order {order.id} moved {transition.source.value} -> {target.value}")
        return updated


class CancelOrderUseCase:
    def __init__(self, unit_of_work):
        self._update = UpdateOrderStatusUseCase(unit_of_work)

    async def __call__(self, order_id: str, user_id: str, is_admin: bool = False) -> Order:
        return await self._update(order_id, OrderStatus.CANCELLED, user_id=user_id, is_admin=is_admin)
