from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from storefront.domain.models import Order, OrderStatus, PaymentMethod
from storefront.domain.exceptions import InvalidStatusTransitionError


MAIN_CHAIN = [
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PACKED,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
]

CANCELLABLE = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.PACKED,
})


class Transition(BaseModel):
    """What applying a status change means for the order row"""
    source: OrderStatus
    target: OrderStatus
    mark_delivered: bool = False
    mark_paid: bool = False
    release_stock: bool = False
    event_type: Optional[str] = None

    def field_changes(self, now: datetime) -> dict:
        values = {"status": self.target}
        if self.mark_delivered:
            values.update(is_delivered=True, delivered_at=now)
        if self.mark_paid:
            values.update(is_paid=True, paid_at=now)
        return values


def is_allowed(source: OrderStatus, target: OrderStatus) -> bool:
    if source == target:
        return False
    if target == OrderStatus.CANCELLED:
        return source in CANCELLABLE
    if target == OrderStatus.RETURNED:
        return source == OrderStatus.DELIVERED
    if target == OrderStatus.REFUNDED:
        return source == OrderStatus.RETURNED
    if source in MAIN_CHAIN and target in MAIN_CHAIN:
        # forward only; admins may skip steps
        return MAIN_CHAIN.index(target) > MAIN_CHAIN.index(source)
    return False


def plan_transition(order: Order, target: OrderStatus) -> Transition:
    """Validates the move and lists its side effects. Raises when illegal."""
    if not is_allowed(order.status, target):
        raise InvalidStatusTransitionError(order.status.value, target.value)

    transition = Transition(source=order.status, target=target)
    if target == OrderStatus.DELIVERED:
        transition.mark_delivered = True
        # delivery is the payment confirmation for cash on delivery
        transition.mark_paid = order.payment_method == PaymentMethod.COD and not order.is_paid
        transition.event_type = "order.delivered"
    elif target == OrderStatus.CANCELLED:
        transition.release_stock = True
        transition.event_type = "order.cancelled"
    return transition
