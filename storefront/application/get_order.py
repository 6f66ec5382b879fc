from typing import List, Optional

from storefront.domain.models import Order, OrderStatus
from storefront.domain.exceptions import OrderNotFoundError, OrderAccessDeniedError, InvalidRequestError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, user_id: str, is_admin: bool = False) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if not is_admin and not order.is_owned_by(user_id):
                raise OrderAccessDeniedError()
            return order


class ListMyOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, user_id: str) -> List[Order]:
        async with self._uow() as uow:
            return await uow.orders.list_for_user(user_id)


class ListOrdersUseCase:
    """Admin view over every order, newest first"""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, status: Optional[OrderStatus] = None, limit: int = 100, offset: int = 0) -> List[Order]:
        if limit < 1 or offset < 0:
            raise InvalidRequestError("limit must be positive and offset non-negative")
        async with self._uow() as uow:
            return await uow.orders.list_all(status=status, limit=limit, offset=offset)
