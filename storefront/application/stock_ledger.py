import logging
from decimal import Decimal
from typing import Dict, List, Tuple

from storefront.application.interfaces import BookRepository
from storefront.domain.models import Book, CartLine, OrderItem
from storefront.domain.exceptions import DomainException, InsufficientStockError, ProductNotFoundError, InvalidCartError

logger = logging.getLogger(__name__)


class StockLedger:
    """The only writer of Book.stock."""

    def __init__(self, books: BookRepository):
        self._books = books

    async def reserve(self, product_id: str, qty: int) -> Tuple[str, Decimal]:
        if qty <= 0:
            raise InvalidCartError(f"Quantity for {product_id} must be positive")
        snapshot = await self._books.try_reserve(product_id, qty)
        if snapshot is None:
            if await self._books.get_by_id(product_id) is None:
                raise ProductNotFoundError(product_id)
            raise InsufficientStockError(product_id, qty)
        return snapshot

    async def release(self, product_id: str, qty: int) -> None:
        await self._books.release(product_id, qty)

    async def reserve_all(self, lines: List[CartLine]) -> Dict[str, OrderItem]:
        """All or nothing. Returns snapshots keyed by product id.

        Duplicate lines are merged and products are reserved in id order, so
        two carts touching the same books always lock them in the same order.
        """
        wanted: Dict[str, int] = {}
        for line in lines:
            wanted[line.product_id] = wanted.get(line.product_id, 0) + line.qty

        reserved: Dict[str, OrderItem] = {}
        try:
            for product_id in sorted(wanted):
                qty = wanted[product_id]
                title, price = await self.reserve(product_id, qty)
                reserved[product_id] = OrderItem(product_id=product_id, title=title, price=price, qty=qty)
        except DomainException:
            if reserved:
                logger.warning(f"Reservation failed, releasing {len(reserved)} reserved lines")
            await self.release_all(reserved.values())
            raise
        return reserved

    async def release_all(self, items) -> None:
        for item in items:
            await self.release(item.product_id, item.qty)

    async def low_stock(self, threshold: int, category: str | None = None, limit: int = 20) -> List[Book]:
        """Books with 0 <= stock <= threshold, lowest first"""
        return await self._books.list_low_stock(threshold, category=category, limit=limit)
