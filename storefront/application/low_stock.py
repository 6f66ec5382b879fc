from typing import List, Optional

from storefront.domain.models import Book
from storefront.domain.exceptions import InvalidRequestError
from storefront.application.stock_ledger import StockLedger


class LowStockAlertsUseCase:
    def __init__(self, unit_of_work, default_threshold: int):
        self._uow = unit_of_work
        self._default_threshold = default_threshold

    async def __call__(self, threshold: Optional[int] = None, category: Optional[str] = None) -> List[Book]:
        threshold = self._default_threshold if threshold is None else threshold
        if threshold < 0:
            raise InvalidRequestError("Threshold must not be negative")
        async with self._uow() as uow:
            return await StockLedger(uow.books).low_stock(threshold, category=category)
