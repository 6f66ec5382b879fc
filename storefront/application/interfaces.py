from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Tuple

from storefront.domain.models import Book, Order, OrderStatus, PaymentResult, PromoCode, PromoCodeUsage


class BookRepository(ABC):
    @abstractmethod
    async def get_by_id(self, book_id: str) -> Optional[Book]:
        pass

    @abstractmethod
    async def try_reserve(self, book_id: str, qty: int) -> Optional[Tuple[str, Decimal]]:
        """Atomic conditional decrement. Returns (title, price) or None if not applied."""
        pass

    @abstractmethod
    async def release(self, book_id: str, qty: int) -> None:
        pass

    @abstractmethod
    async def list_low_stock(self, threshold: int, category: Optional[str] = None, limit: int = 20) -> List[Book]:
        pass


class PromoCodeRepository(ABC):
    @abstractmethod
    async def get_by_id(self, promo_code_id: str) -> Optional[PromoCode]:
        pass

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[PromoCode]:
        pass

    @abstractmethod
    async def list_all(self) -> List[PromoCode]:
        pass

    @abstractmethod
    async def create(self, promo: PromoCode) -> None:
        pass

    @abstractmethod
    async def update(self, promo_code_id: str, values: dict) -> None:
        pass

    @abstractmethod
    async def try_increment_usage(self, promo_code_id: str, now: datetime) -> bool:
        """Increment used_count only while active, unexpired and below the limit"""
        pass


class PromoUsageRepository(ABC):
    @abstractmethod
    async def count_for(self, promo_code_id: str, user_id: str) -> int:
        pass

    @abstractmethod
    async def record(self, promo_code_id: str, user_id: str, order_id: str, discount_amount: Decimal) -> str:
        pass

    @abstractmethod
    async def list_for_code(self, promo_code_id: str) -> List[PromoCodeUsage]:
        pass


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Order]:
        pass

    @abstractmethod
    async def list_all(self, status: Optional[OrderStatus] = None, limit: int = 100, offset: int = 0) -> List[Order]:
        pass

    @abstractmethod
    async def create(self, order: Order) -> None:
        pass

    @abstractmethod
    async def transition_status(self, order_id: str, source: OrderStatus, values: dict) -> bool:
        """Applies values only if the order is still in `source`"""
        pass

    @abstractmethod
    async def mark_paid_if_unpaid(self, order_id: str, result: PaymentResult, paid_at: datetime) -> bool:
        pass

    @abstractmethod
    async def set_payment_session(self, order_id: str, session_id: str) -> bool:
        pass


class OutboxRepository(ABC):
    @abstractmethod
    async def create(self, event_type: str, event_data: dict, order_id: str) -> str:
        pass

    @abstractmethod
    async def get_pending(self, limit: int = 10) -> List[dict]:
        pass

    @abstractmethod
    async def mark_as_published(self, event_id: str) -> None:
        pass


class PaymentGateway(ABC):
    @abstractmethod
    async def create_session(self, amount: int, currency: str, receipt: str) -> dict:
        """Opens a hosted payment session. Returns the provider order (id, amount, currency)."""
        pass

    @abstractmethod
    def signature_for(self, session_id: str, payment_id: str) -> str:
        pass


class NotificationsService(ABC):
    @abstractmethod
    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        pass


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event_type: str, key: str, payload: dict) -> bool:
        pass
