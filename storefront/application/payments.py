import hmac
import logging
from datetime import datetime, timezone
from pydantic import BaseModel

from storefront.domain.models import OrderStatus, PaymentMethod, PaymentResult
from storefront.domain.exceptions import (
    OrderNotFoundError, OrderAccessDeniedError, OrderAlreadyPaidError, PaymentMethodMismatchError,
    InvalidStatusTransitionError, SignatureMismatchError,
)
from storefront.application.interfaces import PaymentGateway

logger = logging.getLogger(__name__)


class PaymentSession(BaseModel):
    session_id: str
    amount: int
    currency: str
    key_id: str = ""


class VerifyPaymentDTO(BaseModel):
    session_id: str
    payment_id: str
    signature: str
    order_id: str


class VerificationResult(BaseModel):
    order_id: str
    verified: bool = True
    newly_paid: bool


class CreatePaymentSessionUseCase:
    def __init__(self, unit_of_work, payment_gateway: PaymentGateway, currency: str, key_id: str = ""):
        self._uow = unit_of_work
        self._gateway = payment_gateway
        self._currency = currency
        self._key_id = key_id

    async def __call__(self, order_id: str, user_id: str, is_admin: bool = False) -> PaymentSession:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(f"Order {order_id} not found")
            if not is_admin and not order.is_owned_by(user_id):
                raise OrderAccessDeniedError()
            if order.is_paid:
                raise OrderAlreadyPaidError()
            if order.status == OrderStatus.CANCELLED:
                raise InvalidStatusTransitionError(order.status.value, "Paid")
            if not order.can_be_paid_online():
                raise PaymentMethodMismatchError()

        # charged amount always comes from the stored order
        amount = order.amount_in_minor_units()
        if order.payment_session_id:
            logger.info(f"Reusing payment session {order.payment_session_id} for order {order.id}")
            return PaymentSession(
                session_id=order.payment_session_id, amount=amount, currency=self._currency, key_id=self._key_id
            )

        provider_order = await self._gateway.create_session(amount=amount, currency=self._currency, receipt=order.id)
        session_id = provider_order["id"]
        logger.info(f"Payment session {session_id} created for order {order.id}, amount {amount} {self._currency}")

        async with self._uow() as uow:
            if not await uow.orders.set_payment_session(order.id, session_id):
                # a concurrent request stored its session first
                current = await uow.orders.get_by_id(order.id)
                session_id = current.payment_session_id
            await uow.commit()

        return PaymentSession(session_id=session_id, amount=amount, currency=self._currency, key_id=self._key_id)


class VerifyPaymentUseCase:
    """Provider callback. Safe to deliver more than once."""

    def __init__(self, unit_of_work, payment_gateway: PaymentGateway):
        self._uow = unit_of_work
        self._gateway = payment_gateway

    async def __call__(self, dto: VerifyPaymentDTO) -> VerificationResult:
        expected = self._gateway.signature_for(dto.session_id, dto.payment_id)
        if not hmac.compare_digest(expected.encode(), dto.signature.encode()):
            logger.error(f"Payment verification failed for order {dto.order_id}: signature mismatch")
            raise SignatureMismatchError()

        async with self._uow() as uow:
            order = await uow.orders.get_by_id(dto.order_id)
            if not order:
                raise OrderNotFoundError(f"Order {dto.order_id} not found")
            if order.payment_method != PaymentMethod.RAZORPAY:
                logger.error(f"Payment callback for {order.payment_method.value} order {order.id}")
                raise PaymentMethodMismatchError()
            # the signed session must be the one opened for this order
            if order.payment_session_id is None or order.payment_session_id != dto.session_id:
                logger.error(f"Session {dto.session_id} does not belong to order {order.id}")
                raise SignatureMismatchError()

            now = datetime.now(timezone.utc)
            result = PaymentResult(id=dto.payment_id, status="success", update_time=now.isoformat())
            newly_paid = await uow.orders.mark_paid_if_unpaid(order.id, result, now)
            if not newly_paid:
                logger.info(f"Order {order.id} already paid, callback ignored")
                return VerificationResult(order_id=order.id, newly_paid=False)

            if order.status == OrderStatus.CANCELLED:
                logger.warning(f"Payment captured for cancelled order {order.id}, refund required")

            await uow.outbox.create(
                event_type="order.paid",
                event_data={
                    "order_id": order.id,
                    "user_id": order.user_id,
                    "payment_id": dto.payment_id,
                    "amount": str(order.total_price),
                    "idempotency_key": f"order_paid_{order.id}"
                },
                order_id=order.id
            )
            await uow.commit()

        logger.info(f"Payment verified for order {dto.order_id}")
        return VerificationResult(order_id=dto.order_id, newly_paid=True)
