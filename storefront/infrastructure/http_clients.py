import asyncio
import hashlib
import hmac
import httpx
import logging

from storefront.application.interfaces import PaymentGateway, NotificationsService
from storefront.domain.exceptions import PaymentServiceError, PaymentNotConfiguredError

logger = logging.getLogger(__name__)


class RazorpayPaymentGateway(PaymentGateway):
    """Razorpay Orders API. Built once per process with explicit credentials."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        self._key_id = key_id
        self._key_secret = key_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def key_id(self) -> str:
        return self._key_id

    def _ensure_configured(self) -> None:
        if not self._key_id or not self._key_secret:
            raise PaymentNotConfiguredError()

    async def create_session(self, amount: int, currency: str, receipt: str) -> dict:
        self._ensure_configured()
        try:
            async with httpx.AsyncClient(auth=(self._key_id, self._key_secret), transport=self._transport) as client:
                response = await client.post(
                    f"{self._base_url}/orders",
                    json={
                        "amount": amount,
                        "currency": currency,
                        "receipt": receipt,
                        "payment_capture": 1
                    },
                    timeout=self._timeout
                )

                if response.status_code in (200, 201):
                    return response.json()
                else:
                    logger.error(f"Razorpay order creation failed: {response.status_code} {response.text}")
                    raise PaymentServiceError(f"Payment provider error: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Razorpay connection error: {e}")
            raise PaymentServiceError("Payment provider is unavailable")

    def signature_for(self, session_id: str, payment_id: str) -> str:
        self._ensure_configured()
        body = f"{session_id}|{payment_id}".encode()
        return hmac.new(self._key_secret.encode(), body, hashlib.sha256).hexdigest()


class HTTPNotificationsClient(NotificationsService):
    """Invoice and order mails through the notifications service.

    Best effort: retries server errors and connection failures with a growing
    delay, gives up at once on a 4xx. The idempotency key lets the service drop
    a duplicate when a retry races a slow success.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        max_retries: int = 5,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None
    ):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._transport = transport

    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        if not self._base_url:
            logger.info(f"[MOCK NOTIFICATION] user {user_id}, reference {reference_id}")
            return True

        payload = {"user_id": user_id, "message": message, "reference_id": reference_id}
        headers = {"X-API-Key": self._api_token, "Idempotency-Key": idempotency_key}
        delay = self._retry_delay

        async with httpx.AsyncClient(
            base_url=self._base_url, headers=headers, timeout=10.0, transport=self._transport
        ) as client:
            for attempt in range(1, self._max_retries + 1):
                try:
                    response = await client.post("/api/notifications", json=payload)
                except httpx.RequestError as e:
                    logger.warning(f"Notification for {reference_id} failed (attempt {attempt}/{self._max_retries}): {e}")
                else:
                    if response.is_success:
                        return True
                    if response.is_client_error:
                        logger.error(f"Notification for {reference_id} rejected: {response.status_code} {response.text}")
                        return False
                    logger.warning(f"Notification service returned {response.status_code} for {reference_id}")

                if attempt < self._max_retries:
                    await asyncio.sleep(delay)
                    delay *= 2

        logger.error(f"Notification for {reference_id} not delivered after {self._max_retries} attempts")
        return False
