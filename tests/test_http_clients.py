"""Tests for the payment gateway and notifications HTTP clients."""

import asyncio
import base64
import json

import httpx
import pytest

from storefront.domain.exceptions import PaymentNotConfiguredError, PaymentServiceError
from storefront.infrastructure.http_clients import HTTPNotificationsClient, RazorpayPaymentGateway


class TestRazorpayPaymentGateway:
    def test_create_session_posts_order(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"id": "order_abc", "amount": 39850, "currency": "INR"})

        gateway = RazorpayPaymentGateway("rzp_key", "secret", transport=httpx.MockTransport(handler))
        session = asyncio.run(gateway.create_session(39850, "INR", "order-1"))

        assert session["id"] == "order_abc"
        request = seen[0]
        assert request.url.path == "/v1/orders"
        assert json.loads(request.content) == {
            "amount": 39850, "currency": "INR", "receipt": "order-1", "payment_capture": 1
        }
        expected = "Basic " + base64.b64encode(b"rzp_key:secret").decode()
        assert request.headers["authorization"] == expected

    def test_provider_error_status(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        gateway = RazorpayPaymentGateway("rzp_key", "secret", transport=transport)

        with pytest.raises(PaymentServiceError):
            asyncio.run(gateway.create_session(100, "INR", "order-1"))

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = RazorpayPaymentGateway("rzp_key", "secret", transport=httpx.MockTransport(handler))

        with pytest.raises(PaymentServiceError):
            asyncio.run(gateway.create_session(100, "INR", "order-1"))

    def test_missing_credentials(self):
        gateway = RazorpayPaymentGateway("", "")

        with pytest.raises(PaymentNotConfiguredError):
            asyncio.run(gateway.create_session(100, "INR", "order-1"))
        with pytest.raises(PaymentNotConfiguredError):
            gateway.signature_for("order_abc", "pay_1")


class TestHTTPNotificationsClient:
    def _client(self, handler, max_retries=3):
        return HTTPNotificationsClient(
            "http://notifications.local/",
            "token",
            max_retries=max_retries,
            retry_delay=0,
            transport=httpx.MockTransport(handler)
        )

    def test_sends_with_idempotency_key(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201)

        client = self._client(handler)
        assert asyncio.run(client.send("Invoice", "order-1", "invoice_order-1", "user-1")) is True

        request = seen[0]
        assert str(request.url) == "http://notifications.local/api/notifications"
        assert request.headers["X-API-Key"] == "token"
        assert request.headers["Idempotency-Key"] == "invoice_order-1"
        assert json.loads(request.content) == {
            "user_id": "user-1", "message": "Invoice", "reference_id": "order-1"
        }

    def test_retries_server_errors(self):
        statuses = iter([503, 502, 200])
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(next(statuses))

        client = self._client(handler)
        assert asyncio.run(client.send("Invoice", "order-1", "invoice_order-1", "user-1")) is True
        assert len(calls) == 3

    def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(422)

        client = self._client(handler)
        assert asyncio.run(client.send("Invoice", "order-1", "invoice_order-1", "user-1")) is False
        assert len(calls) == 1

    def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        client = self._client(handler, max_retries=2)
        assert asyncio.run(client.send("Invoice", "order-1", "invoice_order-1", "user-1")) is False
        assert len(calls) == 2

    def test_without_base_url_only_logs(self):
        client = HTTPNotificationsClient("", "token")
        assert asyncio.run(client.send("Invoice", "order-1", "invoice_order-1", "user-1")) is True
