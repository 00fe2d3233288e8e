"""
Tests for storefront_checkout.gateway.
"""
from __future__ import annotations

import pytest
from returns.result import Failure, Success

from storefront_checkout.errors import StaleCallback, ValidationError
from storefront_checkout.gateway import (
    GatewayCallbacks,
    checkout_options,
    parse_failure,
    parse_success,
)
from storefront_checkout.models import CheckoutState, PaymentIntent
from storefront_checkout.money import Money


SUCCESS_PAYLOAD = {
    "razorpay_order_id": "order_abc",
    "razorpay_payment_id": "pay_123",
    "razorpay_signature": "sig_456",
}

FAILURE_PAYLOAD = {
    "error": {
        "code": "BAD_REQUEST_ERROR",
        "description": "Payment failed due to insufficient balance",
        "reason": "payment_failed",
        "source": "customer",
        "step": "payment_authorization",
        "metadata": {"order_id": "order_abc", "payment_id": "pay_789"},
    }
}


class TestCheckoutOptions:
    """Tests for checkout_options."""

    def test_builds_sdk_options(self, settings, customer):
        """Should carry key, paise amount, order id and prefill."""
        intent = PaymentIntent(gateway_order_id="order_abc", amount=Money(232000))

        options = checkout_options(intent, customer, settings)

        assert options["key"] == "rzp_test_key"
        assert options["amount"] == 232000
        assert options["currency"] == "INR"
        assert options["order_id"] == "order_abc"
        assert options["name"] == settings.store_name
        assert options["prefill"] == {"name": "Asha Verma", "email": "asha@example.com"}

    def test_description_uses_receipt(self, settings, customer):
        """Should prefer the receipt in the description."""
        intent = PaymentIntent("order_abc", Money(100), receipt="rcpt_42")

        assert checkout_options(intent, customer, settings)["description"] == "Order rcpt_42"


class TestParseSuccess:
    """Tests for parse_success."""

    def test_valid_payload(self):
        """Should map the signed triple."""
        success = parse_success(SUCCESS_PAYLOAD).unwrap()

        assert success.gateway_order_id == "order_abc"
        assert success.payment_id == "pay_123"
        assert success.signature == "sig_456"

    @pytest.mark.parametrize("missing", [
        "razorpay_order_id",
        "razorpay_payment_id",
        "razorpay_signature",
    ])
    def test_missing_field(self, missing):
        """Should refuse a payload missing any part of the triple."""
        payload = {k: v for k, v in SUCCESS_PAYLOAD.items() if k != missing}

        result = parse_success(payload)

        assert isinstance(result.failure(), ValidationError)
        assert missing in str(result.failure())

    def test_not_a_mapping(self):
        """Should refuse non-dict payloads."""
        assert isinstance(parse_success(["order_abc"]), Failure)


class TestParseFailure:
    """Tests for parse_failure."""

    def test_valid_payload(self):
        """Should read code, description, reason and metadata."""
        failure = parse_failure(FAILURE_PAYLOAD).unwrap()

        assert failure.gateway_order_id == "order_abc"
        assert failure.payment_id == "pay_789"
        assert failure.code == "BAD_REQUEST_ERROR"
        assert failure.reason == "payment_failed"

    def test_missing_metadata(self):
        """Should allow failures without order metadata."""
        failure = parse_failure({"error": {"code": "X"}}).unwrap()

        assert failure.gateway_order_id is None
        assert failure.payment_id is None

    def test_missing_error(self):
        """Should refuse a payload without error details."""
        assert isinstance(parse_failure({}).failure(), ValidationError)


class TestGatewayCallbacks:
    """Tests for GatewayCallbacks."""

    async def _pending(self, orchestrator, customer):
        await orchestrator.load_cart()
        await orchestrator.begin_checkout()
        orchestrator.select_address("addr_home")
        await orchestrator.start_payment(customer)

    @pytest.mark.asyncio
    async def test_on_success(self, orchestrator, customer):
        """Should complete the checkout."""
        await self._pending(orchestrator, customer)
        callbacks = GatewayCallbacks(orchestrator)

        result = await callbacks.on_success(SUCCESS_PAYLOAD)

        assert isinstance(result, Success)
        assert result.unwrap().payment_id == "pay_123"

    @pytest.mark.asyncio
    async def test_on_success_malformed(self, orchestrator, connector, customer):
        """Should not verify a malformed payload."""
        await self._pending(orchestrator, customer)
        callbacks = GatewayCallbacks(orchestrator)

        result = await callbacks.on_success({"razorpay_order_id": "order_abc"})

        assert isinstance(result.failure(), ValidationError)
        assert orchestrator.session.state == CheckoutState.PAYMENT_PENDING
        connector.verify_payment.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_on_success_stale(self, orchestrator, customer):
        """Should ignore a success for an old order."""
        await self._pending(orchestrator, customer)
        callbacks = GatewayCallbacks(orchestrator)

        result = await callbacks.on_success({**SUCCESS_PAYLOAD, "razorpay_order_id": "order_old"})

        assert isinstance(result.failure(), StaleCallback)
        assert orchestrator.session.state == CheckoutState.PAYMENT_PENDING

    @pytest.mark.asyncio
    async def test_on_failure(self, orchestrator, customer):
        """Should move the session to FAILED."""
        await self._pending(orchestrator, customer)
        callbacks = GatewayCallbacks(orchestrator)

        result = await callbacks.on_failure(FAILURE_PAYLOAD)

        assert "insufficient balance" in str(result.failure())
        assert orchestrator.session.state == CheckoutState.FAILED
        assert orchestrator.session.payment_id == "pay_789"

    @pytest.mark.asyncio
    async def test_on_dismiss(self, orchestrator, customer):
        """Should cancel the pending payment."""
        await self._pending(orchestrator, customer)
        callbacks = GatewayCallbacks(orchestrator)

        result = await callbacks.on_dismiss()

        assert result.unwrap() == CheckoutState.CANCELLED
