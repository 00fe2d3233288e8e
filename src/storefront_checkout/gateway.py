"""
Payment gateway callback adapters.

The gateway SDK is event based: it is opened with an options dictionary and
reports back through three callbacks. ``GatewayCallbacks`` maps each
callback to exactly one orchestrator transition so the rest of the checkout
never deals with raw gateway payloads.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from returns.result import Failure, Result, Success

from storefront_checkout.config import CheckoutSettings, get_settings
from storefront_checkout.errors import CheckoutFailure, ValidationError
from storefront_checkout.models import (
    CheckoutOutcome,
    CheckoutState,
    CustomerDetails,
    GatewayFailure,
    GatewaySuccess,
    PaymentIntent,
)
from storefront_checkout.orchestrator import CheckoutOrchestrator

logger = logging.getLogger(__name__)


def checkout_options(
    intent: PaymentIntent,
    customer: CustomerDetails,
    settings: Optional[CheckoutSettings] = None,
) -> Dict[str, Any]:
    """Options the gateway SDK is opened with for ``intent``."""
    settings = settings or get_settings()
    return {
        "key": settings.gateway_key_id,
        "amount": intent.amount.amount,
        "currency": intent.currency,
        "order_id": intent.gateway_order_id,
        "name": settings.store_name,
        "description": f"Order {intent.receipt or intent.gateway_order_id}",
        "prefill": {
            "name": customer.name,
            "email": customer.email,
        },
    }


def parse_success(payload: Mapping[str, Any]) -> Result[GatewaySuccess, CheckoutFailure]:
    """Parse the gateway's success handler argument."""
    if not isinstance(payload, Mapping):
        return Failure(ValidationError("Malformed payment confirmation"))

    fields = {}
    for name in ("razorpay_order_id", "razorpay_payment_id", "razorpay_signature"):
        value = payload.get(name)
        if not isinstance(value, str) or not value:
            return Failure(ValidationError(f"Payment confirmation is missing {name}"))
        fields[name] = value

    return Success(
        GatewaySuccess(
            gateway_order_id=fields["razorpay_order_id"],
            payment_id=fields["razorpay_payment_id"],
            signature=fields["razorpay_signature"],
        )
    )


def parse_failure(payload: Mapping[str, Any]) -> Result[GatewayFailure, CheckoutFailure]:
    """
    Parse the gateway's ``payment.failed`` event.

    Shape: ``{"error": {"code", "description", "reason",
    "metadata": {"order_id", "payment_id"}}}``.
    """
    if not isinstance(payload, Mapping):
        return Failure(ValidationError("Malformed payment failure"))
    error = payload.get("error")
    if not isinstance(error, Mapping):
        return Failure(ValidationError("Payment failure is missing error details"))

    metadata = error.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        return Failure(ValidationError("Payment failure has malformed metadata"))

    return Success(
        GatewayFailure(
            gateway_order_id=metadata.get("order_id") or None,
            code=str(error.get("code") or ""),
            description=str(error.get("description") or ""),
            reason=str(error.get("reason") or ""),
            payment_id=metadata.get("payment_id") or None,
        )
    )


class GatewayCallbacks:
    """Binds the gateway's success, failure and dismiss callbacks to an orchestrator."""

    def __init__(self, orchestrator: CheckoutOrchestrator):
        self.orchestrator = orchestrator

    async def on_success(
        self,
        payload: Mapping[str, Any],
    ) -> Result[CheckoutOutcome, CheckoutFailure]:
        parsed = parse_success(payload)
        if isinstance(parsed, Failure):
            logger.warning(f"Rejected success callback: {parsed.failure()}")
            return parsed
        return await self.orchestrator.handle_payment_success(parsed.unwrap())

    async def on_failure(
        self,
        payload: Mapping[str, Any],
    ) -> Result[None, CheckoutFailure]:
        parsed = parse_failure(payload)
        if isinstance(parsed, Failure):
            logger.warning(f"Rejected failure callback: {parsed.failure()}")
            return parsed
        return await self.orchestrator.handle_payment_failure(parsed.unwrap())

    async def on_dismiss(
        self,
        gateway_order_id: Optional[str] = None,
    ) -> Result[CheckoutState, CheckoutFailure]:
        return await self.orchestrator.handle_dismiss(gateway_order_id)
