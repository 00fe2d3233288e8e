"""Storefront backend connector."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Type

import httpx

from storefront_checkout.config import CheckoutSettings, get_settings
from storefront_checkout.connectors.base import StorefrontConnector
from storefront_checkout.errors import (
    CollaboratorError,
    CouponInvalid,
    NetworkError,
    PaymentIntentRejected,
)
from storefront_checkout.models import (
    Address,
    CartLine,
    CartSnapshot,
    Coupon,
    GatewaySuccess,
    OrderStatus,
    PaymentIntent,
    PaymentIntentRequest,
    StatusEntry,
    TrackedOrder,
    utcnow,
)
from storefront_checkout.money import Money

logger = logging.getLogger(__name__)

# Raised by malformed documents (wrong types where objects or lists belong)
_PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class StorefrontAPIConnector(StorefrontConnector):
    """
    HTTP connector for the storefront backend.

    Responses are an envelope ``{"status": bool, "message": str, "data": ...}``,
    except payment verification, which may answer with a bare ``{"ok": bool}``.
    The backend answers 200 with ``status: false`` for business failures, so
    success is decided by the flag, never by the HTTP status alone.
    """

    def __init__(
        self,
        settings: Optional[CheckoutSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
        cookies: Optional[Dict[str, str]] = None,
    ):
        self.settings = settings or get_settings()
        self.currency = self.settings.currency
        self._client = client or httpx.AsyncClient(
            base_url=self.settings.backend_url,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            cookies=cookies,
            timeout=self.settings.request_timeout_seconds,
        )

    async def __aenter__(self) -> "StorefrontAPIConnector":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()

    # -- transport ---------------------------------------------------------

    async def _send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Send a request and return the decoded JSON object."""
        logger.debug(f"{method} {path}")
        try:
            response = await self._client.request(
                method, path, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise NetworkError(f"Could not reach the store: {e}") from e

        try:
            body = response.json()
        except ValueError:
            raise NetworkError(
                f"Unexpected response from {path} (HTTP {response.status_code})"
            )

        if response.status_code >= 500:
            message = body.get("message") if isinstance(body, dict) else None
            raise NetworkError(
                message or f"Store is unavailable (HTTP {response.status_code})"
            )

        if not isinstance(body, dict):
            raise NetworkError(f"Unexpected response from {path}")
        return body

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        rejection: Type[CollaboratorError] = CollaboratorError,
    ) -> Any:
        """Send a request and unwrap the envelope's ``data``."""
        body = await self._send(method, path, json=json, headers=headers)
        return _unwrap(body, method, path, rejection)

    # -- amounts -----------------------------------------------------------

    def _catalogue_money(self, value: Any) -> Money:
        """Money from a catalogue price or coupon total."""
        try:
            number = Decimal(str(value))
        except InvalidOperation:
            raise CollaboratorError(f"Store returned an invalid amount: {value!r}")
        if not number.is_finite():
            raise CollaboratorError(f"Store returned an invalid amount: {value!r}")
        if self.settings.backend_amounts_in_minor_units:
            return _minor_money(number, self.currency)
        return Money.from_major_units(number, self.currency)

    def _wire_amount(self, money: Money) -> Any:
        """Amount as the backend expects it in request bodies."""
        if self.settings.backend_amounts_in_minor_units:
            return money.amount
        major = money.to_major_units()
        if major == major.to_integral_value():
            return int(major)
        # wire format only; all arithmetic stays in integer minor units
        return float(major)

    # -- cart --------------------------------------------------------------

    async def fetch_cart(self) -> CartSnapshot:
        data = await self._request("GET", "/addtocart/all")
        items = data or []
        if isinstance(items, dict):
            items = items.get("items") or []
        try:
            lines = [self._parse_cart_line(i) for i in items]
        except _PARSE_ERRORS as e:
            raise CollaboratorError(f"Cart contains an invalid line: {e}") from e
        return CartSnapshot.of(lines, self.currency)

    async def update_quantity(self, product_id: str, quantity: int) -> None:
        await self._request(
            "POST", f"/addtocart/update/{product_id}", json={"quantity": quantity}
        )

    async def remove_item(self, product_id: str) -> None:
        await self._request("DELETE", f"/addtocart/delete/{product_id}")

    def _parse_cart_line(self, item: Dict[str, Any]) -> CartLine:
        product = item.get("productId") or {}
        if not isinstance(product, dict):
            product = {"_id": product}
        product_id = str(product.get("_id", ""))

        price = item.get("price", product.get("price", 0))
        mrp = product.get("mrp") or price
        color = item.get("color") or ""
        size = item.get("size") or ""
        variant_key = f"{color}/{size}" if (color or size) else ""

        return CartLine(
            line_id=str(item.get("_id") or f"{product_id}:{variant_key}"),
            product_id=product_id,
            unit_price=self._catalogue_money(price),
            unit_mrp=self._catalogue_money(mrp),
            quantity=int(item.get("quantity", 1)),
            variant_key=variant_key,
            available_stock=_variant_stock(product.get("variants"), color, size),
            name=product.get("name", ""),
        )

    # -- coupons -----------------------------------------------------------

    async def apply_coupon(
        self,
        code: str,
        order_value: Money,
        product_occurrences: List[str],
    ) -> Coupon:
        data = await self._request(
            "POST",
            "/coupon/code/apply",
            json={
                "code": code,
                "orderValue": self._wire_amount(order_value),
                "productOccurrences": product_occurrences,
            },
            rejection=CouponInvalid,
        )
        if not isinstance(data, dict) or data.get("finalAmount") is None:
            raise CouponInvalid("Coupon service did not return a final amount")

        return Coupon(
            code=str(data.get("code") or code).upper(),
            final_amount=self._catalogue_money(data["finalAmount"]),
            offer_description=str(data.get("offer") or ""),
            eligible_product_ids=frozenset(
                str(p) for p in (data.get("applicableTo") or [])
            ),
        )

    # -- payments ----------------------------------------------------------

    async def create_payment_intent(
        self,
        request: PaymentIntentRequest,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = await self._request(
            "POST",
            "/payment/create",
            json={
                # Gateways reject fractional minor units
                "amount": request.amount.amount,
                "couponCode": request.coupon_code or "",
                "name": request.customer_name,
                "email": request.customer_email,
                "addressId": request.address_id,
            },
            headers=headers,
            rejection=PaymentIntentRejected,
        )
        if not isinstance(data, dict):
            raise PaymentIntentRejected("Payment service returned no order")

        order_id = data.get("gatewayOrderId") or data.get("id")
        if not order_id:
            raise PaymentIntentRejected("Payment service did not return an order id")

        currency = str(data.get("currency") or request.amount.currency)
        amount = data.get("amount")
        return PaymentIntent(
            gateway_order_id=str(order_id),
            amount=_minor_money(amount, currency) if amount is not None else request.amount,
            receipt=data.get("receipt"),
        )

    async def verify_payment(self, success: GatewaySuccess) -> None:
        """
        Ask the backend to check the gateway signature.

        The verify endpoint answers with a bare ``{"ok": bool, "message": str}``;
        the ``status`` envelope is only consulted when ``ok`` is absent.
        """
        body = await self._send(
            "POST",
            "/payment/verify",
            json={
                "razorpay_order_id": success.gateway_order_id,
                "razorpay_payment_id": success.payment_id,
                "razorpay_signature": success.signature,
            },
        )
        if "ok" in body:
            if body["ok"] is True:
                return
            message = body.get("message") or "Payment verification failed"
            logger.info(f"POST /payment/verify rejected: {message}")
            raise CollaboratorError(message)

        data = _unwrap(body, "POST", "/payment/verify", CollaboratorError)
        if isinstance(data, dict) and data.get("ok") is False:
            raise CollaboratorError(data.get("message") or "Payment verification failed")

    # -- addresses ---------------------------------------------------------

    async def list_addresses(self) -> List[Address]:
        data = await self._request("GET", "/account/address")
        try:
            return [_parse_address(a) for a in (data or [])]
        except _PARSE_ERRORS as e:
            raise CollaboratorError(f"Store returned an invalid address: {e}") from e

    # -- orders ------------------------------------------------------------

    async def list_orders(self) -> List[TrackedOrder]:
        data = await self._request("GET", "/order/my-orders")
        try:
            return [self._parse_order(o) for o in (data or [])]
        except _PARSE_ERRORS as e:
            raise CollaboratorError(f"Store returned an invalid order: {e}") from e

    async def get_order(self, order_id: str) -> TrackedOrder:
        data = await self._request("GET", f"/order/track/{order_id}")
        if not isinstance(data, dict):
            raise CollaboratorError(f"Order {order_id} not found")
        try:
            return self._parse_order(data)
        except _PARSE_ERRORS as e:
            raise CollaboratorError(f"Store returned an invalid order: {e}") from e

    def _parse_order(self, doc: Dict[str, Any]) -> TrackedOrder:
        product = doc.get("productId") or {}
        currency = str(doc.get("currency") or self.currency)
        history = tuple(
            StatusEntry(
                status=_parse_status(entry.get("status")),
                description=entry.get("description", ""),
                created_at=_parse_datetime(entry.get("createdAt")),
            )
            for entry in (doc.get("statusHistory") or [])
        )
        return TrackedOrder(
            order_id=str(doc.get("_id", "")),
            gateway_order_id=str(doc.get("razorpayOrderId", "")),
            # gateway order amounts are minor units
            amount=_minor_money(doc.get("amount", 0), currency),
            created_at=_parse_datetime(doc.get("createdAt")) or utcnow(),
            payment_id=doc.get("paymentId") or None,
            payment_status=str(doc.get("status", "")),
            product_name=product.get("name", "") if isinstance(product, dict) else "",
            status_history=history,
        )


def _unwrap(
    body: Dict[str, Any],
    method: str,
    path: str,
    rejection: Type[CollaboratorError],
) -> Any:
    if not body.get("status"):
        message = body.get("message") or f"Request to {path} was rejected"
        logger.info(f"{method} {path} rejected: {message}")
        raise rejection(message)
    return body.get("data")


def _minor_money(value: Any, currency: str) -> Money:
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise CollaboratorError(f"Store returned an invalid amount: {value!r}")
    if not number.is_finite() or number != number.to_integral_value():
        raise CollaboratorError(f"Expected whole minor units, got {value!r}")
    return Money(int(number), currency)


def _variant_stock(variants: Any, color: str, size: str) -> Optional[int]:
    """Stock for the chosen color/size, or None when the product does not say."""
    if not variants:
        return None
    for variant in variants:
        if color and variant.get("color") != color:
            continue
        sizes = variant.get("size") or []
        if size:
            for entry in sizes:
                if entry.get("size") == size:
                    return int(entry.get("stock", 0))
            continue
        return sum(int(entry.get("stock", 0)) for entry in sizes)
    return None


def _parse_address(doc: Dict[str, Any]) -> Address:
    return Address(
        address_id=str(doc.get("_id", "")),
        label=doc.get("label", ""),
        address_line1=doc.get("addressLine1", ""),
        address_line2=doc.get("addressLine2", ""),
        address_line3=doc.get("addressLine3", ""),
        city=doc.get("city", ""),
        state=doc.get("state", ""),
        country=doc.get("country", ""),
        pin_code=str(doc.get("pinCode", "")),
        phone_no=str(doc.get("phoneNo", "")),
    )


def _parse_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        logger.debug(f"Unknown order status {value!r}, treating as placed")
        return OrderStatus.ORDER


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
