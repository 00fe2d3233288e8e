"""Checkout data models."""
from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from storefront_checkout.errors import AmbiguousPaymentState, CheckoutFailure
from storefront_checkout.money import DEFAULT_CURRENCY, Money


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CheckoutState(str, Enum):
    """Checkout session states."""
    CART = "cart"
    ADDRESS_SELECTION = "address_selection"
    PAYMENT_PENDING = "payment_pending"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Cart models
@dataclass(frozen=True)
class CartLine:
    """One line of the customer's cart, as returned by the cart service."""
    line_id: str
    product_id: str
    unit_price: Money
    unit_mrp: Money
    quantity: int
    variant_key: str = ""  # "<color>/<size>"
    available_stock: Optional[int] = None  # None when the backend did not say
    name: str = ""

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError(f"Cart line {self.line_id} has quantity {self.quantity}")
        if self.available_stock is not None and self.available_stock < 0:
            raise ValueError(f"Cart line {self.line_id} has negative stock")

    @property
    def line_total(self) -> Money:
        return self.unit_price.multiply_by_quantity(self.quantity)

    @property
    def line_mrp_total(self) -> Money:
        return self.unit_mrp.multiply_by_quantity(self.quantity)

    @property
    def exceeds_stock(self) -> bool:
        return self.available_stock is not None and self.quantity > self.available_stock


@dataclass(frozen=True)
class CartSnapshot:
    """Immutable view of the cart for one reconciliation pass."""
    lines: Tuple[CartLine, ...] = ()
    currency: str = DEFAULT_CURRENCY

    @classmethod
    def of(cls, lines: List[CartLine], currency: str = DEFAULT_CURRENCY) -> "CartSnapshot":
        return cls(tuple(lines), currency)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def stock_violations(self) -> List[CartLine]:
        return [line for line in self.lines if line.exceeds_stock]

    def fingerprint(self) -> str:
        """Stable hash of the cart contents; changes whenever a line changes."""
        normalized = json.dumps(
            [
                [
                    line.line_id,
                    line.product_id,
                    line.variant_key,
                    line.quantity,
                    line.unit_price.amount,
                ]
                for line in self.lines
            ],
            sort_keys=True,
        )
        return hashlib.sha256(f"{self.currency}:{normalized}".encode()).hexdigest()


@dataclass(frozen=True)
class CartTotals:
    total_quantity: int
    subtotal: Money
    mrp_total: Money
    product_savings: Money


# Coupon models
@dataclass(frozen=True)
class Coupon:
    """A coupon accepted by the coupon service for a specific cart."""
    code: str
    final_amount: Money  # authoritative post-discount total
    offer_description: str = ""
    eligible_product_ids: FrozenSet[str] = frozenset()  # empty = every product

    def applies_to(self, product_id: str) -> bool:
        return not self.eligible_product_ids or product_id in self.eligible_product_ids


# Address and customer
@dataclass(frozen=True)
class Address:
    address_id: str
    label: str = ""
    address_line1: str = ""
    address_line2: str = ""
    address_line3: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    pin_code: str = ""
    phone_no: str = ""


@dataclass(frozen=True)
class CustomerDetails:
    name: str
    email: str


# Payment models
@dataclass(frozen=True)
class PaymentIntentRequest:
    """What the payment service needs to create a gateway order."""
    amount: Money
    address_id: str
    customer_name: str
    customer_email: str
    coupon_code: Optional[str] = None


@dataclass(frozen=True)
class PaymentIntent:
    """Gateway order created by the payment service."""
    gateway_order_id: str
    amount: Money
    receipt: Optional[str] = None

    @property
    def currency(self) -> str:
        return self.amount.currency


@dataclass(frozen=True)
class GatewaySuccess:
    """Signed success triple delivered by the gateway callback."""
    gateway_order_id: str
    payment_id: str
    signature: str


@dataclass(frozen=True)
class GatewayFailure:
    gateway_order_id: Optional[str]
    code: str = ""
    description: str = ""
    reason: str = ""
    payment_id: Optional[str] = None


@dataclass(frozen=True)
class CheckoutOutcome:
    """Summary of a completed checkout."""
    session_id: str
    gateway_order_id: str
    payment_id: str
    amount_charged: Money
    coupon_code: Optional[str] = None
    completed_at: datetime = field(default_factory=utcnow)


@dataclass
class CheckoutSession:
    """
    State of one checkout attempt.

    Owned by the orchestrator driving it; there is exactly one writer.
    """
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: CheckoutState = CheckoutState.CART
    snapshot: CartSnapshot = field(default_factory=CartSnapshot)
    addresses: Tuple[Address, ...] = ()
    selected_address_id: Optional[str] = None
    applied_coupon: Optional[Coupon] = None
    computed_total: Optional[Money] = None
    payment_intent: Optional[PaymentIntent] = None
    payment_id: Optional[str] = None
    idempotency_key: Optional[str] = None
    failure: Optional[CheckoutFailure] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def gateway_order_id(self) -> Optional[str]:
        if self.payment_intent is None:
            return None
        return self.payment_intent.gateway_order_id

    @property
    def is_ambiguous(self) -> bool:
        return isinstance(self.failure, AmbiguousPaymentState)

    def transition(self, state: CheckoutState) -> None:
        self.state = state
        self.updated_at = utcnow()


# Order tracking models
class OrderStatus(str, Enum):
    """Fulfilment steps reported in an order's status history."""
    ORDER = "Order"
    SHIPPED = "Shipped"
    OUT_FOR_DELIVERY = "Out of Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


@dataclass(frozen=True)
class StatusEntry:
    status: OrderStatus
    description: str = ""
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TrackedOrder:
    """An order as shown on the tracking page."""
    order_id: str
    gateway_order_id: str
    amount: Money
    created_at: datetime
    payment_id: Optional[str] = None
    payment_status: str = ""
    product_name: str = ""
    status_history: Tuple[StatusEntry, ...] = ()
