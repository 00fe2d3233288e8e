"""
Collaborator interfaces.

Implementations raise ``CollaboratorError`` (or a subclass) when the backend
rejects a request and ``NetworkError`` when it cannot be reached. A missing
exception means success.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from storefront_checkout.models import (
    Address,
    CartSnapshot,
    Coupon,
    GatewaySuccess,
    PaymentIntent,
    PaymentIntentRequest,
    TrackedOrder,
)
from storefront_checkout.money import Money


class CartConnector(ABC):
    """Cart persistence service."""

    @abstractmethod
    async def fetch_cart(self) -> CartSnapshot:
        """Fetch the customer's current cart."""
        pass

    @abstractmethod
    async def update_quantity(self, product_id: str, quantity: int) -> None:
        """Set the quantity of a cart line."""
        pass

    @abstractmethod
    async def remove_item(self, product_id: str) -> None:
        """Delete a line from the cart."""
        pass


class CouponConnector(ABC):
    """Coupon validation service."""

    @abstractmethod
    async def apply_coupon(
        self,
        code: str,
        order_value: Money,
        product_occurrences: List[str],
    ) -> Coupon:
        """
        Validate a coupon against a cart.

        Args:
            code: Canonical (upper-case) coupon code
            order_value: Cart subtotal
            product_occurrences: One product id per unit in the cart

        Returns:
            Coupon carrying the authoritative post-discount total

        Raises:
            CouponInvalid: The coupon does not apply; message is user-facing
        """
        pass


class PaymentConnector(ABC):
    """Payment intent and verification service."""

    @abstractmethod
    async def create_payment_intent(
        self,
        request: PaymentIntentRequest,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        """
        Create a gateway order for the checkout total.

        Raises:
            PaymentIntentRejected: The backend refused to create the order
        """
        pass

    @abstractmethod
    async def verify_payment(self, success: GatewaySuccess) -> None:
        """
        Verify the gateway's signed success triple.

        Raises:
            CollaboratorError: The signature or payment did not verify
        """
        pass


class AddressConnector(ABC):
    """Saved shipping addresses."""

    @abstractmethod
    async def list_addresses(self) -> List[Address]:
        pass


class OrderConnector(ABC):
    """Order history and tracking."""

    @abstractmethod
    async def list_orders(self) -> List[TrackedOrder]:
        """Orders placed by the signed-in customer."""
        pass

    @abstractmethod
    async def get_order(self, order_id: str) -> TrackedOrder:
        """A single order including its status history."""
        pass


class StorefrontConnector(
    CartConnector,
    CouponConnector,
    PaymentConnector,
    AddressConnector,
    OrderConnector,
):
    """Everything the checkout needs from the storefront backend."""

    async def close(self) -> None:
        """Release transport resources."""
        pass
