"""Backend collaborator connectors."""
from storefront_checkout.connectors.base import (
    AddressConnector,
    CartConnector,
    CouponConnector,
    OrderConnector,
    PaymentConnector,
    StorefrontConnector,
)
from storefront_checkout.connectors.storefront import StorefrontAPIConnector

__all__ = [
    "AddressConnector",
    "CartConnector",
    "CouponConnector",
    "OrderConnector",
    "PaymentConnector",
    "StorefrontConnector",
    "StorefrontAPIConnector",
]
