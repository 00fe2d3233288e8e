"""
Storefront Checkout - cart-to-payment reconciliation.

This package reconciles a shopper's cart with the storefront backend and the
payment gateway:

- Integer minor-unit money arithmetic with INR lakh grouping
- Cart totals, MRP savings and stock checks
- Server-validated coupons with a single in-flight guard
- Checkout state machine from address selection to payment verification
- Idempotency keys on payment intent creation
- Stale gateway callback rejection
- Order tracking and checkout analytics
"""

from storefront_checkout.orchestrator import CheckoutOrchestrator, COMPLETION_CACHES
from storefront_checkout.money import (
    CURRENCIES,
    DEFAULT_CURRENCY,
    CurrencyInfo,
    CurrencyMismatch,
    Money,
    Subtraction,
    currency_info,
)
from storefront_checkout.models import (
    # Cart
    CartLine,
    CartSnapshot,
    CartTotals,
    # Coupons
    Coupon,
    # Checkout
    Address,
    CustomerDetails,
    CheckoutSession,
    CheckoutState,
    CheckoutOutcome,
    # Payments
    PaymentIntent,
    PaymentIntentRequest,
    GatewaySuccess,
    GatewayFailure,
    # Orders
    OrderStatus,
    StatusEntry,
    TrackedOrder,
)
from storefront_checkout.errors import (
    CheckoutFailure,
    ValidationError,
    AddressRequired,
    InvalidTransition,
    DuplicateSubmission,
    StaleCallback,
    CollaboratorError,
    CouponInvalid,
    PaymentIntentRejected,
    NetworkError,
    PaymentDeclined,
    AmbiguousPaymentState,
)
from storefront_checkout.cart import (
    CartAggregator,
    adjust_quantity,
    product_occurrences,
)
from storefront_checkout.coupons import CouponEngine
from storefront_checkout.idempotency import (
    InFlightGuard,
    generate_idempotency_key,
)
from storefront_checkout.analytics import (
    CheckoutAnalytics,
    CheckoutEvent,
    CheckoutEventType,
    AnalyticsBackend,
    InMemoryAnalyticsBackend,
    LoggingAnalyticsBackend,
)
from storefront_checkout.gateway import (
    GatewayCallbacks,
    checkout_options,
    parse_failure,
    parse_success,
)
from storefront_checkout.orders import (
    OrderTracker,
    STATUS_STEPS,
    completed_steps,
    estimated_delivery,
    latest_status,
)
from storefront_checkout.config import (
    CheckoutSettings,
    configure_logging,
    get_settings,
)
from storefront_checkout.connectors import (
    AddressConnector,
    CartConnector,
    CouponConnector,
    OrderConnector,
    PaymentConnector,
    StorefrontConnector,
    StorefrontAPIConnector,
)

__all__ = [
    # Orchestrator
    "CheckoutOrchestrator",
    "COMPLETION_CACHES",
    # Money
    "CURRENCIES",
    "DEFAULT_CURRENCY",
    "CurrencyInfo",
    "CurrencyMismatch",
    "Money",
    "Subtraction",
    "currency_info",
    # Models
    "CartLine",
    "CartSnapshot",
    "CartTotals",
    "Coupon",
    "Address",
    "CustomerDetails",
    "CheckoutSession",
    "CheckoutState",
    "CheckoutOutcome",
    "PaymentIntent",
    "PaymentIntentRequest",
    "GatewaySuccess",
    "GatewayFailure",
    "OrderStatus",
    "StatusEntry",
    "TrackedOrder",
    # Errors
    "CheckoutFailure",
    "ValidationError",
    "AddressRequired",
    "InvalidTransition",
    "DuplicateSubmission",
    "StaleCallback",
    "CollaboratorError",
    "CouponInvalid",
    "PaymentIntentRejected",
    "NetworkError",
    "PaymentDeclined",
    "AmbiguousPaymentState",
    # Cart
    "CartAggregator",
    "adjust_quantity",
    "product_occurrences",
    # Coupons
    "CouponEngine",
    # Idempotency
    "InFlightGuard",
    "generate_idempotency_key",
    # Analytics
    "CheckoutAnalytics",
    "CheckoutEvent",
    "CheckoutEventType",
    "AnalyticsBackend",
    "InMemoryAnalyticsBackend",
    "LoggingAnalyticsBackend",
    # Gateway
    "GatewayCallbacks",
    "checkout_options",
    "parse_failure",
    "parse_success",
    # Orders
    "OrderTracker",
    "STATUS_STEPS",
    "completed_steps",
    "estimated_delivery",
    "latest_status",
    # Config
    "CheckoutSettings",
    "configure_logging",
    "get_settings",
    # Connectors
    "AddressConnector",
    "CartConnector",
    "CouponConnector",
    "OrderConnector",
    "PaymentConnector",
    "StorefrontConnector",
    "StorefrontAPIConnector",
]

__version__ = "0.1.0"
