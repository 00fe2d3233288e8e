"""
Checkout failure taxonomy.

Failures are dataclass exceptions, compared by identity like any other
exception. Connectors raise them; the coupon engine and the orchestrator
hand them back inside ``Failure(...)`` so callers can render inline
messages without a crash boundary.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(eq=False)
class CheckoutFailure(Exception):
    message: str

    def __str__(self) -> str:
        return self.message

    @property
    def retryable(self) -> bool:
        return False


# -- local ---------------------------------------------------------------------


@dataclass(eq=False)
class ValidationError(CheckoutFailure):
    """Bad local input; the user is re-prompted and nothing hits the network."""
    pass


@dataclass(eq=False)
class AddressRequired(ValidationError):
    """No saved addresses: the caller should send the user to address management."""
    pass


@dataclass(eq=False)
class InvalidTransition(CheckoutFailure):
    state: str = ""

    def __str__(self) -> str:
        if self.state:
            return f"{self.message} (state={self.state})"
        return self.message


@dataclass(eq=False)
class DuplicateSubmission(CheckoutFailure):
    """A request for the same resource is already in flight."""
    resource: str = ""


@dataclass(eq=False)
class StaleCallback(CheckoutFailure):
    gateway_order_id: Optional[str] = None


# -- remote --------------------------------------------------------------------


@dataclass(eq=False)
class CollaboratorError(CheckoutFailure):
    """The backend answered with a business-logic failure; message is shown as-is."""
    pass


@dataclass(eq=False)
class CouponInvalid(CollaboratorError):
    @property
    def reason(self) -> str:
        return self.message


@dataclass(eq=False)
class PaymentIntentRejected(CollaboratorError):
    pass


@dataclass(eq=False)
class NetworkError(CheckoutFailure):
    """Transport-level failure talking to a collaborator."""

    @property
    def retryable(self) -> bool:
        return True


# -- payment -------------------------------------------------------------------


@dataclass(eq=False)
class PaymentDeclined(CheckoutFailure):
    """The gateway reported the payment as failed. The cart is left untouched."""
    code: str = ""
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return True


@dataclass(eq=False)
class AmbiguousPaymentState(CheckoutFailure):
    """
    Verification failed after the gateway reported success.

    The customer may have been charged. This is never retried automatically
    and must be shown with a support-contact message.
    """
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    cause: str = ""
