"""
Coupon application.

The coupon service is the source of truth for discount math: it returns the
post-discount total and this engine never recomputes percentages. The only
local arithmetic is the "you save" figure shown next to the coupon, which is
a display derivation and not the amount charged.
"""
from __future__ import annotations

import logging
from typing import Optional

from returns.result import Failure, Result, Success

from storefront_checkout.cart import CartAggregator, product_occurrences
from storefront_checkout.connectors.base import CouponConnector
from storefront_checkout.errors import (
    CheckoutFailure,
    CollaboratorError,
    CouponInvalid,
    DuplicateSubmission,
    NetworkError,
    ValidationError,
)
from storefront_checkout.idempotency import InFlightGuard
from storefront_checkout.models import CartSnapshot, Coupon
from storefront_checkout.money import Money

logger = logging.getLogger(__name__)


class CouponEngine:
    """
    Validates a coupon against a cart snapshot and holds the applied coupon.

    At most one ``apply`` runs at a time; a second call made while the first
    is awaiting the coupon service is rejected before it reaches the network.
    """

    def __init__(
        self,
        connector: CouponConnector,
        aggregator: Optional[CartAggregator] = None,
    ):
        self.connector = connector
        self.aggregator = aggregator or CartAggregator()
        self._coupon: Optional[Coupon] = None
        self._applied_to: Optional[str] = None  # snapshot fingerprint
        self._guard = InFlightGuard("coupon")

    @property
    def current(self) -> Optional[Coupon]:
        return self._coupon

    @property
    def busy(self) -> bool:
        return self._guard.busy

    async def apply(
        self,
        code: str,
        snapshot: CartSnapshot,
    ) -> Result[Coupon, CheckoutFailure]:
        """
        Apply ``code`` to ``snapshot``.

        The previously applied coupon (if any) is kept when this fails.
        """
        canonical = code.strip().upper()
        if not canonical:
            return Failure(ValidationError("Please enter a coupon code"))
        if snapshot.is_empty:
            return Failure(
                ValidationError("Add items to your cart before applying a coupon")
            )

        if not self._guard.try_acquire():
            return Failure(
                DuplicateSubmission(
                    "A coupon is already being applied", resource="coupon"
                )
            )

        with self._guard.hold():
            subtotal = self.aggregator.aggregate(snapshot).subtotal
            try:
                coupon = await self.connector.apply_coupon(
                    canonical, subtotal, product_occurrences(snapshot)
                )
            except CouponInvalid as e:
                logger.info(f"Coupon {canonical} rejected: {e}")
                return Failure(e)
            except CollaboratorError as e:
                logger.info(f"Coupon {canonical} rejected: {e}")
                return Failure(CouponInvalid(e.message))
            except NetworkError as e:
                logger.warning(f"Coupon {canonical} could not be checked: {e}")
                return Failure(e)

        if coupon.final_amount.currency != subtotal.currency:
            logger.warning(
                f"Coupon {coupon.code} priced in {coupon.final_amount.currency}, "
                f"cart is {subtotal.currency}"
            )
            return Failure(CouponInvalid("This coupon cannot be used for this cart"))

        self._coupon = coupon
        self._applied_to = snapshot.fingerprint()
        logger.info(
            f"Applied coupon {coupon.code}: subtotal={subtotal} "
            f"final={coupon.final_amount}"
        )
        # logs the anomaly when the service returned more than the subtotal
        self.discount_amount(coupon, subtotal)
        return Success(coupon)

    def remove(self) -> None:
        """Forget the applied coupon. The backend has no un-apply endpoint."""
        if self._coupon is not None:
            logger.info(f"Removed coupon {self._coupon.code}")
        self._coupon = None
        self._applied_to = None

    def invalidate_if_changed(self, snapshot: CartSnapshot) -> bool:
        """
        Drop the coupon if the cart no longer matches the one it was applied to.

        Returns True when a coupon was dropped.
        """
        if self._coupon is None or self._applied_to == snapshot.fingerprint():
            return False
        logger.info(f"Cart changed; coupon {self._coupon.code} must be re-applied")
        self.remove()
        return True

    def discount_amount(self, coupon: Coupon, subtotal: Money) -> Money:
        """
        Display-only discount: ``subtotal - coupon.final_amount``, floored at zero.

        A final amount above the subtotal means a stale or malformed response;
        it is logged and shown as no discount.
        """
        discount, clamped = subtotal.subtract(coupon.final_amount)
        if clamped:
            logger.warning(
                f"Coupon {coupon.code} final amount {coupon.final_amount} exceeds "
                f"subtotal {subtotal}; showing zero discount"
            )
        return discount

    def payable_total(self, snapshot: CartSnapshot) -> Money:
        """Amount to charge: the coupon's final amount, else the cart subtotal."""
        if self._coupon is not None:
            return self._coupon.final_amount
        return self.aggregator.aggregate(snapshot).subtotal
