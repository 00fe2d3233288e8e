"""
Checkout orchestration.

Drives one checkout session through

    CART -> ADDRESS_SELECTION -> PAYMENT_PENDING -> VERIFYING -> COMPLETED

with FAILED and CANCELLED as recoverable side exits. Every public operation
returns a ``Result``; business and transport failures never escape as
exceptions.

The payment gateway talks back through callbacks (see ``gateway.py``). Each
callback is checked against the gateway order bound to the current session
before it can move the state machine, so a late callback from an earlier
attempt is ignored.
"""
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Optional, Tuple

from returns.result import Failure, Result, Success

from storefront_checkout.analytics import CheckoutAnalytics, CheckoutEventType
from storefront_checkout.cart import CartAggregator, adjust_quantity
from storefront_checkout.config import CheckoutSettings, get_settings
from storefront_checkout.connectors.base import StorefrontConnector
from storefront_checkout.coupons import CouponEngine
from storefront_checkout.errors import (
    AddressRequired,
    AmbiguousPaymentState,
    CheckoutFailure,
    CollaboratorError,
    DuplicateSubmission,
    InvalidTransition,
    NetworkError,
    PaymentDeclined,
    StaleCallback,
    ValidationError,
)
from storefront_checkout.idempotency import InFlightGuard, generate_idempotency_key
from storefront_checkout.models import (
    Address,
    CartLine,
    CartSnapshot,
    CartTotals,
    CheckoutOutcome,
    CheckoutSession,
    CheckoutState,
    Coupon,
    CustomerDetails,
    GatewayFailure,
    GatewaySuccess,
    PaymentIntent,
    PaymentIntentRequest,
    utcnow,
)
from storefront_checkout.money import Money

logger = logging.getLogger(__name__)

# Query caches that go stale once an order is placed
COMPLETION_CACHES = ("cart", "orders")

CacheInvalidator = Callable[..., Any]

# States in which the cart may still be edited
_EDITABLE_STATES = (
    CheckoutState.CART,
    CheckoutState.ADDRESS_SELECTION,
    CheckoutState.CANCELLED,
    CheckoutState.FAILED,
)

# States from which a payment attempt may be started
_PAYABLE_STATES = (
    CheckoutState.ADDRESS_SELECTION,
    CheckoutState.CANCELLED,
    CheckoutState.FAILED,
)


class CheckoutOrchestrator:
    """
    Orchestrates checkout: cart -> coupon -> address -> payment -> verification.

    Holds exactly one ``CheckoutSession``. Callers read ``session`` for
    display and drive it only through the methods below.
    """

    def __init__(
        self,
        connector: StorefrontConnector,
        coupon_engine: Optional[CouponEngine] = None,
        analytics: Optional[CheckoutAnalytics] = None,
        settings: Optional[CheckoutSettings] = None,
        invalidate_caches: Optional[CacheInvalidator] = None,
        aggregator: Optional[CartAggregator] = None,
    ):
        self.connector = connector
        self.settings = settings or get_settings()
        self.aggregator = aggregator or CartAggregator()
        self.coupon_engine = coupon_engine or CouponEngine(connector, self.aggregator)
        self.analytics = analytics or CheckoutAnalytics()
        # Called with the names of the caches to drop; may be sync or async
        self.invalidate_caches = invalidate_caches

        self.session = self._new_session()
        self._payment_guard = InFlightGuard("payment")

    # -- cart --------------------------------------------------------------

    @property
    def totals(self) -> CartTotals:
        return self.aggregator.aggregate(self.session.snapshot)

    async def load_cart(self) -> Result[CartSnapshot, CheckoutFailure]:
        """Fetch the cart and make it the session's snapshot."""
        session = self.session
        refused = self._refuse_unless(session, _EDITABLE_STATES, "load the cart")
        if refused is not None:
            return Failure(refused)

        try:
            snapshot = await self.connector.fetch_cart()
        except (CollaboratorError, NetworkError) as e:
            logger.warning(f"Could not load cart for session {session.session_id}: {e}")
            return Failure(e)

        if self.session is not session:
            return Failure(InvalidTransition("Checkout was reset while loading the cart"))
        return self.refresh_cart(snapshot)

    def refresh_cart(self, snapshot: CartSnapshot) -> Result[CartSnapshot, CheckoutFailure]:
        """
        Replace the session's snapshot with an already fetched one.

        A change in cart content drops the applied coupon; it was validated
        against the old cart and must be applied again.
        """
        session = self.session
        refused = self._refuse_unless(session, _EDITABLE_STATES, "update the cart")
        if refused is not None:
            return Failure(refused)

        session.snapshot = snapshot
        if self.coupon_engine.invalidate_if_changed(snapshot):
            session.applied_coupon = None
        session.computed_total = self.coupon_engine.payable_total(snapshot)
        session.updated_at = utcnow()

        for line in snapshot.stock_violations():
            logger.warning(
                f"Cart line {line.line_id} wants {line.quantity} of "
                f"{line.product_id} but only {line.available_stock} in stock"
            )
        return Success(snapshot)

    async def change_quantity(
        self,
        line_id: str,
        delta: int,
    ) -> Result[CartSnapshot, CheckoutFailure]:
        """Step a line's quantity up or down and reload the cart."""
        found = self._editable_line(line_id)
        if isinstance(found, Failure):
            return found
        line = found.unwrap()

        quantity = adjust_quantity(line, delta)
        if quantity == line.quantity:
            return Success(self.session.snapshot)
        try:
            await self.connector.update_quantity(line.product_id, quantity)
        except (CollaboratorError, NetworkError) as e:
            logger.warning(f"Could not update {line.product_id} to {quantity}: {e}")
            return Failure(e)
        return await self.load_cart()

    async def remove_line(self, line_id: str) -> Result[CartSnapshot, CheckoutFailure]:
        found = self._editable_line(line_id)
        if isinstance(found, Failure):
            return found
        line = found.unwrap()

        try:
            await self.connector.remove_item(line.product_id)
        except (CollaboratorError, NetworkError) as e:
            logger.warning(f"Could not remove {line.product_id}: {e}")
            return Failure(e)
        return await self.load_cart()

    def _editable_line(self, line_id: str) -> Result[CartLine, CheckoutFailure]:
        refused = self._refuse_unless(self.session, _EDITABLE_STATES, "update the cart")
        if refused is not None:
            return Failure(refused)
        for line in self.session.snapshot.lines:
            if line.line_id == line_id:
                return Success(line)
        return Failure(ValidationError(f"Item {line_id} is not in your cart"))

    # -- coupon ------------------------------------------------------------

    async def apply_coupon(self, code: str) -> Result[Coupon, CheckoutFailure]:
        session = self.session
        refused = self._refuse_unless(session, _EDITABLE_STATES, "apply a coupon")
        if refused is not None:
            return Failure(refused)
        if self._payment_guard.busy:
            return Failure(
                InvalidTransition("Payment is already being set up", session.state.value)
            )

        result = await self.coupon_engine.apply(code, session.snapshot)

        if self.session is not session:
            # reset() ran while the coupon service was answering
            self.coupon_engine.remove()
            return Failure(InvalidTransition("Checkout was reset while applying the coupon"))

        if isinstance(result, Failure):
            error = result.failure()
            if not isinstance(error, DuplicateSubmission):
                await self.analytics.track(
                    CheckoutEventType.COUPON_REJECTED,
                    session.session_id,
                    coupon_code=code.strip().upper(),
                    error=error,
                )
            return result

        coupon = result.unwrap()
        session.applied_coupon = coupon
        session.computed_total = coupon.final_amount
        session.updated_at = utcnow()
        await self.analytics.track(
            CheckoutEventType.COUPON_APPLIED,
            session.session_id,
            amount=coupon.final_amount,
            coupon_code=coupon.code,
        )
        return result

    async def remove_coupon(self) -> Result[Money, CheckoutFailure]:
        """Drop the applied coupon; returns the new payable total."""
        session = self.session
        refused = self._refuse_unless(session, _EDITABLE_STATES, "remove the coupon")
        if refused is not None:
            return Failure(refused)
        if self._payment_guard.busy:
            return Failure(
                InvalidTransition("Payment is already being set up", session.state.value)
            )

        removed = session.applied_coupon
        self.coupon_engine.remove()
        session.applied_coupon = None
        session.computed_total = self.coupon_engine.payable_total(session.snapshot)
        if removed is not None:
            await self.analytics.track(
                CheckoutEventType.COUPON_REMOVED,
                session.session_id,
                coupon_code=removed.code,
            )
        return Success(session.computed_total)

    def discount_amount(self) -> Money:
        """Display-only "you save" figure for the applied coupon."""
        subtotal = self.totals.subtotal
        if self.session.applied_coupon is None:
            return Money.zero(subtotal.currency)
        return self.coupon_engine.discount_amount(self.session.applied_coupon, subtotal)

    # -- address -----------------------------------------------------------

    async def begin_checkout(self) -> Result[Tuple[Address, ...], CheckoutFailure]:
        """Move from the cart to address selection."""
        session = self.session
        refused = self._refuse_unless(session, (CheckoutState.CART,), "start checkout")
        if refused is not None:
            return Failure(refused)

        totals = self.aggregator.aggregate(session.snapshot)
        if totals.total_quantity <= 0:
            return Failure(ValidationError("Your cart is empty"))
        violations = session.snapshot.stock_violations()
        if violations:
            names = ", ".join(line.name or line.product_id for line in violations)
            return Failure(
                ValidationError(f"Not enough stock for: {names}. Please update your cart")
            )

        try:
            addresses = tuple(await self.connector.list_addresses())
        except (CollaboratorError, NetworkError) as e:
            logger.warning(f"Could not load addresses: {e}")
            return Failure(e)

        if self.session is not session:
            return Failure(InvalidTransition("Checkout was reset while loading addresses"))
        if not addresses:
            return Failure(AddressRequired("Please add a delivery address to continue"))

        session.addresses = addresses
        if session.selected_address_id not in {a.address_id for a in addresses}:
            session.selected_address_id = None
        session.computed_total = self.coupon_engine.payable_total(session.snapshot)
        session.transition(CheckoutState.ADDRESS_SELECTION)
        logger.info(
            f"Session {session.session_id} started checkout: "
            f"{totals.total_quantity} items, total={session.computed_total}"
        )
        await self.analytics.track(
            CheckoutEventType.CHECKOUT_STARTED,
            session.session_id,
            amount=session.computed_total,
            coupon_code=session.applied_coupon.code if session.applied_coupon else None,
            item_count=totals.total_quantity,
        )
        return Success(addresses)

    def select_address(self, address_id: str) -> Result[Address, CheckoutFailure]:
        session = self.session
        refused = self._refuse_unless(
            session, (CheckoutState.ADDRESS_SELECTION,), "select an address"
        )
        if refused is not None:
            return Failure(refused)

        for address in session.addresses:
            if address.address_id == address_id:
                session.selected_address_id = address_id
                session.updated_at = utcnow()
                return Success(address)
        return Failure(ValidationError("Please select a valid delivery address"))

    # -- payment -----------------------------------------------------------

    async def start_payment(
        self,
        customer: CustomerDetails,
    ) -> Result[PaymentIntent, CheckoutFailure]:
        """
        Create the gateway order for the current total.

        On success the session is PAYMENT_PENDING and the returned intent
        carries the order id to open the gateway with. On failure the session
        is back in ADDRESS_SELECTION with cart, address and coupon intact.
        """
        session = self.session
        guard = self._payment_guard
        if guard.busy:
            return Failure(
                DuplicateSubmission("Payment is already being set up", resource="payment")
            )
        refused = self._refuse_unless(session, _PAYABLE_STATES, "start payment")
        if refused is not None:
            return Failure(refused)

        if session.snapshot.is_empty:
            return Failure(ValidationError("Your cart is empty"))
        if session.selected_address_id is None:
            return Failure(ValidationError("Please select a delivery address"))
        if not customer.name.strip() or not customer.email.strip():
            return Failure(ValidationError("Your name and email are required to pay"))
        if self.coupon_engine.busy:
            return Failure(ValidationError("Please wait for your coupon to be applied"))

        total = self.coupon_engine.payable_total(session.snapshot)
        if not total.is_positive:
            return Failure(ValidationError("Nothing to pay for"))

        coupon_code = session.applied_coupon.code if session.applied_coupon else None
        request = PaymentIntentRequest(
            amount=total,
            address_id=session.selected_address_id,
            customer_name=customer.name.strip(),
            customer_email=customer.email.strip(),
            coupon_code=coupon_code,
        )
        key = generate_idempotency_key(
            "payment_intent",
            session.session_id,
            total.amount,
            total.currency,
            coupon_code,
            session.selected_address_id,
        )

        guard.try_acquire()
        with guard.hold():
            try:
                intent = await self.connector.create_payment_intent(request, key)
            except (CollaboratorError, NetworkError) as e:
                logger.warning(
                    f"Payment intent for session {session.session_id} failed: {e}"
                )
                if self.session is session:
                    session.computed_total = total
                    session.failure = None
                    session.transition(CheckoutState.ADDRESS_SELECTION)
                return Failure(e)

        if self.session is not session:
            logger.warning(
                f"Discarding payment intent {intent.gateway_order_id}: "
                f"session {session.session_id} was reset"
            )
            return Failure(InvalidTransition("Checkout was reset while payment was set up"))

        if intent.amount != total:
            logger.warning(
                f"Payment service created {intent.gateway_order_id} for "
                f"{intent.amount}, expected {total}"
            )

        session.computed_total = total
        session.payment_intent = intent
        session.payment_id = None
        session.failure = None
        session.idempotency_key = key
        session.transition(CheckoutState.PAYMENT_PENDING)
        logger.info(
            f"Session {session.session_id} awaiting payment for "
            f"{intent.gateway_order_id} ({intent.amount})"
        )
        await self.analytics.track(
            CheckoutEventType.PAYMENT_INITIATED,
            session.session_id,
            gateway_order_id=intent.gateway_order_id,
            amount=intent.amount,
            coupon_code=coupon_code,
        )
        return Success(intent)

    async def handle_payment_success(
        self,
        success: GatewaySuccess,
    ) -> Result[CheckoutOutcome, CheckoutFailure]:
        """
        Verify a gateway success callback with the payment service.

        A verification failure after the gateway reported success leaves the
        session FAILED with ``AmbiguousPaymentState``: the customer may have
        been charged, so it is never retried automatically.
        """
        session = self.session
        stale = self._stale_callback(session, success.gateway_order_id, "success")
        if stale is not None:
            return Failure(stale)

        guard = self._payment_guard
        if not guard.try_acquire():
            return Failure(
                DuplicateSubmission("Payment is already being verified", resource="payment")
            )

        intent = session.payment_intent
        session.payment_id = success.payment_id
        session.transition(CheckoutState.VERIFYING)

        with guard.hold():
            try:
                await self.connector.verify_payment(success)
            except (CollaboratorError, NetworkError) as e:
                return Failure(await self._mark_ambiguous(session, success, e))
            except Exception as e:
                await self._mark_ambiguous(session, success, e)
                logger.exception(
                    f"Unexpected error verifying {success.gateway_order_id}"
                )
                raise

        outcome = CheckoutOutcome(
            session_id=session.session_id,
            gateway_order_id=intent.gateway_order_id,
            payment_id=success.payment_id,
            amount_charged=intent.amount,
            coupon_code=session.applied_coupon.code if session.applied_coupon else None,
        )
        session.transition(CheckoutState.COMPLETED)
        logger.info(
            f"Session {session.session_id} completed: order "
            f"{outcome.gateway_order_id} paid {outcome.amount_charged}"
        )
        await self.analytics.track(
            CheckoutEventType.PAYMENT_SUCCEEDED,
            session.session_id,
            gateway_order_id=outcome.gateway_order_id,
            amount=outcome.amount_charged,
            coupon_code=outcome.coupon_code,
        )

        await self._invalidate(COMPLETION_CACHES)
        if self.session is session:
            self.coupon_engine.remove()
            self.session = self._new_session()
        return Success(outcome)

    async def handle_payment_failure(
        self,
        failure: GatewayFailure,
    ) -> Result[None, CheckoutFailure]:
        """
        Record a payment the gateway reported as failed.

        Cart, address and coupon are kept so the customer can try again.
        A decline for the bound order that arrives after the gateway window
        was closed still moves a CANCELLED session to FAILED.
        """
        session = self.session
        stale = self._stale_callback(
            session,
            failure.gateway_order_id,
            "failure",
            accepted=(CheckoutState.PAYMENT_PENDING, CheckoutState.CANCELLED),
        )
        if stale is not None:
            return Failure(stale)

        declined = PaymentDeclined(
            failure.description or "Payment failed. Please try again",
            code=failure.code,
            gateway_order_id=session.gateway_order_id,
            payment_id=failure.payment_id,
        )
        session.payment_id = failure.payment_id
        session.failure = declined
        session.transition(CheckoutState.FAILED)
        logger.info(
            f"Payment for {session.gateway_order_id} declined: "
            f"{failure.code} {failure.reason}".rstrip()
        )
        await self.analytics.track(
            CheckoutEventType.PAYMENT_FAILED,
            session.session_id,
            gateway_order_id=session.gateway_order_id,
            amount=session.computed_total,
            error=declined,
            reason=failure.reason,
        )
        return Failure(declined)

    async def handle_dismiss(
        self,
        gateway_order_id: Optional[str] = None,
    ) -> Result[CheckoutState, CheckoutFailure]:
        """
        The customer closed the gateway window without paying.

        Safe to call any number of times; outside PAYMENT_PENDING it does
        nothing and reports the current state.
        """
        session = self.session
        if session.state != CheckoutState.PAYMENT_PENDING:
            return Success(session.state)
        if gateway_order_id is not None and gateway_order_id != session.gateway_order_id:
            logger.warning(f"Ignoring dismiss for unknown order {gateway_order_id}")
            return Success(session.state)

        session.transition(CheckoutState.CANCELLED)
        logger.info(f"Session {session.session_id} cancelled payment")
        await self.analytics.track(
            CheckoutEventType.PAYMENT_CANCELLED,
            session.session_id,
            gateway_order_id=session.gateway_order_id,
            amount=session.computed_total,
        )
        return Success(session.state)

    def reset(self) -> CheckoutSession:
        """Discard the current session and start again from the cart."""
        old = self.session
        logger.info(f"Resetting session {old.session_id} (was {old.state.value})")
        self.coupon_engine.remove()
        self.session = self._new_session(old.snapshot.currency)
        self._payment_guard = InFlightGuard("payment")
        return self.session

    # -- helpers -----------------------------------------------------------

    def _new_session(self, currency: Optional[str] = None) -> CheckoutSession:
        return CheckoutSession(
            snapshot=CartSnapshot(currency=currency or self.settings.currency)
        )

    def _refuse_unless(
        self,
        session: CheckoutSession,
        states: Tuple[CheckoutState, ...],
        action: str,
    ) -> Optional[InvalidTransition]:
        if session.state not in states:
            return InvalidTransition(f"Cannot {action} now", session.state.value)
        if session.is_ambiguous:
            return InvalidTransition(
                f"Cannot {action}: {session.failure.message}", session.state.value
            )
        return None

    def _stale_callback(
        self,
        session: CheckoutSession,
        gateway_order_id: Optional[str],
        kind: str,
        accepted: Tuple[CheckoutState, ...] = (CheckoutState.PAYMENT_PENDING,),
    ) -> Optional[StaleCallback]:
        if session.state not in accepted:
            logger.warning(
                f"Ignoring {kind} callback for {gateway_order_id}: "
                f"session is {session.state.value}"
            )
            return StaleCallback(
                "Payment callback does not match this checkout", gateway_order_id
            )
        if gateway_order_id is not None and gateway_order_id != session.gateway_order_id:
            logger.warning(
                f"Ignoring {kind} callback for {gateway_order_id}: "
                f"expected {session.gateway_order_id}"
            )
            return StaleCallback(
                "Payment callback does not match this checkout", gateway_order_id
            )
        return None

    async def _mark_ambiguous(
        self,
        session: CheckoutSession,
        success: GatewaySuccess,
        error: Exception,
    ) -> AmbiguousPaymentState:
        ambiguous = AmbiguousPaymentState(
            self.settings.support_message,
            gateway_order_id=success.gateway_order_id,
            payment_id=success.payment_id,
            cause=str(error),
        )
        session.failure = ambiguous
        session.transition(CheckoutState.FAILED)
        logger.error(
            f"Payment {success.payment_id} for {success.gateway_order_id} "
            f"could not be verified: {error!r}"
        )
        await self.analytics.track(
            CheckoutEventType.PAYMENT_AMBIGUOUS,
            session.session_id,
            gateway_order_id=success.gateway_order_id,
            amount=session.computed_total,
            error=error,
            payment_id=success.payment_id,
        )
        return ambiguous

    async def _invalidate(self, caches: Tuple[str, ...]) -> None:
        if self.invalidate_caches is None:
            return
        try:
            result = self.invalidate_caches(*caches)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Cache invalidation for {caches} failed: {e!r}")
