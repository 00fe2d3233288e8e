"""
Checkout analytics and event tracking.

One event is recorded per significant checkout transition so funnels
(started -> paid) and failure reasons can be measured. Publishing problems
are logged and never change a checkout's outcome.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from storefront_checkout.models import utcnow
from storefront_checkout.money import Money

logger = logging.getLogger(__name__)


class CheckoutEventType(str, Enum):
    """Checkout analytics event types."""
    CHECKOUT_STARTED = "checkout.started"
    COUPON_APPLIED = "checkout.coupon.applied"
    COUPON_REJECTED = "checkout.coupon.rejected"
    COUPON_REMOVED = "checkout.coupon.removed"
    PAYMENT_INITIATED = "checkout.payment.initiated"
    PAYMENT_SUCCEEDED = "checkout.payment.succeeded"
    PAYMENT_FAILED = "checkout.payment.failed"
    PAYMENT_CANCELLED = "checkout.payment.cancelled"
    PAYMENT_AMBIGUOUS = "checkout.payment.ambiguous"


@dataclass
class CheckoutEvent:
    """Checkout analytics event."""
    event_type: CheckoutEventType
    session_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    gateway_order_id: Optional[str] = None
    amount: Optional[Money] = None
    coupon_code: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


class AnalyticsBackend(ABC):
    """Abstract interface for analytics storage/publishing backends."""

    @abstractmethod
    async def publish(self, event: CheckoutEvent) -> None:
        """Publish an analytics event."""
        pass

    async def query(
        self,
        event_type: Optional[CheckoutEventType] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[CheckoutEvent]:
        """Query analytics events, newest first. Write-only backends return nothing."""
        return []


class InMemoryAnalyticsBackend(AnalyticsBackend):
    """
    In-memory analytics backend for development and testing.

    Only the most recent ``max_events`` events are kept.
    """

    def __init__(self, max_events: int = 10000):
        self._events: List[CheckoutEvent] = []
        self._max_events = max_events
        self._lock = asyncio.Lock()

    async def publish(self, event: CheckoutEvent) -> None:
        async with self._lock:
            self._events.append(event)
            if len(self._events) > self._max_events:
                self._events = self._events[-self._max_events:]

    async def query(
        self,
        event_type: Optional[CheckoutEventType] = None,
        session_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[CheckoutEvent]:
        async with self._lock:
            results = []
            for event in reversed(self._events):
                if event_type and event.event_type != event_type:
                    continue
                if session_id and event.session_id != session_id:
                    continue
                results.append(event)
                if len(results) >= limit:
                    break
            return results


class LoggingAnalyticsBackend(AnalyticsBackend):
    """Analytics backend that logs events for debugging."""

    def __init__(self, log_level: int = logging.INFO):
        self._log_level = log_level

    async def publish(self, event: CheckoutEvent) -> None:
        logger.log(
            self._log_level,
            "Analytics event: type=%s session_id=%s order_id=%s amount=%s error=%s",
            event.event_type.value,
            event.session_id,
            event.gateway_order_id,
            event.amount,
            event.error_code,
        )


class CheckoutAnalytics:
    """Records checkout events to a backend."""

    def __init__(self, backend: Optional[AnalyticsBackend] = None):
        self.backend = backend or InMemoryAnalyticsBackend()

    async def track(
        self,
        event_type: CheckoutEventType,
        session_id: str,
        gateway_order_id: Optional[str] = None,
        amount: Optional[Money] = None,
        coupon_code: Optional[str] = None,
        error: Optional[Exception] = None,
        **metadata: Any,
    ) -> Optional[CheckoutEvent]:
        event = CheckoutEvent(
            event_type=event_type,
            session_id=session_id,
            gateway_order_id=gateway_order_id,
            amount=amount,
            coupon_code=coupon_code,
            error_code=type(error).__name__ if error is not None else None,
            error_message=str(error) if error is not None else None,
            metadata=metadata,
        )
        try:
            await self.backend.publish(event)
        except Exception as e:
            logger.warning(f"Failed to publish {event_type.value} event: {e!r}")
            return None
        return event
