"""Order history and delivery tracking."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from returns.result import Failure, Result, Success

from storefront_checkout.config import CheckoutSettings, get_settings
from storefront_checkout.connectors.base import OrderConnector
from storefront_checkout.errors import (
    CheckoutFailure,
    CollaboratorError,
    NetworkError,
    ValidationError,
)
from storefront_checkout.models import OrderStatus, TrackedOrder

logger = logging.getLogger(__name__)

# Fulfilment steps in the order they happen
STATUS_STEPS = (
    OrderStatus.ORDER,
    OrderStatus.SHIPPED,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
)


def latest_status(order: TrackedOrder) -> OrderStatus:
    """Most recent status; a new order without history counts as placed."""
    if not order.status_history:
        return OrderStatus.ORDER
    return order.status_history[-1].status


def completed_steps(order: TrackedOrder) -> Dict[OrderStatus, bool]:
    """Which fulfilment steps the order has reached."""
    current = latest_status(order)
    if current not in STATUS_STEPS:
        # cancelled: only the steps actually recorded are done
        seen = {entry.status for entry in order.status_history}
        return {step: step in seen or step is OrderStatus.ORDER for step in STATUS_STEPS}
    reached = STATUS_STEPS.index(current)
    return {step: i <= reached for i, step in enumerate(STATUS_STEPS)}


def estimated_delivery(order: TrackedOrder, days: int = 7) -> datetime:
    return order.created_at + timedelta(days=days)


class OrderTracker:
    """Looks up the customer's orders and where they are."""

    def __init__(
        self,
        connector: OrderConnector,
        settings: Optional[CheckoutSettings] = None,
    ):
        self.connector = connector
        self.settings = settings or get_settings()

    async def my_orders(self) -> Result[List[TrackedOrder], CheckoutFailure]:
        try:
            orders = await self.connector.list_orders()
        except (CollaboratorError, NetworkError) as e:
            logger.warning(f"Could not load orders: {e}")
            return Failure(e)
        # newest first
        return Success(sorted(orders, key=lambda o: o.created_at, reverse=True))

    async def track(self, order_id: str) -> Result[TrackedOrder, CheckoutFailure]:
        order_id = order_id.strip()
        if not order_id:
            return Failure(ValidationError("Please enter an order id"))
        try:
            order = await self.connector.get_order(order_id)
        except (CollaboratorError, NetworkError) as e:
            logger.info(f"Could not track order {order_id}: {e}")
            return Failure(e)
        return Success(order)

    def estimated_delivery(self, order: TrackedOrder) -> datetime:
        return estimated_delivery(order, self.settings.estimated_delivery_days)
