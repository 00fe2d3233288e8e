"""
Tests for storefront_checkout.orders.
"""
from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from returns.result import Success

from storefront_checkout.connectors.base import OrderConnector
from storefront_checkout.errors import CollaboratorError, NetworkError, ValidationError
from storefront_checkout.models import OrderStatus, StatusEntry, TrackedOrder
from storefront_checkout.money import Money
from storefront_checkout.orders import (
    OrderTracker,
    completed_steps,
    estimated_delivery,
    latest_status,
)

PLACED_AT = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def make_order(order_id="ord_1", statuses=(), created_at=PLACED_AT):
    return TrackedOrder(
        order_id=order_id,
        gateway_order_id="order_abc",
        amount=Money(232000),
        created_at=created_at,
        status_history=tuple(StatusEntry(status=s) for s in statuses),
    )


class TestStatusHelpers:
    """Tests for latest_status, completed_steps and estimated_delivery."""

    def test_latest_status_defaults_to_order(self):
        """Should treat an order without history as placed."""
        assert latest_status(make_order()) == OrderStatus.ORDER

    def test_latest_status(self):
        """Should return the last recorded status."""
        order = make_order(statuses=[OrderStatus.ORDER, OrderStatus.SHIPPED])
        assert latest_status(order) == OrderStatus.SHIPPED

    def test_completed_steps_in_transit(self):
        """Should mark every step up to the current one."""
        order = make_order(statuses=[OrderStatus.ORDER, OrderStatus.OUT_FOR_DELIVERY])

        steps = completed_steps(order)

        assert steps == {
            OrderStatus.ORDER: True,
            OrderStatus.SHIPPED: True,
            OrderStatus.OUT_FOR_DELIVERY: True,
            OrderStatus.DELIVERED: False,
        }

    def test_completed_steps_new_order(self):
        """Should mark only the first step for a new order."""
        steps = completed_steps(make_order())

        assert steps[OrderStatus.ORDER]
        assert not steps[OrderStatus.SHIPPED]

    def test_completed_steps_cancelled(self):
        """Should keep only the steps reached before cancellation."""
        order = make_order(statuses=[OrderStatus.ORDER, OrderStatus.CANCELLED])

        steps = completed_steps(order)

        assert steps[OrderStatus.ORDER]
        assert not steps[OrderStatus.SHIPPED]
        assert not steps[OrderStatus.DELIVERED]

    def test_estimated_delivery(self):
        """Should add the delivery window to the order date."""
        assert estimated_delivery(make_order()) == datetime(2024, 3, 8, 10, 0, tzinfo=timezone.utc)
        assert estimated_delivery(make_order(), days=3).day == 4


class TestOrderTracker:
    """Tests for OrderTracker."""

    @pytest.fixture
    def order_connector(self):
        return AsyncMock(spec=OrderConnector)

    @pytest.fixture
    def tracker(self, order_connector, settings):
        return OrderTracker(order_connector, settings)

    @pytest.mark.asyncio
    async def test_my_orders_newest_first(self, tracker, order_connector):
        """Should sort orders by creation time, newest first."""
        older = make_order("ord_1")
        newer = make_order("ord_2", created_at=datetime(2024, 4, 1, tzinfo=timezone.utc))
        order_connector.list_orders.return_value = [older, newer]

        result = await tracker.my_orders()

        assert [o.order_id for o in result.unwrap()] == ["ord_2", "ord_1"]

    @pytest.mark.asyncio
    async def test_my_orders_failure(self, tracker, order_connector):
        """Should return the collaborator failure."""
        order_connector.list_orders.side_effect = NetworkError("offline")

        result = await tracker.my_orders()

        assert isinstance(result.failure(), NetworkError)

    @pytest.mark.asyncio
    async def test_track(self, tracker, order_connector):
        """Should look up a trimmed order id."""
        order_connector.get_order.return_value = make_order()

        result = await tracker.track("  ord_1 ")

        assert isinstance(result, Success)
        order_connector.get_order.assert_awaited_once_with("ord_1")

    @pytest.mark.asyncio
    async def test_track_blank_id(self, tracker, order_connector):
        """Should refuse a blank id without calling the service."""
        result = await tracker.track("  ")

        assert isinstance(result.failure(), ValidationError)
        order_connector.get_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_track_unknown(self, tracker, order_connector):
        """Should pass the backend message through."""
        order_connector.get_order.side_effect = CollaboratorError("Order not found")

        result = await tracker.track("ord_x")

        assert str(result.failure()) == "Order not found"

    def test_estimated_delivery_uses_settings(self, order_connector):
        """Should use the configured delivery window."""
        from storefront_checkout.config import CheckoutSettings

        tracker = OrderTracker(
            order_connector,
            CheckoutSettings(_env_file=None, estimated_delivery_days=10),
        )

        assert tracker.estimated_delivery(make_order()).day == 11
