"""
Pytest configuration for storefront-checkout tests.
"""
from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
if str(package_src) not in sys.path:
    sys.path.insert(0, str(package_src))

from storefront_checkout.analytics import CheckoutAnalytics, InMemoryAnalyticsBackend
from storefront_checkout.config import CheckoutSettings
from storefront_checkout.connectors.base import StorefrontConnector
from storefront_checkout.models import (
    Address,
    CartLine,
    CartSnapshot,
    Coupon,
    CustomerDetails,
    PaymentIntent,
)
from storefront_checkout.money import Money
from storefront_checkout.orchestrator import CheckoutOrchestrator


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return CheckoutSettings(
        _env_file=None,
        backend_url="http://store.test",
        gateway_key_id="rzp_test_key",
    )


@pytest.fixture
def make_line():
    """Factory for cart lines priced in whole rupees."""
    def _make(
        line_id="l1",
        product_id="p1",
        price=500,
        mrp=None,
        quantity=1,
        stock=None,
        name="",
    ):
        return CartLine(
            line_id=line_id,
            product_id=product_id,
            unit_price=Money.from_major_units(price),
            unit_mrp=Money.from_major_units(mrp if mrp is not None else price),
            quantity=quantity,
            available_stock=stock,
            name=name,
        )
    return _make


@pytest.fixture
def sample_snapshot(make_line):
    """Two lines: 500 (MRP 700) x1 and 1200 (MRP 1200) x2."""
    return CartSnapshot.of([
        make_line("l1", "p1", price=500, mrp=700, quantity=1),
        make_line("l2", "p2", price=1200, mrp=1200, quantity=2),
    ])


@pytest.fixture
def addresses():
    return [
        Address(address_id="addr_home", label="Home", city="Jaipur", pin_code="302001"),
        Address(address_id="addr_work", label="Work", city="Pune", pin_code="411001"),
    ]


@pytest.fixture
def customer():
    return CustomerDetails(name="Asha Verma", email="asha@example.com")


@pytest.fixture
def connector(sample_snapshot, addresses):
    """Storefront collaborator double with happy-path defaults."""
    connector = AsyncMock(spec=StorefrontConnector)
    connector.fetch_cart.return_value = sample_snapshot
    connector.list_addresses.return_value = addresses
    connector.apply_coupon.return_value = Coupon(
        code="SAVE20",
        final_amount=Money.from_major_units(2320),
        offer_description="20% off",
    )

    async def create_intent(request, idempotency_key=None):
        return PaymentIntent(gateway_order_id="order_abc", amount=request.amount)

    connector.create_payment_intent.side_effect = create_intent
    connector.verify_payment.return_value = None
    return connector


@pytest.fixture
def analytics():
    return CheckoutAnalytics(InMemoryAnalyticsBackend())


@pytest.fixture
def invalidate_caches():
    return Mock()


@pytest.fixture
def orchestrator(connector, analytics, settings, invalidate_caches):
    return CheckoutOrchestrator(
        connector,
        analytics=analytics,
        settings=settings,
        invalidate_caches=invalidate_caches,
    )
