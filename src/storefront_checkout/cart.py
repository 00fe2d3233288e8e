"""
Cart aggregation.

Totals are computed in a single pass over an immutable ``CartSnapshot``.
The aggregator never fails for valid input: an empty cart is a legitimate
state and yields zero totals.
"""
from __future__ import annotations

import logging
from typing import List

from storefront_checkout.models import CartLine, CartSnapshot, CartTotals
from storefront_checkout.money import Money

logger = logging.getLogger(__name__)


class CartAggregator:
    """Combines cart lines into quantity, subtotal, MRP total and savings."""

    def aggregate(self, snapshot: CartSnapshot) -> CartTotals:
        total_quantity = 0
        subtotal = Money.zero(snapshot.currency)
        mrp_total = Money.zero(snapshot.currency)

        for line in snapshot.lines:
            total_quantity += line.quantity
            subtotal = subtotal.add(line.line_total)
            mrp_total = mrp_total.add(line.line_mrp_total)

        savings, clamped = mrp_total.subtract(subtotal)
        if clamped:
            logger.warning(
                f"Cart MRP total {mrp_total} is below subtotal {subtotal}; "
                f"reporting zero savings"
            )

        return CartTotals(
            total_quantity=total_quantity,
            subtotal=subtotal,
            mrp_total=mrp_total,
            product_savings=savings,
        )


def product_occurrences(snapshot: CartSnapshot) -> List[str]:
    """
    Each line's product id repeated once per unit, in line order.

    The coupon service checks eligibility and thresholds per unit, so two of
    the same shirt must count twice.
    """
    occurrences: List[str] = []
    for line in snapshot.lines:
        occurrences.extend([line.product_id] * line.quantity)
    return occurrences


def adjust_quantity(line: CartLine, delta: int) -> int:
    """
    Target quantity after pressing +/- on a cart line.

    Never drops below one (removal is a separate action) and never exceeds
    known stock.
    """
    target = line.quantity + delta
    if line.available_stock is not None:
        target = min(target, line.available_stock)
    return max(1, target)
