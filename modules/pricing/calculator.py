"""
Pricing Module - Calculator
=============================
Delivery cost and discount policy. Pure functions, no database access.
The checkout preview and order creation both price through quote(), so a
customer is always charged exactly what was quoted.
"""

from decimal import Decimal

from common.helpers import to_money
from config.settings import (
    FREE_COURIER_THRESHOLD, COURIER_COST, POST_COST,
    DISCOUNT_THRESHOLD, DISCOUNT_PERCENT,
)
from modules.order.models import DeliveryMethod

ZERO = Decimal("0.00")


def calculate_delivery_cost(delivery_method, subtotal) -> Decimal:
    """
    pickup  → free
    courier → free from FREE_COURIER_THRESHOLD, COURIER_COST below it
    post    → flat POST_COST regardless of subtotal
    """
    method = DeliveryMethod(delivery_method)
    subtotal = to_money(subtotal)

    if method is DeliveryMethod.PICKUP:
        return ZERO
    if method is DeliveryMethod.COURIER:
        return ZERO if subtotal >= FREE_COURIER_THRESHOLD else to_money(COURIER_COST)
    if method is DeliveryMethod.POST:
        return to_money(POST_COST)
    raise ValueError(f"Unknown delivery method: {delivery_method}")


def calculate_discount(subtotal) -> Decimal:
    """DISCOUNT_PERCENT of the subtotal once it reaches DISCOUNT_THRESHOLD."""
    subtotal = to_money(subtotal)
    if subtotal >= DISCOUNT_THRESHOLD:
        return to_money(subtotal * DISCOUNT_PERCENT / Decimal(100))
    return ZERO


def quote(subtotal, delivery_method) -> dict:
    """
    Full price breakdown for a subtotal and delivery method.

    Returns:
        dict with: subtotal, delivery_cost, discount, total (all Decimal, 2 places)
    """
    subtotal = to_money(subtotal)
    delivery_cost = calculate_delivery_cost(delivery_method, subtotal)
    discount = calculate_discount(subtotal)
    total = to_money(subtotal + delivery_cost - discount)

    return {
        "subtotal": subtotal,
        "delivery_cost": delivery_cost,
        "discount": discount,
        "total": total,
    }
