"""
Storefront Core - Custom Exceptions
=====================================
Business-level exceptions that can be caught and converted to HTTP responses.
"""

from typing import List, Optional

from fastapi import status


class ShopError(Exception):
    """Base exception for all business logic errors."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An internal error occurred."):
        self.message = message
        super().__init__(self.message)


class NotFoundError(ShopError):
    """
    Raised when a requested resource doesn't exist or belongs to another owner.
    Both cases share one message so foreign rows look the same as missing ones.
    """
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, what: str = "Resource"):
        super().__init__(f"{what} not found.")


class BusinessRuleViolation(ShopError):
    """Raised when a request breaks a cart or checkout rule."""
    pass


class ProductUnavailableError(BusinessRuleViolation):
    """Raised when a product exists but is disabled for sale."""
    def __init__(self, product_name: str = ""):
        msg = f"Product is not available: {product_name}" if product_name else "Product is not available."
        super().__init__(msg)


class InsufficientStockError(BusinessRuleViolation):
    """Raised when product stock cannot cover the requested quantity."""
    def __init__(self, product_name: str = "", requested: Optional[int] = None, available: Optional[int] = None):
        self.product_name = product_name
        self.requested = requested
        self.available = available
        msg = f"Insufficient stock: {product_name}" if product_name else "Insufficient stock."
        if available is not None:
            msg += f" (available: {available}, requested: {requested})"
        super().__init__(msg)


class EmptyCartError(BusinessRuleViolation):
    """Raised on checkout of an empty cart."""
    def __init__(self):
        super().__init__("Cart is empty. Add products before placing an order.")


class ItemsUnavailableError(BusinessRuleViolation):
    """Raised on checkout when some cart lines cannot be fulfilled."""
    def __init__(self, items: List[dict]):
        self.items = items
        names = ", ".join(
            f"{it['product_name']} ({it['available_quantity']} of {it['requested_quantity']})"
            for it in items
        )
        super().__init__(f"Some products are unavailable in the requested quantity: {names}")


class StateTransitionError(ShopError):
    """Raised for an illegal order status change."""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, current: str, target: str, message: str = ""):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot change order status from '{current}' to '{target}'.")


class NotCancellableError(StateTransitionError):
    """Raised when cancelling an order that is shipped, delivered or already cancelled."""
    def __init__(self, current: str):
        super().__init__(
            current, "cancelled",
            f"Order cannot be cancelled: it is already {current}.",
        )

