"""
Order Module - Service Layer
===============================
Checkout, status lifecycle, cancellation with stock restoration, queries.

Methods flush but never commit; the request handler commits once the call
returns. Multi-step writes (create, cancel) run inside a SAVEPOINT so a failure
leaves stock, cart and order rows exactly as they were.
"""

import logging
from typing import List, Optional, Union

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from common.exceptions import (
    NotFoundError, BusinessRuleViolation, EmptyCartError, ItemsUnavailableError,
    StateTransitionError, NotCancellableError,
)
from common.helpers import now_utc, to_money, format_money
from common.owner import OwnerKey, AuthenticatedOwner, owner_filter, owner_columns
from config.settings import PICKUP_ADDRESS, BASE_URL
from modules.cart.models import CartItem
from modules.cart.service import cart_service
from modules.catalog.service import catalog_service
from modules.customer.service import address_service
from modules.order.models import (
    Order, OrderItem, OrderStatusLog,
    OrderStatus, PaymentStatus, PaymentMethod, DeliveryMethod,
    can_transition,
)
from modules.order.numbering import numbering_service
from modules.order.schemas import CheckoutData
from modules.pricing.calculator import quote

logger = logging.getLogger("storefront.order")


def build_order_item(cart_item: CartItem) -> OrderItem:
    """Create an OrderItem snapshot of a cart line."""
    return OrderItem(
        product_id=cart_item.product_id,
        product_name=cart_item.product.name,
        quantity=cart_item.quantity,
        price=to_money(cart_item.price),
        total=cart_item.subtotal,
    )


class OrderService:

    # ==========================================
    # Pricing preview
    # ==========================================

    def calculate_order_total(
        self,
        items: List[CartItem],
        delivery_method: Union[DeliveryMethod, str],
        owner: Optional[OwnerKey] = None,
    ) -> dict:
        """
        Price a set of cart lines without persisting anything.
        Uses the same quote() as create_order(). The current policy does not
        depend on `owner`.
        """
        return quote(cart_service.calculate_subtotal(items), delivery_method)

    # ==========================================
    # Checkout
    # ==========================================

    def create_order(self, db: Session, owner: OwnerKey, order_data: Union[CheckoutData, dict]) -> Order:
        """
        Create an order from the owner's cart:
        1. Reject an empty cart
        2. Reject lines that are disabled or short on stock (listing them)
        3. Price the cart (subtotal, delivery, discount, total)
        4. Allocate the order number
        5. Persist the Pending order with one OrderItem snapshot per line
        6. Decrement stock (conditional UPDATE per product)
        7. Clear the cart
        8. Save a newly entered address to a logged-in owner's address book

        Steps 3-8 are one SAVEPOINT; any failure undoes all of them.
        Raises EmptyCartError, ItemsUnavailableError, InsufficientStockError,
        NotFoundError (address_id not in the owner's address book).
        """
        data = order_data if isinstance(order_data, CheckoutData) else CheckoutData(**order_data)

        items = cart_service.get_cart_items(db, owner)
        if not items:
            raise EmptyCartError()

        availability = cart_service.check_availability(db, owner)
        if not availability["available"]:
            logger.warning(
                f"Checkout rejected for {owner}: "
                f"{len(availability['unavailable_items'])} unavailable line(s)"
            )
            raise ItemsUnavailableError(availability["unavailable_items"])

        delivery_address = self.format_delivery_address(db, owner, data)

        with db.begin_nested():
            totals = self.calculate_order_total(items, data.delivery_method, owner)

            order = Order(
                order_number=numbering_service.next_order_number(db),
                customer_name=data.name,
                customer_email=data.email,
                customer_phone=data.phone,
                delivery_address=delivery_address,
                delivery_method=data.delivery_method.value,
                payment_method=data.payment_method.value,
                subtotal=totals["subtotal"],
                delivery_cost=totals["delivery_cost"],
                discount=totals["discount"],
                total=totals["total"],
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                notes=data.notes,
                **owner_columns(owner),
            )
            db.add(order)

            for item in items:
                catalog_service.decrement_stock(db, item.product_id, item.quantity)
                order.items.append(build_order_item(item))

            order.status_logs.append(OrderStatusLog(to_status=OrderStatus.PENDING.value))
            cart_service.clear_cart(db, owner)

            if data.new_address and data.address_id is None and isinstance(owner, AuthenticatedOwner):
                address_service.save_address(db, owner, data.new_address, phone=data.phone)
            db.flush()

        logger.info(
            f"Order {order.order_number} created for {owner}: "
            f"{len(order.items)} line(s), total {format_money(order.total)}"
        )
        return order

    def format_delivery_address(self, db: Session, owner: OwnerKey, data: CheckoutData) -> str:
        """
        Delivery address text stored on the order, by precedence:
        pickup → store address; address_id → saved address of the owner;
        new_address → the entered address; otherwise the free-text address.
        """
        if data.delivery_method == DeliveryMethod.PICKUP:
            return PICKUP_ADDRESS
        if data.address_id is not None:
            return address_service.get_address(db, owner, data.address_id).full_address
        if data.new_address is not None:
            details = data.new_address.delivery_details
            full = data.new_address.full_address
            return f"{full} ({details})" if details else full
        return data.address.strip()

    # ==========================================
    # Payment
    # ==========================================

    def process_payment(self, order: Order) -> dict:
        """
        Decide what happens after checkout. Cash and card are settled on
        receipt; online payment hands the customer a payment page URL.
        """
        if order.payment_method in (PaymentMethod.CASH, PaymentMethod.CARD):
            return {
                "success": True,
                "payment_url": None,
                "message": "Payment will be collected on receipt of the order.",
            }

        logger.info(f"Online payment requested for order {order.order_number}")
        return {
            "success": True,
            "payment_url": f"{BASE_URL}/api/orders/{order.id}",
            "message": "Redirecting to the payment page.",
        }

    def mark_as_paid(self, db: Session, order: Order) -> Order:
        """
        Record a successful payment. Allowed from pending/processing; an order
        that is already paid is returned unchanged. Stock is not touched.
        """
        order = self._lock(db, order)
        if order.status == OrderStatus.PAID:
            return order

        self._transition(order, OrderStatus.PAID)
        order.payment_status = PaymentStatus.PAID.value
        order.paid_at = now_utc()
        db.flush()

        logger.info(f"Order {order.order_number} paid")
        return order

    def mark_payment_failed(self, db: Session, order: Order) -> Order:
        order = self._lock(db, order)
        if order.payment_status == PaymentStatus.PAID:
            raise StateTransitionError(order.payment_status, PaymentStatus.FAILED.value,
                                       "Payment of a paid order cannot be marked as failed.")
        order.payment_status = PaymentStatus.FAILED.value
        db.flush()
        logger.info(f"Payment failed for order {order.order_number}")
        return order

    def send_order_confirmation(self, order: Order) -> None:
        # Email delivery belongs to the notification service.
        logger.info(f"Order confirmation {order.order_number} queued for {order.customer_email}")

    # ==========================================
    # Fulfillment
    # ==========================================

    def start_processing(self, db: Session, order: Order) -> Order:
        order = self._lock(db, order)
        self._transition(order, OrderStatus.PROCESSING)
        db.flush()
        return order

    def mark_as_shipped(self, db: Session, order: Order) -> Order:
        order = self._lock(db, order)
        self._transition(order, OrderStatus.SHIPPED)
        order.shipped_at = now_utc()
        db.flush()
        logger.info(f"Order {order.order_number} shipped")
        return order

    def mark_as_delivered(self, db: Session, order: Order) -> Order:
        order = self._lock(db, order)
        self._transition(order, OrderStatus.DELIVERED)
        order.delivered_at = now_utc()
        db.flush()
        logger.info(f"Order {order.order_number} delivered")
        return order

    # ==========================================
    # Cancel
    # ==========================================

    def cancel_order(self, db: Session, order: Order, reason: Optional[str] = None) -> Order:
        """
        Cancel a pending/processing/paid order and put every line's quantity
        back into stock. Raises NotCancellableError otherwise.
        """
        order = self._lock(db, order)
        if not order.can_be_cancelled:
            raise NotCancellableError(order.status)

        with db.begin_nested():
            for item in order.items:
                catalog_service.increment_stock(db, item.product_id, item.quantity)

            self._transition(order, OrderStatus.CANCELLED, note=reason)
            order.cancelled_at = now_utc()
            if reason:
                line = f"Cancellation reason: {reason}"
                order.admin_notes = f"{order.admin_notes}\n{line}" if order.admin_notes else line
            db.flush()

        logger.info(f"Order {order.order_number} cancelled" + (f": {reason}" if reason else ""))
        return order

    # ==========================================
    # Reorder
    # ==========================================

    def reorder(self, db: Session, owner: OwnerKey, order: Order) -> dict:
        """
        Put the lines of a past order back into the owner's cart at current
        catalog prices. Lines that can no longer be sold are reported by name.
        """
        added = 0
        unavailable = []
        for item in order.items:
            try:
                cart_service.add_item(db, owner, item.product_id, item.quantity)
                added += 1
            except (NotFoundError, BusinessRuleViolation):
                unavailable.append(item.product_name)

        return {"added": added, "unavailable": unavailable}

    # ==========================================
    # Query
    # ==========================================

    def get_owner_orders(self, db: Session, owner: OwnerKey, status: Optional[str] = None) -> List[Order]:
        q = db.query(Order).filter(owner_filter(Order, owner))
        if status:
            q = q.filter(Order.status == OrderStatus(status).value)
        return q.order_by(desc(Order.created_at), desc(Order.id)).all()

    def get_owner_order(self, db: Session, owner: OwnerKey, order_id: int) -> Order:
        """Owner-scoped lookup. Foreign and missing orders both raise NotFoundError."""
        order = db.query(Order).filter(owner_filter(Order, owner), Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order")
        return order

    def get_order_by_id(self, db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order")
        return order

    def get_all_orders(self, db: Session, status: Optional[str] = None) -> List[Order]:
        q = db.query(Order).order_by(desc(Order.id))
        if status:
            q = q.filter(Order.status == OrderStatus(status).value)
        return q.all()

    def get_status_counts(self, db: Session, owner: OwnerKey) -> dict:
        rows = (
            db.query(Order.status, func.count(Order.id))
            .filter(owner_filter(Order, owner))
            .group_by(Order.status)
            .all()
        )
        counts = {s.value: 0 for s in OrderStatus}
        counts.update({status: cnt for status, cnt in rows})
        counts["all"] = sum(cnt for _, cnt in rows)
        return counts

    # ==========================================
    # Private Helpers
    # ==========================================

    def _lock(self, db: Session, order: Order) -> Order:
        """Reload the order row with FOR UPDATE."""
        return (
            db.query(Order)
            .filter(Order.id == order.id)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def _transition(self, order: Order, target: OrderStatus, note: Optional[str] = None):
        if not can_transition(order.status, target):
            raise StateTransitionError(order.status, target.value)
        order.status_logs.append(OrderStatusLog(
            from_status=order.status,
            to_status=target.value,
            note=note,
        ))
        order.status = target.value


# Singleton
order_service = OrderService()
