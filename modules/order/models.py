"""
Order Module - Models
======================
Order with full price snapshot per item for audit trail, the per-year order
number counter, and the status transition table.
"""

import enum
from typing import Dict, FrozenSet

from sqlalchemy import (
    Column, Integer, String, Numeric, Text,
    ForeignKey, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base
from common.helpers import to_money


class DeliveryMethod(str, enum.Enum):
    COURIER = "courier"
    PICKUP = "pickup"
    POST = "post"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"        # on receipt
    CARD = "card"        # on receipt
    ONLINE = "online"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# ==========================================
# Status machine
# ==========================================

ORDER_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.PAID, OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset(
    s for s, targets in ORDER_TRANSITIONS.items() if OrderStatus.CANCELLED in targets
)


def can_transition(current, target) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


# ==========================================
# Order
# ==========================================

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True, index=True)              # null for guest orders
    session_id = Column(String(64), nullable=True, index=True)
    order_number = Column(String(20), unique=True, nullable=False)

    # Customer contact
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)

    # Delivery / payment
    delivery_address = Column(Text, nullable=False, default="")
    delivery_method = Column(String(16), nullable=False)
    payment_method = Column(String(16), nullable=False)

    # Amounts
    subtotal = Column(Numeric(12, 2), nullable=False)
    delivery_cost = Column(Numeric(12, 2), default=0, nullable=False)
    discount = Column(Numeric(12, 2), default=0, nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    status = Column(String(16), default=OrderStatus.PENDING.value, nullable=False, index=True)
    payment_status = Column(String(16), default=PaymentStatus.PENDING.value, nullable=False)

    notes = Column(Text, nullable=True)           # customer comment
    admin_notes = Column(Text, nullable=True)     # internal only

    paid_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    status_logs = relationship("OrderStatusLog", back_populates="order", order_by="OrderStatusLog.id")

    __table_args__ = (
        CheckConstraint("NOT (user_id IS NOT NULL AND session_id IS NOT NULL)", name="ck_order_single_owner"),
        CheckConstraint("total >= 0", name="ck_order_total"),
    )

    @property
    def calculated_total(self):
        return to_money(to_money(self.subtotal) + to_money(self.delivery_cost) - to_money(self.discount))

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID or self.paid_at is not None

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    @property
    def can_be_cancelled(self) -> bool:
        return OrderStatus(self.status) in CANCELLABLE_STATUSES

    @property
    def status_label(self) -> str:
        labels = {
            OrderStatus.PENDING: "Awaiting processing",
            OrderStatus.PROCESSING: "Processing",
            OrderStatus.PAID: "Paid",
            OrderStatus.SHIPPED: "Shipped",
            OrderStatus.DELIVERED: "Delivered",
            OrderStatus.CANCELLED: "Cancelled",
        }
        return labels.get(OrderStatus(self.status), self.status)

    @property
    def delivery_method_label(self) -> str:
        labels = {
            DeliveryMethod.COURIER: "Courier delivery",
            DeliveryMethod.PICKUP: "Store pickup",
            DeliveryMethod.POST: "Postal delivery",
        }
        return labels.get(DeliveryMethod(self.delivery_method), "—")

    @property
    def payment_method_label(self) -> str:
        labels = {
            PaymentMethod.CASH: "Cash on receipt",
            PaymentMethod.CARD: "Card on receipt",
            PaymentMethod.ONLINE: "Online payment",
        }
        return labels.get(PaymentMethod(self.payment_method), "—")

    def __repr__(self):
        return f"<Order {self.order_number} {self.status}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False)

    # Snapshot at time of purchase
    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_qty"),
    )


class OrderStatusLog(Base):
    __tablename__ = "order_status_logs"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String(16), nullable=True)
    to_status = Column(String(16), nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="status_logs")


class OrderSequence(Base):
    """Per-year order number counter. One row per calendar year."""
    __tablename__ = "order_sequences"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_value = Column(Integer, default=0, nullable=False)
