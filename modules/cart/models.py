"""
Cart Module - Models
=====================
Cart lines keyed by a user id OR a guest session id (never both), one line
per (owner, product), each carrying the unit price snapshot taken when the
line was created.
"""

from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, ForeignKey, DateTime,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from config.database import Base
from common.helpers import line_total

PRICE_TOLERANCE = Decimal("0.01")


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True, index=True)
    session_id = Column(String(64), nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)          # unit price snapshot
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_cart_user_product"),
        UniqueConstraint("session_id", "product_id", name="uq_cart_session_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_qty"),
        CheckConstraint("(user_id IS NULL) <> (session_id IS NULL)", name="ck_cart_single_owner"),
    )

    @property
    def subtotal(self):
        return line_total(self.price, self.quantity)

    @property
    def current_price(self):
        return self.product.price if self.product is not None else None

    @property
    def has_price_changed(self) -> bool:
        current = self.current_price
        if current is None:
            return False
        return abs(current - self.price) > PRICE_TOLERANCE

    @property
    def is_available(self) -> bool:
        return (
            self.product is not None
            and bool(self.product.is_available)
            and self.product.stock >= self.quantity
        )

