"""
Cart Module - Service Layer
==============================
Cart management for users and guests: add/update/remove items, totals,
availability, price resync and guest → user merge.

Every method takes the owner key explicitly; there is no ambient session.
Methods flush but never commit; the caller owns the transaction.
"""

import logging
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session, joinedload

from common.exceptions import NotFoundError, BusinessRuleViolation, InsufficientStockError
from common.helpers import to_money
from common.owner import OwnerKey, AuthenticatedOwner, GuestOwner, owner_filter, owner_columns
from modules.cart.models import CartItem
from modules.catalog.service import catalog_service

logger = logging.getLogger("storefront.cart")


class CartService:

    # ==========================================
    # Query
    # ==========================================

    def get_cart_items(self, db: Session, owner: OwnerKey) -> List[CartItem]:
        """All cart lines of the owner with their products loaded, oldest first."""
        return (
            db.query(CartItem)
            .options(joinedload(CartItem.product))
            .filter(owner_filter(CartItem, owner))
            .order_by(CartItem.id)
            .all()
        )

    def get_total(self, db: Session, owner: OwnerKey) -> Decimal:
        return self.calculate_subtotal(self.get_cart_items(db, owner))

    def get_items_count(self, db: Session, owner: OwnerKey) -> int:
        """Total number of units in the cart."""
        return sum(item.quantity for item in self.get_cart_items(db, owner))

    def get_items_quantity(self, db: Session, owner: OwnerKey) -> int:
        """Number of distinct lines (positions) in the cart."""
        return db.query(CartItem).filter(owner_filter(CartItem, owner)).count()

    def is_empty(self, db: Session, owner: OwnerKey) -> bool:
        return self.get_items_quantity(db, owner) == 0

    def get_cart_summary(self, db: Session, owner: OwnerKey) -> dict:
        """Everything a cart page or header badge needs in one pass."""
        items = self.get_cart_items(db, owner)
        return {
            "items": items,
            "total": self.calculate_subtotal(items),
            "items_count": sum(it.quantity for it in items),
            "items_quantity": len(items),
        }

    @staticmethod
    def calculate_subtotal(items: List[CartItem]) -> Decimal:
        return to_money(sum((item.subtotal for item in items), Decimal("0")))

    # ==========================================
    # Mutations
    # ==========================================

    def add_item(self, db: Session, owner: OwnerKey, product_id: int, quantity: int = 1) -> CartItem:
        """
        Add `quantity` units of a product. An existing line for the same
        product is increased; a new line snapshots the current catalog price.

        Raises NotFoundError, ProductUnavailableError, InsufficientStockError.
        """
        self._check_quantity(quantity)
        product = catalog_service.get_available_product(db, product_id)

        if product.stock < quantity:
            raise InsufficientStockError(product.name, quantity, product.stock)

        item = self._find_by_product(db, owner, product_id)
        if item:
            new_qty = item.quantity + quantity
            if product.stock < new_qty:
                raise InsufficientStockError(product.name, new_qty, product.stock)
            item.quantity = new_qty
        else:
            item = CartItem(
                product_id=product.id,
                quantity=quantity,
                price=product.price,
                **owner_columns(owner),
            )
            item.product = product
            db.add(item)

        db.flush()
        return item

    def update_item(self, db: Session, owner: OwnerKey, item_id: int, quantity: int) -> CartItem:
        """Set the quantity of one of the owner's lines."""
        self._check_quantity(quantity)
        item = self._find_by_id(db, owner, item_id)

        if item.product.stock < quantity:
            raise InsufficientStockError(item.product.name, quantity, item.product.stock)

        item.quantity = quantity
        db.flush()
        return item

    def remove_item(self, db: Session, owner: OwnerKey, item_id: int) -> bool:
        item = self._find_by_id(db, owner, item_id)
        db.delete(item)
        db.flush()
        return True

    def clear_cart(self, db: Session, owner: OwnerKey) -> int:
        """Remove all items from the owner's cart. Returns number of lines deleted."""
        deleted = (
            db.query(CartItem)
            .filter(owner_filter(CartItem, owner))
            .delete(synchronize_session="fetch")
        )
        db.flush()
        return deleted

    def sync_prices(self, db: Session, owner: OwnerKey) -> int:
        """Overwrite stale price snapshots with the catalog price. Returns lines updated."""
        updated = 0
        for item in self.get_cart_items(db, owner):
            if item.has_price_changed:
                item.price = item.current_price
                updated += 1

        if updated:
            db.flush()
            logger.info(f"Synced {updated} cart price(s) for {owner}")
        return updated

    def check_availability(self, db: Session, owner: OwnerKey) -> dict:
        """
        Flag lines whose product is disabled or short on stock.
        Returns: {"available": bool, "unavailable_items": [...]}
        """
        unavailable = []
        for item in self.get_cart_items(db, owner):
            if not item.is_available:
                unavailable.append({
                    "cart_item_id": item.id,
                    "product_id": item.product_id,
                    "product_name": item.product.name,
                    "requested_quantity": item.quantity,
                    "available_quantity": item.product.stock,
                    "is_available": bool(item.product.is_available),
                })

        return {
            "available": not unavailable,
            "unavailable_items": unavailable,
        }

    # ==========================================
    # Guest → User merge
    # ==========================================

    def merge_guest_cart(self, db: Session, session_id: str, user_id: int) -> int:
        """
        Move a guest cart into a user's cart after login.
        Same product on both sides: quantities are added and the guest line dropped.
        Otherwise the guest line is re-keyed to the user.

        Runs in a SAVEPOINT: either every line moves or none does.
        Returns the number of guest lines merged.
        """
        guest = GuestOwner(session_id)
        user = AuthenticatedOwner(user_id)

        guest_items = self.get_cart_items(db, guest)
        if not guest_items:
            return 0

        with db.begin_nested():
            user_items = {it.product_id: it for it in self.get_cart_items(db, user)}
            for guest_item in guest_items:
                user_item = user_items.get(guest_item.product_id)
                if user_item:
                    user_item.quantity += guest_item.quantity
                    db.delete(guest_item)
                else:
                    guest_item.user_id = user_id
                    guest_item.session_id = None
            db.flush()

        logger.info(f"Merged {len(guest_items)} guest cart line(s) into {user}")
        return len(guest_items)

    # ==========================================
    # Private helpers
    # ==========================================

    def _find_by_product(self, db: Session, owner: OwnerKey, product_id: int):
        return db.query(CartItem).filter(
            owner_filter(CartItem, owner),
            CartItem.product_id == product_id,
        ).first()

    def _find_by_id(self, db: Session, owner: OwnerKey, item_id: int) -> CartItem:
        item = (
            db.query(CartItem)
            .options(joinedload(CartItem.product))
            .filter(owner_filter(CartItem, owner), CartItem.id == item_id)
            .first()
        )
        if not item:
            raise NotFoundError("Cart item")
        return item

    @staticmethod
    def _check_quantity(quantity: int):
        if not isinstance(quantity, int) or quantity < 1:
            raise BusinessRuleViolation("Quantity must be a positive integer.")


# Singleton
cart_service = CartService()
