"""
Catalog Module - Service Layer
================================
Narrow stock/price interface used by the cart and order engines.

Stock is only ever changed with single UPDATE statements evaluated by the
database (stock = stock - :qty WHERE stock >= :qty), never by reading the
value into Python and writing it back.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from common.exceptions import NotFoundError, ProductUnavailableError, InsufficientStockError
from modules.catalog.models import Product

logger = logging.getLogger("storefront.catalog")


class CatalogService:

    # ==========================================
    # Read
    # ==========================================

    def get_product(self, db: Session, product_id: int) -> Optional[Product]:
        return db.query(Product).filter(Product.id == product_id).first()

    def get_available_product(self, db: Session, product_id: int) -> Product:
        """Load a product that can be sold. Raises NotFoundError / ProductUnavailableError."""
        product = self.get_product(db, product_id)
        if not product:
            raise NotFoundError("Product")
        if not product.is_available:
            raise ProductUnavailableError(product.name)
        return product

    # ==========================================
    # Stock mutations (atomic)
    # ==========================================

    def decrement_stock(self, db: Session, product_id: int, quantity: int) -> None:
        """
        Take `quantity` units off the product's stock in one conditional UPDATE.
        Raises InsufficientStockError when the row did not match (stock < quantity).
        """
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        updated = (
            db.query(Product)
            .filter(Product.id == product_id, Product.stock >= quantity)
            .update({Product.stock: Product.stock - quantity}, synchronize_session="fetch")
        )
        if updated != 1:
            product = self.get_product(db, product_id)
            if not product:
                raise NotFoundError("Product")
            db.refresh(product)
            raise InsufficientStockError(product.name, quantity, product.stock)

        logger.debug(f"Stock of product #{product_id} decreased by {quantity}")

    def increment_stock(self, db: Session, product_id: int, quantity: int) -> None:
        """Return `quantity` units to the product's stock."""
        if quantity <= 0:
            raise ValueError("quantity must be positive")

        updated = (
            db.query(Product)
            .filter(Product.id == product_id)
            .update({Product.stock: Product.stock + quantity}, synchronize_session="fetch")
        )
        if updated != 1:
            raise NotFoundError("Product")

        logger.debug(f"Stock of product #{product_id} increased by {quantity}")


# Singleton
catalog_service = CatalogService()
