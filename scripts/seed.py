"""
Storefront Core - Demo Catalog Seeder
=======================================
Inserts a handful of products so the cart and checkout API can be tried out.

Usage:
    python scripts/seed.py          # Add missing demo products
    python scripts/seed.py --reset  # Drop all data and reseed
"""

import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import SessionLocal, Base, engine
from modules.catalog.models import Product
from modules.cart.models import CartItem  # noqa: F401
from modules.customer.models import Address  # noqa: F401
from modules.order.models import Order, OrderItem, OrderStatusLog, OrderSequence  # noqa: F401


PRODUCTS = [
    # (slug, name, price, stock)
    ("espresso-beans-1kg", "Espresso beans 1 kg", Decimal("1450.00"), 40),
    ("moka-pot", "Moka pot, 6 cups", Decimal("2390.00"), 12),
    ("milk-frother", "Milk frother", Decimal("899.90"), 25),
    ("ceramic-cup-set", "Ceramic cup set", Decimal("640.00"), 60),
    ("burr-grinder", "Burr grinder", Decimal("5200.00"), 5),
    ("paper-filters", "Paper filters, 100 pcs", Decimal("149.50"), 200),
]


def seed(db):
    created = 0
    for slug, name, price, stock in PRODUCTS:
        if db.query(Product).filter(Product.slug == slug).first():
            continue
        db.add(Product(slug=slug, name=name, price=price, stock=stock, is_available=True))
        created += 1
    db.commit()
    return created


if __name__ == "__main__":
    if "--reset" in sys.argv:
        print("Dropping all tables...")
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        count = seed(db)
        print(f"Seeded {count} product(s).")
    finally:
        db.close()
