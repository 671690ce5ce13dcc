"""
Storefront Core - Database Initialization
===========================================
Creates the cart/order tables and reports whether the schema is complete.
Existing tables are left untouched, so it can be re-run after each deploy.

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --drop   # Drop and recreate (asks for confirmation)
    python scripts/init_db.py --seed   # Also insert the demo catalog
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect

from config.database import Base, SessionLocal, engine
from modules.catalog.models import Product  # noqa: F401
from modules.cart.models import CartItem  # noqa: F401
from modules.customer.models import Address  # noqa: F401
from modules.order.models import Order, OrderItem, OrderStatusLog, OrderSequence  # noqa: F401


def init_db(drop_first=False) -> list:
    """Create all tables; returns the names of tables still missing afterwards."""
    if drop_first:
        print("Dropping storefront tables...")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)

    existing = set(inspect(engine).get_table_names())
    for name in sorted(Base.metadata.tables):
        print(f"  {'ok' if name in existing else 'MISSING'}  {name}")
    return [name for name in Base.metadata.tables if name not in existing]


if __name__ == "__main__":
    drop = "--drop" in sys.argv
    if drop and input("This will DROP every cart and order table. Type 'yes': ").strip().lower() != "yes":
        print("Aborted.")
        sys.exit(0)

    missing = init_db(drop_first=drop)
    if missing:
        print(f"[ERROR] Tables not created: {', '.join(missing)}")
        sys.exit(1)

    if "--seed" in sys.argv:
        from scripts.seed import seed

        db = SessionLocal()
        try:
            print(f"Seeded {seed(db)} product(s).")
        finally:
            db.close()

    print("Database ready.")
