"""Pytest fixtures for storefront core tests."""

import os

os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config.database import Base, enable_sqlite_savepoints
from common.owner import AuthenticatedOwner, GuestOwner
from modules.catalog.models import Product
from modules.cart.models import CartItem  # noqa: F401
from modules.customer.models import Address  # noqa: F401
from modules.order.models import Order, OrderItem, OrderStatusLog, OrderSequence  # noqa: F401


def _file_engine(path, begin="BEGIN"):
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _wal(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA journal_mode=WAL")

    enable_sqlite_savepoints(engine, begin=begin)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = enable_sqlite_savepoints(create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    ))
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def make_product(db):
    """Factory: insert a product and return it."""
    def _make(name="Widget", price="500.00", stock=10, is_available=True):
        product = Product(name=name, price=Decimal(price), stock=stock, is_available=is_available)
        db.add(product)
        db.flush()
        return product
    return _make


@pytest.fixture
def user():
    return AuthenticatedOwner(1)


@pytest.fixture
def other_user():
    return AuthenticatedOwner(2)


@pytest.fixture
def guest():
    return GuestOwner("guest-session-0001")


@pytest.fixture
def checkout_data():
    return {
        "name": "Anna Petrova",
        "email": "anna@example.com",
        "phone": "+7 900 000-00-00",
        "address": "Moscow, Tverskaya 1, apt 5",
        "delivery_method": "courier",
        "payment_method": "cash",
        "notes": "Call before delivery",
    }


@pytest.fixture
def make_file_engine(tmp_path):
    """
    Factory for a SQLite file database where every session gets its own
    connection, for tests that run sessions side by side.
    """
    engines = []

    def _make(begin="BEGIN"):
        engine = _file_engine(tmp_path / f"shop{len(engines)}.db", begin)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.dispose()


@pytest.fixture
def api(make_file_engine):
    """TestClient against a fresh database, plus a sessionmaker to seed and inspect it."""
    from fastapi.testclient import TestClient

    from config.database import get_db
    from main import app

    Session = sessionmaker(bind=make_file_engine(), autoflush=False)

    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    client.Session = Session
    yield client
    app.dependency_overrides.clear()
    client.close()


@pytest.fixture
def seed_product(api):
    def _seed(name="Widget", price="500.00", stock=10, is_available=True):
        with api.Session() as db:
            product = Product(name=name, price=Decimal(price), stock=stock, is_available=is_available)
            db.add(product)
            db.commit()
            return product.id
    return _seed
