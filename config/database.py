"""
Storefront Core - Database Configuration
==========================================
Engine, SessionLocal, Base, and get_db dependency.
All models across all modules inherit from this Base.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from config.settings import DATABASE_URL


def enable_sqlite_savepoints(engine, begin: str = "BEGIN"):
    """
    Let SQLAlchemy emit BEGIN itself on pysqlite so SAVEPOINT / ROLLBACK TO
    behave as on PostgreSQL. The driver's own implicit transactions would
    otherwise end an outer transaction on RELEASE SAVEPOINT.
    """
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin)

    return engine


if DATABASE_URL.startswith("sqlite"):
    engine = enable_sqlite_savepoints(create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False, "timeout": 30},
    ))
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=20,
        max_overflow=40,
        pool_timeout=30,
        pool_recycle=1800,  # Refresh connections every 30 minutes
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
