"""
Storefront Core - Application Entry Point
===========================================
FastAPI app initialization, error mapping, and router registration.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import settings
from config.database import Base, engine
from common.exceptions import ShopError, ItemsUnavailableError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("storefront")


# ==========================================
# Import ALL models so Base can see them
# ==========================================
from modules.catalog.models import Product  # noqa: F401,E402
from modules.cart.models import CartItem  # noqa: F401,E402
from modules.customer.models import Address  # noqa: F401,E402
from modules.order.models import Order, OrderItem, OrderStatusLog, OrderSequence  # noqa: F401,E402

# ==========================================
# Import routers
# ==========================================
from modules.cart.routes import router as cart_router  # noqa: E402
from modules.order.routes import router as order_router  # noqa: E402
from modules.order.admin_routes import router as order_admin_router  # noqa: E402


# ==========================================
# Exception handler: business errors → JSON
# ==========================================
async def shop_exception_handler(request: Request, exc: ShopError):
    """Map NotFound → 404, StateTransition → 409, business rules → 400."""
    body = {"detail": exc.message}
    if isinstance(exc, ItemsUnavailableError):
        body["unavailable_items"] = exc.items
    logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(body, status_code=exc.status_code)


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)
    logger.info("Storefront core started")
    yield


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Storefront Core",
    description="Cart and order engine",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_exception_handler(ShopError, shop_exception_handler)

app.include_router(cart_router)
app.include_router(order_router)
app.include_router(order_admin_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
