"""
Cart Routes
=============
JSON cart API for users and guests: view, add, update, remove, clear,
price resync, availability check and guest → user merge.
"""

from fastapi import APIRouter, Request, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from config.settings import CART_SESSION_COOKIE
from common.owner import OwnerKey
from modules.auth.deps import get_owner, require_login
from modules.cart.models import CartItem
from modules.cart.service import cart_service

router = APIRouter(prefix="/api/cart", tags=["cart"])


# ==========================================
# Schemas
# ==========================================

class AddItemRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, ge=1, le=1000)


class UpdateItemRequest(BaseModel):
    quantity: int = Field(..., ge=1, le=1000)


def serialize_cart_item(item: CartItem) -> dict:
    return {
        "id": item.id,
        "product_id": item.product_id,
        "product_name": item.product.name,
        "quantity": item.quantity,
        "price": str(item.price),
        "current_price": str(item.current_price),
        "price_changed": item.has_price_changed,
        "subtotal": str(item.subtotal),
        "in_stock": item.product.in_stock,
        "available_quantity": item.product.stock,
    }


def serialize_cart(db: Session, owner: OwnerKey) -> dict:
    summary = cart_service.get_cart_summary(db, owner)
    return {
        "items": [serialize_cart_item(it) for it in summary["items"]],
        "total": str(summary["total"]),
        "items_count": summary["items_count"],
        "items_quantity": summary["items_quantity"],
    }


# ==========================================
# 🛒 View Cart
# ==========================================

@router.get("")
async def view_cart(
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    return serialize_cart(db, owner)


# ==========================================
# ➕ Add / ✏️ Update / ➖ Remove
# ==========================================

@router.post("/items", status_code=201)
async def add_item(
    body: AddItemRequest,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    item = cart_service.add_item(db, owner, body.product_id, body.quantity)
    db.commit()
    return {"item": serialize_cart_item(item), "cart": serialize_cart(db, owner)}


@router.patch("/items/{item_id}")
async def update_item(
    item_id: int,
    body: UpdateItemRequest,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    item = cart_service.update_item(db, owner, item_id, body.quantity)
    db.commit()
    return {"item": serialize_cart_item(item), "cart": serialize_cart(db, owner)}


@router.delete("/items/{item_id}")
async def remove_item(
    item_id: int,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    cart_service.remove_item(db, owner, item_id)
    db.commit()
    return {"removed": True, "cart": serialize_cart(db, owner)}


@router.delete("")
async def clear_cart(
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    deleted = cart_service.clear_cart(db, owner)
    db.commit()
    return {"deleted": deleted}


# ==========================================
# 🔄 Prices & Availability
# ==========================================

@router.post("/sync-prices")
async def sync_prices(
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    updated = cart_service.sync_prices(db, owner)
    db.commit()
    return {"updated": updated, "cart": serialize_cart(db, owner)}


@router.get("/availability")
async def check_availability(
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    return cart_service.check_availability(db, owner)


# ==========================================
# 🔗 Merge guest cart after login
# ==========================================

@router.post("/merge")
async def merge_guest_cart(
    request: Request,
    db: Session = Depends(get_db),
    me=Depends(require_login),
):
    merged = 0
    session_id = request.cookies.get(CART_SESSION_COOKIE)
    if session_id:
        merged = cart_service.merge_guest_cart(db, session_id, me.user_id)
        db.commit()
    return {"merged": merged, "cart": serialize_cart(db, me)}
