"""
Checkout & Order Routes
=========================
Checkout preview, order placement, order history, cancel and reorder.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import EmptyCartError, ItemsUnavailableError
from modules.auth.deps import get_owner
from modules.cart.service import cart_service
from modules.customer.models import Address
from modules.customer.service import address_service
from modules.order.models import Order, OrderStatus, DeliveryMethod
from modules.order.schemas import CheckoutData
from modules.order.service import order_service

router = APIRouter(tags=["orders"])


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


def serialize_order(order: Order, with_items: bool = True) -> dict:
    data = {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "status_label": order.status_label,
        "payment_status": order.payment_status,
        "delivery_method": order.delivery_method,
        "delivery_method_label": order.delivery_method_label,
        "payment_method": order.payment_method,
        "payment_method_label": order.payment_method_label,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "delivery_address": order.delivery_address,
        "subtotal": str(order.subtotal),
        "delivery_cost": str(order.delivery_cost),
        "discount": str(order.discount),
        "total": str(order.total),
        "notes": order.notes,
        "can_be_cancelled": order.can_be_cancelled,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "cancelled_at": order.cancelled_at.isoformat() if order.cancelled_at else None,
    }
    if with_items:
        data["items"] = [
            {
                "product_id": it.product_id,
                "product_name": it.product_name,
                "quantity": it.quantity,
                "price": str(it.price),
                "total": str(it.total),
            }
            for it in order.items
        ]
    return data


def serialize_address(address: Address) -> dict:
    return {
        "id": address.id,
        "title": address.title,
        "full_address": address.full_address,
        "short_address": address.short_address,
        "is_default": address.is_default,
    }


def _money(totals: dict) -> dict:
    return {k: str(v) for k, v in totals.items()}


# ==========================================
# ✅ Checkout - Step 1: Preview
# ==========================================

@router.get("/api/checkout")
async def checkout_preview(
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    """Validate the cart, resync prices, quote every delivery method and list saved addresses."""
    if cart_service.is_empty(db, owner):
        raise EmptyCartError()

    availability = cart_service.check_availability(db, owner)
    if not availability["available"]:
        raise ItemsUnavailableError(availability["unavailable_items"])

    price_changes = cart_service.sync_prices(db, owner)
    db.commit()

    items = cart_service.get_cart_items(db, owner)
    return {
        "price_changes": price_changes,
        "quotes": {
            m.value: _money(order_service.calculate_order_total(items, m, owner))
            for m in DeliveryMethod
        },
        "addresses": [serialize_address(a) for a in address_service.get_addresses(db, owner)],
    }


# ==========================================
# ✅ Checkout - Step 2: Place order
# ==========================================

@router.post("/api/checkout", status_code=201)
async def checkout(
    body: CheckoutData,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    order = order_service.create_order(db, owner, body)
    db.commit()

    order_service.send_order_confirmation(order)
    payment = order_service.process_payment(order)
    return {"order": serialize_order(order), "payment": payment}


# ==========================================
# 📋 Orders
# ==========================================

@router.get("/api/orders")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    orders = order_service.get_owner_orders(db, owner, status)
    return {
        "orders": [serialize_order(o, with_items=False) for o in orders],
        "status_counts": order_service.get_status_counts(db, owner),
        "current_status": status.value if status else None,
    }


@router.get("/api/orders/{order_id}")
async def order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    return serialize_order(order_service.get_owner_order(db, owner, order_id))


@router.post("/api/orders/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    body: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    order = order_service.get_owner_order(db, owner, order_id)
    reason = (body.reason if body else None) or "Cancelled by customer"
    order = order_service.cancel_order(db, order, reason)
    db.commit()
    return serialize_order(order)


@router.post("/api/orders/{order_id}/reorder")
async def reorder(
    order_id: int,
    db: Session = Depends(get_db),
    owner=Depends(get_owner),
):
    order = order_service.get_owner_order(db, owner, order_id)
    result = order_service.reorder(db, owner, order)
    db.commit()
    return result
