"""
Order Module - Admin Routes
==============================
Order management for staff: list, detail and status transitions.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_staff
from modules.order.models import OrderStatus
from modules.order.routes import serialize_order, CancelRequest
from modules.order.service import order_service

router = APIRouter(prefix="/admin/orders", tags=["order-admin"])


@router.get("")
async def admin_orders(
    status: Optional[OrderStatus] = Query(None),
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    orders = order_service.get_all_orders(db, status=status)
    return {"orders": [serialize_order(o, with_items=False) for o in orders]}


@router.get("/{order_id}")
async def admin_order_detail(
    order_id: int,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.get_order_by_id(db, order_id)
    data = serialize_order(order)
    data["admin_notes"] = order.admin_notes
    data["history"] = [
        {"from": log.from_status, "to": log.to_status, "note": log.note}
        for log in order.status_logs
    ]
    return data


@router.post("/{order_id}/process")
async def process_order(
    order_id: int,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.start_processing(db, order_service.get_order_by_id(db, order_id))
    db.commit()
    return serialize_order(order)


@router.post("/{order_id}/pay")
async def mark_order_paid(
    order_id: int,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.mark_as_paid(db, order_service.get_order_by_id(db, order_id))
    db.commit()
    return serialize_order(order)


@router.post("/{order_id}/payment-failed")
async def mark_payment_failed(
    order_id: int,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.mark_payment_failed(db, order_service.get_order_by_id(db, order_id))
    db.commit()
    return serialize_order(order)


@router.post("/{order_id}/ship")
async def ship_order(
    order_id: int,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.mark_as_shipped(db, order_service.get_order_by_id(db, order_id))
    db.commit()
    return serialize_order(order)


@router.post("/{order_id}/deliver")
async def deliver_order(
    order_id: int,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.mark_as_delivered(db, order_service.get_order_by_id(db, order_id))
    db.commit()
    return serialize_order(order)


@router.post("/{order_id}/cancel")
async def cancel_order_admin(
    order_id: int,
    body: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    staff_id=Depends(require_staff),
):
    order = order_service.get_order_by_id(db, order_id)
    order = order_service.cancel_order(db, order, body.reason if body else None)
    db.commit()
    return serialize_order(order)
