"""
Order Module - Customer Routes
================================

Endpoints:
  GET  /api/orders/pickup-slots      — Selectable pickup times
  POST /api/orders                   — Place order from cart (pending)
  GET  /api/orders                   — My orders, newest first
  GET  /api/orders/{id}              — One order with items
  GET  /api/orders/{id}/history      — Status log
  POST /api/orders/{id}/cancel       — Cancel while pending
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_login
from modules.order.service import order_service, pickup_time_slots
from modules.order.status_service import order_status_service
from modules.user.models import SessionContext

router = APIRouter(prefix="/api/orders", tags=["orders"])


# ==========================================
# Schemas
# ==========================================

class PlaceOrderRequest(BaseModel):
    canteen_id: int
    pickup_time: Optional[datetime] = None
    notes: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = ""


# ==========================================
# Endpoints
# ==========================================

@router.get("/pickup-slots")
async def pickup_slots():
    return {"success": True, "slots": [s.isoformat() for s in pickup_time_slots()]}


@router.post("")
async def place_order(
    body: PlaceOrderRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    order = order_service.place_order(db, ctx, body.canteen_id, body.pickup_time, body.notes)
    db.commit()
    db.refresh(order)
    return {"success": True, "order": order.to_dict()}


@router.get("")
async def list_orders(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    orders = order_service.list_orders(db, ctx)
    return {"success": True, "orders": [o.to_dict() for o in orders]}


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    order = order_service.get_order(db, ctx, order_id)
    return {"success": True, "order": order.to_dict()}


@router.get("/{order_id}/history")
async def order_history(
    order_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    logs = order_service.get_history(db, ctx, order_id)
    return {"success": True, "history": [log.to_dict() for log in logs]}


@router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    body: CancelRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    order = order_status_service.cancel(db, ctx, order_id, body.reason or "")
    db.commit()
    return {"success": True, "order": order.to_dict()}
