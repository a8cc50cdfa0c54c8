"""
Order Module - Admin Routes
==============================
Order management for the canteen admin: list, advance, cancel.

Endpoints:
  GET  /api/admin/canteens/{id}/orders?status=   — Canteen orders
  POST /api/admin/orders/{id}/advance            — preparing → ready → completed
  POST /api/admin/orders/{id}/cancel             — Cancel pending/preparing
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_admin
from modules.order.service import order_service
from modules.order.status_service import order_status_service
from modules.user.models import SessionContext

router = APIRouter(prefix="/api/admin", tags=["order-admin"])


class AdvanceRequest(BaseModel):
    expected_status: Optional[str] = None


class AdminCancelRequest(BaseModel):
    reason: Optional[str] = ""


@router.get("/canteens/{canteen_id}/orders")
async def admin_orders(
    canteen_id: int,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    orders = order_service.list_canteen_orders(db, ctx, canteen_id, status)
    return {"success": True, "orders": [o.to_dict() for o in orders]}


@router.post("/orders/{order_id}/advance")
async def advance_order(
    order_id: int,
    body: Optional[AdvanceRequest] = None,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    expected = body.expected_status if body else None
    order = order_status_service.advance_status(db, ctx, order_id, expected)
    db.commit()
    return {"success": True, "order": order.to_dict()}


@router.post("/orders/{order_id}/cancel")
async def admin_cancel_order(
    order_id: int,
    body: Optional[AdminCancelRequest] = None,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    reason = (body.reason if body else "") or "Cancelled by canteen"
    order = order_status_service.cancel(db, ctx, order_id, reason)
    db.commit()
    return {"success": True, "order": order.to_dict()}
