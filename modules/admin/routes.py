"""
Admin Module - Routes
=======================
Canteen controls for its admin.

Endpoints:
  GET  /api/admin/canteen                              — The caller's canteen
  POST /api/admin/canteens/{id}/toggle-acceptance      — Open/close for orders
  GET  /api/admin/canteens/{id}/stats?day=YYYY-MM-DD   — Same-day statistics
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from common.exceptions import NotFoundError
from config.database import get_db
from modules.admin.dashboard_service import dashboard_service
from modules.auth.deps import require_admin
from modules.canteen.service import canteen_service
from modules.user.models import SessionContext

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/canteen")
async def my_canteen(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    canteen = canteen_service.get_admin_canteen(db, ctx)
    if not canteen:
        raise NotFoundError("No canteen is assigned to your account.")
    return {"success": True, "canteen": canteen.to_dict()}


@router.post("/canteens/{canteen_id}/toggle-acceptance")
async def toggle_acceptance(
    canteen_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    accepting = canteen_service.toggle_order_acceptance(db, ctx, canteen_id)
    db.commit()
    return {"success": True, "canteen_id": canteen_id, "accepting_orders": accepting}


@router.get("/canteens/{canteen_id}/stats")
async def daily_stats(
    canteen_id: int,
    day: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    stats = dashboard_service.compute_daily_stats(db, ctx, canteen_id, day)
    return {"success": True, "stats": stats.to_dict()}
