"""
Catalog Module - Admin Routes
===============================
Menu management for the canteen admin.

Endpoints:
  POST   /api/admin/canteens/{id}/menu                  — Create item
  PATCH  /api/admin/menu/{item_id}                      — Edit item
  POST   /api/admin/menu/{item_id}/toggle-availability  — Flip is_available
  DELETE /api/admin/menu/{item_id}                      — Delete unordered item
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_admin
from modules.catalog.service import catalog_service
from modules.user.models import SessionContext

router = APIRouter(prefix="/api/admin", tags=["catalog-admin"])


# ==========================================
# Schemas
# ==========================================

class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None
    available_quantity: int = Field(0, ge=0)
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    available_quantity: Optional[int] = Field(None, ge=0)
    is_available: Optional[bool] = None


# ==========================================
# Endpoints
# ==========================================

@router.post("/canteens/{canteen_id}/menu")
async def create_menu_item(
    canteen_id: int,
    body: MenuItemCreate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    item = catalog_service.create_item(db, ctx, canteen_id, body.model_dump())
    db.commit()
    return {"success": True, "item": item.to_dict()}


@router.patch("/menu/{item_id}")
async def update_menu_item(
    item_id: int,
    body: MenuItemUpdate,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    item = catalog_service.update_item(db, ctx, item_id, body.model_dump(exclude_unset=True))
    db.commit()
    return {"success": True, "item": item.to_dict()}


@router.post("/menu/{item_id}/toggle-availability")
async def toggle_menu_item(
    item_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    item = catalog_service.toggle_availability(db, ctx, item_id)
    db.commit()
    return {"success": True, "item": item.to_dict()}


@router.delete("/menu/{item_id}")
async def delete_menu_item(
    item_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_admin),
):
    catalog_service.delete_item(db, ctx, item_id)
    db.commit()
    return {"success": True}
