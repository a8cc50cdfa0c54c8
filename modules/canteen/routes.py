"""
Canteen Module - Routes
=========================
Public canteen listing and menu reads.

Endpoints:
  GET /api/canteens                          — Active canteens
  GET /api/canteens/{id}                     — One canteen (select)
  GET /api/canteens/{id}/menu?category=      — Menu items
  GET /api/canteens/{id}/menu/categories     — Distinct categories
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from config.database import get_db
from modules.canteen.service import canteen_service
from modules.catalog.service import catalog_service

router = APIRouter(prefix="/api/canteens", tags=["canteens"])


@router.get("")
async def list_canteens(db: Session = Depends(get_db)):
    canteens = canteen_service.list_canteens(db)
    return {"success": True, "canteens": [c.to_dict() for c in canteens]}


@router.get("/{canteen_id}")
async def get_canteen(canteen_id: int, db: Session = Depends(get_db)):
    canteen = canteen_service.get_active_canteen(db, canteen_id)
    return {"success": True, "canteen": canteen.to_dict()}


@router.get("/{canteen_id}/menu")
async def list_menu(
    canteen_id: int,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
):
    items = catalog_service.list_menu_items(db, canteen_id, category)
    return {"success": True, "canteen_id": canteen_id, "items": [i.to_dict() for i in items]}


@router.get("/{canteen_id}/menu/categories")
async def list_categories(canteen_id: int, db: Session = Depends(get_db)):
    canteen_service.get_active_canteen(db, canteen_id)
    return {"success": True, "categories": catalog_service.list_categories(db, canteen_id)}
