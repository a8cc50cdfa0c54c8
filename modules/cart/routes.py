"""
Cart Module - Routes
======================
JSON cart endpoints. Every response carries the full recomputed cart
so the client can replace its snapshot in one step.

Endpoints:
  GET    /api/cart                  — Cart with totals
  POST   /api/cart/items            — Add (merges into an existing line)
  PATCH  /api/cart/items/{line_id}  — Set quantity (<= 0 removes)
  DELETE /api/cart/items/{line_id}  — Remove line
  DELETE /api/cart                  — Clear cart
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from modules.auth.deps import require_login
from modules.cart.service import cart_service
from modules.user.models import SessionContext

router = APIRouter(prefix="/api/cart", tags=["cart"])


# ==========================================
# Schemas
# ==========================================

class AddItemRequest(BaseModel):
    menu_item_id: int
    quantity: int = Field(1, ge=1)


class UpdateQuantityRequest(BaseModel):
    quantity: int


def _cart_response(db: Session, ctx: SessionContext) -> dict:
    return {"success": True, "cart": cart_service.get_cart(db, ctx).to_dict()}


# ==========================================
# Endpoints
# ==========================================

@router.get("")
async def get_cart(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    return _cart_response(db, ctx)


@router.post("/items")
async def add_item(
    body: AddItemRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    cart_service.add_item(db, ctx, body.menu_item_id, body.quantity)
    db.commit()
    return _cart_response(db, ctx)


@router.patch("/items/{line_id}")
async def update_item(
    line_id: int,
    body: UpdateQuantityRequest,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    cart_service.update_quantity(db, ctx, line_id, body.quantity)
    db.commit()
    return _cart_response(db, ctx)


@router.delete("/items/{line_id}")
async def remove_item(
    line_id: int,
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    cart_service.remove_item(db, ctx, line_id)
    db.commit()
    return _cart_response(db, ctx)


@router.delete("")
async def clear_cart(
    db: Session = Depends(get_db),
    ctx: SessionContext = Depends(require_login),
):
    cart_service.clear_cart(db, ctx)
    db.commit()
    return _cart_response(db, ctx)
