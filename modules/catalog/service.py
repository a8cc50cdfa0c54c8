"""
Catalog Module - Service Layer
================================
Menu listing for customers, menu management for the canteen admin,
and the inventory decrement applied when an order is paid.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from common.exceptions import NotFoundError, ValidationError
from common.helpers import to_money
from modules.canteen.service import canteen_service
from modules.cart.models import CartItem
from modules.catalog.models import MenuItem
from modules.order.models import OrderItem
from modules.sync.service import change_feed
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.catalog")

EDITABLE_FIELDS = ("name", "description", "price", "category", "image_url", "available_quantity", "is_available")


class CatalogService:

    # ==========================================
    # Customer reads
    # ==========================================

    def list_menu_items(self, db: Session, canteen_id: int, category: Optional[str] = None) -> List[MenuItem]:
        canteen_service.get_active_canteen(db, canteen_id)
        q = db.query(MenuItem).filter(MenuItem.canteen_id == canteen_id)
        if category:
            q = q.filter(MenuItem.category == category)
        return q.order_by(MenuItem.category, MenuItem.name).all()

    def list_categories(self, db: Session, canteen_id: int) -> List[str]:
        rows = (
            db.query(MenuItem.category)
            .filter(MenuItem.canteen_id == canteen_id)
            .distinct()
            .order_by(MenuItem.category)
            .all()
        )
        return [r[0] for r in rows]

    def get_menu_item(self, db: Session, menu_item_id: int) -> MenuItem:
        item = db.query(MenuItem).filter(MenuItem.id == menu_item_id).first()
        if not item:
            raise NotFoundError("Menu item not found.")
        return item

    # ==========================================
    # Admin management
    # ==========================================

    def create_item(self, db: Session, ctx: SessionContext, canteen_id: int, data: dict) -> MenuItem:
        canteen_service.get_owned_canteen(db, ctx, canteen_id)
        clean = self._validate(data, require_all=True)

        item = MenuItem(canteen_id=canteen_id, **clean)
        db.add(item)
        db.flush()
        change_feed.record(db, "menu_items", item.id, "insert", canteen_id=canteen_id)
        logger.info(f"Menu item #{item.id} '{item.name}' created in canteen #{canteen_id}")
        return item

    def update_item(self, db: Session, ctx: SessionContext, menu_item_id: int, data: dict) -> MenuItem:
        item = self._get_owned_item(db, ctx, menu_item_id)
        clean = self._validate(data, require_all=False)
        for key, value in clean.items():
            setattr(item, key, value)
        db.flush()
        change_feed.record(db, "menu_items", item.id, "update", canteen_id=item.canteen_id)
        return item

    def toggle_availability(self, db: Session, ctx: SessionContext, menu_item_id: int) -> MenuItem:
        item = self._get_owned_item(db, ctx, menu_item_id)
        item.is_available = not item.is_available
        db.flush()
        change_feed.record(db, "menu_items", item.id, "update", canteen_id=item.canteen_id)
        return item

    def delete_item(self, db: Session, ctx: SessionContext, menu_item_id: int):
        """Delete a menu item that no order references; its cart lines go with it."""
        item = self._get_owned_item(db, ctx, menu_item_id)

        ordered = db.query(OrderItem.id).filter(OrderItem.menu_item_id == item.id).first()
        if ordered:
            raise ValidationError("This item appears in placed orders; mark it unavailable instead.")

        cart_lines = db.query(CartItem.id, CartItem.user_id).filter(CartItem.menu_item_id == item.id).all()
        db.query(CartItem).filter(CartItem.menu_item_id == item.id).delete(synchronize_session=False)
        for line_id, user_id in cart_lines:
            change_feed.record(db, "cart_items", line_id, "delete", user_id=user_id)

        canteen_id = item.canteen_id
        db.delete(item)
        change_feed.record(db, "menu_items", menu_item_id, "delete", canteen_id=canteen_id)
        db.flush()
        logger.info(f"Menu item #{menu_item_id} deleted from canteen #{canteen_id}")

    # ==========================================
    # Inventory
    # ==========================================

    def decrement_stock(self, db: Session, menu_item_id: int, quantity: int) -> bool:
        """
        Guarded decrement: never drives available_quantity below zero.
        Returns False (and clamps to 0) when fewer units were left than sold.
        """
        updated = db.query(MenuItem).filter(
            MenuItem.id == menu_item_id,
            MenuItem.available_quantity >= quantity,
        ).update(
            {MenuItem.available_quantity: MenuItem.available_quantity - quantity},
            synchronize_session=False,
        )
        if not updated:
            db.query(MenuItem).filter(MenuItem.id == menu_item_id).update(
                {MenuItem.available_quantity: 0}, synchronize_session=False,
            )
            logger.warning(f"Oversold menu item #{menu_item_id}: wanted {quantity}, clamped stock to 0")
        return bool(updated)

    # ==========================================
    # Private helpers
    # ==========================================

    def _get_owned_item(self, db: Session, ctx: SessionContext, menu_item_id: int) -> MenuItem:
        item = self.get_menu_item(db, menu_item_id)
        canteen_service.get_owned_canteen(db, ctx, item.canteen_id)
        return item

    def _validate(self, data: dict, require_all: bool) -> dict:
        clean = {k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None}

        if require_all:
            missing = [f for f in ("name", "price", "category") if not clean.get(f) and clean.get(f) != 0]
            if missing:
                raise ValidationError(f"Missing fields: {', '.join(missing)}")

        if "name" in clean:
            clean["name"] = str(clean["name"]).strip()
            if not clean["name"]:
                raise ValidationError("Name cannot be empty.")
        if "category" in clean:
            clean["category"] = str(clean["category"]).strip()
            if not clean["category"]:
                raise ValidationError("Category cannot be empty.")
        if "price" in clean:
            price = to_money(clean["price"])
            if price < Decimal("0"):
                raise ValidationError("Price cannot be negative.")
            clean["price"] = price
        if "available_quantity" in clean:
            qty = int(clean["available_quantity"])
            if qty < 0:
                raise ValidationError("Available quantity cannot be negative.")
            clean["available_quantity"] = qty
        if "is_available" in clean:
            clean["is_available"] = bool(clean["is_available"])
        return clean


# Singleton
catalog_service = CatalogService()
