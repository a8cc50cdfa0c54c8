"""
Cart Module - Service Layer
==============================
Per-user cart: add/merge, change quantity, remove, clear, and totals.

Adding an item that is already in the cart is a single atomic
`quantity = quantity + n` UPDATE. Two devices adding the same item at
once therefore both land; the unique (user, item) constraint catches the
concurrent first insert, which then retries as an increment.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from common.exceptions import (
    NotFoundError, OrdersClosedError, OutOfStockError, ValidationError,
)
from common.helpers import now_utc, to_money
from modules.canteen.models import Canteen
from modules.cart.models import CartItem
from modules.catalog.models import MenuItem
from modules.sync.service import change_feed
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.cart")


@dataclass
class CartLine:
    id: int
    menu_item_id: int
    canteen_id: int
    name: str
    price: Decimal
    quantity: int
    line_total: Decimal
    is_orderable: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "canteen_id": self.canteen_id,
            "name": self.name,
            "price": str(self.price),
            "quantity": self.quantity,
            "line_total": str(self.line_total),
            "is_orderable": self.is_orderable,
        }


@dataclass
class CartSummary:
    lines: List[CartLine] = field(default_factory=list)
    total_amount: Decimal = Decimal("0.00")
    total_items: int = 0
    canteen_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "items": [line.to_dict() for line in self.lines],
            "total_amount": str(self.total_amount),
            "total_items": self.total_items,
            "canteen_id": self.canteen_id,
        }


class CartService:

    # ==========================================
    # Reads
    # ==========================================

    def get_cart(self, db: Session, ctx: SessionContext) -> CartSummary:
        """Cart lines with totals computed from the current line set."""
        rows = (
            db.query(CartItem)
            .options(joinedload(CartItem.menu_item))
            .filter(CartItem.user_id == ctx.user_id)
            .order_by(CartItem.id)
            .all()
        )

        summary = CartSummary()
        for row in rows:
            item = row.menu_item
            price = to_money(item.price)
            line_total = to_money(price * row.quantity)
            summary.lines.append(CartLine(
                id=row.id,
                menu_item_id=item.id,
                canteen_id=item.canteen_id,
                name=item.name,
                price=price,
                quantity=row.quantity,
                line_total=line_total,
                is_orderable=item.in_stock,
            ))
            summary.total_amount += line_total
            summary.total_items += row.quantity

        summary.total_amount = to_money(summary.total_amount)
        if summary.lines:
            summary.canteen_id = summary.lines[0].canteen_id
        return summary

    def cart_canteen_id(self, db: Session, user_id: str) -> Optional[int]:
        row = (
            db.query(MenuItem.canteen_id)
            .join(CartItem, CartItem.menu_item_id == MenuItem.id)
            .filter(CartItem.user_id == user_id)
            .first()
        )
        return row[0] if row else None

    # ==========================================
    # Mutations
    # ==========================================

    def add_item(self, db: Session, ctx: SessionContext, menu_item_id: int, quantity: int = 1) -> CartItem:
        """
        Add `quantity` units of a menu item, merging into an existing line.
        Raises: ValidationError, NotFoundError, OutOfStockError, OrdersClosedError
        """
        if quantity is None or quantity < 1:
            raise ValidationError("Quantity must be at least 1.")

        item = db.query(MenuItem).filter(MenuItem.id == menu_item_id).first()
        if not item:
            raise NotFoundError("Menu item not found.")
        if not item.in_stock:
            raise OutOfStockError(item.name)

        canteen = db.query(Canteen).filter(Canteen.id == item.canteen_id).first()
        if not canteen or not canteen.is_active or not canteen.accepting_orders:
            raise OrdersClosedError(canteen.name if canteen else "")

        current_canteen = self.cart_canteen_id(db, ctx.user_id)
        if current_canteen is not None and current_canteen != item.canteen_id:
            raise ValidationError("Your cart has items from another canteen. Clear it first.")

        if not self._increment(db, ctx.user_id, menu_item_id, quantity):
            try:
                db.add(CartItem(user_id=ctx.user_id, menu_item_id=menu_item_id, quantity=quantity))
                db.flush()
            except IntegrityError:
                db.rollback()
                # Race condition: another request inserted this line first
                if not self._increment(db, ctx.user_id, menu_item_id, quantity):
                    raise
                logger.info(f"Cart insert race for user {ctx.user_id}, item #{menu_item_id}; merged")

        line = self._get_line_by_item(db, ctx.user_id, menu_item_id)
        db.refresh(line)
        change_feed.record(db, "cart_items", line.id, "update", user_id=ctx.user_id)
        db.flush()
        return line

    def update_quantity(self, db: Session, ctx: SessionContext, line_id: int, new_quantity: int) -> Optional[CartItem]:
        """Set an absolute quantity; zero or less removes the line (returns None)."""
        if new_quantity is None or new_quantity <= 0:
            self.remove_item(db, ctx, line_id)
            return None

        line = self._get_owned_line(db, ctx, line_id)
        line.quantity = new_quantity
        line.updated_at = now_utc()
        change_feed.record(db, "cart_items", line.id, "update", user_id=ctx.user_id)
        db.flush()
        return line

    def remove_item(self, db: Session, ctx: SessionContext, line_id: int):
        deleted = db.query(CartItem).filter(
            CartItem.id == line_id,
            CartItem.user_id == ctx.user_id,
        ).delete(synchronize_session=False)
        if deleted:
            change_feed.record(db, "cart_items", line_id, "delete", user_id=ctx.user_id)
        db.flush()

    def clear_cart(self, db: Session, ctx: SessionContext):
        self.clear_lines(db, ctx.user_id)

    def clear_lines(self, db: Session, user_id: str, canteen_id: Optional[int] = None) -> int:
        """Delete a user's lines (optionally only one canteen's). Returns count removed."""
        q = db.query(CartItem.id).filter(CartItem.user_id == user_id)
        if canteen_id is not None:
            q = q.join(MenuItem, CartItem.menu_item_id == MenuItem.id).filter(MenuItem.canteen_id == canteen_id)
        line_ids = [r[0] for r in q.all()]
        if not line_ids:
            return 0

        db.query(CartItem).filter(CartItem.id.in_(line_ids)).delete(synchronize_session=False)
        for line_id in line_ids:
            change_feed.record(db, "cart_items", line_id, "delete", user_id=user_id)
        db.flush()
        return len(line_ids)

    # ==========================================
    # Private helpers
    # ==========================================

    def _increment(self, db: Session, user_id: str, menu_item_id: int, quantity: int) -> int:
        """Atomic merge. Returns number of rows updated (0 or 1)."""
        return db.query(CartItem).filter(
            CartItem.user_id == user_id,
            CartItem.menu_item_id == menu_item_id,
        ).update(
            {CartItem.quantity: CartItem.quantity + quantity, CartItem.updated_at: now_utc()},
            synchronize_session=False,
        )

    def _get_line_by_item(self, db: Session, user_id: str, menu_item_id: int) -> CartItem:
        return db.query(CartItem).filter(
            CartItem.user_id == user_id,
            CartItem.menu_item_id == menu_item_id,
        ).first()

    def _get_owned_line(self, db: Session, ctx: SessionContext, line_id: int) -> CartItem:
        line = db.query(CartItem).filter(
            CartItem.id == line_id,
            CartItem.user_id == ctx.user_id,
        ).first()
        if not line:
            raise NotFoundError("Cart line not found.")
        return line


# Singleton
cart_service = CartService()
