"""
Order Module - Service Layer
==============================
Turns the customer's cart into a priced, pending order, lists orders,
and cancels pending orders that were never paid.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from common.exceptions import (
    EmptyCartError, NotFoundError, OrdersClosedError, OutOfStockError,
    PersistenceError, ValidationError,
)
from common.helpers import as_utc, ceil_to_minutes, now_utc, to_money
from config.settings import (
    DEFAULT_PLATFORM_FEE, PENDING_ORDER_EXPIRE_MINUTES,
    PICKUP_MIN_LEAD_MINUTES, PICKUP_SLOT_COUNT, PICKUP_SLOT_MINUTES,
)
from modules.admin.settings_service import parse_decimal_setting
from modules.canteen.models import Canteen
from modules.canteen.service import canteen_service
from modules.cart.models import CartItem
from modules.catalog.models import MenuItem
from modules.order.models import Order, OrderItem, OrderStatus, OrderStatusLog
from modules.order.status_service import SYSTEM_ACTOR, order_status_service
from modules.sync.service import change_feed
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.order")


def pickup_time_slots(now: Optional[datetime] = None) -> List[datetime]:
    """Selectable pickup times: first slot at least the lead time out, then every slot step."""
    now = as_utc(now or now_utc())
    first = ceil_to_minutes(now + timedelta(minutes=PICKUP_MIN_LEAD_MINUTES), PICKUP_SLOT_MINUTES)
    return [first + timedelta(minutes=PICKUP_SLOT_MINUTES * i) for i in range(PICKUP_SLOT_COUNT)]


class OrderService:

    # ==========================================
    # Place order
    # ==========================================

    def place_order(
        self, db: Session, ctx: SessionContext, canteen_id: int,
        pickup_time: Optional[datetime], notes: Optional[str] = None,
    ) -> Order:
        """
        Create a pending order from the caller's cart lines for `canteen_id`:
        1. Validate pickup time
        2. Lock the canteen row and check it accepts orders
        3. Check every line against live stock
        4. Snapshot prices into order items, compute fee and totals
        The cart is left as is; it is cleared when payment is confirmed.

        Raises: ValidationError, NotFoundError, OrdersClosedError,
                EmptyCartError, OutOfStockError, PersistenceError
        """
        if pickup_time is None:
            raise ValidationError("Please choose a pickup time.")
        pickup_time = as_utc(pickup_time)
        earliest = now_utc() + timedelta(minutes=PICKUP_MIN_LEAD_MINUTES) - timedelta(minutes=1)
        if pickup_time < earliest:
            raise ValidationError(f"Pickup time must be at least {PICKUP_MIN_LEAD_MINUTES} minutes from now.")

        canteen = (
            db.query(Canteen)
            .filter(Canteen.id == canteen_id)
            .with_for_update()
            .first()
        )
        if not canteen:
            raise NotFoundError("Canteen not found.")
        if not canteen.is_active or not canteen.accepting_orders:
            raise OrdersClosedError(canteen.name)

        lines = (
            db.query(CartItem)
            .join(MenuItem, CartItem.menu_item_id == MenuItem.id)
            .options(joinedload(CartItem.menu_item))
            .filter(CartItem.user_id == ctx.user_id, MenuItem.canteen_id == canteen_id)
            .order_by(CartItem.id)
            .all()
        )
        if not lines:
            raise EmptyCartError()

        for line in lines:
            item = line.menu_item
            if not item.is_available or item.available_quantity < line.quantity:
                raise OutOfStockError(item.name)

        canteen_amount = Decimal("0.00")
        order_items = []
        for line in lines:
            item = line.menu_item
            price = to_money(item.price)
            total_price = to_money(price * line.quantity)
            canteen_amount += total_price
            order_items.append(OrderItem(
                menu_item_id=item.id,
                item_name=item.name,
                price=price,
                quantity=line.quantity,
                total_price=total_price,
            ))

        platform_fee = self.platform_fee_for(db, canteen)
        canteen_amount = to_money(canteen_amount)

        try:
            order = Order(
                user_id=ctx.user_id,
                canteen_id=canteen_id,
                canteen_amount=canteen_amount,
                platform_fee=platform_fee,
                total_amount=to_money(canteen_amount + platform_fee),
                status=OrderStatus.PENDING.value,
                pickup_time=pickup_time,
                notes=(notes or "").strip() or None,
            )
            db.add(order)
            db.flush()  # get order.id

            for oi in order_items:
                oi.order_id = order.id
                db.add(oi)
            db.add(OrderStatusLog(
                order_id=order.id,
                old_status=None,
                new_status=OrderStatus.PENDING.value,
                changed_by=ctx.user_id,
                description="Order placed",
            ))
            change_feed.record(db, "orders", order.id, "insert", user_id=ctx.user_id, canteen_id=canteen_id)
            db.flush()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Order insert failed for user {ctx.user_id}: {e}")
            raise PersistenceError("Could not save your order. Nothing was charged; please retry.")

        logger.info(
            f"Order #{order.id} placed by {ctx.user_id} at canteen #{canteen_id}: "
            f"{order.total_amount} ({len(order_items)} lines)"
        )
        return order

    def platform_fee_for(self, db: Session, canteen: Canteen) -> Decimal:
        """Canteen override, else the 'platform_fee' system setting, else the default."""
        if canteen.platform_fee is not None:
            return to_money(canteen.platform_fee)
        return to_money(parse_decimal_setting(db, "platform_fee", DEFAULT_PLATFORM_FEE))

    # ==========================================
    # Expiration Cleanup
    # ==========================================

    def release_expired_orders(self, db: Session) -> int:
        """Cancel pending orders that were not paid within the expiry window."""
        if PENDING_ORDER_EXPIRE_MINUTES <= 0:
            return 0
        limit_time = now_utc() - timedelta(minutes=PENDING_ORDER_EXPIRE_MINUTES)

        expired = (
            db.query(Order)
            .filter(
                Order.status == OrderStatus.PENDING.value,
                Order.created_at < limit_time,
            )
            .all()
        )

        count = 0
        reason = f"Not paid within {PENDING_ORDER_EXPIRE_MINUTES} minutes"
        for order in expired:
            if order_status_service.cancel_as_system(db, order, reason):
                count += 1

        if count:
            db.commit()
            logger.info(f"Released {count} expired orders ({SYSTEM_ACTOR})")

        return count

    # ==========================================
    # Query
    # ==========================================

    def list_orders(self, db: Session, ctx: SessionContext) -> List[Order]:
        return (
            db.query(Order)
            .filter(Order.user_id == ctx.user_id)
            .order_by(desc(Order.created_at), desc(Order.id))
            .all()
        )

    def get_order(self, db: Session, ctx: SessionContext, order_id: int) -> Order:
        """Visible to the customer who placed it and to the admin of its canteen."""
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found.")
        if order.user_id == ctx.user_id:
            return order
        if ctx.is_admin and order.canteen_id in canteen_service.admin_canteen_ids(db, ctx):
            return order
        raise NotFoundError("Order not found.")

    def list_canteen_orders(
        self, db: Session, ctx: SessionContext, canteen_id: int, status: Optional[str] = None,
    ) -> List[Order]:
        canteen_service.get_owned_canteen(db, ctx, canteen_id)
        q = db.query(Order).filter(Order.canteen_id == canteen_id)
        if status:
            if status not in {s.value for s in OrderStatus}:
                raise ValidationError(f"Unknown status: {status}")
            q = q.filter(Order.status == status)
        return q.order_by(desc(Order.created_at), desc(Order.id)).all()

    def get_history(self, db: Session, ctx: SessionContext, order_id: int) -> List[OrderStatusLog]:
        order = self.get_order(db, ctx, order_id)
        return list(order.status_logs)


# Singleton
order_service = OrderService()
