"""
Order Module - Status Service
===============================
The order state machine. Every transition is a compare-and-set UPDATE
guarded on the status the caller saw, so two admins (or a webhook and a
browser callback) racing on the same order cannot both win.

    pending ──pay──> preparing ──> ready ──> completed
       │                 │
       └────cancel───────┴──> cancelled
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from common.exceptions import (
    AuthorizationError, InvalidTransitionError, NotFoundError,
)
from common.helpers import now_utc
from modules.canteen.service import canteen_service
from modules.cart.service import cart_service
from modules.catalog.service import catalog_service
from modules.order.models import Order, OrderStatus, OrderStatusLog
from modules.sync.service import change_feed
from modules.user.models import SessionContext

logger = logging.getLogger("cafepreorder.order.status")

P, PR, R, C, X = (
    OrderStatus.PENDING.value, OrderStatus.PREPARING.value, OrderStatus.READY.value,
    OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value,
)

TRANSITIONS = {
    P: {PR, X},
    PR: {R, X},
    R: {C},
    C: set(),
    X: set(),
}

# Admin "advance" button: the one forward step from each kitchen state
ADVANCE_NEXT = {PR: R, R: C}

ADMIN_CANCELLABLE = {P, PR}
CUSTOMER_CANCELLABLE = {P}

SYSTEM_ACTOR = "system"
GATEWAY_ACTOR = "gateway"


class OrderStatusService:

    # ==========================================
    # Payment confirmation
    # ==========================================

    def confirm_payment(
        self, db: Session, order_id: int, payment_reference: str,
        method: Optional[str] = None, actor: str = GATEWAY_ACTOR,
    ) -> Order:
        """
        pending -> preparing once the gateway confirms payment.

        Re-delivery of the same reference is a no-op that returns the order
        as it is. A different reference on an already-paid order, or any
        confirmation for a cancelled order, raises InvalidTransitionError.
        On success stock is decremented and the buyer's cart lines for this
        canteen are cleared.
        """
        if not payment_reference:
            raise InvalidTransitionError("Payment reference is required.")

        order = self._get(db, order_id)
        if order.payment_reference:
            if order.payment_reference == payment_reference:
                logger.info(f"Order #{order_id}: duplicate confirmation for {payment_reference} ignored")
                return order
            raise InvalidTransitionError(f"Order #{order_id} is already paid with a different reference.")

        try:
            self._transition(
                db, order, P, PR, actor,
                description=f"Payment confirmed ({method or 'unknown'}): {payment_reference}",
                values={
                    Order.payment_reference: payment_reference,
                    Order.payment_method: method,
                    Order.paid_at: now_utc(),
                },
            )
        except InvalidTransitionError:
            # Lost the race to a concurrent confirmation of the same payment
            if order.payment_reference == payment_reference:
                return order
            raise
        except IntegrityError:
            db.rollback()
            raise InvalidTransitionError("This payment reference was already used for another order.")

        for item in order.items:
            catalog_service.decrement_stock(db, item.menu_item_id, item.quantity)
            change_feed.record(db, "menu_items", item.menu_item_id, "update", canteen_id=order.canteen_id)
        cart_service.clear_lines(db, order.user_id, order.canteen_id)
        db.flush()

        logger.info(f"Order #{order_id} paid ({payment_reference}), now preparing")
        return order

    # ==========================================
    # Kitchen flow
    # ==========================================

    def advance_status(
        self, db: Session, ctx: SessionContext, order_id: int,
        expected_status: Optional[str] = None,
    ) -> Order:
        """preparing -> ready -> completed. Only the admin of the order's canteen."""
        order = self._get(db, order_id)
        canteen_service.get_owned_canteen(db, ctx, order.canteen_id)

        current = expected_status or order.status
        if expected_status and expected_status != order.status:
            raise InvalidTransitionError(
                f"Order #{order_id} is {order.status}, not {expected_status}. Refresh and retry."
            )
        new_status = ADVANCE_NEXT.get(current)
        if not new_status:
            raise InvalidTransitionError(f"Order #{order_id} cannot be advanced from {current}.")

        self._transition(db, order, current, new_status, ctx.user_id)
        logger.info(f"Order #{order_id}: {current} -> {new_status} by {ctx.user_id}")
        return order

    # ==========================================
    # Cancellation
    # ==========================================

    def cancel(self, db: Session, ctx: SessionContext, order_id: int, reason: str = "") -> Order:
        """
        Owning admin may cancel pending/preparing orders; the customer may
        cancel their own order only while it is still pending.
        """
        order = self._get(db, order_id)

        is_owner_admin = ctx.is_admin and order.canteen_id in canteen_service.admin_canteen_ids(db, ctx)
        if is_owner_admin:
            allowed = ADMIN_CANCELLABLE
        elif order.user_id == ctx.user_id:
            allowed = CUSTOMER_CANCELLABLE
        elif ctx.is_admin:
            raise AuthorizationError("You do not manage this canteen.")
        else:
            raise NotFoundError("Order not found.")

        current = order.status
        if current not in allowed:
            raise InvalidTransitionError(f"Order #{order_id} cannot be cancelled while {current}.")

        self._cancel(db, order, current, ctx.user_id, reason)
        return order

    def cancel_as_system(self, db: Session, order: Order, reason: str) -> bool:
        """Used by the expiry job. Returns False if the order moved on meanwhile."""
        try:
            self._cancel(db, order, P, SYSTEM_ACTOR, reason)
        except InvalidTransitionError:
            return False
        return True

    # ==========================================
    # Private helpers
    # ==========================================

    def _cancel(self, db: Session, order: Order, current: str, actor: str, reason: str):
        self._transition(
            db, order, current, X, actor,
            description=reason or None,
            values={
                Order.cancellation_reason: reason or None,
                Order.cancelled_at: now_utc(),
            },
        )
        logger.info(f"Order #{order.id} cancelled by {actor} (was {current})")

    def _transition(
        self, db: Session, order: Order, expected: str, new_status: str,
        actor: str, description: Optional[str] = None, values: Optional[dict] = None,
    ):
        if new_status not in TRANSITIONS.get(expected, set()):
            raise InvalidTransitionError(f"Cannot move order #{order.id} from {expected} to {new_status}.")

        update_values = {Order.status: new_status, Order.updated_at: now_utc()}
        update_values.update(values or {})

        updated = db.query(Order).filter(
            Order.id == order.id,
            Order.status == expected,
        ).update(update_values, synchronize_session=False)

        db.expire(order)
        if not updated:
            raise InvalidTransitionError(
                f"Order #{order.id} is {order.status}, expected {expected}. Refresh and retry."
            )

        self._log_status_change(db, order.id, expected, new_status, actor, description)
        change_feed.record(db, "orders", order.id, "update", user_id=order.user_id, canteen_id=order.canteen_id)
        db.flush()

    def _log_status_change(
        self, db: Session, order_id: int, old_status: Optional[str],
        new_status: str, changed_by: str, description: Optional[str] = None,
    ):
        db.add(OrderStatusLog(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            description=description,
        ))

    def _get(self, db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found.")
        return order


# Singleton
order_status_service = OrderStatusService()
