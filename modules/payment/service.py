"""
Payment Service
=================
Hosted-gateway payments (Razorpay, sandbox). Creating a payment never
changes order status; only a verified callback or a signed webhook
confirms it, through the order state machine.
"""

import logging
from typing import Dict, Any, List

from sqlalchemy.orm import Session

from common.exceptions import (
    InvalidTransitionError, NotFoundError, PaymentAbortedError,
    PaymentFailedError, ValidationError,
)
from common.helpers import to_minor_units
from config.settings import BASE_URL, CURRENCY, ENABLED_GATEWAYS
from modules.admin.settings_service import get_setting_from_db
from modules.order.models import Order, OrderStatus
from modules.order.status_service import order_status_service
from modules.user.models import SessionContext

# Import gateway modules to trigger register_gateway() calls
from modules.payment.gateways import get_all_gateway_names, get_gateway, GatewayPaymentRequest
import modules.payment.gateways.razorpay  # noqa: F401
import modules.payment.gateways.sandbox   # noqa: F401

logger = logging.getLogger("cafepreorder.payment")


class PaymentService:

    # ==========================================
    # Gateway Selection
    # ==========================================

    def get_enabled_gateways(self, db: Session) -> List[str]:
        """SystemSetting("enabled_gateways") overrides ENABLED_GATEWAYS; unknown names are dropped."""
        raw = get_setting_from_db(db, "enabled_gateways", ENABLED_GATEWAYS)
        registered = set(get_all_gateway_names())
        return [name for name in (g.strip() for g in raw.split(",")) if name in registered]

    def _enabled_gateway(self, db: Session, gateway_name: str):
        """Registered and currently enabled, else NotFoundError."""
        if gateway_name not in self.get_enabled_gateways(db):
            raise NotFoundError(f"Unknown gateway: {gateway_name}")
        return get_gateway(gateway_name)

    # ==========================================
    # Start payment
    # ==========================================

    def create_gateway_payment(
        self, db: Session, ctx: SessionContext, order_id: int, gateway_name: str,
    ) -> Dict[str, Any]:
        """Open a checkout for a pending order owned by the caller."""
        order = db.query(Order).filter(Order.id == order_id).first()
        if not order or order.user_id != ctx.user_id:
            raise NotFoundError("Order not found.")
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransitionError(f"Order #{order_id} is {order.status} and cannot be paid.")

        if not gateway_name or gateway_name not in self.get_enabled_gateways(db):
            raise ValidationError("Please choose a valid payment gateway.")
        gw = get_gateway(gateway_name)

        result = gw.create_payment(GatewayPaymentRequest(
            amount_minor=to_minor_units(order.total_amount),
            currency=CURRENCY,
            description=f"Canteen order #{order_id}",
            order_ref=str(order_id),
            callback_url=f"{BASE_URL}/api/payment/{gateway_name}/callback?order_id={order_id}",
            customer_email=ctx.email,
        ))
        if not result.success:
            logger.warning(f"Order #{order_id}: {gateway_name} create failed: {result.error_message}")
            raise PaymentFailedError(result.error_message or "Could not start the payment.")

        order.gateway_order_id = result.gateway_order_id
        order.payment_method = f"gateway_{gateway_name}"
        db.flush()

        logger.info(f"Order #{order_id}: {gateway_name} checkout {result.gateway_order_id}")
        return {
            "gateway": gateway_name,
            "order_id": order_id,
            "amount": str(order.total_amount),
            "checkout": result.checkout,
        }

    # ==========================================
    # Browser callback
    # ==========================================

    def verify_gateway_callback(
        self, db: Session, gateway_name: str, order_id: int, params: Dict[str, Any],
    ) -> Order:
        """Verify the checkout result and confirm the order. Safe to call twice."""
        gw = self._enabled_gateway(db, gateway_name)

        order = db.query(Order).filter(Order.id == order_id).first()
        if not order:
            raise NotFoundError("Order not found.")
        if not order.gateway_order_id or order.payment_method != f"gateway_{gateway_name}":
            logger.warning(f"Order #{order_id}: {gateway_name} callback without a matching checkout")
            raise PaymentFailedError("No checkout was started for this order with this gateway.")

        params = dict(params)
        params["expected_gateway_order_id"] = order.gateway_order_id
        params["order_ref"] = str(order.id)

        result = gw.verify_payment(params)
        if result.aborted:
            logger.info(f"Order #{order_id}: checkout aborted at {gateway_name}")
            raise PaymentAbortedError()
        if not result.success:
            logger.warning(f"Order #{order_id}: {gateway_name} verify failed: {result.error_message}")
            raise PaymentFailedError(result.error_message or "Payment could not be verified.")

        return order_status_service.confirm_payment(
            db, order.id, result.ref_number, method=f"gateway_{gateway_name}",
        )

    # ==========================================
    # Server-to-server webhook
    # ==========================================

    def handle_webhook(self, db: Session, gateway_name: str, raw_body: bytes, signature: str) -> Dict[str, Any]:
        """
        Confirm orders from signed capture events. Events for unknown or
        already-settled orders are acknowledged without changes so the
        gateway stops retrying.
        """
        gw = self._enabled_gateway(db, gateway_name)

        event = gw.parse_webhook(raw_body, signature)
        if not event.valid:
            logger.warning(f"{gateway_name} webhook rejected: {event.error_message}")
            raise PaymentFailedError(event.error_message or "Invalid webhook.")

        if event.event not in gw.capture_events:
            return {"processed": False, "event": event.event}

        order = None
        if event.gateway_order_id:
            order = db.query(Order).filter(Order.gateway_order_id == event.gateway_order_id).first()
        if not order and event.order_ref and str(event.order_ref).isdigit():
            order = db.query(Order).filter(Order.id == int(event.order_ref)).first()
        if not order:
            logger.warning(f"{gateway_name} webhook for unknown order {event.gateway_order_id}/{event.order_ref}")
            return {"processed": False, "event": event.event}
        if order.payment_method != f"gateway_{gateway_name}":
            logger.warning(f"Order #{order.id}: {gateway_name} webhook but checkout was {order.payment_method}")
            return {"processed": False, "event": event.event, "order_id": order.id}

        try:
            order_status_service.confirm_payment(
                db, order.id, event.ref_number, method=f"gateway_{gateway_name}",
            )
        except InvalidTransitionError as e:
            logger.error(f"Order #{order.id}: captured payment {event.ref_number} not applied: {e.message}")
            return {"processed": False, "event": event.event, "order_id": order.id}

        return {"processed": True, "event": event.event, "order_id": order.id}


payment_service = PaymentService()
